"""Exceptions raised by the storefront."""

from typing import Any, Optional


class FloristError(Exception):
    """Base class for storefront errors."""


class GatewayError(FloristError):
    """The local API proxy (or Florist One behind it) rejected a request."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500

    @property
    def is_gone(self) -> bool:
        """True when the remote resource should be treated as no longer existing."""
        return self.is_not_found or self.is_server_error

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status {self.status_code})"


class GatewayUnavailableError(GatewayError):
    """The gateway could not be reached at all."""


class DecodeError(FloristError):
    """A response did not match any known shape."""


class CheckoutError(FloristError):
    """Checkout cannot proceed; carries a message fit for the shopper."""

    def __init__(self, message: str, field_errors: Optional[dict[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field_errors = field_errors or {}


class PaymentError(CheckoutError):
    """The payment processor refused to tokenize the card."""


class TotalChangedError(CheckoutError):
    """The freshly computed total differs from the one the shopper saw."""

    def __init__(self, message: str, total: Any = None) -> None:
        super().__init__(message)
        self.total = total
