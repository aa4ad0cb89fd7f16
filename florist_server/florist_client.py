"""Client for the storefront API proxy."""

import json
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import httpx

from .decode import (
    decode_cart_items,
    decode_delivery_dates,
    decode_order_number,
    decode_order_total,
    decode_product_page,
    decode_session_id,
    decode_single_product,
    format_gateway_date,
)
from .errors import DecodeError, GatewayError, GatewayUnavailableError
from .models import CartItem, OrderTotal, PaymentKey, Product, ProductPage

logger = logging.getLogger(__name__)


class FloristClient:
    """Client for the local proxy that fronts the Florist One API.

    Authentication is added by the proxy, so every call here is anonymous.
    Failures raise ``GatewayError`` (or ``GatewayUnavailableError`` when the
    proxy cannot be reached) and unexpected payloads raise ``DecodeError``.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080/api",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Base URL of the proxy's /api routes
            timeout: Request timeout in seconds
            transport: Optional transport override (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise GatewayUnavailableError(f"Could not reach the store: {e}") from e

        if not response.is_success:
            message = f"API Error: {response.status_code} {response.reason_phrase}"
            details = None
            try:
                error_data = response.json()
                if isinstance(error_data, dict):
                    message = error_data.get("message") or error_data.get("error") or message
                    details = error_data.get("details")
            except ValueError:
                pass
            logger.warning(f"{method} {path} -> {response.status_code}: {message}")
            raise GatewayError(message, status_code=response.status_code, details=details)

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"{method} {path} returned invalid JSON: {response.text[:200]}") from e

    # Products

    async def list_products(
        self, category: Optional[str] = None, count: int = 12, start: int = 1
    ) -> ProductPage:
        """
        List catalog products.

        Args:
            category: Category code; None or "all" lists everything
            count: Page size
            start: 1-based index of the first product
        """
        params: dict[str, Any] = {"count": count, "start": start}
        if category and category != "all":
            params["category"] = category
        data = await self._request("GET", "/products", params=params)
        return decode_product_page(data, start=start, count=count)

    async def get_product(self, code: str) -> Product:
        data = await self._request("GET", f"/products/{code}")
        return decode_single_product(data)

    # Cart

    async def create_cart(self) -> str:
        """Create a remote cart and return its session id."""
        data = await self._request("POST", "/cart/create")
        return decode_session_id(data)

    async def get_cart(self, cart_id: str) -> list[CartItem]:
        data = await self._request("GET", "/cart", params={"cartId": cart_id})
        return decode_cart_items(data)

    async def update_cart(
        self, cart_id: str, action: str = "add", code: Optional[str] = None
    ) -> Any:
        """Mutate the remote cart. ``action`` is one of add, remove or clear."""
        body: dict[str, Any] = {"cartId": cart_id, "action": action}
        if code:
            body["code"] = code
        return await self._request("PUT", "/cart", json=body)

    async def delete_cart(self, cart_id: str) -> Any:
        return await self._request("DELETE", "/cart", params={"cartId": cart_id})

    # Delivery

    async def check_delivery_dates(self, zipcode: str) -> list[date]:
        data = await self._request("GET", "/delivery/checkdates", params={"zipcode": zipcode})
        return decode_delivery_dates(data)

    async def check_delivery_date(self, zipcode: str, day: date) -> bool:
        data = await self._request(
            "GET",
            "/delivery/checkdate",
            params={"zipcode": zipcode, "date": format_gateway_date(day)},
        )
        return bool(isinstance(data, dict) and data.get("DATE_AVAILABLE"))

    # Orders

    async def get_order_total(
        self, products: list[dict[str, Any]], fallback_subtotal: Decimal = Decimal("0")
    ) -> OrderTotal:
        data = await self._request(
            "GET", "/order/total", params={"products": json.dumps(products, default=str)}
        )
        return decode_order_total(data, fallback_subtotal)

    async def get_payment_key(self) -> PaymentKey:
        data = await self._request("GET", "/authorizenet/key")
        key = data.get("AUTHORIZENET_KEY") if isinstance(data, dict) else None
        if not key:
            raise DecodeError("Payment key response missing AUTHORIZENET_KEY")
        url = data.get("AUTHORIZENET_URL")
        return PaymentKey(key=key, url=url) if url else PaymentKey(key=key)

    async def place_order(self, order: dict[str, Any]) -> str:
        """Place an order and return its order number."""
        data = await self._request("POST", "/order/place", json=order)
        return decode_order_number(data)

    async def get_order_info(self, order_number: str) -> dict[str, Any]:
        data = await self._request("GET", f"/order/{order_number}")
        if not isinstance(data, dict):
            raise DecodeError("Unexpected order info response")
        return data
