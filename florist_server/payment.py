"""Card tokenization through Authorize.Net."""

import json
import logging
import re
import uuid
from typing import Any, Optional, Protocol

import httpx

from .errors import PaymentError
from .models import CardData, PaymentKey

logger = logging.getLogger(__name__)

EXPIRY_PATTERN = re.compile(r"^(\d{2})/(\d{2})$")

PRODUCTION_API_URL = "https://api.authorize.net/xml/v1/request.api"
SANDBOX_API_URL = "https://apitest.authorize.net/xml/v1/request.api"


def parse_card(card_number: str, card_expiry: str, card_cvv: str) -> CardData:
    """
    Build card data from form values.

    Raises:
        PaymentError: If the expiry is not in MM/YY format
    """
    match = EXPIRY_PATTERN.match(card_expiry.strip())
    if not match:
        raise PaymentError("Please enter card expiry in MM/YY format")
    month, year = match.groups()
    return CardData(
        number=re.sub(r"\s", "", card_number),
        month=month,
        year=f"20{year}",
        cvv=card_cvv.strip(),
    )


class CardTokenizer(Protocol):
    """Turns raw card data into a one-time opaque payment token."""

    async def tokenize(self, key: PaymentKey, card: CardData) -> str: ...


class AcceptTokenizer:
    """Tokenizes cards with Authorize.Net's secure payment container API.

    This is the server-side equivalent of Accept.js: card data goes straight
    to Authorize.Net and only the opaque token comes back.
    """

    def __init__(
        self,
        api_login_id: Optional[str],
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_login_id = api_login_id
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    @staticmethod
    def api_url_for(key: PaymentKey) -> str:
        """Pick sandbox or production to match the Accept.js URL the store hands out."""
        return SANDBOX_API_URL if "jstest" in key.url else PRODUCTION_API_URL

    async def tokenize(self, key: PaymentKey, card: CardData) -> str:
        if not self.api_login_id:
            raise PaymentError("Payment processing is not configured. Please try again later.")

        payload = {
            "securePaymentContainerRequest": {
                "merchantAuthentication": {
                    "name": self.api_login_id,
                    "clientKey": key.key,
                },
                "data": {
                    "type": "TOKEN",
                    "id": str(uuid.uuid4()),
                    "token": {
                        "cardNumber": card.number,
                        "expirationDate": f"{card.month}{card.year}",
                        "cardCode": card.cvv,
                    },
                },
            }
        }

        try:
            response = await self.client.post(self.api_url_for(key), json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Payment tokenization request failed: {e}")
            raise PaymentError("Could not reach the payment processor. Please try again.") from e

        data = self._decode(response)
        messages = data.get("messages") or {}
        if messages.get("resultCode") == "Error":
            texts = ", ".join(
                str(message.get("text", "")) for message in messages.get("message", [])
            )
            raise PaymentError(f"Payment processing error: {texts}")

        token = (data.get("opaqueData") or {}).get("dataValue")
        if not token:
            raise PaymentError(
                "Failed to generate payment token. Invalid response from payment processor."
            )
        logger.info("✓ Payment token generated")
        return token

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        # Authorize.Net prefixes its JSON with a byte order mark
        try:
            data = json.loads(response.content.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PaymentError("Invalid response from payment processor.") from e
        if not isinstance(data, dict):
            raise PaymentError("Invalid response from payment processor.")
        return data
