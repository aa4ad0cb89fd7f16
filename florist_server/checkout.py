"""Order placement."""

import json
import logging
import re
from typing import Any, Optional, Sequence

from .cart import CartManager
from .decode import format_gateway_date
from .errors import CheckoutError, FloristError, PaymentError, TotalChangedError
from .florist_client import FloristClient
from .models import CartItem, CheckoutDraft, OrderConfirmation, OrderTotal
from .payment import CardTokenizer, parse_card
from .stepper import DELIVERY_STEP, validate_draft
from .totals import OrderTotalCalculator

logger = logging.getLogger(__name__)

CARD_MESSAGE_MAX = 200
SPECIAL_INSTRUCTIONS_MAX = 100
PHONE_DIGITS_MAX = 10


def _phone(value: str) -> str:
    return re.sub(r"\D", "", value)[:PHONE_DIGITS_MAX]


def build_order_payload(
    draft: CheckoutDraft,
    items: Sequence[CartItem],
    token: str,
    total: OrderTotal,
    customer_ip: str = "127.0.0.1",
) -> dict[str, Any]:
    """Assemble the placeorder request. Only the payment token leaves here, never card data."""
    if draft.delivery_date is None:
        raise CheckoutError("Please select a delivery date")

    customer = {
        "NAME": draft.customer_name.strip(),
        "EMAIL": draft.customer_email.strip(),
        "PHONE": _phone(draft.customer_phone),
        "ADDRESS1": draft.customer_address.strip(),
        "ADDRESS2": "",
        "CITY": draft.customer_city.strip(),
        "STATE": draft.customer_state.strip().upper(),
        "COUNTRY": "US",
        "ZIPCODE": draft.customer_zip.strip(),
        "IP": customer_ip,
    }
    recipient = {
        "NAME": draft.recipient_name.strip(),
        "INSTITUTION": "",
        "ADDRESS1": draft.delivery_address.strip(),
        "ADDRESS2": "",
        "CITY": draft.delivery_city.strip(),
        "STATE": draft.delivery_state.strip().upper(),
        "COUNTRY": "US",
        "PHONE": _phone(draft.recipient_phone),
        "ZIPCODE": draft.delivery_zip.strip(),
    }
    products = [
        {
            "CODE": item.id,
            "PRICE": float(item.price),
            "DELIVERYDATE": format_gateway_date(draft.delivery_date),
            "CARDMESSAGE": draft.card_message[:CARD_MESSAGE_MAX],
            "SPECIALINSTRUCTIONS": draft.special_instructions[:SPECIAL_INSTRUCTIONS_MAX],
            "RECIPIENT": recipient,
        }
        for item in items
    ]
    return {
        "customer": json.dumps(customer),
        "products": json.dumps(products),
        "ccinfo": json.dumps({"AUTHORIZENET_TOKEN": token}),
        "ordertotal": float(total.total),
    }


class OrderSubmitter:
    """Runs the final checkout transaction.

    Validation happens before any network call. The total is recomputed
    from a snapshot of the cart, and the order is built from that same
    snapshot, so the placed lines always match the charged total. The cart
    session is only torn down once the order has been accepted.
    """

    def __init__(
        self,
        client: FloristClient,
        cart: CartManager,
        totals: OrderTotalCalculator,
        tokenizer: CardTokenizer,
        customer_ip: str = "127.0.0.1",
    ) -> None:
        self.client = client
        self.cart = cart
        self.totals = totals
        self.tokenizer = tokenizer
        self.customer_ip = customer_ip
        self.in_flight = False

    async def submit(
        self, draft: CheckoutDraft, displayed_total: Optional[OrderTotal] = None
    ) -> OrderConfirmation:
        """
        Place the order described by ``draft`` for the current cart.

        Args:
            draft: Completed checkout form
            displayed_total: Total last shown to the shopper, if any

        Returns:
            Confirmation with the order number

        Raises:
            CheckoutError: If anything prevents the order from being placed
        """
        if self.in_flight:
            raise CheckoutError("Your order is already being processed.")

        self.in_flight = True
        try:
            return await self._submit(draft, displayed_total)
        finally:
            self.in_flight = False

    async def _submit(
        self, draft: CheckoutDraft, displayed_total: Optional[OrderTotal]
    ) -> OrderConfirmation:
        if self.cart.is_empty:
            raise CheckoutError("Your cart is empty!")

        items = list(self.cart.items)

        field_errors = validate_draft(draft, through_step=DELIVERY_STEP)
        if field_errors:
            raise CheckoutError(
                "Please complete all required fields before placing your order.",
                field_errors=field_errors,
            )
        if not (draft.card_number.strip() and draft.card_expiry.strip() and draft.card_cvv.strip()):
            raise CheckoutError("Please fill in all payment information")
        card = parse_card(draft.card_number, draft.card_expiry, draft.card_cvv)

        logger.info(f"=== PLACE ORDER: {len(items)} item(s) ===")
        try:
            total = await self.totals.compute_total(items, draft.delivery_zip, draft.delivery_date)
        except FloristError as e:
            raise CheckoutError(f"Could not calculate your order total: {e}") from e
        if total is None:
            raise CheckoutError("Could not calculate your order total.")
        if displayed_total is not None and displayed_total.total != total.total:
            raise TotalChangedError(
                f"Your order total changed to ${total.total:.2f}. "
                "Please review it and submit again.",
                total=total,
            )

        try:
            key = await self.client.get_payment_key()
        except FloristError as e:
            raise PaymentError(f"Could not start payment processing: {e}") from e
        token = await self.tokenizer.tokenize(key, card)
        if not token:
            raise PaymentError(
                "Failed to generate payment token. Please check your card information."
            )

        payload = build_order_payload(draft, items, token, total, customer_ip=self.customer_ip)
        try:
            order_number = await self.client.place_order(payload)
        except FloristError as e:
            logger.error(f"Order placement error: {e}")
            raise CheckoutError(
                f"There was an error placing your order: {e}. "
                "Please check your payment information and try again."
            ) from e
        logger.info(f"✓ Order {order_number} placed")

        if not await self.cart.destroy_session():
            logger.warning(f"Order {order_number} placed but the cart session could not be destroyed")
            self.cart.forget_session()

        return OrderConfirmation(
            order_number=order_number,
            message=(
                f"Your order #{order_number} has been placed successfully! "
                "You will receive a confirmation email shortly."
            ),
            items=items,
            total=total.total,
            delivery_date=draft.delivery_date,
            recipient_name=draft.recipient_name.strip() or None,
        )
