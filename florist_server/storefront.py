"""Storefront application state and user actions."""

import logging
from datetime import date
from typing import Any, Optional

from pydantic import ValidationError

from .cart import CartManager
from .checkout import OrderSubmitter
from .config import Settings
from .delivery import MIN_POSTAL_CODE_LENGTH, DeliveryResolver
from .errors import CheckoutError, FloristError, TotalChangedError
from .florist_client import FloristClient
from .models import (
    ActionResult,
    CartItem,
    CheckoutDraft,
    DeliveryDateSet,
    OrderConfirmation,
    Product,
    ProductPage,
)
from .payment import AcceptTokenizer, CardTokenizer
from .session import SessionStore
from .stepper import CheckoutStepper
from .totals import OrderTotalCalculator

logger = logging.getLogger(__name__)


class Storefront:
    """Single owner of the cart, the checkout draft and the stepper.

    Each public method corresponds to one shopper action. Methods change the
    state held here and return what the caller needs to render; rendering
    itself is left to the caller.
    """

    def __init__(
        self,
        client: FloristClient,
        store: SessionStore,
        tokenizer: CardTokenizer,
        debounce_seconds: float = 0.5,
        customer_ip: str = "127.0.0.1",
    ) -> None:
        self.client = client
        self.cart = CartManager(client, store)
        self.delivery = DeliveryResolver(client)
        self.totals = OrderTotalCalculator(client, debounce_seconds=debounce_seconds)
        self.stepper = CheckoutStepper()
        self.submitter = OrderSubmitter(
            client, self.cart, self.totals, tokenizer, customer_ip=customer_ip
        )
        self.draft = CheckoutDraft()
        self.checkout_open = False
        self.date_message: Optional[str] = None
        self.confirmation: Optional[OrderConfirmation] = None
        self.last_error: Optional[str] = None
        self.cart.add_listener(self._on_cart_changed)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Storefront":
        client = FloristClient(settings.storefront_api, timeout=settings.request_timeout)
        tokenizer = AcceptTokenizer(
            settings.authorizenet_login_id, timeout=settings.request_timeout
        )
        return cls(
            client,
            SessionStore(settings.session_file),
            tokenizer,
            debounce_seconds=settings.total_debounce,
            customer_ip=settings.customer_ip,
        )

    async def close(self) -> None:
        await self.totals.settle()
        await self.client.close()
        close = getattr(self.submitter.tokenizer, "close", None)
        if close is not None:
            await close()

    async def start(self) -> None:
        """Restore the saved cart, or open a new one."""
        if self.cart.has_session:
            await self.cart.load_from_remote()
            return

        if not await self.cart.create_session():
            logger.warning("Initial cart creation failed, will retry on first add to cart")

    # Catalog

    async def list_products(
        self, category: Optional[str] = None, page: int = 1, count: int = 12
    ) -> ProductPage:
        page = max(1, page)
        start = (page - 1) * count + 1
        return await self.client.list_products(category=category, count=count, start=start)

    async def get_product(self, code: str) -> Product:
        return await self.client.get_product(code)

    # Cart

    async def add_product(self, code: str) -> ActionResult:
        """Look a product up by code and add it to the cart."""
        if not code:
            return ActionResult(success=False, message="Error: Product code is missing")
        try:
            product = await self.client.get_product(code)
        except FloristError as e:
            logger.error(f"Error loading product {code}: {e}")
            return ActionResult(success=False, message=f"Product {code} could not be loaded: {e}")
        return await self.cart.add_item(product)

    async def remove_item(self, index: int) -> Optional[CartItem]:
        return await self.cart.remove_item(index)

    async def clear_cart(self) -> bool:
        return await self.cart.clear()

    async def refresh_cart(self) -> list[CartItem]:
        await self.cart.load_from_remote()
        return self.cart.items

    def _on_cart_changed(self) -> None:
        if self.checkout_open:
            self._schedule_total()

    # Checkout

    def open_checkout(self) -> None:
        """
        Start a checkout attempt.

        Raises:
            CheckoutError: If the cart is empty
        """
        if self.cart.is_empty:
            raise CheckoutError("Your cart is empty!")
        self.checkout_open = True
        self.stepper.reset()
        self.confirmation = None
        self.last_error = None
        self.date_message = None
        self.delivery.invalidate()
        self.totals.reset()

    def close_checkout(self) -> None:
        self.checkout_open = False
        self.stepper.reset()
        self.draft = CheckoutDraft()
        self.date_message = None
        self.last_error = None
        self.delivery.invalidate()
        self.totals.reset()

    def _require_open(self) -> None:
        if not self.checkout_open:
            raise CheckoutError("Checkout is not open. Start checkout first.")

    def update_draft(self, **fields: Any) -> CheckoutDraft:
        """Set plain form fields. Delivery zip and date have their own actions."""
        self._require_open()
        unknown = set(fields) - set(CheckoutDraft.model_fields)
        if unknown:
            raise CheckoutError(f"Unknown checkout field(s): {', '.join(sorted(unknown))}")
        if "delivery_zip" in fields or "delivery_date" in fields:
            raise CheckoutError("Use the delivery actions to change the delivery ZIP code or date.")
        try:
            self.draft = CheckoutDraft.model_validate({**self.draft.model_dump(), **fields})
        except ValidationError as e:
            field_errors = {
                str(error["loc"][0]): f"{error['loc'][0]}: {error['msg']}" for error in e.errors()
            }
            raise CheckoutError(
                "Some checkout fields are invalid.", field_errors=field_errors
            ) from e
        return self.draft

    def edit_postal_code(self, value: str) -> None:
        """The delivery ZIP is being typed: drop cached dates and debounce the total."""
        self._require_open()
        if value != self.draft.delivery_zip:
            self.delivery.invalidate()
            self.date_message = None
        self.draft = self.draft.model_copy(update={"delivery_zip": value})
        self._schedule_total()

    async def commit_postal_code(self) -> DeliveryDateSet:
        """The delivery ZIP field lost focus: load dates and recompute right away."""
        self._require_open()
        dates = await self.delivery.fetch_available_dates(self.draft.delivery_zip)
        await self._recompute_total()
        return dates

    async def set_postal_code(self, value: str) -> DeliveryDateSet:
        self.edit_postal_code(value)
        return await self.commit_postal_code()

    async def select_delivery_date(self, day: date) -> Optional[bool]:
        """
        Choose a delivery date.

        Returns:
            Availability, or None when it could not be verified
        """
        self._require_open()
        self.draft = self.draft.model_copy(update={"delivery_date": day})
        available = await self._check_date()
        await self._recompute_total()
        return available

    async def _check_date(self) -> Optional[bool]:
        zipcode = self.draft.delivery_zip.strip()
        day = self.draft.delivery_date
        if len(zipcode) < MIN_POSTAL_CODE_LENGTH or day is None:
            self.date_message = None
            return None
        try:
            available = await self.delivery.is_date_available(zipcode, day)
        except FloristError as e:
            logger.error(f"Error checking date availability: {e}")
            self.date_message = "Unable to verify date availability."
            return None
        if available:
            self.date_message = "✓ This date is available for delivery"
        else:
            self.date_message = (
                "✗ This date is not available for delivery. Please select an available date."
            )
        return available

    def _schedule_total(self) -> None:
        self.totals.schedule(self.cart.items, self.draft.delivery_zip, self.draft.delivery_date)

    async def _recompute_total(self) -> None:
        await self.totals.recompute(
            self.cart.items, self.draft.delivery_zip, self.draft.delivery_date
        )

    async def next_step(self) -> bool:
        """Validate the current step and move forward. Entering the last step refreshes the total."""
        self._require_open()
        moved = self.stepper.next(self.draft)
        if moved and self.stepper.is_final:
            await self._recompute_total()
        return moved

    def back_step(self) -> None:
        self._require_open()
        self.stepper.back()

    async def submit_order(self) -> OrderConfirmation:
        """
        Place the order.

        Raises:
            CheckoutError: If the order was not placed; the draft is kept for a retry
        """
        self._require_open()
        self.last_error = None
        try:
            confirmation = await self.submitter.submit(self.draft, displayed_total=self.totals.total)
        except CheckoutError as e:
            self.last_error = e.message
            if e.field_errors:
                self.stepper.state = self.stepper.state.model_copy(
                    update={"errors": e.field_errors, "focus_field": next(iter(e.field_errors))}
                )
            if isinstance(e, TotalChangedError):
                await self._recompute_total()
            raise

        self.confirmation = confirmation
        self.draft = CheckoutDraft()
        self.stepper.reset()
        self.delivery.invalidate()
        self.totals.reset()
        self.date_message = None
        return confirmation

    async def get_order(self, order_number: str) -> dict[str, Any]:
        return await self.client.get_order_info(order_number)
