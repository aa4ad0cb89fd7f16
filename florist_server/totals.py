"""Order total calculation."""

import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from .delivery import MIN_POSTAL_CODE_LENGTH
from .errors import FloristError
from .florist_client import FloristClient
from .models import CartItem, OrderTotal, TotalState

logger = logging.getLogger(__name__)


def total_request_products(items: Sequence[CartItem], postal_code: str) -> list[dict]:
    """Product lines for the gettotal call, one per cart item."""
    return [
        {"CODE": item.id, "PRICE": float(item.price), "RECIPIENT": {"ZIPCODE": postal_code}}
        for item in items
    ]


class OrderTotalCalculator:
    """Recomputes the order total when the cart or delivery inputs change.

    Every request gets a sequence number and only the response to the most
    recently issued request is applied, so a slow stale response can never
    overwrite a newer one. Debounced requests wait for a quiet period first.
    """

    def __init__(self, client: FloristClient, debounce_seconds: float = 0.5) -> None:
        self.client = client
        self.debounce_seconds = debounce_seconds
        self.state = TotalState.HIDDEN
        self.total: Optional[OrderTotal] = None
        self.error: Optional[str] = None
        self._issued = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()

    @staticmethod
    def is_computable(items: Sequence[CartItem], postal_code: str, delivery_date: Optional[date]) -> bool:
        return (
            len(postal_code.strip()) >= MIN_POSTAL_CODE_LENGTH
            and delivery_date is not None
            and len(items) > 0
        )

    async def compute_total(
        self, items: Sequence[CartItem], postal_code: str, delivery_date: Optional[date]
    ) -> Optional[OrderTotal]:
        """
        Ask the gateway for the order total.

        Returns:
            The total, or None when the inputs are incomplete

        Raises:
            FloristError: If the gateway call fails or the response is unusable
        """
        if not self.is_computable(items, postal_code, delivery_date):
            return None
        postal_code = postal_code.strip()
        subtotal = sum((item.line_total for item in items), Decimal("0"))
        return await self.client.get_order_total(
            total_request_products(items, postal_code), fallback_subtotal=subtotal
        )

    async def recompute(
        self, items: Sequence[CartItem], postal_code: str, delivery_date: Optional[date]
    ) -> Optional[OrderTotal]:
        """Recompute now and update the display state if this is still the latest request."""
        self._cancel_timer()
        self._issued += 1
        sequence = self._issued
        items = list(items)

        if not self.is_computable(items, postal_code, delivery_date):
            self.state = TotalState.HIDDEN
            self.total = None
            self.error = None
            return None

        self.state = TotalState.CALCULATING
        try:
            total = await self.compute_total(items, postal_code, delivery_date)
        except FloristError as e:
            logger.error(f"Error calculating order total: {e}")
            if sequence == self._issued:
                self.state = TotalState.FAILED
                self.total = None
                self.error = "Could not calculate total. Please check your delivery information."
            return None

        if sequence != self._issued:
            logger.debug(f"Discarding superseded order total #{sequence}")
            return total

        self.state = TotalState.READY
        self.total = total
        self.error = None
        return total

    def schedule(
        self, items: Sequence[CartItem], postal_code: str, delivery_date: Optional[date]
    ) -> None:
        """Recompute after the quiet period; a later call replaces a pending one."""
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        snapshot = list(items)
        self._timer = loop.call_later(
            self.debounce_seconds, self._fire, snapshot, postal_code, delivery_date
        )

    def _fire(self, items: list[CartItem], postal_code: str, delivery_date: Optional[date]) -> None:
        self._timer = None
        task = asyncio.ensure_future(self.recompute(items, postal_code, delivery_date))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def pending(self) -> bool:
        return self._timer is not None or bool(self._tasks)

    async def settle(self) -> None:
        """Wait for any scheduled or running recomputation to finish."""
        while self.pending:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce_seconds / 2 or 0.01)

    def reset(self) -> None:
        """Forget the current total; in-flight results are ignored from now on."""
        self._cancel_timer()
        self._issued += 1
        self.state = TotalState.HIDDEN
        self.total = None
        self.error = None
