"""Shopping cart bound to a remote Florist One cart session."""

import asyncio
import logging
from decimal import Decimal
from typing import Callable, Optional

from .errors import DecodeError, FloristError, GatewayError
from .florist_client import FloristClient
from .models import ActionResult, CartItem, Product
from .session import SessionStore

logger = logging.getLogger(__name__)

CartListener = Callable[[], None]


class CartManager:
    """Owns the local cart and keeps it in step with the remote cart session.

    Adds only touch the local cart after the remote call succeeds. Removals
    are optimistic: the item disappears locally whatever the remote says.
    Any divergence is resolved by the next ``load_from_remote()``.
    """

    def __init__(self, client: FloristClient, store: SessionStore) -> None:
        self.client = client
        self.store = store
        self.session_id: Optional[str] = store.load()
        self.items: list[CartItem] = []
        self._listeners: list[CartListener] = []

    @property
    def has_session(self) -> bool:
        return bool(self.session_id)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))

    def add_listener(self, listener: CartListener) -> None:
        """Register a callback run after every local cart change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Cart listener failed: {e}", exc_info=True)

    def _set_session(self, session_id: Optional[str]) -> None:
        self.session_id = session_id
        self.store.save(session_id)

    def _invalidate_session(self) -> None:
        logger.warning(f"Cart session {self.session_id} is gone, discarding it")
        self._set_session(None)
        self.items = []

    def forget_session(self) -> None:
        """Drop the session and local cart without contacting the gateway."""
        self._set_session(None)
        self.items = []
        self._notify()

    async def create_session(self) -> bool:
        """Create a new remote cart. Returns False and leaves state alone on failure."""
        try:
            session_id = await self.client.create_cart()
        except FloristError as e:
            logger.error(f"Error creating cart: {e}")
            return False

        self._set_session(session_id)
        logger.info(f"✓ Created cart session {session_id}")
        return True

    async def load_from_remote(self) -> None:
        """Replace the local cart with the remote cart contents."""
        if not self.session_id:
            self._notify()
            return

        try:
            items = await self.client.get_cart(self.session_id)
        except GatewayError as e:
            if e.is_gone:
                self._invalidate_session()
            else:
                logger.error(f"Error loading cart: {e}")
            self._notify()
            return
        except DecodeError as e:
            logger.error(f"Unrecognised cart response: {e}")
            self._invalidate_session()
            self._notify()
            return

        self.items = list(await asyncio.gather(*(self._with_image(item) for item in items)))
        logger.info(f"Loaded cart with {len(self.items)} item(s)")
        self._notify()

    async def _with_image(self, item: CartItem) -> CartItem:
        """Backfill a missing image from the product catalog."""
        if item.image:
            return item
        try:
            product = await self.client.get_product(item.id)
        except FloristError as e:
            logger.warning(f"Failed to fetch product details for {item.id}: {e}")
            return item
        thumbnail = product.thumbnail or product.image
        if thumbnail:
            return item.model_copy(update={"image": thumbnail})
        return item

    async def add_item(self, product: Product) -> ActionResult:
        """Add one unit of ``product`` to the cart."""
        if not product.code:
            return ActionResult(success=False, message="Error: Product code is missing")

        if not self.session_id:
            created = await self.create_session()
            if not created or not self.session_id:
                logger.error("Failed to create cart")
                return ActionResult(
                    success=False,
                    message="Error: Could not add item to cart. Please try again.",
                )

        try:
            await self.client.update_cart(self.session_id, action="add", code=product.code)
        except FloristError as e:
            logger.error(f"Error adding item to cart: {e}")
            return ActionResult(success=False, message=self._add_error_message(product, e))

        for index, item in enumerate(self.items):
            if item.id == product.code:
                self.items[index] = item.model_copy(update={"quantity": item.quantity + 1})
                break
        else:
            self.items.append(
                CartItem(
                    id=product.code,
                    name=product.name,
                    price=product.price,
                    quantity=1,
                    image=product.thumbnail or product.image,
                )
            )
        self._notify()
        return ActionResult(success=True, message=f"{product.name} added to cart!")

    @staticmethod
    def _add_error_message(product: Product, error: FloristError) -> str:
        if isinstance(error, GatewayError) and error.is_server_error:
            return (
                f'Unable to add "{product.name}" to cart. The product may not be available '
                "for purchase or there was a server error."
            )
        if isinstance(error, GatewayError) and error.is_not_found:
            return "Product or cart not found. Please refresh and try again."
        return f"Error: {str(error)[:100]}"

    async def remove_item(self, index: int) -> Optional[CartItem]:
        """Remove the item at ``index``. Local removal happens even if the remote call fails."""
        if index < 0 or index >= len(self.items):
            return None

        item = self.items[index]
        if self.session_id:
            try:
                await self.client.update_cart(self.session_id, action="remove", code=item.id)
            except FloristError as e:
                logger.error(f"Error removing item from cart: {e}")

        # The list may have changed while awaiting; drop this exact entry.
        for position, current in enumerate(self.items):
            if current is item:
                del self.items[position]
                break
        self._notify()
        return item

    async def clear(self) -> bool:
        """Empty the remote cart; the local cart follows only on success."""
        if not self.session_id:
            return False
        try:
            await self.client.update_cart(self.session_id, action="clear")
        except FloristError as e:
            logger.error(f"Error clearing cart: {e}")
            return False

        self.items = []
        self._notify()
        return True

    async def destroy_session(self) -> bool:
        """Delete the remote cart and forget the session."""
        if not self.session_id:
            return False
        try:
            await self.client.delete_cart(self.session_id)
        except FloristError as e:
            logger.error(f"Error destroying cart: {e}")
            return False

        logger.info(f"✓ Destroyed cart session {self.session_id}")
        self._set_session(None)
        self.items = []
        self._notify()
        return True
