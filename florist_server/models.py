"""Data models for the flower storefront."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Product(BaseModel):
    """Represents a product from the Florist One catalog."""

    code: str = Field(description="Product code")
    name: str = Field(description="Product name")
    price: Decimal = Field(default=Decimal("0"), description="Product price in USD")
    description: Optional[str] = Field(None, description="Product description")
    image: Optional[str] = Field(None, description="Product image URL")
    thumbnail: Optional[str] = Field(None, description="Small image URL for cart listings")
    dimension: Optional[str] = Field(None, description="Arrangement dimensions")
    categories: list[str] = Field(default_factory=list, description="Category display names")


class ProductPage(BaseModel):
    """One page of catalog results."""

    products: list[Product] = Field(default_factory=list)
    total: int = Field(default=0, description="Total products available for the query")
    start: int = Field(default=1, description="1-based index of the first product")
    count: int = Field(default=12, description="Requested page size")


class CartItem(BaseModel):
    """Represents an item in the shopping cart."""

    id: str = Field(description="Product code")
    name: str
    price: Decimal = Field(default=Decimal("0"))
    quantity: int = Field(default=1, ge=1)
    image: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class SessionData(BaseModel):
    """Persisted cart session."""

    cart_id: Optional[str] = Field(None, description="Remote shopping cart session id")


class ActionResult(BaseModel):
    """Outcome of a shopper action."""

    success: bool
    message: str


class DeliveryStatus(str, Enum):
    """Outcome of a bulk delivery date lookup."""

    AVAILABLE = "available"
    NONE_AVAILABLE = "none_available"
    UNDETERMINED = "undetermined"


class DeliveryDateSet(BaseModel):
    """Delivery dates available for one postal code."""

    postal_code: str
    dates: list[date] = Field(default_factory=list)
    status: DeliveryStatus = DeliveryStatus.NONE_AVAILABLE

    @property
    def earliest(self) -> Optional[date]:
        return self.dates[0] if self.dates else None

    @property
    def latest(self) -> Optional[date]:
        return self.dates[-1] if self.dates else None


class OrderTotal(BaseModel):
    """Order total as computed by the gateway."""

    subtotal: Decimal
    tax: Decimal
    delivery_charge: Decimal
    total: Decimal


class TotalState(str, Enum):
    """Display state of the order total."""

    HIDDEN = "hidden"
    CALCULATING = "calculating"
    READY = "ready"
    FAILED = "failed"


class CheckoutDraft(BaseModel):
    """Unsubmitted checkout form."""

    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    customer_city: str = ""
    customer_state: str = ""
    customer_zip: str = ""
    recipient_name: str = ""
    recipient_phone: str = ""
    delivery_address: str = ""
    delivery_city: str = ""
    delivery_state: str = ""
    delivery_zip: str = ""
    delivery_date: Optional[date] = None
    card_message: str = ""
    special_instructions: str = ""
    card_number: str = Field(default="", repr=False)
    card_expiry: str = Field(default="", repr=False)
    card_cvv: str = Field(default="", repr=False)


class StepperState(BaseModel):
    """Position in the checkout steps plus per-field error annotations."""

    current_step: int = Field(default=1, ge=1)
    total_steps: int = 4
    errors: dict[str, str] = Field(default_factory=dict)
    focus_field: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.current_step == self.total_steps


class PaymentKey(BaseModel):
    """Client key for the payment processor."""

    key: str
    url: str = "https://jstest.authorize.net/v1/Accept.js"


class CardData(BaseModel):
    """Raw card data; only ever handed to the tokenizer."""

    number: str = Field(repr=False)
    month: str
    year: str = Field(description="Four digit year")
    cvv: str = Field(repr=False)


class OrderConfirmation(BaseModel):
    """Result of a successfully placed order."""

    order_number: str
    message: str
    items: list[CartItem] = Field(default_factory=list)
    total: Decimal
    delivery_date: Optional[date] = None
    recipient_name: Optional[str] = None
