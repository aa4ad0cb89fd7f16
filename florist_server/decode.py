"""Format-tolerant decoding of Florist One responses.

The upstream API (and the proxy in front of it) is not consistent about key
casing or container names, so every field is described by an ordered list of
key paths. The first path that yields a truthy value wins. A path is either a
single key or a tuple of keys walked through nested mappings.
"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from .errors import DecodeError
from .models import CartItem, OrderTotal, Product, ProductPage

logger = logging.getLogger(__name__)

KeyPath = Union[str, tuple[str, ...]]

SESSION_ID_KEYS: tuple[KeyPath, ...] = (
    "SESSIONID",
    "sessionid",
    "sessionId",
    "CARTID",
    "cartid",
    "CART_ID",
    ("CART", "CARTID"),
    ("cart", "cartid"),
    "cartId",
    "cart_id",
)

ORDER_NUMBER_KEYS: tuple[KeyPath, ...] = ("ORDERNO", "orderno", "orderid", "orderId", "ORDERID")

PRODUCT_LIST_KEYS: tuple[KeyPath, ...] = ("PRODUCTS", "products", "product")

CART_ITEM_LIST_KEYS: tuple[KeyPath, ...] = ("products", "PRODUCTS", "ITEMS", "items")

# Single-product responses: first element of a list container, or a bare object.
SINGLE_PRODUCT_LIST_KEYS: tuple[KeyPath, ...] = ("PRODUCTS", "products")
SINGLE_PRODUCT_OBJECT_KEYS: tuple[KeyPath, ...] = ("PRODUCT", "product")

PRODUCT_FIELDS: dict[str, tuple[KeyPath, ...]] = {
    "code": ("CODE", "code", "PRODUCTCODE", "productcode", "productCode", "id"),
    "name": ("NAME", "name", "PRODUCTNAME", "productname", "productName"),
    "price": ("PRICE", "price", "BASEPRICE", "baseprice", "basePrice"),
    "description": ("DESCRIPTION", "description", "longdescription"),
    "dimension": ("DIMENSION", "dimension"),
    "categories": ("CATEGORIES", "categories"),
}

CART_ITEM_FIELDS: dict[str, tuple[KeyPath, ...]] = {
    "id": ("CODE", "code", "PRODUCTCODE", "productcode", "productCode"),
    "name": ("NAME", "name", "PRODUCTNAME", "productname", "productName"),
    "price": ("PRICE", "price", "BASEPRICE", "baseprice", "basePrice"),
    "quantity": ("QUANTITY", "quantity"),
}

# Thumbnails first: the cart shows small images.
IMAGE_KEYS: tuple[KeyPath, ...] = (
    "SMALL",
    "LARGE",
    "EXTRALARGE",
    "small",
    "large",
    "extralarge",
    "image",
    "imageurl",
    "imageUrl",
)

# Product detail prefers the largest rendition.
DETAIL_IMAGE_KEYS: tuple[KeyPath, ...] = ("EXTRALARGE", "LARGE", "SMALL", "image", "imageurl")

CATEGORY_NAME_KEYS: tuple[KeyPath, ...] = ("DISPLAY", "display", "CATEGORY", "category")

ORDER_TOTAL_FIELDS: dict[str, tuple[KeyPath, ...]] = {
    "total": ("ORDERTOTAL",),
    "subtotal": ("SUBTOTAL",),
    "tax": ("TAXTOTAL", "FLORISTONETAX"),
    "delivery_charge": ("DELIVERYCHARGETOTAL", "FLORISTONEDELIVERYCHARGE"),
}


def lookup(data: Any, path: KeyPath) -> Any:
    """Walk a key path through nested mappings, returning None when it breaks."""
    keys = (path,) if isinstance(path, str) else path
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_match(data: Any, paths: tuple[KeyPath, ...], default: Any = None) -> Any:
    """Return the first truthy value found along ``paths``."""
    for path in paths:
        value = lookup(data, path)
        if value:
            return value
    return default


def first_list(data: Any, paths: tuple[KeyPath, ...]) -> Optional[list]:
    """Return the first value along ``paths`` that is a list, even an empty one."""
    for path in paths:
        value = lookup(data, path)
        if isinstance(value, list):
            return value
    return None


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(f"Could not parse amount: {value!r}")
        return default


def to_int(value: Any, default: int = 1) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def decode_session_id(data: Any) -> str:
    """Extract the cart session id from a cart creation response."""
    session_id = first_match(data, SESSION_ID_KEYS)
    if not session_id:
        raise DecodeError(f"Cart creation response missing session id: {data!r}")
    return str(session_id)


def decode_order_number(data: Any, default: str = "unknown") -> str:
    order_number = first_match(data, ORDER_NUMBER_KEYS)
    return str(order_number) if order_number else default


def decode_image(data: Any, paths: tuple[KeyPath, ...] = IMAGE_KEYS) -> Optional[str]:
    return first_match(data, paths) or None


def decode_product(data: dict[str, Any]) -> Product:
    categories = []
    for category in first_match(data, PRODUCT_FIELDS["categories"], []) or []:
        if isinstance(category, dict):
            display = first_match(category, CATEGORY_NAME_KEYS)
            if display:
                categories.append(str(display))
        elif category:
            categories.append(str(category))

    return Product(
        code=str(first_match(data, PRODUCT_FIELDS["code"], "")),
        name=str(first_match(data, PRODUCT_FIELDS["name"], "Beautiful Bouquet")),
        price=to_decimal(first_match(data, PRODUCT_FIELDS["price"])),
        description=first_match(data, PRODUCT_FIELDS["description"]),
        image=decode_image(data, DETAIL_IMAGE_KEYS),
        thumbnail=decode_image(data),
        dimension=first_match(data, PRODUCT_FIELDS["dimension"]),
        categories=categories,
    )


def decode_product_page(data: Any, start: int = 1, count: int = 12) -> ProductPage:
    """Decode a product listing: either a bare list or a keyed container."""
    if isinstance(data, list):
        raw_products = data
    else:
        raw_products = first_list(data, PRODUCT_LIST_KEYS)
        if raw_products is None:
            raise DecodeError(f"Unexpected product list response: {str(data)[:200]}")

    products = [decode_product(item) for item in raw_products if isinstance(item, dict)]
    total = to_int(lookup(data, "TOTAL"), default=0) if isinstance(data, dict) else 0
    return ProductPage(products=products, total=total or len(products), start=start, count=count)


def decode_single_product(data: Any) -> Product:
    """Decode a one-product response (``{PRODUCTS: [...]}`` or equivalent)."""
    raw: Any = None
    if isinstance(data, list):
        raw = data[0] if data else None
    else:
        items = first_list(data, SINGLE_PRODUCT_LIST_KEYS)
        if items:
            raw = items[0]
        else:
            raw = first_match(data, SINGLE_PRODUCT_OBJECT_KEYS)

    if not isinstance(raw, dict):
        raise DecodeError("Product not found")
    return decode_product(raw)


def decode_cart_item(data: dict[str, Any]) -> Optional[CartItem]:
    item_id = first_match(data, CART_ITEM_FIELDS["id"])
    if not item_id:
        logger.warning(f"Skipping cart entry without a product code: {data!r}")
        return None
    return CartItem(
        id=str(item_id),
        name=str(first_match(data, CART_ITEM_FIELDS["name"], "Product")),
        price=to_decimal(first_match(data, CART_ITEM_FIELDS["price"])),
        quantity=max(1, to_int(first_match(data, CART_ITEM_FIELDS["quantity"], 1))),
        image=decode_image(data),
    )


def decode_cart_items(data: Any) -> list[CartItem]:
    """Decode cart contents from any of the known response shapes."""
    if isinstance(data, list):
        raw_items = data
    else:
        raw_items = first_list(data, CART_ITEM_LIST_KEYS)
        if raw_items is None:
            raise DecodeError(f"Unexpected cart response structure: {str(data)[:200]}")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        item = decode_cart_item(raw)
        if item is not None:
            items.append(item)
    return items


def decode_order_total(data: Any, fallback_subtotal: Decimal) -> OrderTotal:
    """Decode a gettotal response. ``ORDERTOTAL`` is mandatory."""
    total = first_match(data, ORDER_TOTAL_FIELDS["total"])
    if not total:
        raise DecodeError(f"Order total response missing ORDERTOTAL: {str(data)[:200]}")
    return OrderTotal(
        subtotal=to_decimal(first_match(data, ORDER_TOTAL_FIELDS["subtotal"]), fallback_subtotal),
        tax=to_decimal(first_match(data, ORDER_TOTAL_FIELDS["tax"])),
        delivery_charge=to_decimal(first_match(data, ORDER_TOTAL_FIELDS["delivery_charge"])),
        total=to_decimal(total),
    )


GATEWAY_DATE_FORMAT = "%m/%d/%Y"


def parse_gateway_date(value: str) -> date:
    """Parse an ``MM/DD/YYYY`` date as exchanged with the gateway."""
    return datetime.strptime(value.strip(), GATEWAY_DATE_FORMAT).date()


def format_gateway_date(value: date) -> str:
    return value.strftime(GATEWAY_DATE_FORMAT)


def format_display_date(value: date) -> str:
    """Format a date for shoppers, e.g. ``Wed, Dec 25, 2024``."""
    return f"{value.strftime('%a, %b')} {value.day}, {value.year}"


def decode_delivery_dates(data: Any) -> list[date]:
    dates = []
    for raw in first_list(data, ("DATES", "dates")) or []:
        try:
            dates.append(parse_gateway_date(str(raw)))
        except ValueError:
            logger.warning(f"Ignoring malformed delivery date: {raw!r}")
    return dates
