"""MCP Server for the Florist One flower shop."""

import asyncio
import json
import logging
from datetime import date, datetime
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .config import Settings
from .decode import format_display_date
from .errors import CheckoutError
from .models import DeliveryDateSet, DeliveryStatus, OrderTotal, Product, TotalState
from .stepper import STEPS
from .storefront import Storefront

logger = logging.getLogger("florist-mcp-server")

# Initialize server
app = Server("florist-mcp-server")

# Global state
storefront: Optional[Storefront] = None

DRAFT_FIELDS = [
    "customer_name",
    "customer_email",
    "customer_phone",
    "customer_address",
    "customer_city",
    "customer_state",
    "customer_zip",
    "recipient_name",
    "recipient_phone",
    "delivery_address",
    "delivery_city",
    "delivery_state",
    "card_message",
    "special_instructions",
    "card_number",
    "card_expiry",
    "card_cvv",
]


def get_storefront() -> Storefront:
    if storefront is None:
        raise RuntimeError("Storefront is not initialized")
    return storefront


# Rendering


def format_product(product: Product) -> str:
    lines = [f"**{product.name}** (code: {product.code})", f"  Price: ${product.price:.2f}"]
    if product.dimension:
        lines.append(f"  Size: {product.dimension}")
    if product.categories:
        lines.append(f"  Categories: {', '.join(product.categories)}")
    if product.description:
        lines.append(f"  {product.description}")
    if product.image:
        lines.append(f"  Image: {product.image}")
    return "\n".join(lines)


def format_cart(shop: Storefront) -> str:
    cart = shop.cart
    if cart.is_empty:
        return "🛒 Your cart is empty"
    lines = [f"🛒 Cart ({cart.item_count} item(s)):"]
    for index, item in enumerate(cart.items):
        lines.append(
            f"  [{index}] {item.name} ({item.id}) x{item.quantity} - ${item.line_total:.2f}"
        )
    lines.append(f"Subtotal: ${cart.subtotal:.2f}")
    return "\n".join(lines)


def format_total(total: OrderTotal) -> str:
    return (
        f"Subtotal: ${total.subtotal:.2f}\n"
        f"Delivery: ${total.delivery_charge:.2f}\n"
        f"Tax: ${total.tax:.2f}\n"
        f"Total: ${total.total:.2f}"
    )


def format_dates(dates: DeliveryDateSet) -> str:
    if dates.status == DeliveryStatus.UNDETERMINED:
        return (
            f"Could not check delivery dates for {dates.postal_code or 'that ZIP code'}. "
            "You can still choose a date."
        )
    if not dates.dates:
        return f"No delivery dates available for {dates.postal_code or 'that ZIP code'}."
    shown = ", ".join(format_display_date(day) for day in dates.dates[:14])
    more = f" (+{len(dates.dates) - 14} more)" if len(dates.dates) > 14 else ""
    return (
        f"📅 Delivery to {dates.postal_code}: {len(dates.dates)} date(s) available, "
        f"{format_display_date(dates.earliest)} to {format_display_date(dates.latest)}\n"
        f"{shown}{more}"
    )


def format_checkout(shop: Storefront) -> str:
    if not shop.checkout_open:
        return "Checkout is not open."
    stepper = shop.stepper
    draft = shop.draft
    lines = [f"Step {stepper.current_step} of {len(STEPS)}: {stepper.current_title}"]
    for field, label in STEPS[stepper.current_step - 1].required:
        value = getattr(draft, field)
        if field.startswith("card_") and value:
            value = "****" if field != "card_number" else f"****{str(value)[-4:]}"
        elif isinstance(value, date):
            value = format_display_date(value)
        lines.append(f"  {label}: {value or '-'}")
    if stepper.errors:
        lines.append("Please fix:")
        lines.extend(f"  - {message}" for message in stepper.errors.values())
    if shop.date_message:
        lines.append(shop.date_message)
    totals = shop.totals
    if totals.state == TotalState.CALCULATING:
        lines.append("Calculating total...")
    elif totals.state == TotalState.READY and totals.total is not None:
        lines.append(format_total(totals.total))
    elif totals.state == TotalState.FAILED and totals.error:
        lines.append(totals.error)
    if shop.last_error:
        lines.append(f"❌ {shop.last_error}")
    return "\n".join(lines)


def checkout_state(shop: Storefront) -> dict[str, Any]:
    """JSON view of the checkout, without payment fields."""
    return {
        "open": shop.checkout_open,
        "step": shop.stepper.current_step,
        "title": shop.stepper.current_title,
        "errors": shop.stepper.errors,
        "draft": shop.draft.model_dump(
            mode="json", exclude={"card_number", "card_expiry", "card_cvv"}
        ),
        "total_state": shop.totals.state.value,
        "total": shop.totals.total.model_dump(mode="json") if shop.totals.total else None,
        "date_message": shop.date_message,
    }


def parse_date_argument(value: str) -> date:
    for fmt in ("%Y-%m-%d", "%m/%d/%Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD.")


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    resources = [
        Resource(
            uri=AnyUrl("florist://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents",
        )
    ]
    if storefront is not None and storefront.checkout_open:
        resources.append(
            Resource(
                uri=AnyUrl("florist://checkout"),
                name="Checkout",
                mimeType="application/json",
                description="Current checkout step, form values and order total",
            )
        )
    return resources


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)
    shop = get_storefront()

    if uri_str == "florist://cart":
        return json.dumps(
            {
                "cart_id": shop.cart.session_id,
                "items": [item.model_dump(mode="json") for item in shop.cart.items],
                "subtotal": str(shop.cart.subtotal),
            },
            indent=2,
        )
    if uri_str == "florist://checkout":
        return json.dumps(checkout_state(shop), indent=2)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="florist_list_products",
            description="Browse the flower catalog, optionally by category",
            inputSchema={
                "type": "object",
                "properties": {
                    "category": {
                        "type": "string",
                        "description": "Category code (e.g., 'bd' birthday, 'sy' sympathy); omit for all",
                    },
                    "page": {"type": "integer", "description": "Page number (default: 1)", "default": 1},
                    "count": {"type": "integer", "description": "Products per page (default: 12)", "default": 12},
                },
            },
        ),
        Tool(
            name="florist_get_product",
            description="Get details of one product",
            inputSchema={
                "type": "object",
                "properties": {"code": {"type": "string", "description": "Product code"}},
                "required": ["code"],
            },
        ),
        Tool(
            name="florist_add_to_cart",
            description="Add one unit of a product to the cart",
            inputSchema={
                "type": "object",
                "properties": {"code": {"type": "string", "description": "Product code"}},
                "required": ["code"],
            },
        ),
        Tool(
            name="florist_get_cart",
            description="Get current shopping cart contents (refreshed from the store)",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="florist_remove_from_cart",
            description="Remove a cart line by its position as shown in the cart",
            inputSchema={
                "type": "object",
                "properties": {"index": {"type": "integer", "description": "Cart line index (0-based)"}},
                "required": ["index"],
            },
        ),
        Tool(
            name="florist_clear_cart",
            description="Remove everything from the cart",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="florist_start_checkout",
            description="Open checkout at step 1 (Customer Information)",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="florist_update_checkout",
            description=(
                "Set checkout form fields. delivery_zip and delivery_date (YYYY-MM-DD) "
                "also refresh delivery dates and the order total."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    **{field: {"type": "string"} for field in DRAFT_FIELDS},
                    "delivery_zip": {"type": "string", "description": "Recipient ZIP code"},
                    "delivery_date": {"type": "string", "description": "Delivery date, YYYY-MM-DD"},
                },
            },
        ),
        Tool(
            name="florist_checkout_next",
            description="Validate the current checkout step and continue",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="florist_checkout_back",
            description="Go back one checkout step",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="florist_get_checkout",
            description="Show the current checkout step, errors and total",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="florist_check_delivery_dates",
            description="List available delivery dates for a ZIP code",
            inputSchema={
                "type": "object",
                "properties": {"zipcode": {"type": "string", "description": "5-digit ZIP code"}},
                "required": ["zipcode"],
            },
        ),
        Tool(
            name="florist_place_order",
            description="Place the order with the payment details entered at checkout",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="florist_close_checkout",
            description="Close checkout and discard the form",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="florist_get_order",
            description="Look up a placed order",
            inputSchema={
                "type": "object",
                "properties": {"order_number": {"type": "string", "description": "Order number"}},
                "required": ["order_number"],
            },
        ),
    ]


async def handle_tool(name: str, arguments: dict[str, Any]) -> str:
    """Run a tool against the storefront and return its text output."""
    shop = get_storefront()

    if name == "florist_list_products":
        page = await shop.list_products(
            category=arguments.get("category"),
            page=int(arguments.get("page", 1)),
            count=int(arguments.get("count", 12)),
        )
        if not page.products:
            return "No products found."
        header = f"Found {page.total} product(s), showing {page.start}-{page.start + len(page.products) - 1}:"
        return header + "\n\n" + "\n\n".join(format_product(p) for p in page.products)

    if name == "florist_get_product":
        return format_product(await shop.get_product(arguments["code"]))

    if name == "florist_add_to_cart":
        result = await shop.add_product(arguments.get("code", ""))
        if result.success:
            return f"✅ {result.message}\n\n{format_cart(shop)}"
        return f"❌ {result.message}"

    if name == "florist_get_cart":
        await shop.refresh_cart()
        return format_cart(shop)

    if name == "florist_remove_from_cart":
        removed = await shop.remove_item(int(arguments["index"]))
        if removed is None:
            return f"❌ No cart line at index {arguments['index']}"
        return f"✅ Removed {removed.name}\n\n{format_cart(shop)}"

    if name == "florist_clear_cart":
        if await shop.clear_cart():
            return "✅ Cart cleared"
        return "❌ Failed to clear cart"

    if name == "florist_start_checkout":
        shop.open_checkout()
        return format_checkout(shop)

    if name == "florist_update_checkout":
        fields = {k: v for k, v in arguments.items() if k in DRAFT_FIELDS}
        if fields:
            shop.update_draft(**fields)
        output = []
        if "delivery_zip" in arguments:
            dates = await shop.set_postal_code(str(arguments["delivery_zip"]))
            output.append(format_dates(dates))
        if arguments.get("delivery_date"):
            await shop.select_delivery_date(parse_date_argument(str(arguments["delivery_date"])))
        output.append(format_checkout(shop))
        return "\n\n".join(output)

    if name == "florist_checkout_next":
        moved = await shop.next_step()
        if moved:
            prefix = ""
        elif shop.stepper.errors:
            prefix = "❌ This step is incomplete.\n"
        else:
            prefix = "✅ All details are complete. Use florist_place_order to place your order.\n"
        return prefix + format_checkout(shop)

    if name == "florist_checkout_back":
        shop.back_step()
        return format_checkout(shop)

    if name == "florist_get_checkout":
        return format_checkout(shop)

    if name == "florist_check_delivery_dates":
        return format_dates(await shop.delivery.fetch_available_dates(arguments["zipcode"]))

    if name == "florist_place_order":
        confirmation = await shop.submit_order()
        shop.close_checkout()
        lines = [f"✅ {confirmation.message}", f"Total charged: ${confirmation.total:.2f}"]
        if confirmation.delivery_date:
            lines.append(f"Delivery: {format_display_date(confirmation.delivery_date)}")
        if confirmation.recipient_name:
            lines.append(f"Recipient: {confirmation.recipient_name}")
        return "\n".join(lines)

    if name == "florist_close_checkout":
        shop.close_checkout()
        return "Checkout closed."

    if name == "florist_get_order":
        info = await shop.get_order(arguments["order_number"])
        return json.dumps(info, indent=2, default=str)

    return f"Unknown tool: {name}"


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    try:
        text = await handle_tool(name, arguments or {})
    except CheckoutError as e:
        logger.warning(f"Checkout problem in {name}: {e.message}")
        text = f"❌ {e.message}"
        if e.field_errors:
            text += "\n" + "\n".join(f"  - {message}" for message in e.field_errors.values())
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        text = f"Error: {str(e)}"
    return [TextContent(type="text", text=text)]


async def main() -> None:
    """Main entry point."""
    global storefront

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level.upper())
    if not settings.authorizenet_login_id:
        logger.warning("AUTHORIZENET_API_LOGIN_ID not set; orders cannot be paid for")

    storefront = Storefront.from_settings(settings)
    logger.info(f"Starting Florist MCP Server against {settings.storefront_api}...")
    await storefront.start()

    # Import and run the server
    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
