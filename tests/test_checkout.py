"""Tests for order placement."""

import asyncio
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from florist_server.cart import CartManager
from florist_server.checkout import OrderSubmitter, build_order_payload
from florist_server.errors import CheckoutError, PaymentError, TotalChangedError
from florist_server.models import CartItem, CheckoutDraft, OrderTotal
from florist_server.totals import OrderTotalCalculator

from .conftest import TOTAL_RESPONSE, FakeTokenizer, body

DRAFT = CheckoutDraft(
    customer_name="Ada Lovelace",
    customer_email="ada@example.com",
    customer_phone="(555) 123-4567",
    customer_address="1 Main St",
    customer_city="New York",
    customer_state="ny",
    customer_zip="10001",
    recipient_name="Grace Hopper",
    recipient_phone="555.987.6543",
    delivery_address="2 Elm St",
    delivery_city="Arlington",
    delivery_state="va",
    delivery_zip="22201",
    delivery_date=date(2024, 12, 25),
    card_message="Happy holidays!",
    card_number="4111 1111 1111 1111",
    card_expiry="12/30",
    card_cvv="123",
)

ROSES_LINE = CartItem(id="R1", name="Red Roses", price=Decimal("59.99"), quantity=1)
TOTAL = OrderTotal(
    subtotal=Decimal("10.00"),
    tax=Decimal("1.00"),
    delivery_charge=Decimal("5.00"),
    total=Decimal("16.00"),
)


@pytest.fixture
def checkout_gateway(gateway):
    gateway.on("GET", "/order/total", TOTAL_RESPONSE)
    gateway.on("GET", "/authorizenet/key", {"AUTHORIZENET_KEY": "client-key"})
    gateway.on("POST", "/order/place", {"ORDERNO": 98765})
    gateway.on("DELETE", "/cart", {"STATUS": "OK"})
    return gateway


@pytest.fixture
def cart(client, store):
    store.save("S1")
    manager = CartManager(client, store)
    manager.items = [ROSES_LINE]
    return manager


@pytest.fixture
def submitter(client, cart, tokenizer):
    return OrderSubmitter(client, cart, OrderTotalCalculator(client), tokenizer)


def test_payload_shape():
    payload = build_order_payload(DRAFT, [ROSES_LINE], "tok-123", TOTAL, customer_ip="10.0.0.1")

    customer = json.loads(payload["customer"])
    products = json.loads(payload["products"])
    assert customer["PHONE"] == "5551234567"
    assert customer["STATE"] == "NY"
    assert customer["IP"] == "10.0.0.1"
    assert products == [
        {
            "CODE": "R1",
            "PRICE": 59.99,
            "DELIVERYDATE": "12/25/2024",
            "CARDMESSAGE": "Happy holidays!",
            "SPECIALINSTRUCTIONS": "",
            "RECIPIENT": {
                "NAME": "Grace Hopper",
                "INSTITUTION": "",
                "ADDRESS1": "2 Elm St",
                "ADDRESS2": "",
                "CITY": "Arlington",
                "STATE": "VA",
                "COUNTRY": "US",
                "PHONE": "5559876543",
                "ZIPCODE": "22201",
            },
        }
    ]
    assert json.loads(payload["ccinfo"]) == {"AUTHORIZENET_TOKEN": "tok-123"}
    assert payload["ordertotal"] == 16.0
    assert "4111" not in json.dumps(payload)


def test_payload_truncates_free_text():
    draft = DRAFT.model_copy(update={"card_message": "x" * 300, "special_instructions": "y" * 300})

    products = json.loads(build_order_payload(draft, [ROSES_LINE], "t", TOTAL)["products"])

    assert len(products[0]["CARDMESSAGE"]) == 200
    assert len(products[0]["SPECIALINSTRUCTIONS"]) == 100


async def test_successful_order_tears_down_cart(checkout_gateway, submitter, cart, store, tokenizer):
    confirmation = await submitter.submit(DRAFT)

    assert confirmation.order_number == "98765"
    assert "#98765" in confirmation.message
    assert confirmation.total == Decimal("16.00")
    assert confirmation.items == [ROSES_LINE]
    assert cart.items == []
    assert cart.session_id is None
    assert store.load() is None
    assert tokenizer.cards[0].number == "4111111111111111"
    placed = body(checkout_gateway.requests_to("POST", "/order/place")[0])
    assert json.loads(placed["ccinfo"]) == {"AUTHORIZENET_TOKEN": "tok-123"}


async def test_place_order_failure_keeps_cart_and_session(checkout_gateway, submitter, cart, store):
    checkout_gateway.on("POST", "/order/place", {"error": "Failed to place order"}, status=500)

    with pytest.raises(CheckoutError, match="There was an error placing your order"):
        await submitter.submit(DRAFT)

    assert cart.items == [ROSES_LINE]
    assert cart.session_id == "S1"
    assert store.load() == "S1"
    assert checkout_gateway.count("DELETE", "/cart") == 0


async def test_empty_cart(checkout_gateway, submitter, cart):
    cart.items = []

    with pytest.raises(CheckoutError, match="Your cart is empty!"):
        await submitter.submit(DRAFT)
    assert checkout_gateway.calls == []


async def test_invalid_form_never_reaches_the_network(checkout_gateway, submitter):
    draft = DRAFT.model_copy(update={"recipient_name": "", "delivery_zip": "222"})

    with pytest.raises(CheckoutError) as excinfo:
        await submitter.submit(draft)

    assert set(excinfo.value.field_errors) == {"recipient_name", "delivery_zip"}
    assert checkout_gateway.calls == []


async def test_missing_payment_fields(checkout_gateway, submitter):
    with pytest.raises(CheckoutError, match="Please fill in all payment information"):
        await submitter.submit(DRAFT.model_copy(update={"card_cvv": ""}))
    assert checkout_gateway.calls == []


async def test_bad_expiry_never_reaches_the_network(checkout_gateway, submitter):
    with pytest.raises(PaymentError, match="MM/YY"):
        await submitter.submit(DRAFT.model_copy(update={"card_expiry": "1230"}))
    assert checkout_gateway.calls == []


async def test_tokenization_failure_keeps_everything(checkout_gateway, client, cart):
    submitter = OrderSubmitter(client, cart, OrderTotalCalculator(client), FakeTokenizer(token=None))

    with pytest.raises(PaymentError, match="Failed to generate payment token"):
        await submitter.submit(DRAFT)

    assert checkout_gateway.count("POST", "/order/place") == 0
    assert cart.items == [ROSES_LINE]


async def test_total_failure_blocks_the_order(checkout_gateway, submitter):
    checkout_gateway.on("GET", "/order/total", {"error": "boom"}, status=500)

    with pytest.raises(CheckoutError, match="Could not calculate your order total"):
        await submitter.submit(DRAFT)
    assert checkout_gateway.count("POST", "/order/place") == 0


async def test_changed_total_needs_confirmation(checkout_gateway, submitter, cart):
    shown = TOTAL.model_copy(update={"total": Decimal("12.00")})

    with pytest.raises(TotalChangedError) as excinfo:
        await submitter.submit(DRAFT, displayed_total=shown)

    assert excinfo.value.total.total == Decimal("16.00")
    assert checkout_gateway.count("POST", "/order/place") == 0

    confirmation = await submitter.submit(DRAFT, displayed_total=excinfo.value.total)
    assert confirmation.order_number == "98765"


async def test_teardown_failure_still_forgets_session(checkout_gateway, submitter, cart, store):
    checkout_gateway.on("DELETE", "/cart", {"error": "boom"}, status=500)

    confirmation = await submitter.submit(DRAFT)

    assert confirmation.order_number == "98765"
    assert cart.session_id is None
    assert store.load() is None


async def test_order_number_defaults_to_unknown(checkout_gateway, submitter):
    checkout_gateway.on("POST", "/order/place", {"STATUS": "OK"})

    confirmation = await submitter.submit(DRAFT)

    assert confirmation.order_number == "unknown"


class SlowTokenizer(FakeTokenizer):
    async def tokenize(self, key, card):
        await asyncio.sleep(0.01)
        return await super().tokenize(key, card)


async def test_concurrent_submits_place_one_order(checkout_gateway, client, cart):
    submitter = OrderSubmitter(client, cart, OrderTotalCalculator(client), SlowTokenizer())

    results = await asyncio.gather(
        submitter.submit(DRAFT), submitter.submit(DRAFT), return_exceptions=True
    )

    assert results[0].order_number == "98765"
    assert isinstance(results[1], CheckoutError)
    assert results[1].message == "Your order is already being processed."
    assert checkout_gateway.count("POST", "/order/place") == 1
    assert not submitter.in_flight


async def test_unreachable_gateway_on_place(checkout_gateway, submitter, cart):
    def refuse(request):
        raise httpx.ConnectError("down", request=request)

    checkout_gateway.on("POST", "/order/place", refuse)

    with pytest.raises(CheckoutError):
        await submitter.submit(DRAFT)
    assert cart.session_id == "S1"
