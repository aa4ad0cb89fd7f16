"""Tests for order total calculation."""

import asyncio
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from florist_server.errors import DecodeError
from florist_server.florist_client import FloristClient
from florist_server.models import CartItem, OrderTotal, TotalState
from florist_server.totals import OrderTotalCalculator, total_request_products

from .conftest import TOTAL_RESPONSE, query

ITEMS = [CartItem(id="R1", name="Red Roses", price=Decimal("59.99"), quantity=1)]
DAY = date(2024, 12, 25)


def test_request_lines():
    assert total_request_products(ITEMS, "10001") == [
        {"CODE": "R1", "PRICE": 59.99, "RECIPIENT": {"ZIPCODE": "10001"}}
    ]


async def test_compute_total(gateway, client):
    gateway.on("GET", "/order/total", TOTAL_RESPONSE)
    totals = OrderTotalCalculator(client)

    total = await totals.compute_total(ITEMS, "10001", DAY)

    assert total.total == Decimal("16.00")
    assert total.delivery_charge == Decimal("5.00")
    assert total.total == total.subtotal + total.tax + total.delivery_charge
    sent = json.loads(query(gateway.calls[0])["products"])
    assert sent == [{"CODE": "R1", "PRICE": 59.99, "RECIPIENT": {"ZIPCODE": "10001"}}]


@pytest.mark.parametrize(
    "items, postal_code, day",
    [
        ([], "10001", DAY),
        (ITEMS, "1000", DAY),
        (ITEMS, "10001", None),
    ],
)
async def test_incomplete_inputs_make_no_call(gateway, client, items, postal_code, day):
    totals = OrderTotalCalculator(client)

    assert await totals.compute_total(items, postal_code, day) is None
    await totals.recompute(items, postal_code, day)

    assert totals.state == TotalState.HIDDEN
    assert gateway.calls == []


async def test_missing_ordertotal_is_an_error(gateway, client):
    gateway.on("GET", "/order/total", {"SUBTOTAL": 10})
    totals = OrderTotalCalculator(client)

    with pytest.raises(DecodeError):
        await totals.compute_total(ITEMS, "10001", DAY)


async def test_recompute_ready(gateway, client):
    gateway.on("GET", "/order/total", TOTAL_RESPONSE)
    totals = OrderTotalCalculator(client)

    await totals.recompute(ITEMS, "10001", DAY)

    assert totals.state == TotalState.READY
    assert totals.total.total == Decimal("16.00")


async def test_recompute_failure(gateway, client):
    gateway.on("GET", "/order/total", {"error": "boom"}, status=500)
    totals = OrderTotalCalculator(client)

    await totals.recompute(ITEMS, "10001", DAY)

    assert totals.state == TotalState.FAILED
    assert totals.total is None
    assert totals.error == "Could not calculate total. Please check your delivery information."


async def test_last_request_wins(client):
    release_first = asyncio.Event()
    calls = []

    async def get_order_total(products, fallback_subtotal):
        calls.append(products[0]["RECIPIENT"]["ZIPCODE"])
        if len(calls) == 1:
            await release_first.wait()
            return _total("99.00")
        return _total("16.00")

    client.get_order_total = get_order_total
    totals = OrderTotalCalculator(client)

    first = asyncio.create_task(totals.recompute(ITEMS, "10001", DAY))
    await asyncio.sleep(0)
    await totals.recompute(ITEMS, "94105", DAY)
    release_first.set()
    await first

    assert calls == ["10001", "94105"]
    assert totals.total.total == Decimal("16.00")


async def test_debounce_collapses_bursts(gateway, client):
    gateway.on("GET", "/order/total", TOTAL_RESPONSE)
    totals = OrderTotalCalculator(client, debounce_seconds=0.05)

    for postal_code in ("1", "10", "100", "1000", "10001"):
        totals.schedule(ITEMS, postal_code, DAY)
    assert totals.pending
    await totals.settle()

    assert gateway.count("GET", "/order/total") == 1
    assert totals.state == TotalState.READY


async def test_reset_ignores_in_flight_result(client):
    release = asyncio.Event()

    async def get_order_total(products, fallback_subtotal):
        await release.wait()
        return _total("16.00")

    client.get_order_total = get_order_total
    totals = OrderTotalCalculator(client)

    task = asyncio.create_task(totals.recompute(ITEMS, "10001", DAY))
    await asyncio.sleep(0)
    totals.reset()
    release.set()
    await task

    assert totals.state == TotalState.HIDDEN
    assert totals.total is None


async def test_unreachable_gateway_fails_the_total():
    florist = FloristClient("http://gateway.test/api", transport=httpx.MockTransport(_refuse))
    totals = OrderTotalCalculator(florist)

    await totals.recompute(ITEMS, "10001", DAY)

    assert totals.state == TotalState.FAILED
    await florist.close()


def _refuse(request):
    raise httpx.ConnectError("connection refused", request=request)


def _total(amount: str) -> OrderTotal:
    value = Decimal(amount)
    return OrderTotal(subtotal=value, tax=Decimal("0"), delivery_charge=Decimal("0"), total=value)
