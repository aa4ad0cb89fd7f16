"""Tests for response decoding."""

from datetime import date
from decimal import Decimal

import pytest

from florist_server.decode import (
    decode_cart_items,
    decode_delivery_dates,
    decode_order_number,
    decode_order_total,
    decode_product_page,
    decode_session_id,
    decode_single_product,
    format_display_date,
    format_gateway_date,
    parse_gateway_date,
)
from florist_server.errors import DecodeError

from .conftest import ROSES, TOTAL_RESPONSE


@pytest.mark.parametrize(
    "payload",
    [
        {"SESSIONID": "abc"},
        {"sessionId": "abc"},
        {"CARTID": "abc"},
        {"CART": {"CARTID": "abc"}},
        {"cart": {"cartid": "abc"}},
        {"cart_id": "abc"},
    ],
)
def test_session_id_from_any_known_key(payload):
    assert decode_session_id(payload) == "abc"


def test_session_id_prefers_earlier_keys():
    assert decode_session_id({"cartId": "late", "SESSIONID": "early"}) == "early"


def test_missing_session_id_is_an_error():
    with pytest.raises(DecodeError):
        decode_session_id({"STATUS": "OK"})


def test_order_number_defaults_to_unknown():
    assert decode_order_number({"ORDERNO": 98765}) == "98765"
    assert decode_order_number({"orderId": "A1"}) == "A1"
    assert decode_order_number({}) == "unknown"


def test_product_page_from_keyed_container():
    page = decode_product_page({"PRODUCTS": [ROSES], "TOTAL": 40}, start=13, count=12)

    assert page.total == 40
    assert page.start == 13
    product = page.products[0]
    assert product.code == "R1"
    assert product.price == Decimal("59.99")
    # Detail views prefer the large rendition
    assert product.image == "https://img.test/r1-large.jpg"


def test_product_page_from_bare_list_counts_products():
    page = decode_product_page([ROSES, {"code": "T2", "name": "Tulips", "price": "30"}])

    assert [p.code for p in page.products] == ["R1", "T2"]
    assert page.total == 2


def test_product_page_with_unknown_shape():
    with pytest.raises(DecodeError):
        decode_product_page({"STATUS": "weird"})


def test_category_display_names():
    product = decode_single_product(
        {"PRODUCTS": [{**ROSES, "CATEGORIES": [{"DISPLAY": "Birthday"}, "Love"]}]}
    )
    assert product.categories == ["Birthday", "Love"]


def test_single_product_from_object_container():
    assert decode_single_product({"PRODUCT": ROSES}).code == "R1"


def test_single_product_missing():
    with pytest.raises(DecodeError, match="Product not found"):
        decode_single_product({"PRODUCTS": []})


@pytest.mark.parametrize("container", ["products", "PRODUCTS", "ITEMS", "items"])
def test_cart_items_from_any_container(container):
    items = decode_cart_items({container: [{"CODE": "R1", "PRICE": 59.99, "QUANTITY": 2}]})

    assert len(items) == 1
    assert items[0].id == "R1"
    assert items[0].quantity == 2
    assert items[0].line_total == Decimal("119.98")


def test_cart_items_from_bare_list_skip_entries_without_code():
    items = decode_cart_items([{"code": "R1", "price": "59.99"}, {"name": "mystery"}])

    assert [item.id for item in items] == ["R1"]
    assert items[0].quantity == 1
    assert items[0].name == "Product"


def test_cart_items_unknown_shape():
    with pytest.raises(DecodeError):
        decode_cart_items({"message": "session expired"})


def test_order_total_components():
    total = decode_order_total(TOTAL_RESPONSE, fallback_subtotal=Decimal("0"))

    assert total.subtotal == Decimal("10.00")
    assert total.tax == Decimal("1.00")
    assert total.delivery_charge == Decimal("5.00")
    assert total.total == Decimal("16.00")


def test_order_total_alternate_component_names_and_fallback_subtotal():
    total = decode_order_total(
        {"ORDERTOTAL": "75.98", "FLORISTONETAX": "4.00", "FLORISTONEDELIVERYCHARGE": "11.99"},
        fallback_subtotal=Decimal("59.99"),
    )

    assert total.subtotal == Decimal("59.99")
    assert total.tax == Decimal("4.00")
    assert total.delivery_charge == Decimal("11.99")


def test_order_total_requires_ordertotal():
    with pytest.raises(DecodeError):
        decode_order_total({"SUBTOTAL": 10}, fallback_subtotal=Decimal("0"))


def test_delivery_dates_are_parsed_and_bad_entries_dropped():
    dates = decode_delivery_dates({"DATES": ["12/25/2024", "not a date", "12/26/2024"]})

    assert dates == [date(2024, 12, 25), date(2024, 12, 26)]
    assert decode_delivery_dates({}) == []


def test_gateway_date_format():
    assert format_gateway_date(date(2024, 1, 5)) == "01/05/2024"
    assert parse_gateway_date("01/05/2024") == date(2024, 1, 5)


def test_display_date():
    assert format_display_date(date(2024, 12, 25)) == "Wed, Dec 25, 2024"


def test_product_keeps_a_thumbnail_for_the_cart():
    product = decode_single_product({"PRODUCTS": [ROSES]})

    assert product.image == "https://img.test/r1-large.jpg"
    assert product.thumbnail == "https://img.test/r1-small.jpg"
