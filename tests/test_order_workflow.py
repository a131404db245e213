"""Tests for order admission, pricing and persistence."""
from decimal import Decimal

import pytest

from storefront.core.errors import (
    Conflict, InactiveProduct, InsufficientStock, NotFound, ValidationError,
)
from storefront.models.records import OrderStatus, PaymentStatus
from storefront.models.schemas import StatusUpdate
from storefront.services.orders_service import (
    OrderWorkflow, generate_order_number, parse_order_request,
)


def order_request(shipping, *items, method="stripe"):
    return parse_order_request({
        "items": [{"product_id": p.id, "quantity": q} for p, q in items],
        "shipping": shipping,
        "payment_method": method,
    })


def stock(store, product):
    return store.products.get(product.id).stock


def test_create_order_prices_and_reserves_stock(store, products, workflow, alice, shipping):
    phone = products["phone"]

    order = workflow.create_order(alice, order_request(shipping, (phone, 2)))

    assert order.subtotal == Decimal("200")
    assert order.shipping_fee == Decimal("10")
    assert order.total == Decimal("210")
    assert stock(store, phone) == 3
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.UNPAID
    assert order.payment_id is None
    assert order.stock_held is True
    assert order.user_id == alice.user_id
    assert [(i.product_id, i.name, i.price, i.quantity) for i in order.items] == [
        (phone.id, "Phone", Decimal("100.00"), 2)
    ]
    assert store.orders.get(order.id) == order


def test_totals_hold_across_several_lines(products, workflow, alice, shipping):
    order = workflow.create_order(
        alice, order_request(shipping, (products["cable"], 3), (products["lamp"], 1), (products["phone"], 1))
    )

    assert order.subtotal == sum(i.price * i.quantity for i in order.items)
    assert order.subtotal == Decimal("205.47")
    assert order.total == order.subtotal + order.shipping_fee


def test_captured_price_survives_catalog_change(store, products, workflow, alice, shipping):
    phone = products["phone"]
    order = workflow.create_order(alice, order_request(shipping, (phone, 1)))

    store.products.insert(phone.model_copy(update={"price": Decimal("150"), "name": "Phone Pro", "stock": 4}))

    stored = workflow.get_order(alice, order.id)
    assert stored.items[0].price == Decimal("100.00")
    assert stored.items[0].name == "Phone"
    assert stored.total == Decimal("110.00")


def test_order_number_is_date_prefixed():
    number = generate_order_number("MM")
    assert number.startswith("MM")
    assert len(number) == 2 + 8 + 6
    assert number[2:].isdigit()


def test_inactive_product_is_rejected_without_side_effects(store, products, workflow, alice, shipping):
    with pytest.raises(InactiveProduct) as exc:
        workflow.create_order(alice, order_request(shipping, (products["phone"], 1), (products["retired"], 1)))

    assert "Retired Radio" in exc.value.message
    assert exc.value.product_id == products["retired"].id
    assert stock(store, products["phone"]) == 5
    assert stock(store, products["retired"]) == 10
    assert store.orders.count_for_user(alice.user_id, None) == 0


def test_unknown_product_is_not_found(store, products, workflow, alice, shipping):
    request = parse_order_request({
        "items": [{"product_id": products["phone"].id, "quantity": 1}, {"product_id": "missing", "quantity": 1}],
        "shipping": shipping,
        "payment_method": "alipay",
    })

    with pytest.raises(NotFound):
        workflow.create_order(alice, request)
    assert stock(store, products["phone"]) == 5


def test_insufficient_stock_is_rejected_before_mutation(store, products, workflow, alice, shipping):
    with pytest.raises(InsufficientStock) as exc:
        workflow.create_order(alice, order_request(shipping, (products["phone"], 2), (products["lamp"], 2)))

    assert exc.value.product_id == products["lamp"].id
    assert stock(store, products["phone"]) == 5
    assert stock(store, products["lamp"]) == 1


def test_lost_race_releases_earlier_reservations(store, products, workflow, alice, shipping, monkeypatch):
    phone, lamp = products["phone"], products["lamp"]
    reserve = store.products.reserve

    def racing_reserve(product_id, quantity):
        if product_id == lamp.id:
            # a concurrent order takes the last lamp between admission and reservation
            assert reserve(product_id, 1) is not None
        return reserve(product_id, quantity)

    monkeypatch.setattr(store.products, "reserve", racing_reserve)

    with pytest.raises(InsufficientStock):
        workflow.create_order(alice, order_request(shipping, (phone, 2), (lamp, 1)))

    assert stock(store, phone) == 5
    assert stock(store, lamp) == 0
    assert store.orders.count_for_user(alice.user_id, None) == 0


def test_deactivated_during_admission_reports_inactive(store, products, workflow, alice, shipping, monkeypatch):
    cable = products["cable"]
    reserve = store.products.reserve

    def deactivating_reserve(product_id, quantity):
        if product_id == cable.id:
            store.products.insert(cable.model_copy(update={"is_active": False}))
        return reserve(product_id, quantity)

    monkeypatch.setattr(store.products, "reserve", deactivating_reserve)

    with pytest.raises(InactiveProduct):
        workflow.create_order(alice, order_request(shipping, (products["phone"], 1), (cable, 1)))
    assert stock(store, products["phone"]) == 5


def test_duplicate_order_number_is_retried(store, products, alice, shipping):
    numbers = iter(["MM2024010100000A", "MM2024010100000A", "MM2024010100000B"])
    workflow = OrderWorkflow(store, number_factory=lambda: next(numbers))

    first = workflow.create_order(alice, order_request(shipping, (products["cable"], 1)))
    second = workflow.create_order(alice, order_request(shipping, (products["cable"], 1)))

    assert first.order_number == "MM2024010100000A"
    assert second.order_number == "MM2024010100000B"
    assert stock(store, products["cable"]) == 48


def test_exhausted_order_numbers_release_stock(store, products, alice, shipping):
    workflow = OrderWorkflow(store, number_factory=lambda: "MM-FIXED", order_number_attempts=3)
    workflow.create_order(alice, order_request(shipping, (products["cable"], 1)))

    with pytest.raises(Conflict):
        workflow.create_order(alice, order_request(shipping, (products["cable"], 5)))

    assert stock(store, products["cable"]) == 49
    assert store.orders.count_for_user(alice.user_id, None) == 1


def test_parse_order_request_lists_field_errors(products, shipping):
    with pytest.raises(ValidationError) as exc:
        parse_order_request({
            "items": [{"product_id": products["phone"].id, "quantity": 0}],
            "shipping": {**shipping, "city": "  "},
            "payment_method": "cash",
        })

    fields = {e["field"] for e in exc.value.errors}
    assert "items.0.quantity" in fields
    assert "shipping.city" in fields
    assert "payment_method" in fields


def test_parse_order_request_rejects_empty_cart(shipping):
    with pytest.raises(ValidationError) as exc:
        parse_order_request({"items": [], "shipping": shipping, "payment_method": "wechat"})
    assert [e["field"] for e in exc.value.errors] == ["items"]


def test_orders_are_private_to_their_owner(products, workflow, alice, bob, shipping):
    order = workflow.create_order(alice, order_request(shipping, (products["cable"], 1)))

    with pytest.raises(NotFound):
        workflow.get_order(bob, order.id)
    assert workflow.get_order(alice, order.id).id == order.id


def test_list_orders_paginates_and_filters(products, workflow, alice, bob, admin, shipping):
    created = [workflow.create_order(alice, order_request(shipping, (products["cable"], 1))) for _ in range(3)]
    workflow.create_order(bob, order_request(shipping, (products["cable"], 1)))
    workflow.update_status(admin, created[0].id, StatusUpdate(status="cancelled"))

    orders, pagination = workflow.list_orders(alice, page=1, limit=2)
    assert len(orders) == 2
    assert (pagination.total, pagination.pages) == (3, 2)

    orders, pagination = workflow.list_orders(alice, page=2, limit=2)
    assert len(orders) == 1

    cancelled, pagination = workflow.list_orders(alice, status=OrderStatus.CANCELLED)
    assert [o.id for o in cancelled] == [created[0].id]
    assert pagination.total == 1

    with pytest.raises(ValidationError):
        workflow.list_orders(alice, page=0)


