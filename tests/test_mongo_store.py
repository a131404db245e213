"""Mongo repositories, exercised against an in-process mongomock server."""
from decimal import Decimal

import mongomock
import pytest
from bson.decimal128 import Decimal128

from storefront.core.errors import Conflict, DuplicateOrderNumber
from storefront.models.records import (
    Caller, Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus, Product,
    Role, ShippingInfo, User,
)
from storefront.models.schemas import StatusUpdate
from storefront.services.orders_service import OrderWorkflow, parse_order_request
from storefront.store import mongo_store


@pytest.fixture
def db():
    return mongomock.MongoClient(tz_aware=True)["storefront_test"]


@pytest.fixture
def mstore(db):
    return mongo_store(db)


@pytest.fixture
def lamp(mstore):
    return mstore.products.insert(Product(name="Lamp", price=Decimal("45.50"), category="Home", stock=3))


def make_order(number="MM20240101000001", **fields):
    return Order(
        order_number=number,
        user_id="u1",
        items=(OrderItem(product_id="p1", name="Lamp", price=Decimal("45.50"), quantity=2),),
        shipping=ShippingInfo(name="A", phone="1", address="1 Main St", city="Shanghai"),
        subtotal=Decimal("91.00"),
        shipping_fee=Decimal("10.00"),
        total=Decimal("101.00"),
        payment_method=PaymentMethod.ALIPAY,
        **fields,
    )


def test_product_round_trip_keeps_decimal_price(db, mstore, lamp):
    raw = db.products.find_one({})
    assert isinstance(raw["price"], Decimal128)

    loaded = mstore.products.get(lamp.id)
    assert loaded.price == Decimal("45.50")
    assert (loaded.name, loaded.category, loaded.stock, loaded.is_active) == ("Lamp", "Home", 3, True)
    assert mstore.products.get("not-an-object-id") is None


def test_reserve_is_a_conditional_decrement(mstore, lamp):
    assert mstore.products.reserve(lamp.id, 2).stock == 1
    assert mstore.products.reserve(lamp.id, 2) is None
    assert mstore.products.get(lamp.id).stock == 1

    mstore.products.release(lamp.id, 2)
    assert mstore.products.get(lamp.id).stock == 3


def test_reserve_skips_inactive_products(mstore):
    retired = mstore.products.insert(
        Product(name="Radio", price=Decimal("80"), category="Electronics", stock=10, is_active=False)
    )
    assert mstore.products.reserve(retired.id, 1) is None
    assert mstore.products.get(retired.id).stock == 10


def test_catalog_listing(mstore, lamp):
    mstore.products.insert(Product(name="Cable", price=Decimal("19.99"), category="Electronics", stock=5))
    mstore.products.insert(Product(name="Radio", price=Decimal("80"), category="Electronics", is_active=False))

    assert mstore.products.count(None) == 2
    assert mstore.products.count("Home") == 1
    assert mstore.products.categories() == ["Electronics", "Home"]
    assert [p.name for p in mstore.products.list("Electronics", "date_desc", 0, 10)] == ["Cable"]


def test_order_round_trip(mstore):
    order = mstore.orders.insert(make_order())

    loaded = mstore.orders.get(order.id)
    assert loaded == order.model_copy(update={"created_at": loaded.created_at, "updated_at": loaded.updated_at})
    assert loaded.items[0].price == Decimal("45.50")
    assert loaded.total == Decimal("101.00")
    assert loaded.payment_method == PaymentMethod.ALIPAY
    assert mstore.orders.get_for_user(order.id, "someone-else") is None


def test_order_numbers_are_unique(mstore):
    mstore.orders.insert(make_order("MM20240101000042"))

    with pytest.raises(DuplicateOrderNumber):
        mstore.orders.insert(make_order("MM20240101000042"))


def test_mark_paid_applies_once(mstore):
    order = mstore.orders.insert(make_order())

    paid = mstore.orders.mark_paid(order.id, "ALIPAY_1", PaymentMethod.ALIPAY)
    assert (paid.payment_status, paid.status, paid.payment_id) == (
        PaymentStatus.PAID, OrderStatus.PROCESSING, "ALIPAY_1"
    )
    assert mstore.orders.mark_paid(order.id, "ALIPAY_2", PaymentMethod.ALIPAY) is None
    assert mstore.orders.get(order.id).payment_id == "ALIPAY_1"


def test_mark_paid_requires_held_stock(mstore):
    order = mstore.orders.insert(make_order())

    assert mstore.orders.compare_and_set_hold(order.id, False).stock_held is False
    assert mstore.orders.compare_and_set_hold(order.id, False) is None
    assert mstore.orders.mark_paid(order.id, "ALIPAY_1", PaymentMethod.ALIPAY) is None

    assert mstore.orders.compare_and_set_hold(order.id, True).stock_held is True
    assert mstore.orders.mark_paid(order.id, "ALIPAY_1", PaymentMethod.ALIPAY) is not None


def test_compare_and_set_status_guards(mstore):
    order = mstore.orders.insert(make_order())

    assert mstore.orders.compare_and_set_status(order.id, OrderStatus.PROCESSING, {"status": OrderStatus.SHIPPED}) is None
    assert mstore.orders.compare_and_set_status(
        order.id, OrderStatus.PENDING, {"status": OrderStatus.CANCELLED}, stock_held=False
    ) is None

    cancelled = mstore.orders.compare_and_set_status(
        order.id, OrderStatus.PENDING, {"status": OrderStatus.CANCELLED, "stock_held": False}, stock_held=True
    )
    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.stock_held is False


def test_find_by_tracking_and_listing(mstore):
    first = mstore.orders.insert(make_order("MM20240101000001"))
    mstore.orders.insert(make_order("MM20240101000002"))
    mstore.orders.compare_and_set_status(first.id, OrderStatus.PENDING, {"status": OrderStatus.CANCELLED})

    assert mstore.orders.count_for_user("u1", None) == 2
    assert [o.id for o in mstore.orders.list_for_user("u1", OrderStatus.CANCELLED, 0, 10)] == [first.id]
    assert mstore.orders.find_by_tracking("u1", "SF1") is None


def test_duplicate_email_is_a_conflict(mstore):
    mstore.users.insert(User(name="Alice", email="Alice@Example.com", password_hash="-"))

    with pytest.raises(Conflict):
        mstore.users.insert(User(name="Alice 2", email="alice@example.com", password_hash="-"))
    assert mstore.users.get_by_email("ALICE@example.com").name == "Alice"


def test_order_lifecycle_against_mongo(mstore, lamp):
    workflow = OrderWorkflow(mstore, shipping_fee=Decimal("10"))
    alice = Caller(user_id="alice")
    request = parse_order_request({
        "items": [{"product_id": lamp.id, "quantity": 2}],
        "shipping": {"name": "Alice", "phone": "1", "address": "1 Main St", "city": "Shanghai"},
        "payment_method": "stripe",
    })

    order = workflow.create_order(alice, request)
    assert order.total == Decimal("101.00")
    assert mstore.products.get(lamp.id).stock == 1

    outcome = workflow.process_payment(alice, order.id, PaymentMethod.STRIPE)
    assert outcome.order.status == OrderStatus.PROCESSING
    assert workflow.process_payment(alice, order.id, PaymentMethod.STRIPE).already_paid is True

    admin = Caller(user_id="admin", role=Role.ADMIN)
    cancelled = workflow.update_status(admin, order.id, StatusUpdate(status="cancelled"))
    assert cancelled.payment_status == PaymentStatus.REFUNDED
    assert mstore.products.get(lamp.id).stock == 3
