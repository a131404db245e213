import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from bson import ObjectId
from bson.decimal128 import Decimal128
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from pymongo.server_api import ServerApi

from storefront.core.config import MONGO_URI, MONGO_DB_NAME
from storefront.core.errors import Conflict, DuplicateOrderNumber
from storefront.db.base import (
    ContactRepository, OrderRepository, ProductRepository, UserRepository,
)
from storefront.models.records import (
    Contact, ContactStatus, Order, OrderStatus, PaymentMethod, PaymentStatus,
    Product, User, utcnow,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

client = None
def get_client() -> MongoClient:
    global client
    if client is None:
        client = MongoClient(MONGO_URI, server_api=ServerApi("1"), tz_aware=True)
        logger.info("connected to MongoDB database %s", MONGO_DB_NAME)
    return client

def get_db() -> Database:
    return get_client()[MONGO_DB_NAME]


def ensure_indexes(db: Database) -> None:
    db.orders.create_index("order_number", unique=True)
    db.orders.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    db.orders.create_index("status")
    db.orders.create_index([("user_id", ASCENDING), ("tracking_number", ASCENDING)])
    db.products.create_index("category")
    db.products.create_index([("date_added", DESCENDING)])
    db.products.create_index("price")
    db.users.create_index("email", unique=True)
    db.contacts.create_index([("email", ASCENDING), ("created_at", DESCENDING)])
    db.contacts.create_index("status")


# --- BSON conversion ---

def _oid(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None

def _to_bson(value: Any) -> Any:
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_bson(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_bson(v) for v in value]
    return value

def _from_bson(value: Any) -> Any:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {k: _from_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_bson(v) for v in value]
    return value

def to_doc(model: BaseModel) -> Dict[str, Any]:
    doc = _to_bson(model.model_dump())
    doc["_id"] = ObjectId(doc.pop("id"))
    return doc

def from_doc(doc: Optional[Dict[str, Any]], model: Type[M]) -> Optional[M]:
    if doc is None:
        return None
    data = _from_bson(doc)
    data["id"] = str(data.pop("_id"))
    return model.model_validate(data)


# --- Repositories ---

_PRODUCT_SORTS = {
    "date_desc": [("date_added", DESCENDING)],
    "date_asc": [("date_added", ASCENDING)],
    "price_asc": [("price", ASCENDING)],
    "price_desc": [("price", DESCENDING)],
}


class MongoProductRepository(ProductRepository):
    def __init__(self, db: Database):
        self.col = db.products

    def get(self, product_id: str) -> Optional[Product]:
        oid = _oid(product_id)
        if oid is None:
            return None
        return from_doc(self.col.find_one({"_id": oid}), Product)

    def insert(self, product: Product) -> Product:
        self.col.insert_one(to_doc(product))
        return product

    def reserve(self, product_id: str, quantity: int) -> Optional[Product]:
        oid = _oid(product_id)
        if oid is None:
            return None
        doc = self.col.find_one_and_update(
            {"_id": oid, "is_active": True, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return from_doc(doc, Product)

    def release(self, product_id: str, quantity: int) -> None:
        res = self.col.update_one(
            {"_id": ObjectId(product_id)},
            {"$inc": {"stock": quantity}, "$set": {"updated_at": utcnow()}},
        )
        if res.matched_count == 0:
            logger.warning("release of %s units for unknown product %s", quantity, product_id)

    def _query(self, category: Optional[str]) -> Dict[str, Any]:
        query: Dict[str, Any] = {"is_active": True}
        if category:
            query["category"] = category
        return query

    def list(self, category: Optional[str], sort: str, skip: int, limit: int) -> List[Product]:
        cursor = (
            self.col.find(self._query(category))
            .sort(_PRODUCT_SORTS.get(sort, _PRODUCT_SORTS["date_desc"]))
            .skip(skip)
            .limit(limit)
        )
        return [from_doc(doc, Product) for doc in cursor]

    def count(self, category: Optional[str]) -> int:
        return self.col.count_documents(self._query(category))

    def categories(self) -> List[str]:
        return sorted(self.col.distinct("category", {"is_active": True}))

    def clear(self) -> None:
        self.col.delete_many({})


class MongoOrderRepository(OrderRepository):
    def __init__(self, db: Database):
        self.col = db.orders

    def insert(self, order: Order) -> Order:
        try:
            self.col.insert_one(to_doc(order))
        except DuplicateKeyError:
            raise DuplicateOrderNumber(f"Order number {order.order_number} already in use")
        return order

    def get(self, order_id: str) -> Optional[Order]:
        oid = _oid(order_id)
        if oid is None:
            return None
        return from_doc(self.col.find_one({"_id": oid}), Order)

    def get_for_user(self, order_id: str, user_id: str) -> Optional[Order]:
        oid = _oid(order_id)
        if oid is None:
            return None
        return from_doc(self.col.find_one({"_id": oid, "user_id": user_id}), Order)

    def find_by_tracking(self, user_id: str, tracking_number: str) -> Optional[Order]:
        doc = self.col.find_one({"user_id": user_id, "tracking_number": tracking_number})
        return from_doc(doc, Order)

    def _query(self, user_id: str, status: Optional[OrderStatus]) -> Dict[str, Any]:
        query: Dict[str, Any] = {"user_id": user_id}
        if status is not None:
            query["status"] = status.value
        return query

    def list_for_user(self, user_id: str, status: Optional[OrderStatus], skip: int, limit: int) -> List[Order]:
        cursor = (
            self.col.find(self._query(user_id, status))
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        return [from_doc(doc, Order) for doc in cursor]

    def count_for_user(self, user_id: str, status: Optional[OrderStatus]) -> int:
        return self.col.count_documents(self._query(user_id, status))

    def mark_paid(self, order_id: str, payment_id: str, method: PaymentMethod) -> Optional[Order]:
        doc = self.col.find_one_and_update(
            {
                "_id": ObjectId(order_id),
                "payment_status": PaymentStatus.UNPAID.value,
                "status": OrderStatus.PENDING.value,
                "stock_held": True,
            },
            {"$set": {
                "payment_status": PaymentStatus.PAID.value,
                "payment_id": payment_id,
                "payment_method": method.value,
                "status": OrderStatus.PROCESSING.value,
                "updated_at": utcnow(),
            }},
            return_document=ReturnDocument.AFTER,
        )
        return from_doc(doc, Order)

    def compare_and_set_hold(self, order_id: str, held: bool) -> Optional[Order]:
        doc = self.col.find_one_and_update(
            {
                "_id": ObjectId(order_id),
                "payment_status": PaymentStatus.UNPAID.value,
                "status": OrderStatus.PENDING.value,
                "stock_held": not held,
            },
            {"$set": {"stock_held": held, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return from_doc(doc, Order)

    def compare_and_set_status(
        self, order_id: str, expected: OrderStatus, fields: Dict[str, Any],
        stock_held: Optional[bool] = None,
    ) -> Optional[Order]:
        query: Dict[str, Any] = {"_id": ObjectId(order_id), "status": expected.value}
        if stock_held is not None:
            query["stock_held"] = stock_held
        doc = self.col.find_one_and_update(
            query,
            {"$set": _to_bson({**fields, "updated_at": utcnow()})},
            return_document=ReturnDocument.AFTER,
        )
        return from_doc(doc, Order)


class MongoUserRepository(UserRepository):
    def __init__(self, db: Database):
        self.col = db.users

    def get(self, user_id: str) -> Optional[User]:
        oid = _oid(user_id)
        if oid is None:
            return None
        return from_doc(self.col.find_one({"_id": oid}), User)

    def get_by_email(self, email: str) -> Optional[User]:
        return from_doc(self.col.find_one({"email": email.lower()}), User)

    def insert(self, user: User) -> User:
        user = user.model_copy(update={"email": user.email.lower()})
        try:
            self.col.insert_one(to_doc(user))
        except DuplicateKeyError:
            raise Conflict("Email already registered")
        return user


class MongoContactRepository(ContactRepository):
    def __init__(self, db: Database):
        self.col = db.contacts

    def insert(self, contact: Contact) -> Contact:
        self.col.insert_one(to_doc(contact))
        return contact

    def _query(self, status: Optional[ContactStatus]) -> Dict[str, Any]:
        return {} if status is None else {"status": status.value}

    def list(self, status: Optional[ContactStatus], skip: int, limit: int) -> List[Contact]:
        cursor = self.col.find(self._query(status)).sort("created_at", DESCENDING).skip(skip).limit(limit)
        return [from_doc(doc, Contact) for doc in cursor]

    def count(self, status: Optional[ContactStatus]) -> int:
        return self.col.count_documents(self._query(status))
