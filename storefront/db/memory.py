"""
Process-local stores.

Each repository keeps its records in a dict and serializes every operation
with a lock, which gives the same per-record atomicity the Mongo backend gets
from find_one_and_update. Records are copied on the way in and out so callers
never share mutable state with the store.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

from storefront.core.errors import Conflict, DuplicateOrderNumber
from storefront.db.base import (
    ContactRepository, OrderRepository, ProductRepository, UserRepository,
)
from storefront.models.records import (
    Contact, ContactStatus, Order, OrderStatus, PaymentMethod, PaymentStatus,
    Product, User, utcnow,
)

logger = logging.getLogger(__name__)

_PRODUCT_SORT_KEYS = {
    "date_desc": (lambda p: p.date_added, True),
    "date_asc": (lambda p: p.date_added, False),
    "price_asc": (lambda p: p.price, False),
    "price_desc": (lambda p: p.price, True),
}


class MemoryProductRepository(ProductRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._products: Dict[str, Product] = {}

    def get(self, product_id: str) -> Optional[Product]:
        with self._lock:
            product = self._products.get(product_id)
            return product.model_copy(deep=True) if product else None

    def insert(self, product: Product) -> Product:
        with self._lock:
            self._products[product.id] = product.model_copy(deep=True)
        return product

    def reserve(self, product_id: str, quantity: int) -> Optional[Product]:
        with self._lock:
            product = self._products.get(product_id)
            if not product or not product.is_active or product.stock < quantity:
                return None
            updated = product.model_copy(update={"stock": product.stock - quantity, "updated_at": utcnow()})
            self._products[product_id] = updated
            return updated.model_copy(deep=True)

    def release(self, product_id: str, quantity: int) -> None:
        with self._lock:
            product = self._products.get(product_id)
            if not product:
                logger.warning("release of %s units for unknown product %s", quantity, product_id)
                return
            self._products[product_id] = product.model_copy(
                update={"stock": product.stock + quantity, "updated_at": utcnow()}
            )

    def _active(self, category: Optional[str]) -> List[Product]:
        return [
            p for p in self._products.values()
            if p.is_active and (not category or p.category == category)
        ]

    def list(self, category: Optional[str], sort: str, skip: int, limit: int) -> List[Product]:
        key, reverse = _PRODUCT_SORT_KEYS.get(sort, _PRODUCT_SORT_KEYS["date_desc"])
        with self._lock:
            products = sorted(self._active(category), key=key, reverse=reverse)
            return [p.model_copy(deep=True) for p in products[skip:skip + limit]]

    def count(self, category: Optional[str]) -> int:
        with self._lock:
            return len(self._active(category))

    def categories(self) -> List[str]:
        with self._lock:
            return sorted({p.category for p in self._active(None)})

    def clear(self) -> None:
        with self._lock:
            self._products.clear()


class MemoryOrderRepository(OrderRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self._numbers: Dict[str, str] = {}

    def insert(self, order: Order) -> Order:
        with self._lock:
            if order.order_number in self._numbers:
                raise DuplicateOrderNumber(f"Order number {order.order_number} already in use")
            self._orders[order.id] = order.model_copy(deep=True)
            self._numbers[order.order_number] = order.id
        return order

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def get_for_user(self, order_id: str, user_id: str) -> Optional[Order]:
        order = self.get(order_id)
        if order and order.user_id == user_id:
            return order
        return None

    def find_by_tracking(self, user_id: str, tracking_number: str) -> Optional[Order]:
        with self._lock:
            for order in self._orders.values():
                if order.user_id == user_id and order.tracking_number == tracking_number:
                    return order.model_copy(deep=True)
        return None

    def _for_user(self, user_id: str, status: Optional[OrderStatus]) -> List[Order]:
        return [
            o for o in self._orders.values()
            if o.user_id == user_id and (status is None or o.status == status)
        ]

    def list_for_user(self, user_id: str, status: Optional[OrderStatus], skip: int, limit: int) -> List[Order]:
        with self._lock:
            orders = sorted(self._for_user(user_id, status), key=lambda o: o.created_at, reverse=True)
            return [o.model_copy(deep=True) for o in orders[skip:skip + limit]]

    def count_for_user(self, user_id: str, status: Optional[OrderStatus]) -> int:
        with self._lock:
            return len(self._for_user(user_id, status))

    @staticmethod
    def _payable(order: Optional[Order]) -> bool:
        return (
            order is not None
            and order.payment_status == PaymentStatus.UNPAID
            and order.status == OrderStatus.PENDING
        )

    def _replace(self, order: Order, fields: Dict[str, Any]) -> Order:
        updated = order.model_copy(update={**fields, "updated_at": utcnow()})
        self._orders[order.id] = updated
        return updated.model_copy(deep=True)

    def mark_paid(self, order_id: str, payment_id: str, method: PaymentMethod) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            if not self._payable(order) or not order.stock_held:
                return None
            return self._replace(order, {
                "payment_status": PaymentStatus.PAID,
                "payment_id": payment_id,
                "payment_method": method,
                "status": OrderStatus.PROCESSING,
            })

    def compare_and_set_hold(self, order_id: str, held: bool) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            if not self._payable(order) or order.stock_held == held:
                return None
            return self._replace(order, {"stock_held": held})

    def compare_and_set_status(
        self, order_id: str, expected: OrderStatus, fields: Dict[str, Any],
        stock_held: Optional[bool] = None,
    ) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            if not order or order.status != expected:
                return None
            if stock_held is not None and order.stock_held != stock_held:
                return None
            return self._replace(order, fields)


class MemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._users: Dict[str, User] = {}

    def get(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def get_by_email(self, email: str) -> Optional[User]:
        email = email.lower()
        with self._lock:
            for user in self._users.values():
                if user.email == email:
                    return user.model_copy()
        return None

    def insert(self, user: User) -> User:
        user = user.model_copy(update={"email": user.email.lower()})
        with self._lock:
            if any(u.email == user.email for u in self._users.values()):
                raise Conflict("Email already registered")
            self._users[user.id] = user
        return user


class MemoryContactRepository(ContactRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contacts: List[Contact] = []

    def insert(self, contact: Contact) -> Contact:
        with self._lock:
            self._contacts.append(contact.model_copy())
        return contact

    def _matching(self, status: Optional[ContactStatus]) -> List[Contact]:
        return [c for c in self._contacts if status is None or c.status == status]

    def list(self, status: Optional[ContactStatus], skip: int, limit: int) -> List[Contact]:
        with self._lock:
            contacts = sorted(self._matching(status), key=lambda c: c.created_at, reverse=True)
            return [c.model_copy() for c in contacts[skip:skip + limit]]

    def count(self, status: Optional[ContactStatus]) -> int:
        with self._lock:
            return len(self._matching(status))
