"""
Repository interfaces.

The order workflow only talks to these. Two backends implement them with the
same semantics: storefront.db.mongo (pymongo) and storefront.db.memory
(process-local, used by tests and demos).
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from storefront.models.records import (
    Contact, ContactStatus, Order, OrderStatus, PaymentMethod, Product, User,
)


class ProductRepository(ABC):
    @abstractmethod
    def get(self, product_id: str) -> Optional[Product]: ...

    @abstractmethod
    def insert(self, product: Product) -> Product: ...

    @abstractmethod
    def reserve(self, product_id: str, quantity: int) -> Optional[Product]:
        """
        Atomically decrement stock by `quantity` if the product is active and
        has at least that much stock. Returns the product as of the decrement,
        or None when the condition did not hold (nothing is changed then).
        """

    @abstractmethod
    def release(self, product_id: str, quantity: int) -> None:
        """Give `quantity` units back to stock."""

    @abstractmethod
    def list(self, category: Optional[str], sort: str, skip: int, limit: int) -> List[Product]: ...

    @abstractmethod
    def count(self, category: Optional[str]) -> int: ...

    @abstractmethod
    def categories(self) -> List[str]: ...

    @abstractmethod
    def clear(self) -> None: ...


class OrderRepository(ABC):
    @abstractmethod
    def insert(self, order: Order) -> Order:
        """Persist a new order. Raises DuplicateOrderNumber on a number clash."""

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]: ...

    @abstractmethod
    def get_for_user(self, order_id: str, user_id: str) -> Optional[Order]: ...

    @abstractmethod
    def find_by_tracking(self, user_id: str, tracking_number: str) -> Optional[Order]: ...

    @abstractmethod
    def list_for_user(self, user_id: str, status: Optional[OrderStatus], skip: int, limit: int) -> List[Order]: ...

    @abstractmethod
    def count_for_user(self, user_id: str, status: Optional[OrderStatus]) -> int: ...

    @abstractmethod
    def mark_paid(self, order_id: str, payment_id: str, method: PaymentMethod) -> Optional[Order]:
        """
        Compare-and-set: flip an unpaid, pending order whose stock is held to
        paid/processing. Returns the updated order, or None if the order was
        not in that state.
        """

    @abstractmethod
    def compare_and_set_hold(self, order_id: str, held: bool) -> Optional[Order]:
        """Flip `stock_held` to `held` on an unpaid, pending order currently holding `not held`."""

    @abstractmethod
    def compare_and_set_status(
        self, order_id: str, expected: OrderStatus, fields: Dict[str, Any],
        stock_held: Optional[bool] = None,
    ) -> Optional[Order]:
        """
        Apply `fields` only if the order's status is still `expected` (and,
        when given, its `stock_held` still matches).
        """


class UserRepository(ABC):
    @abstractmethod
    def get(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def insert(self, user: User) -> User:
        """Raises Conflict when the email is already registered."""


class ContactRepository(ABC):
    @abstractmethod
    def insert(self, contact: Contact) -> Contact: ...

    @abstractmethod
    def list(self, status: Optional[ContactStatus], skip: int, limit: int) -> List[Contact]: ...

    @abstractmethod
    def count(self, status: Optional[ContactStatus]) -> int: ...
