from dataclasses import dataclass, field
from typing import Dict, Optional

from pymongo.database import Database

from storefront.core.config import STORE_BACKEND
from storefront.db.base import (
    ContactRepository, OrderRepository, ProductRepository, UserRepository,
)
from storefront.services.adapters import (
    PaymentGateway, StubTrackingAdapter, TrackingAdapter, default_gateways,
)
from storefront.models.records import PaymentMethod


@dataclass
class Store:
    """Repositories and adapters the workflow and the API run against."""

    products: ProductRepository
    orders: OrderRepository
    users: UserRepository
    contacts: ContactRepository
    gateways: Dict[PaymentMethod, PaymentGateway] = field(default_factory=default_gateways)
    tracking: TrackingAdapter = field(default_factory=StubTrackingAdapter)


def memory_store() -> Store:
    from storefront.db.memory import (
        MemoryContactRepository, MemoryOrderRepository, MemoryProductRepository,
        MemoryUserRepository,
    )
    return Store(
        products=MemoryProductRepository(),
        orders=MemoryOrderRepository(),
        users=MemoryUserRepository(),
        contacts=MemoryContactRepository(),
    )


def mongo_store(db: Optional[Database] = None) -> Store:
    from storefront.db.mongo import (
        MongoContactRepository, MongoOrderRepository, MongoProductRepository,
        MongoUserRepository, ensure_indexes, get_db,
    )
    db = db if db is not None else get_db()
    ensure_indexes(db)
    return Store(
        products=MongoProductRepository(db),
        orders=MongoOrderRepository(db),
        users=MongoUserRepository(db),
        contacts=MongoContactRepository(db),
    )


def build_store(backend: str = STORE_BACKEND) -> Store:
    if backend == "memory":
        return memory_store()
    if backend == "mongo":
        return mongo_store()
    raise RuntimeError(f"Unknown STORE_BACKEND {backend!r}, expected 'mongo' or 'memory'")
