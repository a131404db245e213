"""
Seed the product catalog.

    python -m storefront.seed            # add the sample catalog
    python -m storefront.seed --reset    # wipe products first
"""
import argparse
import logging
from datetime import datetime, timezone
from decimal import Decimal

from storefront.models.records import Product
from storefront.store import Store, build_store

logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    ("Wireless Earbuds", "Compact earbuds with a charging case", "299", "Electronics", 100, (2024, 1, 15)),
    ("Smart Watch", "Fitness tracking and notifications", "599", "Electronics", 50, (2024, 1, 20)),
    ("Mechanical Keyboard", "Hot-swappable switches, RGB backlight", "899", "Electronics", 30, (2024, 2, 1)),
    ("Air Purifier", "HEPA filter for rooms up to 40 m2", "1299", "Home", 80, (2024, 2, 10)),
    ("Desk Lamp", "Dimmable LED with USB charging port", "399", "Home", 60, (2024, 2, 15)),
    ("Ceramic Vase", "Hand-glazed, 30 cm", "699", "Home", 40, (2024, 2, 20)),
]


def seed(store: Store, reset: bool = False) -> int:
    if reset:
        store.products.clear()
        logger.info("product catalog cleared")
    for name, description, price, category, stock, added in SAMPLE_PRODUCTS:
        store.products.insert(Product(
            name=name,
            description=description,
            price=Decimal(price),
            category=category,
            stock=stock,
            date_added=datetime(*added, tzinfo=timezone.utc),
        ))
    logger.info("seeded %d products", len(SAMPLE_PRODUCTS))
    return len(SAMPLE_PRODUCTS)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    p = argparse.ArgumentParser(description="Seed the storefront product catalog.")
    p.add_argument("--reset", action="store_true", help="Delete existing products first")
    p.add_argument("--backend", default=None, help="Override STORE_BACKEND (mongo|memory)")
    args = p.parse_args()

    store = build_store(args.backend) if args.backend else build_store()
    seed(store, reset=args.reset)


if __name__ == "__main__":
    main()
