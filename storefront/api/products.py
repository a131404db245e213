from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_store, ok
from storefront.core.errors import NotFound
from storefront.models.schemas import Pagination
from storefront.store import Store

router = APIRouter()

ALL_CATEGORIES = "all"

@router.get("")
def list_products(
    category: Optional[str] = None,
    sort: Literal["date_desc", "date_asc", "price_asc", "price_desc"] = "date_desc",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: Store = Depends(get_store),
):
    if category == ALL_CATEGORIES:
        category = None
    products = store.products.list(category, sort, (page - 1) * limit, limit)
    total = store.products.count(category)
    return ok(
        products=products,
        pagination=Pagination.of(page, limit, total),
        categories=[ALL_CATEGORIES] + store.products.categories(),
    )

@router.get("/{product_id}")
def get_product(product_id: str, store: Store = Depends(get_store)):
    product = store.products.get(product_id)
    if product is None or not product.is_active:
        raise NotFound("Product not found")
    return ok(product=product)
