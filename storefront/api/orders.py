from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_admin_user, get_caller, get_workflow, ok
from storefront.models.records import Caller, OrderStatus, User
from storefront.models.schemas import OrderCreate, StatusUpdate
from storefront.services.orders_service import MAX_PAGE_SIZE, OrderWorkflow

router = APIRouter()

@router.post("", status_code=201)
def create_order(
    payload: OrderCreate,
    caller: Caller = Depends(get_caller),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    order = workflow.create_order(caller, payload)
    return ok("Order created", order=order)

@router.get("")
def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[OrderStatus] = None,
    caller: Caller = Depends(get_caller),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    orders, pagination = workflow.list_orders(caller, page, limit, status)
    return ok(orders=orders, pagination=pagination)

@router.get("/{order_id}")
def get_order(order_id: str, caller: Caller = Depends(get_caller), workflow: OrderWorkflow = Depends(get_workflow)):
    return ok(order=workflow.get_order(caller, order_id))

@router.patch("/{order_id}/status")
def update_status(
    order_id: str,
    payload: StatusUpdate,
    admin: User = Depends(get_admin_user),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    order = workflow.update_status(Caller(user_id=admin.id, role=admin.role), order_id, payload)
    return ok("Order status updated", order=order)
