# Parcel tracking for shipped orders
from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_caller, get_workflow, ok
from storefront.models.records import Caller
from storefront.services.orders_service import OrderWorkflow

router = APIRouter()

@router.get("/track")
def track(
    tracking_number: str = Query(..., min_length=1),
    carrier: Optional[str] = None,
    caller: Caller = Depends(get_caller),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    return ok(**workflow.track_by_number(caller, tracking_number, carrier))

@router.get("/order/{order_id}")
def order_tracking(order_id: str, caller: Caller = Depends(get_caller), workflow: OrderWorkflow = Depends(get_workflow)):
    return ok(**workflow.get_tracking(caller, order_id))
