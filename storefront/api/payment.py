from fastapi import APIRouter, Depends

from storefront.api.deps import get_caller, get_workflow, ok
from storefront.models.records import Caller
from storefront.models.schemas import PaymentRequest
from storefront.services.orders_service import OrderWorkflow

router = APIRouter()

@router.post("/process")
def process_payment(
    payload: PaymentRequest,
    caller: Caller = Depends(get_caller),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    outcome = workflow.process_payment(caller, payload.order_id, payload.payment_method)
    message = "Order already paid" if outcome.already_paid else "Payment successful"
    return ok(
        message,
        already_paid=outcome.already_paid,
        payment_id=outcome.order.payment_id,
        order=outcome.order,
    )
