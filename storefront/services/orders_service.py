"""
Order workflow: admission, pricing, persistence, payment and fulfillment.

Stock is committed at admission with one conditional decrement per line item.
The decrements applied for an order are tracked in a StockReservation so that
any later failure (another item short on stock, order insert failing) gives
every unit back before the error reaches the caller.

A payment that is declined or cannot reach its gateway hands the order's
units back (Order.stock_held goes False); the next payment attempt takes
them again with the same conditional decrement before charging.
"""
import logging
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import pydantic

from storefront.core.config import (
    ADAPTER_MAX_ATTEMPTS, ORDER_NUMBER_MAX_ATTEMPTS, ORDER_NUMBER_PREFIX,
    SHIPPING_FEE, STATUS_UPDATE_MAX_ATTEMPTS,
)
from storefront.core.errors import (
    AdapterFailure, Conflict, DuplicateOrderNumber, Forbidden, InactiveProduct, InsufficientStock,
    InvalidTransition, NotFound, PaymentDeclined, ValidationError, field_errors,
)
from storefront.db.base import ProductRepository
from storefront.models.records import (
    Caller, Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus,
    TrackingSnapshot, money, utcnow,
)
from storefront.models.schemas import OrderCreate, Pagination, StatusUpdate
from storefront.services.adapters import PaymentGateway, call_with_retry
from storefront.store import Store

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

# Operator-driven transitions. pending -> processing belongs to payment.
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def generate_order_number(prefix: str = ORDER_NUMBER_PREFIX) -> str:
    return f"{prefix}{utcnow():%Y%m%d}{random.randint(0, 999999):06d}"


def parse_order_request(payload: Dict[str, Any]) -> OrderCreate:
    try:
        return OrderCreate.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(errors=field_errors(e.errors()))


@dataclass(frozen=True)
class PaymentOutcome:
    order: Order
    already_paid: bool = False


class StockReservation:
    """Conditional stock decrements applied for one order, releasable as a unit."""

    def __init__(self, products: ProductRepository, ref: str):
        self.products = products
        self.ref = ref
        self.items: List[OrderItem] = []

    def reserve(self, product_id: str, quantity: int) -> OrderItem:
        product = self.products.reserve(product_id, quantity)
        if product is None:
            raise self._rejection(product_id, quantity)
        item = OrderItem(
            product_id=product.id,
            name=product.name,
            price=money(product.price),
            quantity=quantity,
        )
        self.items.append(item)
        logger.info("[%s] reserved %s x%d (stock left=%d)", self.ref, product.id, quantity, product.stock)
        return item

    def _rejection(self, product_id: str, quantity: int) -> Exception:
        product = self.products.get(product_id)
        if product is None:
            return NotFound(f"Product {product_id} not found",
                            [{"field": "items", "product_id": product_id, "message": "not found"}])
        if not product.is_active:
            return InactiveProduct(product.id, product.name)
        return InsufficientStock(product.id, product.name, quantity)

    def release(self) -> None:
        for item in reversed(self.items):
            try:
                self.products.release(item.product_id, item.quantity)
                logger.info("[%s] released %s x%d", self.ref, item.product_id, item.quantity)
            except Exception:
                logger.exception("[%s] COMPENSATION FAILED for %s x%d", self.ref, item.product_id, item.quantity)
        self.items = []


class OrderWorkflow:
    def __init__(
        self,
        store: Store,
        shipping_fee: Decimal = SHIPPING_FEE,
        number_factory: Callable[[], str] = generate_order_number,
        order_number_attempts: int = ORDER_NUMBER_MAX_ATTEMPTS,
        status_attempts: int = STATUS_UPDATE_MAX_ATTEMPTS,
        adapter_attempts: int = ADAPTER_MAX_ATTEMPTS,
    ):
        self.store = store
        self.shipping_fee = money(shipping_fee)
        self.number_factory = number_factory
        self.order_number_attempts = order_number_attempts
        self.status_attempts = status_attempts
        self.adapter_attempts = adapter_attempts

    # --- Creation ---

    def create_order(self, caller: Caller, request: OrderCreate) -> Order:
        self._check_admission(request)

        reservation = StockReservation(self.store.products, ref=f"user={caller.user_id}")
        try:
            for item in request.items:
                reservation.reserve(item.product_id, item.quantity)
            order = self._insert_order(caller, request, reservation.items)
        except Exception as e:
            logger.info("[user=%s] order rejected, releasing stock: %s", caller.user_id, e)
            reservation.release()
            raise

        logger.info("[order=%s] created for user=%s total=%s", order.order_number, caller.user_id, order.total)
        return order

    def _check_admission(self, request: OrderCreate) -> None:
        # Cheap rejection before anything is mutated; reserve() re-checks atomically.
        for item in request.items:
            product = self.store.products.get(item.product_id)
            if product is None:
                raise NotFound(f"Product {item.product_id} not found",
                               [{"field": "items", "product_id": item.product_id, "message": "not found"}])
            if not product.is_active:
                raise InactiveProduct(product.id, product.name)
            if product.stock < item.quantity:
                raise InsufficientStock(product.id, product.name, item.quantity)

    def _insert_order(self, caller: Caller, request: OrderCreate, items: List[OrderItem]) -> Order:
        subtotal = money(sum((item.line_total for item in items), Decimal("0")))
        total = money(subtotal + self.shipping_fee)

        for attempt in range(1, self.order_number_attempts + 1):
            order = Order(
                order_number=self.number_factory(),
                user_id=caller.user_id,
                items=tuple(items),
                shipping=request.shipping,
                subtotal=subtotal,
                shipping_fee=self.shipping_fee,
                total=total,
                payment_method=request.payment_method,
            )
            try:
                return self.store.orders.insert(order)
            except DuplicateOrderNumber:
                logger.warning("order number %s taken (attempt %d/%d)",
                               order.order_number, attempt, self.order_number_attempts)
        raise Conflict("Could not allocate a unique order number")

    # --- Queries ---

    def _owned(self, caller: Caller, order_id: str) -> Order:
        order = self.store.orders.get_for_user(order_id, caller.user_id)
        if order is None:
            raise NotFound("Order not found")
        return order

    def get_order(self, caller: Caller, order_id: str) -> Order:
        return self._owned(caller, order_id)

    def list_orders(
        self, caller: Caller, page: int = 1, limit: int = 10, status: Optional[OrderStatus] = None
    ) -> Tuple[List[Order], Pagination]:
        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(errors=[{"field": "page/limit", "message": f"page >= 1, 1 <= limit <= {MAX_PAGE_SIZE}"}])
        orders = self.store.orders.list_for_user(caller.user_id, status, (page - 1) * limit, limit)
        total = self.store.orders.count_for_user(caller.user_id, status)
        return orders, Pagination.of(page, limit, total)

    # --- Payment ---

    def process_payment(self, caller: Caller, order_id: str, method: PaymentMethod) -> PaymentOutcome:
        order = self._owned(caller, order_id)
        if order.payment_status == PaymentStatus.PAID:
            logger.info("[order=%s] already paid, ignoring payment request", order.order_number)
            return PaymentOutcome(order, already_paid=True)
        if order.status != OrderStatus.PENDING or order.payment_status != PaymentStatus.UNPAID:
            raise InvalidTransition(f"Order {order.order_number} is {order.status.value} and cannot be paid")

        gateway = self.store.gateways.get(method)
        if gateway is None:
            raise ValidationError("Unsupported payment method",
                                  [{"field": "payment_method", "message": f"{method.value} is not available"}])

        if not order.stock_held:
            order = self._hold_stock(order)

        try:
            result = call_with_retry(f"{method.value} gateway", lambda: gateway.charge(order), self.adapter_attempts)
        except AdapterFailure:
            self._release_stock(order)
            raise
        if not result.success:
            logger.info("[order=%s] payment declined: %s", order.order_number, result.message)
            self._release_stock(order)
            raise PaymentDeclined(result.message or None)

        paid = self.store.orders.mark_paid(order.id, result.payment_id, method)
        if paid is None:
            current = self.store.orders.get(order.id)
            if current is not None and current.payment_status == PaymentStatus.PAID:
                logger.warning("[order=%s] concurrent payment already applied, keeping %s",
                               order.order_number, current.payment_id)
                return PaymentOutcome(current, already_paid=True)
            raise self._void_unapplied_charge(gateway, method, order, current, result.payment_id)

        logger.info("[order=%s] paid via %s (%s)", paid.order_number, method.value, paid.payment_id)
        return PaymentOutcome(paid)

    def _hold_stock(self, order: Order) -> Order:
        """Take the order's units out of stock again after an earlier failed payment released them."""
        reservation = StockReservation(self.store.products, ref=f"order={order.order_number}")
        try:
            for item in order.items:
                reservation.reserve(item.product_id, item.quantity)
        except Exception:
            reservation.release()
            raise

        held = self.store.orders.compare_and_set_hold(order.id, True)
        if held is None:
            reservation.release()
            raise Conflict(f"Order {order.order_number} changed while paying, please retry")
        logger.info("[order=%s] stock reserved again for payment", order.order_number)
        return held

    def _release_stock(self, order: Order) -> None:
        released = self.store.orders.compare_and_set_hold(order.id, False)
        if released is None:
            # paid, cancelled or released by a concurrent attempt
            return
        self._restock(released)

    def _void_unapplied_charge(
        self, gateway: PaymentGateway, method: PaymentMethod, order: Order,
        current: Optional[Order], payment_id: Optional[str],
    ) -> Conflict:
        state = f"{current.status.value}/{current.payment_status.value}" if current else "missing"
        logger.error("[order=%s] charge %s succeeded but the order is now %s, voiding it",
                     order.order_number, payment_id, state)
        try:
            voided = call_with_retry(f"{method.value} void", lambda: gateway.void(order, payment_id),
                                     self.adapter_attempts)
        except AdapterFailure as e:
            logger.error("[order=%s] void of charge %s failed: %s", order.order_number, payment_id, e)
            voided = None

        if voided is not None and voided.success:
            note = "charge voided"
        else:
            note = "charge could not be voided, refund required"
            logger.error("[order=%s] charge %s needs a manual refund", order.order_number, payment_id)
        return Conflict(
            f"Order {order.order_number} changed while paying ({note})",
            [{"field": "payment_id", "payment_id": payment_id, "message": note}],
        )

    # --- Fulfillment ---

    def update_status(self, caller: Caller, order_id: str, update: StatusUpdate) -> Order:
        if not caller.is_admin:
            raise Forbidden()

        target = update.status
        for _ in range(self.status_attempts):
            order = self.store.orders.get(order_id)
            if order is None:
                raise NotFound("Order not found")
            if target not in ALLOWED_TRANSITIONS[order.status]:
                raise InvalidTransition(
                    f"Cannot move order {order.order_number} from {order.status.value} to {target.value}"
                )

            fields: Dict[str, Any] = {"status": target}
            if update.tracking_number or update.carrier:
                if target != OrderStatus.SHIPPED:
                    raise ValidationError(errors=[{"field": "tracking_number",
                                                   "message": "tracking data can only be set when shipping"}])
                if update.tracking_number:
                    fields["tracking_number"] = update.tracking_number
                if update.carrier:
                    fields["carrier"] = update.carrier
            if target == OrderStatus.CANCELLED:
                fields["stock_held"] = False
                if order.payment_status == PaymentStatus.PAID:
                    fields["payment_status"] = PaymentStatus.REFUNDED

            updated = self.store.orders.compare_and_set_status(
                order.id, order.status, fields, stock_held=order.stock_held
            )
            if updated is None:
                logger.info("[order=%s] order changed concurrently, retrying", order.order_number)
                continue

            if target == OrderStatus.CANCELLED and order.stock_held:
                self._restock(updated)
            logger.info("[order=%s] %s -> %s by %s", updated.order_number,
                        order.status.value, target.value, caller.user_id)
            return updated

        raise Conflict(f"Order {order_id} keeps changing, please retry")

    def _restock(self, order: Order) -> None:
        reservation = StockReservation(self.store.products, ref=f"order={order.order_number}")
        reservation.items = list(order.items)
        reservation.release()

    # --- Tracking ---

    def get_tracking(self, caller: Caller, order_id: str) -> Dict[str, Any]:
        return self._tracking_view(self._owned(caller, order_id))

    def track_by_number(self, caller: Caller, tracking_number: str, carrier: Optional[str] = None) -> Dict[str, Any]:
        order = self.store.orders.find_by_tracking(caller.user_id, tracking_number)
        if order is None:
            raise NotFound("No order with that tracking number")
        return self._tracking_view(order, carrier)

    def _tracking_view(self, order: Order, carrier: Optional[str] = None) -> Dict[str, Any]:
        if not order.tracking_number:
            snapshot = TrackingSnapshot(status="pending", status_text="Order has not shipped yet")
        else:
            snapshot = call_with_retry(
                "tracking lookup",
                lambda: self.store.tracking.lookup(order.tracking_number, carrier or order.carrier),
                self.adapter_attempts,
            )
        return {
            "order": {"order_number": order.order_number, "status": order.status},
            "tracking": snapshot,
        }
