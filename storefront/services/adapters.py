"""
Payment gateway and carrier tracking adapters.

Real gateway and carrier integrations are not wired up; the stub
implementations below return synthetic results with the same shape a real
integration would produce. Adapters may raise on transport errors; callers go
through call_with_retry, which bounds the attempts and turns exhaustion into
AdapterFailure.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Optional, TypeVar

from storefront.core.errors import AdapterFailure
from storefront.models.records import (
    Order, PaymentMethod, TrackingEvent, TrackingSnapshot, utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(name: str, fn: Callable[[], T], attempts: int, backoff: float = 0.05) -> T:
    last_exc: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as e:
            last_exc = e
            logger.warning("%s attempt %d/%d failed: %s", name, attempt, attempts, e)
            if attempt < attempts:
                time.sleep(backoff * attempt)
    raise AdapterFailure(f"{name} unavailable: {last_exc}")


# --- Payment ---

@dataclass(frozen=True)
class PaymentResult:
    success: bool
    payment_id: Optional[str] = None
    message: str = ""


class PaymentGateway(ABC):
    method: PaymentMethod

    @abstractmethod
    def charge(self, order: Order) -> PaymentResult: ...

    def void(self, order: Order, payment_id: str) -> PaymentResult:
        """Reverse a charge that could not be applied to its order."""
        return PaymentResult(success=False, payment_id=payment_id, message="void not supported by this gateway")


class _StubGateway(PaymentGateway):
    prefix = ""

    def charge(self, order: Order) -> PaymentResult:
        millis = int(time.time() * 1000)
        return PaymentResult(
            success=True,
            payment_id=f"{self.prefix}_{millis}_{order.id}",
            message="Payment successful",
        )

    def void(self, order: Order, payment_id: str) -> PaymentResult:
        return PaymentResult(success=True, payment_id=payment_id, message="Payment voided")


class AlipayGateway(_StubGateway):
    method = PaymentMethod.ALIPAY
    prefix = "ALIPAY"


class WechatGateway(_StubGateway):
    method = PaymentMethod.WECHAT
    prefix = "WECHAT"


class StripeGateway(_StubGateway):
    method = PaymentMethod.STRIPE
    prefix = "STRIPE"


def default_gateways() -> Dict[PaymentMethod, PaymentGateway]:
    gateways = [AlipayGateway(), WechatGateway(), StripeGateway()]
    return {g.method: g for g in gateways}


# --- Tracking ---

DEFAULT_CARRIER = "SF Express"


class TrackingAdapter(ABC):
    @abstractmethod
    def lookup(self, tracking_number: str, carrier: Optional[str]) -> TrackingSnapshot: ...


class StubTrackingAdapter(TrackingAdapter):
    """Reports every parcel as in transit between two hubs."""

    def lookup(self, tracking_number: str, carrier: Optional[str]) -> TrackingSnapshot:
        now = utcnow()
        return TrackingSnapshot(
            tracking_number=tracking_number,
            carrier=carrier or DEFAULT_CARRIER,
            status="in_transit",
            status_text="In transit",
            current_location="Beijing sorting center",
            timeline=[
                TrackingEvent(time=now, location="Beijing sorting center",
                              description="Arrived at Beijing sorting center"),
                TrackingEvent(time=now - timedelta(hours=1), location="Shanghai sorting center",
                              description="Departed Shanghai sorting center"),
                TrackingEvent(time=now - timedelta(hours=2), location="Shanghai sorting center",
                              description="Arrived at Shanghai sorting center"),
            ],
        )
