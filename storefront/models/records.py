"""
Persistent records shared by the stores and the order workflow.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, List, Optional, Tuple

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

CENTS = Decimal("0.01")

# Decimal in Python and in Mongo, a plain number in JSON responses
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(ObjectId())


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class PaymentMethod(str, Enum):
    ALIPAY = "alipay"
    WECHAT = "wechat"
    STRIPE = "stripe"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class ContactStatus(str, Enum):
    PENDING = "pending"
    READ = "read"
    REPLIED = "replied"


@dataclass(frozen=True)
class Caller:
    """Verified identity handed to the workflow by the auth layer."""

    user_id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class Product(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    price: Money = Field(..., ge=0)
    category: str
    stock: int = Field(0, ge=0)
    is_active: bool = True
    date_added: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: str
    name: str
    price: Money
    quantity: int = Field(..., ge=1)

    @property
    def line_total(self) -> Decimal:
        return money(self.price * self.quantity)


class ShippingInfo(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: Optional[str] = None


class Order(BaseModel):
    id: str = Field(default_factory=new_id)
    order_number: str
    user_id: str
    items: Tuple[OrderItem, ...]
    shipping: ShippingInfo
    subtotal: Money
    shipping_fee: Money
    total: Money
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    # whether the order's units are currently deducted from product stock
    stock_held: bool = True
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    email: str
    password_hash: str
    role: Role = Role.USER
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class Contact(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    email: str
    phone: Optional[str] = None
    message: str
    status: ContactStatus = ContactStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)


class TrackingEvent(BaseModel):
    time: datetime
    location: str
    description: str


class TrackingSnapshot(BaseModel):
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    status: str
    status_text: str
    current_location: Optional[str] = None
    timeline: List[TrackingEvent] = []
