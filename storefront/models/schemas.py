from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.models.records import OrderStatus, PaymentMethod, ShippingInfo

# Users
class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: str

# Orders
class OrderItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)

class OrderCreate(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping: ShippingInfo
    payment_method: PaymentMethod

class PaymentRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    payment_method: PaymentMethod

class StatusUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: OrderStatus
    tracking_number: Optional[str] = Field(None, min_length=1)
    carrier: Optional[str] = Field(None, min_length=1)

# Contact
class ContactCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    message: str = Field(..., min_length=1)

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit)
