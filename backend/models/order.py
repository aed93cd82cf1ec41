from enum import Enum
from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional

from models.rates import PricingItem


class OrderStatus(str, Enum):
    PENDING = "Pending"
    COMPLETE = "Complete"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)


class OrderCreate(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: EmailStr
    order_notes: Optional[str] = ""

    items: List[OrderItemIn] = Field(..., min_length=1)
    payment_method: str = Field(..., min_length=1)

    # issued and validated by the coupon service
    coupon_code: Optional[str] = None
    discount: float = Field(0, ge=0)


class OrderQuoteRequest(BaseModel):
    country: str = Field(..., min_length=1)
    items: List[PricingItem]
    discount: float = Field(0, ge=0)


class OrderStatusUpdate(BaseModel):
    status: str
    expected_revision: Optional[int] = None
