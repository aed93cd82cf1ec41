from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class PricingItem(BaseModel):
    product_id: Optional[str] = None
    seller: Optional[str] = None
    price: float = Field(0, ge=0)
    quantity: int = Field(0, ge=0)


class TaxComputeRequest(BaseModel):
    country: str = Field(..., min_length=1)
    items: List[PricingItem]
    discount: float = Field(0, ge=0)


class ShippingQuoteRequest(BaseModel):
    country: str = Field(..., min_length=1)
    items: List[PricingItem]


class RatesUpdate(BaseModel):
    # rows are cleaned server-side; invalid rows are dropped, not rejected
    rates: List[Dict[str, Any]]
