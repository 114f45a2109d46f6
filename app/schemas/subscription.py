"""
Pydantic schemas for the billing bridge
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PlanPrice(BaseModel):
    interval: str
    amount: float
    price_id: Optional[str] = None


class PlanOut(BaseModel):
    plan: str
    name: str
    description: str
    features: List[str]
    prices: List[PlanPrice]


class CheckoutRequest(BaseModel):
    price_id: str = Field(..., min_length=1)


class CheckoutResponse(BaseModel):
    session_id: str
    url: Optional[str] = None


class PortalResponse(BaseModel):
    url: str


class SubscriptionUpdateRequest(BaseModel):
    new_price_id: str = Field(..., min_length=1)


class SubscriptionOut(BaseModel):
    id: str
    status: str
    price_id: Optional[str] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False


class MySubscriptions(BaseModel):
    customer_id: Optional[str] = None
    subscriptions: List[SubscriptionOut]


class VerifySessionResponse(BaseModel):
    session_id: str
    status: Optional[str] = None
    payment_status: Optional[str] = None
    subscription: Optional[SubscriptionOut] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
