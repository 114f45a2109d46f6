"""
Subscription and billing API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
import logging

from app.database import get_db
from app.dependencies import Capability, Principal, require_capability
from app.schemas.subscription import (
    CheckoutRequest,
    CheckoutResponse,
    MySubscriptions,
    PlanOut,
    PortalResponse,
    SubscriptionOut,
    SubscriptionUpdateRequest,
    VerifySessionResponse,
)
from app.services.billing_service import billing_service

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])
logger = logging.getLogger(__name__)

billing = require_capability(Capability.MANAGE_BILLING)


@router.get("/plans", response_model=List[PlanOut])
async def list_plans():
    """Plan catalogue with the configured Stripe price ids"""
    return billing_service.list_plans()


@router.post("/checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    payload: CheckoutRequest,
    user: Principal = Depends(billing),
    db: Session = Depends(get_db),
):
    """
    Start a Stripe Checkout subscription

    - The Stripe customer is created on first use and stored on the account
    """
    return billing_service.create_checkout_session(db, user, payload.price_id)


@router.post("/portal-session", response_model=PortalResponse)
async def create_portal_session(user: Principal = Depends(billing), db: Session = Depends(get_db)):
    return billing_service.create_portal_session(db, user)


@router.get("/me", response_model=MySubscriptions)
async def my_subscriptions(user: Principal = Depends(billing), db: Session = Depends(get_db)):
    return billing_service.my_subscriptions(db, user)


@router.get("/verify-session/{session_id}", response_model=VerifySessionResponse)
async def verify_session(
    session_id: str,
    user: Principal = Depends(billing),
    db: Session = Depends(get_db),
):
    return billing_service.verify_checkout_session(db, user, session_id)


@router.get("/{subscription_id}", response_model=SubscriptionOut)
async def get_subscription(
    subscription_id: str,
    user: Principal = Depends(billing),
    db: Session = Depends(get_db),
):
    return billing_service.get_subscription(db, user, subscription_id)


@router.post("/update/{subscription_id}", response_model=SubscriptionOut)
async def update_subscription(
    subscription_id: str,
    payload: SubscriptionUpdateRequest,
    user: Principal = Depends(billing),
    db: Session = Depends(get_db),
):
    return billing_service.update_subscription(db, user, subscription_id, payload.new_price_id)


@router.post("/cancel/{subscription_id}", response_model=SubscriptionOut)
async def cancel_subscription(
    subscription_id: str,
    user: Principal = Depends(billing),
    db: Session = Depends(get_db),
):
    return billing_service.cancel_subscription(db, user, subscription_id)
