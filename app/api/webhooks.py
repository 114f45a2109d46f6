"""
Inbound webhooks from the payment provider
"""
from fastapi import APIRouter, Request
import logging

from app.services.billing_service import billing_service

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post("/stripe")
async def stripe_webhook(request: Request):
    """
    Receive a Stripe event

    - The raw body is verified against the Stripe-Signature header
    - 400 on a bad payload or signature
    """
    payload = await request.body()
    return billing_service.handle_webhook(payload, request.headers.get("stripe-signature"))
