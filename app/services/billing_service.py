"""
Billing bridge to Stripe: plan catalogue, checkout, portal, subscription
passthroughs and webhook verification
"""
import logging
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy.orm import Session

from app.config import settings
from app.dependencies import Principal
from app.errors import (
    BadRequestError,
    ConfigurationError,
    PermissionDeniedError,
    ServiceUnavailableError,
    UpstreamError,
)
from app.models import User

logger = logging.getLogger(__name__)

PLAN_CATALOGUE = {
    "basic": {
        "name": "Basic",
        "description": "5 live exams, 50 students",
        "features": ["5 live exams", "50 students", "Basic analytics"],
        "amounts": {"monthly": 5.99, "annual": 57.50},
    },
    "pro": {
        "name": "Pro",
        "description": "50 live exams, 150 students",
        "features": ["50 live exams", "150 students", "Advanced analytics", "Priority support"],
        "amounts": {"monthly": 12.99, "annual": 124.70},
    },
    "enterprise": {
        "name": "Enterprise",
        "description": "Unlimited exams",
        "features": ["Unlimited exams", "Premium analytics", "24/7 support", "Custom branding"],
        "amounts": {"monthly": 24.99, "annual": 239.90},
    },
}

HANDLED_EVENTS = (
    "checkout.session.completed",
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
)


def configured_price_id(plan: str, interval: str) -> Optional[str]:
    return getattr(settings, f"STRIPE_PRICE_{plan.upper()}_{interval.upper()}", None)


def _get(obj, key: str, default=None):
    """Field access that works for plain dicts and Stripe objects alike"""
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def _subscription_items(subscription) -> list:
    return list(_get(_get(subscription, "items", {}), "data", []))


def serialize_subscription(subscription) -> Dict[str, Any]:
    items = _subscription_items(subscription)
    price = _get(items[0], "price") if items else None
    return {
        "id": subscription["id"],
        "status": _get(subscription, "status", "unknown"),
        "price_id": _get(price, "id"),
        "current_period_end": _get(subscription, "current_period_end"),
        "cancel_at_period_end": bool(_get(subscription, "cancel_at_period_end", False)),
    }


class BillingService:
    """Thin wrapper over the Stripe SDK; provider failures surface as 502"""

    def _require_configured(self) -> None:
        if not settings.STRIPE_SECRET_KEY:
            raise ServiceUnavailableError("Billing is not configured")
        stripe.api_key = settings.STRIPE_SECRET_KEY

    @staticmethod
    def _upstream(action: str, error: Exception) -> UpstreamError:
        logger.error(f"Stripe {action} failed: {str(error)}")
        return UpstreamError(f"Payment provider error while trying to {action}")

    def list_plans(self) -> List[Dict[str, Any]]:
        plans = []
        for key, plan in PLAN_CATALOGUE.items():
            plans.append({
                "plan": key,
                "name": plan["name"],
                "description": plan["description"],
                "features": plan["features"],
                "prices": [
                    {
                        "interval": interval,
                        "amount": amount,
                        "price_id": configured_price_id(key, interval),
                    }
                    for interval, amount in plan["amounts"].items()
                ],
            })
        return plans

    def _known_price_ids(self) -> set:
        known = set()
        for key, plan in PLAN_CATALOGUE.items():
            for interval in plan["amounts"]:
                price_id = configured_price_id(key, interval)
                if price_id:
                    known.add(price_id)
        return known

    def _get_user(self, db: Session, principal: Principal) -> User:
        return db.query(User).filter(User.id == principal.id).first()

    def _ensure_customer(self, db: Session, user: User) -> str:
        """Create the Stripe customer on first use and remember its id"""
        if user.stripe_customer_id:
            return user.stripe_customer_id

        try:
            customer = stripe.Customer.create(
                email=user.email,
                name=user.name or user.email,
                metadata={"user_id": str(user.id)},
            )
        except stripe.StripeError as e:
            raise self._upstream("create customer", e)

        user.stripe_customer_id = customer["id"]
        db.commit()
        logger.info(f"Stripe customer {customer['id']} created for user {user.id}")
        return user.stripe_customer_id

    def create_checkout_session(self, db: Session, principal: Principal, price_id: str) -> Dict[str, Any]:
        self._require_configured()

        known = self._known_price_ids()
        if known and price_id not in known:
            raise BadRequestError("Unknown price id")

        user = self._get_user(db, principal)
        customer_id = self._ensure_customer(db, user)

        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{settings.FRONTEND_URL}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{settings.FRONTEND_URL}/subscription/plans",
                metadata={"user_id": str(user.id)},
            )
        except stripe.StripeError as e:
            raise self._upstream("create checkout session", e)

        logger.info(f"Checkout session {session['id']} created for user {user.id}")
        return {"session_id": session["id"], "url": _get(session, "url")}

    def create_portal_session(self, db: Session, principal: Principal) -> Dict[str, Any]:
        self._require_configured()
        user = self._get_user(db, principal)
        if not user.stripe_customer_id:
            raise BadRequestError("No billing account found. Subscribe to a plan first.")

        try:
            portal = stripe.billing_portal.Session.create(
                customer=user.stripe_customer_id,
                return_url=f"{settings.FRONTEND_URL}/subscription",
            )
        except stripe.StripeError as e:
            raise self._upstream("create portal session", e)
        return {"url": portal["url"]}

    def my_subscriptions(self, db: Session, principal: Principal) -> Dict[str, Any]:
        self._require_configured()
        user = self._get_user(db, principal)
        if not user.stripe_customer_id:
            return {"customer_id": None, "subscriptions": []}

        try:
            result = stripe.Subscription.list(customer=user.stripe_customer_id, status="all", limit=10)
        except stripe.StripeError as e:
            raise self._upstream("list subscriptions", e)

        return {
            "customer_id": user.stripe_customer_id,
            "subscriptions": [serialize_subscription(s) for s in _get(result, "data", [])],
        }

    def _owned_subscription(self, db: Session, principal: Principal, subscription_id: str):
        user = self._get_user(db, principal)
        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as e:
            raise self._upstream("retrieve subscription", e)

        if not user.stripe_customer_id or _get(subscription, "customer") != user.stripe_customer_id:
            raise PermissionDeniedError("Not authorized to access this subscription")
        return subscription

    def verify_checkout_session(self, db: Session, principal: Principal, session_id: str) -> Dict[str, Any]:
        self._require_configured()
        user = self._get_user(db, principal)
        try:
            session = stripe.checkout.Session.retrieve(session_id, expand=["subscription"])
        except stripe.StripeError as e:
            raise self._upstream("retrieve checkout session", e)

        if not user.stripe_customer_id or _get(session, "customer") != user.stripe_customer_id:
            raise PermissionDeniedError("Not authorized to access this checkout session")

        subscription = _get(session, "subscription")
        metadata = _get(session, "metadata")
        return {
            "session_id": session["id"],
            "status": _get(session, "status"),
            "payment_status": _get(session, "payment_status"),
            # Unexpanded subscriptions come back as a bare id
            "subscription": None if subscription is None or isinstance(subscription, str) else serialize_subscription(subscription),
            "metadata": dict(metadata) if metadata else {},
        }

    def get_subscription(self, db: Session, principal: Principal, subscription_id: str) -> Dict[str, Any]:
        self._require_configured()
        return serialize_subscription(self._owned_subscription(db, principal, subscription_id))

    def update_subscription(
        self, db: Session, principal: Principal, subscription_id: str, new_price_id: str
    ) -> Dict[str, Any]:
        self._require_configured()
        subscription = self._owned_subscription(db, principal, subscription_id)

        items = _subscription_items(subscription)
        if not items:
            raise BadRequestError("Subscription has no items to update")

        try:
            updated = stripe.Subscription.modify(
                subscription_id,
                items=[{"id": items[0]["id"], "price": new_price_id}],
            )
        except stripe.StripeError as e:
            raise self._upstream("update subscription", e)

        logger.info(f"Subscription {subscription_id} moved to price {new_price_id}")
        return serialize_subscription(updated)

    def cancel_subscription(self, db: Session, principal: Principal, subscription_id: str) -> Dict[str, Any]:
        self._require_configured()
        self._owned_subscription(db, principal, subscription_id)

        try:
            cancelled = stripe.Subscription.cancel(subscription_id)
        except stripe.StripeError as e:
            raise self._upstream("cancel subscription", e)

        logger.info(f"Subscription {subscription_id} cancelled by user {principal.id}")
        return serialize_subscription(cancelled)

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and acknowledge a Stripe event

        Events are logged only; local plan state is not changed here.
        """
        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured")
            raise ConfigurationError("Webhook secret not configured")

        if not signature:
            raise BadRequestError("Webhook Error: missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Webhook rejected: {str(e)}")
            raise BadRequestError(f"Webhook Error: {str(e)}")

        event_type = event["type"]
        if event_type in HANDLED_EVENTS:
            obj = event["data"]["object"]
            logger.info(f"Stripe event {event_type}: {_get(obj, 'id')} customer={_get(obj, 'customer')}")
        else:
            logger.info(f"Unhandled Stripe event type {event_type}")

        return {"received": True}


# Global instance
billing_service = BillingService()
