"""
Stripe billing: checkout and portal sessions, and the webhook state sync.

The webhook path is split in three so the state change stays testable:
verify_event (signature) -> reduce_event (pure) -> apply_mutation (store).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import logfire
import stripe
from sqlalchemy.orm import Session

import store
from auth import CurrentUser
import config
from config import APP_URL, STRIPE_PRO_PRICE_ID, STRIPE_SECRET_KEY
from errors import BillingAccountMissing, NotAuthenticated, ServiceError, WebhookVerificationError

stripe.api_key = STRIPE_SECRET_KEY

HANDLED_EVENTS = {
    "checkout.session.completed",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.payment_failed",
}


@dataclass(frozen=True)
class ProfileMutation:
    """Which profile to touch (by id or Stripe customer id) and what to set."""
    key_field: str
    key_value: str
    changes: dict = field(default_factory=dict)


def _from_epoch(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _period(subscription: Optional[dict], name: str) -> Optional[datetime]:
    if not subscription:
        return None
    value = subscription.get(name)
    if value is None:
        # Newer API versions only report the period on subscription items
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            value = items[0].get(name)
    return _from_epoch(value)


def reduce_event(event_type: str, obj: dict, subscription: Optional[dict] = None) -> Optional[ProfileMutation]:
    """Map a billing event to the profile change it implies, or None to ignore it."""
    match event_type:
        case "checkout.session.completed":
            user_id = (obj.get("metadata") or {}).get("user_id") or obj.get("client_reference_id")
            subscription_id = obj.get("subscription")
            if not user_id or not subscription_id:
                return None
            return ProfileMutation("id", user_id, {
                "subscription_status": "pro",
                "stripe_subscription_id": subscription_id,
                "current_period_start": _period(subscription, "current_period_start"),
                "current_period_end": _period(subscription, "current_period_end"),
            })
        case "customer.subscription.updated":
            customer_id = obj.get("customer")
            if not customer_id:
                return None
            return ProfileMutation("stripe_customer_id", customer_id, {
                "subscription_status": "pro" if obj.get("status") == "active" else "cancelled",
                "current_period_start": _period(obj, "current_period_start"),
                "current_period_end": _period(obj, "current_period_end"),
            })
        case "customer.subscription.deleted":
            customer_id = obj.get("customer")
            if not customer_id:
                return None
            return ProfileMutation("stripe_customer_id", customer_id, {
                "subscription_status": "free",
                "stripe_subscription_id": None,
                "current_period_start": None,
                "current_period_end": None,
            })
        case "invoice.payment_failed":
            customer_id = obj.get("customer")
            if not customer_id:
                return None
            return ProfileMutation("stripe_customer_id", customer_id, {
                "subscription_status": "cancelled",
            })
        case _:
            return None


def apply_mutation(db: Session, mutation: ProfileMutation) -> bool:
    if mutation.key_field == "id":
        profile = store.get_profile(db, mutation.key_value)
    else:
        profile = store.get_profile_by_customer(db, mutation.key_value)
    if profile is None:
        logfire.info(
            "no profile for {key_field}={key_value}, ignoring",
            key_field=mutation.key_field,
            key_value=mutation.key_value,
        )
        return False
    store.update_profile(db, profile, **mutation.changes)
    return True


def verify_event(payload: bytes, signature: Optional[str], secret: Optional[str] = None):
    if not signature:
        raise WebhookVerificationError("Missing Stripe-Signature header")
    secret = secret or config.STRIPE_WEBHOOK_SECRET
    if not secret:
        raise WebhookVerificationError("Webhook secret is not configured")
    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logfire.warn("webhook signature verification failed: {error}", error=str(e))
        raise WebhookVerificationError() from e


def _plain(value) -> dict:
    # StripeObject is not a dict; the reducer only sees plain dicts
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return dict(value or {})


def retrieve_subscription(subscription_id: str) -> dict:
    return _plain(stripe.Subscription.retrieve(subscription_id))


def handle_event(
    db: Session,
    event: Any,
    fetch_subscription: Callable[[str], dict] = retrieve_subscription,
) -> bool:
    event = _plain(event)
    event_type = event["type"]
    obj = event["data"]["object"]
    if event_type not in HANDLED_EVENTS:
        logfire.info("ignoring webhook event {event_type}", event_type=event_type)
        return False

    subscription = None
    if event_type == "checkout.session.completed" and obj.get("subscription"):
        subscription = _plain(fetch_subscription(obj["subscription"]))

    mutation = reduce_event(event_type, obj, subscription)
    if mutation is None:
        return False
    applied = apply_mutation(db, mutation)
    logfire.info("webhook {event_type} applied={applied}", event_type=event_type, applied=applied)
    return applied


def create_checkout_session(db: Session, user: CurrentUser) -> str:
    profile = store.get_profile(db, user.id)
    if profile is None:
        raise NotAuthenticated()
    try:
        if not profile.stripe_customer_id:
            customer = stripe.Customer.create(
                email=profile.email,
                metadata={"user_id": profile.id},
            )
            store.update_profile(db, profile, stripe_customer_id=customer.id)

        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=profile.stripe_customer_id,
            client_reference_id=profile.id,
            metadata={"user_id": profile.id},
            line_items=[{"price": STRIPE_PRO_PRICE_ID, "quantity": 1}],
            success_url=f"{APP_URL}/dashboard?upgraded=true",
            cancel_url=f"{APP_URL}/pricing",
        )
    except stripe.StripeError as e:
        logfire.exception("checkout session failed for {user_id}", user_id=user.id)
        raise ServiceError("Failed to start checkout") from e
    return session.url


def create_portal_session(db: Session, user: CurrentUser) -> str:
    profile = store.get_profile(db, user.id)
    if profile is None or not profile.stripe_customer_id:
        raise BillingAccountMissing()
    try:
        session = stripe.billing_portal.Session.create(
            customer=profile.stripe_customer_id,
            return_url=f"{APP_URL}/settings",
        )
    except stripe.StripeError as e:
        logfire.exception("portal session failed for {user_id}", user_id=user.id)
        raise ServiceError("Failed to open billing portal") from e
    return session.url
