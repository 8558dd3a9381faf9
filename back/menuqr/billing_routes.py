from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request
from sqlmodel import Session

from . import billing
from .billing import BillingProvider, get_billing
from .db import get_session
from .models import SubscriptionStart, SubscriptionState
from .security import CurrentUser

router = APIRouter()

Billing = Annotated[BillingProvider, Depends(get_billing)]


@router.get("/subscription")
def get_subscription(current_user: CurrentUser) -> SubscriptionState:
    """Locally known plan and subscription status; no provider call."""
    return billing.subscription_state(current_user)


@router.post("/subscription")
def create_subscription(
    current_user: CurrentUser,
    provider: Billing,
    session: Session = Depends(get_session),
) -> SubscriptionStart:
    """Start (or resume) the premium upgrade; the browser completes payment with the client secret."""
    return billing.begin_upgrade(session, current_user, provider)


@router.post("/subscription/confirm")
def confirm_subscription(
    current_user: CurrentUser,
    provider: Billing,
    session: Session = Depends(get_session),
) -> SubscriptionState:
    """Re-check the subscription with Stripe after the browser reports a payment."""
    return billing.reconcile_subscription(session, current_user, provider)


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    provider: Billing,
    stripe_signature: Annotated[str | None, Header()] = None,
    session: Session = Depends(get_session),
) -> dict:
    payload = await request.body()
    applied = billing.handle_webhook(session, provider, payload, stripe_signature)
    return {"received": True, "applied": applied}
