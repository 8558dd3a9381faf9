"""
Premium subscriptions through Stripe.

`begin_upgrade` starts (or resumes) a subscription in the incomplete state and
hands the client secret to the browser, which completes the payment with
Stripe directly. The plan only becomes premium once Stripe reports the
subscription as active, through the webhook or the confirm endpoint.

Billing calls are never retried here: repeating a subscription or payment
creation can charge the customer twice. Creation calls carry idempotency keys
so concurrent upgrades of one user end up with one customer and one
subscription.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

import stripe
from sqlmodel import Session, select

from .errors import (
    BillingNotConfigured,
    ExternalProviderFailure,
    NotFound,
    ProgrammingInvariantViolation,
    ValidationFailed,
)
from .models import Plan, SubscriptionStart, SubscriptionState, User
from .settings import settings

logger = logging.getLogger(__name__)

PREMIUM_STATUSES = {"active", "trialing"}
# A subscription in one of these states can no longer be paid
ENDED_STATUSES = {"canceled", "incomplete_expired"}

HANDLED_EVENTS = {
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.paid",
    "invoice.payment_failed",
}


@dataclass(frozen=True)
class SubscriptionInfo:
    id: str
    status: str
    client_secret: str | None = None
    current_period_end: datetime | None = None


class BillingProvider(ABC):
    """The three provider calls the upgrade flow needs, plus webhook parsing."""

    @abstractmethod
    def create_customer(self, email: str, idempotency_key: str) -> str:
        """Create a customer record and return its id. A repeated key returns the same customer."""

    @abstractmethod
    def create_subscription(self, customer_id: str, idempotency_key: str) -> SubscriptionInfo:
        """
        Create a monthly premium subscription awaiting its first payment.

        A repeated key returns the same subscription instead of a second one.
        """

    @abstractmethod
    def retrieve_subscription(self, subscription_id: str) -> SubscriptionInfo:
        """Fetch the current status and client secret of a subscription."""

    @abstractmethod
    def subscription_id_from_event(self, payload: bytes, signature: str | None) -> str | None:
        """Verify a webhook and return the subscription it concerns, if any."""


def _stripe_failure(error: stripe.StripeError) -> ExternalProviderFailure:
    message = error.user_message or str(error) or "Stripe request failed"
    return ExternalProviderFailure(message)


def _subscription_info(subscription) -> SubscriptionInfo:
    invoice = getattr(subscription, "latest_invoice", None)
    client_secret = None
    if invoice is not None and not isinstance(invoice, str):
        payment_intent = getattr(invoice, "payment_intent", None)
        client_secret = getattr(payment_intent, "client_secret", None)
        if client_secret is None:
            confirmation = getattr(invoice, "confirmation_secret", None)
            client_secret = getattr(confirmation, "client_secret", None)

    period_end = getattr(subscription, "current_period_end", None)
    return SubscriptionInfo(
        id=subscription.id,
        status=subscription.status,
        client_secret=client_secret,
        current_period_end=(
            datetime.fromtimestamp(period_end, timezone.utc) if period_end else None
        ),
    )


class StripeBilling(BillingProvider):
    def __init__(
        self,
        api_key: str,
        currency: str,
        unit_amount: int,
        product_name: str,
        price_id: str = "",
        webhook_secret: str = "",
        api_version: str | None = None,
    ):
        self.api_key = api_key
        self.currency = currency
        self.unit_amount = unit_amount
        self.product_name = product_name
        self.price_id = price_id
        self.webhook_secret = webhook_secret
        self.api_version = api_version

    @classmethod
    def from_settings(cls) -> "StripeBilling":
        return cls(
            api_key=settings.stripe_secret_key,
            currency=settings.stripe_currency,
            unit_amount=settings.premium_price_cents,
            product_name=settings.premium_product_name,
            price_id=settings.stripe_price_id,
            webhook_secret=settings.stripe_webhook_secret,
            api_version=settings.stripe_api_version or None,
        )

    def _options(self) -> dict:
        options = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        return options

    def create_customer(self, email: str, idempotency_key: str) -> str:
        try:
            customer = stripe.Customer.create(
                email=email, name=email, idempotency_key=idempotency_key, **self._options()
            )
        except stripe.StripeError as e:
            raise _stripe_failure(e) from e
        return customer.id

    def _resolve_price(self, idempotency_key: str) -> str:
        if self.price_id:
            return self.price_id
        logger.info("STRIPE_PRICE_ID not set, creating premium product and price in Stripe")
        product = stripe.Product.create(
            name=self.product_name,
            description="Premium plan with unlimited products",
            idempotency_key=f"{idempotency_key}-product",
            **self._options(),
        )
        price = stripe.Price.create(
            product=product.id,
            currency=self.currency,
            unit_amount=self.unit_amount,
            recurring={"interval": "month"},
            idempotency_key=f"{idempotency_key}-price",
            **self._options(),
        )
        return price.id

    def create_subscription(self, customer_id: str, idempotency_key: str) -> SubscriptionInfo:
        try:
            subscription = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": self._resolve_price(idempotency_key)}],
                idempotency_key=idempotency_key,
                payment_behavior="default_incomplete",
                expand=["latest_invoice.payment_intent"],
                **self._options(),
            )
        except stripe.StripeError as e:
            raise _stripe_failure(e) from e
        return _subscription_info(subscription)

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionInfo:
        try:
            subscription = stripe.Subscription.retrieve(
                subscription_id,
                expand=["latest_invoice.payment_intent"],
                **self._options(),
            )
        except stripe.StripeError as e:
            raise _stripe_failure(e) from e
        return _subscription_info(subscription)

    def subscription_id_from_event(self, payload: bytes, signature: str | None) -> str | None:
        if not self.webhook_secret:
            raise BillingNotConfigured("Stripe webhook secret is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise ValidationFailed("Invalid webhook signature") from e

        if event.type not in HANDLED_EVENTS:
            return None

        obj = event.data.object
        if event.type.startswith("customer.subscription."):
            return obj.id

        # Invoices: top-level field on older API versions, under parent on newer ones
        subscription_id = getattr(obj, "subscription", None)
        if subscription_id is None:
            details = getattr(getattr(obj, "parent", None), "subscription_details", None)
            subscription_id = getattr(details, "subscription", None)
        if subscription_id is not None and not isinstance(subscription_id, str):
            subscription_id = subscription_id.id
        return subscription_id


def get_billing() -> BillingProvider:
    if not settings.stripe_secret_key:
        raise BillingNotConfigured()
    return StripeBilling.from_settings()


# ============ RECONCILIATION ============

def apply_subscription_status(user: User, info: SubscriptionInfo) -> None:
    """The only place the plan changes: premium while the subscription is paid up."""
    previous = user.plan
    user.subscription_status = info.status
    user.subscription_ends_at = info.current_period_end
    user.plan = Plan.premium if info.status in PREMIUM_STATUSES else Plan.free
    if user.plan != previous:
        logger.info(f"User {user.id} plan {previous.value} -> {user.plan.value} (subscription {info.status})")


def _customer_key(user: User) -> str:
    return f"menuqr-customer-{user.id}"


def _subscription_key(user: User, customer_id: str, replaces: str | None) -> str:
    # One key per (user, customer, subscription being replaced)
    return f"menuqr-subscription-{user.id}-{customer_id}-{replaces or 'first'}"


def begin_upgrade(session: Session, user: User, provider: BillingProvider) -> SubscriptionStart:
    """
    Start the premium upgrade for `user`, at most one live subscription each.

    A recorded subscription that has not ended is re-fetched and its current
    client secret returned instead of creating another one. No lock is held
    across provider calls: concurrent calls send the same idempotency keys, so
    Stripe hands both the same customer and subscription.
    """
    if not user.email:
        raise ProgrammingInvariantViolation("No user email on file")

    replaces = None
    try:
        # A concurrent call may have stored a customer or subscription meanwhile
        session.refresh(user)

        if user.stripe_subscription_id:
            info = provider.retrieve_subscription(user.stripe_subscription_id)
            if info.status not in ENDED_STATUSES:
                apply_subscription_status(user, info)
                session.add(user)
                session.commit()
                return SubscriptionStart(subscription_id=info.id, client_secret=info.client_secret)
            replaces = info.id
            logger.info(f"Subscription {info.id} of user {user.id} ended ({info.status}), starting a new one")

        if not user.stripe_customer_id:
            user.stripe_customer_id = provider.create_customer(user.email, _customer_key(user))
            # Kept even if the subscription call below fails
            session.add(user)
            session.commit()

        customer_id = user.stripe_customer_id
        info = provider.create_subscription(customer_id, _subscription_key(user, customer_id, replaces))
        user.stripe_subscription_id = info.id
        apply_subscription_status(user, info)
        session.add(user)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Subscription {info.id} created for user {user.id} ({info.status})")
    return SubscriptionStart(subscription_id=info.id, client_secret=info.client_secret)



def subscription_state(user: User) -> SubscriptionState:
    return SubscriptionState(
        plan=user.plan,
        subscription_status=user.subscription_status,
        subscription_ends_at=user.subscription_ends_at,
    )


def reconcile_subscription(session: Session, user: User, provider: BillingProvider) -> SubscriptionState:
    """Re-read the user's subscription from the provider and apply its status."""
    if not user.stripe_subscription_id:
        raise NotFound("No subscription found")

    info = provider.retrieve_subscription(user.stripe_subscription_id)
    apply_subscription_status(user, info)
    session.add(user)
    session.commit()
    session.refresh(user)
    return subscription_state(user)


def handle_webhook(
    session: Session, provider: BillingProvider, payload: bytes, signature: str | None
) -> bool:
    """Apply a verified webhook. Returns False when the event concerns no known user."""
    subscription_id = provider.subscription_id_from_event(payload, signature)
    if subscription_id is None:
        return False

    user = session.exec(
        select(User).where(User.stripe_subscription_id == subscription_id)
    ).first()
    if user is None:
        logger.warning(f"Webhook for unknown subscription {subscription_id}")
        return False

    reconcile_subscription(session, user, provider)
    return True
