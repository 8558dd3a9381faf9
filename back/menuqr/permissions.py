from dataclasses import dataclass
from enum import Enum
import logging

from sqlmodel import Session, func, select

from .errors import NotFound, NotOwner, PlanLimitExceeded, Unauthenticated
from .models import Plan, Product, Restaurant, User
from .settings import settings

logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NO_TENANT = "no_tenant"  # Identity owns no restaurant
    NOT_OWNER = "not_owner"
    PLAN_LIMIT_EXCEEDED = "plan_limit_exceeded"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DenyReason | None = None

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)


ALLOW = Decision(allowed=True)


class TenantGate:
    """
    Ownership and plan-limit rules for every tenant-scoped operation.

    The current identity is always passed in explicitly; nothing here reads
    request state. The gate takes no locks itself: callers that check and then
    write (product creation, reactivation) hold `locks.serialized` across both.
    """

    @staticmethod
    def owned_restaurant(session: Session, user: User) -> Restaurant | None:
        return session.exec(
            select(Restaurant).where(Restaurant.user_id == user.id)
        ).first()

    @staticmethod
    def count_active_products(session: Session, restaurant_id: int) -> int:
        statement = (
            select(func.count())
            .select_from(Product)
            .where(Product.restaurant_id == restaurant_id, Product.is_active == True)  # noqa: E712
        )
        return session.exec(statement).one()

    @staticmethod
    def authorize_tenant_access(
        session: Session, user: User | None, restaurant_id: int
    ) -> Decision:
        if user is None:
            return Decision.deny(DenyReason.UNAUTHENTICATED)

        restaurant = TenantGate.owned_restaurant(session, user)
        if restaurant is None:
            # Registration creates both rows in one transaction
            logger.error(f"User {user.id} has no restaurant")
            return Decision.deny(DenyReason.NO_TENANT)

        if restaurant.id != restaurant_id:
            return Decision.deny(DenyReason.NOT_OWNER)
        return ALLOW

    @staticmethod
    def authorize_product_creation(
        session: Session, user: User | None, restaurant_id: int
    ) -> Decision:
        """Also used for reactivating a product: both add one active product."""
        decision = TenantGate.authorize_tenant_access(session, user, restaurant_id)
        if not decision.allowed:
            return decision

        if user.plan == Plan.premium:
            return ALLOW

        # Counted now, never cached
        active = TenantGate.count_active_products(session, restaurant_id)
        if active >= settings.free_plan_product_limit:
            return Decision.deny(DenyReason.PLAN_LIMIT_EXCEEDED)
        return ALLOW

    @staticmethod
    def require(decision: Decision) -> None:
        """Raise the error matching a DENY decision."""
        if decision.allowed:
            return
        if decision.reason == DenyReason.UNAUTHENTICATED:
            raise Unauthenticated()
        if decision.reason == DenyReason.NO_TENANT:
            raise NotFound("Restaurant not found")
        if decision.reason == DenyReason.PLAN_LIMIT_EXCEEDED:
            raise PlanLimitExceeded(settings.free_plan_product_limit)
        raise NotOwner()
