"""
Domain errors.

Each error carries the HTTP status and machine-readable code it is rendered
with by the exception handler registered in `main`.
"""

from fastapi import status


class MenuQRError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    default_detail = "Request failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthenticated(MenuQRError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    default_detail = "Not authenticated"


class NotOwner(MenuQRError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "not_owner"
    default_detail = "Not allowed to access this restaurant"


class NotFound(MenuQRError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Not found"


class PlanLimitExceeded(MenuQRError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "plan_limit_exceeded"

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Free plan limit of {limit} active products reached. "
            "Upgrade to Premium for unlimited products."
        )


class ValidationFailed(MenuQRError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_failed"
    default_detail = "Invalid input"


class ExternalProviderFailure(MenuQRError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "external_provider_failure"
    default_detail = "Billing provider request failed"


class BillingNotConfigured(ExternalProviderFailure):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "billing_not_configured"
    default_detail = "Subscription service is not available. Please configure Stripe."


class ProgrammingInvariantViolation(MenuQRError):
    """Broken internal invariant; not recoverable by the user."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "invariant_violation"
    default_detail = "Internal error"
