"""Exceptions raised by the billing, webhook, and entitlement layers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass(eq=False)
class BillingError(Exception):
    """Base class for billing failures that map onto an HTTP response."""

    message: str
    detail: Optional[Mapping[str, Any]] = None

    code: ClassVar[str] = "billing_error"
    status_code: ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: ClassVar[bool] = False

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for logs."""

        base: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base.update(self.detail)
        return base

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException.

        Only the error code is exposed; messages may carry processor identifiers.
        """

        return HTTPException(status_code=self.status_code, detail={"error": self.code})


class ConfigurationError(BillingError):
    """A required secret or setting is not configured."""

    code = "configuration_error"


class VerificationError(BillingError):
    """An inbound event failed signature verification."""

    code = "verification_failed"
    status_code = status.HTTP_400_BAD_REQUEST


class MalformedEvent(BillingError):
    """A verified event is missing required fields or has invalid values."""

    code = "malformed_event"
    status_code = status.HTTP_400_BAD_REQUEST


class MissingMetadata(MalformedEvent):
    """A checkout event lacks the content item or customer reference."""

    code = "missing_metadata"


class UserNotFound(BillingError):
    """The referenced user does not exist (yet)."""

    code = "user_not_found"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class SubscriptionNotFound(BillingError):
    """No subscription exists for the given identifier."""

    code = "subscription_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(BillingError):
    """Stored state violates a referential invariant."""

    code = "invalid_state"


class ProviderError(BillingError):
    """The payment processor rejected or failed a request."""

    code = "provider_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    retryable = True


class Unauthenticated(BillingError):
    """The caller's identity could not be established."""

    code = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED


__all__ = [
    "BillingError",
    "ConfigurationError",
    "InvalidState",
    "MalformedEvent",
    "MissingMetadata",
    "ProviderError",
    "SubscriptionNotFound",
    "Unauthenticated",
    "UserNotFound",
    "VerificationError",
]
