"""Domain models for content entitlements."""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AccessVia(str, Enum):
    """Path through which access to a content item was granted."""

    SUBSCRIPTION = "subscription"
    PURCHASE = "purchase"


class EntitlementDecision(BaseModel):
    """Result of resolving access for a user and content item."""

    granted: bool
    via: Optional[AccessVia] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def denied(cls) -> "EntitlementDecision":
        return cls(granted=False)

    @classmethod
    def granted_via(cls, via: AccessVia) -> "EntitlementDecision":
        return cls(granted=True, via=via)
