"""API schemas for billing and entitlement endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import Subscription
from ..entitlements import AccessVia, EntitlementDecision


class EntitlementResponse(BaseModel):
    content_item_id: str = Field(alias="contentItemId")
    granted: bool
    via: Optional[AccessVia] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_decision(cls, content_item_id: str, decision: EntitlementDecision) -> "EntitlementResponse":
        return cls(content_item_id=content_item_id, granted=decision.granted, via=decision.via)


class SubscriptionResponse(BaseModel):
    subscription: Optional[Subscription] = None

    model_config = ConfigDict(populate_by_name=True)


class PortalSessionResponse(BaseModel):
    url: str

    model_config = ConfigDict(populate_by_name=True)
