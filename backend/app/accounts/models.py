"""Identity provider payloads consumed when provisioning accounts."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

USER_CREATED_EVENT = "user.created"


class _IdentityObject(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class IdentityEmailAddress(_IdentityObject):
    email_address: str = Field(min_length=3)


class IdentityUser(_IdentityObject):
    id: str = Field(min_length=1)
    email_addresses: List[IdentityEmailAddress] = Field(min_length=1)
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def primary_email(self) -> str:
        return self.email_addresses[0].email_address


class IdentityEvent(_IdentityObject):
    type: str = Field(min_length=1)
    data: Dict[str, Any]
