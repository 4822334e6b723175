"""Billing configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class BillingConfig:
    """Configuration for payment processor and identity provider integration."""

    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    identity_webhook_secret: Optional[str]
    webhook_tolerance_seconds: int
    app_base_url: str
    portal_return_path: str
    content_item_metadata_key: str
    session_jwt_secret: Optional[str]
    session_jwt_algorithm: str
    session_cookie_name: str

    @property
    def portal_return_url(self) -> str:
        return f"{self.app_base_url}{self.portal_return_path}"

    def require(self, name: str) -> str:
        """Return a configured secret or raise :class:`ConfigurationError`."""

        value = getattr(self, name)
        if not value:
            raise ConfigurationError(f"{name.upper()} is not configured")
        return value


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    return_path = env_mapping.get("BILLING_PORTAL_RETURN_PATH") or "/billing"
    if not return_path.startswith("/"):
        return_path = f"/{return_path}"

    return BillingConfig(
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        identity_webhook_secret=env_mapping.get("IDENTITY_WEBHOOK_SECRET") or None,
        webhook_tolerance_seconds=max(0, _to_int(env_mapping.get("WEBHOOK_TOLERANCE_SECONDS"), default=300)),
        app_base_url=env_mapping.get("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
        portal_return_path=return_path,
        content_item_metadata_key=env_mapping.get("CONTENT_ITEM_METADATA_KEY") or "content_item_id",
        session_jwt_secret=env_mapping.get("SESSION_JWT_SECRET") or None,
        session_jwt_algorithm=env_mapping.get("SESSION_JWT_ALGORITHM") or "HS256",
        session_cookie_name=env_mapping.get("SESSION_COOKIE_NAME") or "session",
    )


__all__ = ["BillingConfig", "load_billing_config"]
