"""Resolution of the caller's identity from the session token."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request
from jose import JWTError, jwt

from ..billing import BillingConfig
from .billing import get_billing_config


logger = logging.getLogger("billing")


def decode_session_token(token: str, config: BillingConfig) -> Optional[str]:
    """Return the external identity id carried by ``token`` or ``None`` if invalid."""

    secret = config.require("session_jwt_secret")
    try:
        claims = jwt.decode(token, secret, algorithms=[config.session_jwt_algorithm])
    except JWTError:
        logger.debug("Rejected invalid session token")
        return None
    subject = claims.get("sub")
    return str(subject) if subject else None


def _extract_token(request: Request, cookie_name: str) -> Optional[str]:
    authorization = request.headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.cookies.get(cookie_name)


def get_current_identity(request: Request) -> Optional[str]:
    """FastAPI dependency returning the caller's external identity id, if any."""

    config = get_billing_config()
    token = _extract_token(request, config.session_cookie_name)
    if not token:
        return None
    return decode_session_token(token, config)


__all__ = ["decode_session_token", "get_current_identity"]
