"""Authenticity checks for inbound payment processor and identity provider webhooks.

Bodies are JSON-decoded only after their signature has been validated.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, Mapping, Optional

import stripe

from ..billing.exceptions import ConfigurationError, MalformedEvent, VerificationError
from .events import ProviderEvent, decode_event

DEFAULT_TOLERANCE_SECONDS = 300


def _load_json(body: bytes) -> Dict[str, Any]:
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise MalformedEvent("Event body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise MalformedEvent("Event body must be a JSON object")
    return data


class StripeSignatureVerifier:
    """Verifies ``Stripe-Signature`` headers and decodes the trusted event."""

    def __init__(self, secret: Optional[str], *, tolerance: int = DEFAULT_TOLERANCE_SECONDS) -> None:
        if not secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        self._secret = secret
        self._tolerance = tolerance

    def verify(self, body: bytes, signature: Optional[str]) -> ProviderEvent:
        if not signature:
            raise VerificationError("Missing Stripe-Signature header")
        try:
            payload = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise VerificationError("Event body is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(payload, signature, self._secret, self._tolerance)
        except stripe.SignatureVerificationError as exc:
            raise VerificationError("Invalid Stripe signature") from exc

        return decode_event(_load_json(body))


class IdentityWebhookVerifier:
    """Verifies svix-signed identity provider webhooks.

    The signature is a base64 HMAC-SHA256 over ``"{id}.{timestamp}.{body}"``
    keyed with the base64 part of a ``whsec_`` secret. The signature header may
    list several space separated ``v1,<signature>`` entries during key rotation.
    """

    SECRET_PREFIX = "whsec_"

    def __init__(
        self,
        secret: Optional[str],
        *,
        tolerance: int = DEFAULT_TOLERANCE_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if not secret:
            raise ConfigurationError("IDENTITY_WEBHOOK_SECRET is not configured")
        encoded = secret[len(self.SECRET_PREFIX):] if secret.startswith(self.SECRET_PREFIX) else secret
        try:
            self._key = base64.b64decode(encoded, validate=True)
        except binascii.Error as exc:
            raise ConfigurationError("IDENTITY_WEBHOOK_SECRET is not valid base64") from exc
        self._tolerance = tolerance
        self._clock = clock or time.time

    def sign(self, message_id: str, timestamp: int, body: bytes) -> str:
        signed = f"{message_id}.{timestamp}.".encode("utf-8") + body
        digest = hmac.new(self._key, signed, hashlib.sha256).digest()
        return base64.b64encode(digest).decode("utf-8")

    def verify(self, body: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        message_id = headers.get("svix-id")
        raw_timestamp = headers.get("svix-timestamp")
        signature_header = headers.get("svix-signature")
        if not message_id or not raw_timestamp or not signature_header:
            raise VerificationError("Missing svix headers")

        try:
            timestamp = int(raw_timestamp)
        except ValueError as exc:
            raise VerificationError("Invalid svix timestamp") from exc
        if self._tolerance and abs(self._clock() - timestamp) > self._tolerance:
            raise VerificationError("Webhook timestamp outside tolerance")

        expected = self.sign(message_id, timestamp, body)
        for entry in signature_header.split():
            version, _, candidate = entry.partition(",")
            if version == "v1" and hmac.compare_digest(candidate, expected):
                return _load_json(body)
        raise VerificationError("Invalid svix signature")


__all__ = ["IdentityWebhookVerifier", "StripeSignatureVerifier"]
