"""Inbound webhook verification, decoding, and dispatch."""

from .dispatcher import DispatchOutcome, DispatchResult, EventDispatcher
from .events import ProviderEvent, ProviderEventType, decode_event
from .verification import IdentityWebhookVerifier, StripeSignatureVerifier

__all__ = [
    "DispatchOutcome",
    "DispatchResult",
    "EventDispatcher",
    "IdentityWebhookVerifier",
    "ProviderEvent",
    "ProviderEventType",
    "StripeSignatureVerifier",
    "decode_event",
]
