"""Entitlement resolution for paid content."""

from .models import AccessVia, EntitlementDecision
from .service import EntitlementRepository, EntitlementService

__all__ = [
    "AccessVia",
    "EntitlementDecision",
    "EntitlementRepository",
    "EntitlementService",
]
