"""Account provisioning and lookup."""

from .providers import StripeCustomerProvider
from .service import AccountService, CustomerProvider

__all__ = ["AccountService", "CustomerProvider", "StripeCustomerProvider"]
