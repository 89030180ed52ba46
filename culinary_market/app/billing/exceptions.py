"""Errors raised by the billing subsystem."""
from __future__ import annotations


class BillingProviderError(RuntimeError):
    """The payment provider rejected or failed a request."""


class BillingWebhookError(ValueError):
    """A webhook delivery could not be authenticated or parsed."""


__all__ = ["BillingProviderError", "BillingWebhookError"]
