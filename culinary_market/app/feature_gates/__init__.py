"""Feature gating utilities coordinating capability enforcement."""
from .context import EntitlementContext
from .enforcement import require_capability
from .exceptions import FeatureGateError, cheapest_plan_for

__all__ = [
    "EntitlementContext",
    "FeatureGateError",
    "cheapest_plan_for",
    "require_capability",
]
