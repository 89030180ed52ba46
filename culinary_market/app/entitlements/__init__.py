"""Entitlements domain models and evaluation."""

from .catalog import (
    AGENT_CATALOG,
    PAID_PLANS,
    PLAN_CATALOG,
    AgentDefinition,
    PlanDefinition,
    get_agent_definition,
    get_plan_definition,
)
from .models import (
    TERMINAL_STATUSES,
    AccountRole,
    AccountSubscription,
    CapabilityTier,
    PlanKey,
    SubscriptionStatus,
)
from .service import (
    accessible_tiers,
    has_access_to_agent,
    is_expired_by_date,
    is_subscription_active,
    upgrade_message,
)

__all__ = [
    "AGENT_CATALOG",
    "PAID_PLANS",
    "PLAN_CATALOG",
    "TERMINAL_STATUSES",
    "AccountRole",
    "AccountSubscription",
    "AgentDefinition",
    "CapabilityTier",
    "PlanDefinition",
    "PlanKey",
    "SubscriptionStatus",
    "accessible_tiers",
    "get_agent_definition",
    "get_plan_definition",
    "has_access_to_agent",
    "is_expired_by_date",
    "is_subscription_active",
    "upgrade_message",
]
