"""Static catalog definitions for plans and conversational agents."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from .models import CapabilityTier, PlanKey


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a subscription plan and the capability tiers it unlocks."""

    key: PlanKey
    display_name: str
    description: str
    tiers: FrozenSet[CapabilityTier]
    monthly_price_cents: int = 0
    currency: str = "eur"

    @property
    def is_paid(self) -> bool:
        return self.monthly_price_cents > 0

    def allows(self, tier: CapabilityTier) -> bool:
        return tier in self.tiers


@dataclass(frozen=True)
class AgentDefinition:
    """A conversational agent exposed by the agent server."""

    agent_id: str
    name: str
    description: str
    tier: CapabilityTier


PLAN_CATALOG: Dict[PlanKey, PlanDefinition] = {
    PlanKey.FREE: PlanDefinition(
        key=PlanKey.FREE,
        display_name="Free",
        description="Basic culinary assistant",
        tiers=frozenset({CapabilityTier.BASIC}),
    ),
    PlanKey.PREMIUM: PlanDefinition(
        key=PlanKey.PREMIUM,
        display_name="Premium",
        description="Access to the premium culinary assistant",
        tiers=frozenset({CapabilityTier.BASIC, CapabilityTier.PREMIUM}),
        monthly_price_cents=1900,
    ),
    PlanKey.BUSINESS: PlanDefinition(
        key=PlanKey.BUSINESS,
        display_name="Business",
        description="Access to every culinary assistant, including business tools",
        tiers=frozenset({CapabilityTier.BASIC, CapabilityTier.PREMIUM, CapabilityTier.BUSINESS}),
        monthly_price_cents=4900,
    ),
}

PAID_PLANS: Tuple[PlanKey, ...] = tuple(key for key, plan in PLAN_CATALOG.items() if plan.is_paid)

AGENT_CATALOG: Tuple[AgentDefinition, ...] = (
    AgentDefinition(
        agent_id="cuisinier",
        name="Chef Cuisinier IA",
        description="Culinary assistant for recipes, cooking advice and techniques",
        tier=CapabilityTier.BASIC,
    ),
    AgentDefinition(
        agent_id="cuisinier-premium",
        name="Chef Cuisinier IA Premium",
        description="Visual content, logos, posters and websites for your culinary business",
        tier=CapabilityTier.PREMIUM,
    ),
    AgentDefinition(
        agent_id="cuisinier-business",
        name="Chef Cuisinier IA Business",
        description="Service, provider and business tool search for food-service professionals",
        tier=CapabilityTier.BUSINESS,
    ),
)


def get_plan_definition(plan_key: PlanKey) -> PlanDefinition:
    try:
        return PLAN_CATALOG[plan_key]
    except KeyError as exc:
        raise KeyError(f"Unknown plan: {plan_key}") from exc


def get_agent_definition(agent_id: str) -> Optional[AgentDefinition]:
    for agent in AGENT_CATALOG:
        if agent.agent_id == agent_id:
            return agent
    return None


__all__ = [
    "AGENT_CATALOG",
    "AgentDefinition",
    "PAID_PLANS",
    "PLAN_CATALOG",
    "PlanDefinition",
    "get_agent_definition",
    "get_plan_definition",
]
