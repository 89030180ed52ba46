"""Error raised when a caller's plan does not reach a capability tier."""
from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from fastapi import HTTPException, status

from ..entitlements import PLAN_CATALOG, CapabilityTier, PlanKey


def cheapest_plan_for(tier: CapabilityTier) -> Optional[PlanKey]:
    """Return the lowest priced plan unlocking ``tier``."""

    candidates = [plan for plan in PLAN_CATALOG.values() if plan.allows(tier)]
    if not candidates:
        return None
    return min(candidates, key=lambda plan: plan.monthly_price_cents).key


class FeatureGateError(Exception):
    """Refusal of a gated operation.

    The JSON ``payload`` tells the client which tier was required, which tiers
    the caller already has and which plan to upgrade to.
    """

    def __init__(
        self,
        *,
        code: str,
        message: str,
        required_tier: Optional[CapabilityTier] = None,
        accessible_tiers: Iterable[CapabilityTier] = (),
        status_code: int = status.HTTP_403_FORBIDDEN,
        detail: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.required_tier = CapabilityTier(required_tier) if required_tier is not None else None
        self.accessible_tiers = [CapabilityTier(tier) for tier in accessible_tiers]
        self.status_code = status_code
        self.detail = dict(detail or {})

    @property
    def upgrade_plan(self) -> Optional[PlanKey]:
        if self.required_tier is None:
            return None
        return cheapest_plan_for(self.required_tier)

    @property
    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.required_tier is not None:
            body["required_tier"] = self.required_tier.value
            body["accessible_tiers"] = [tier.value for tier in self.accessible_tiers]
            plan = self.upgrade_plan
            body["upgrade_plan"] = plan.value if plan else None
        body.update(self.detail)
        return body

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.payload)
