"""
Plan Access

Decides whether a subscription plan may use a model. Entitlement is
monotonic: each plan sees its own tier and every tier below it.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, FrozenSet, Optional

from promptop.core.config import PlanTier, TIER_ORDER
from promptop.core.models import ModelDescriptor

if TYPE_CHECKING:
    from promptop.core.registry import ModelRegistry


# Older plan spellings still present on some account rows
PLAN_ALIASES = {
    "basic": PlanTier.FREE,
    "premium": PlanTier.PRO,
    "business": PlanTier.TEAM,
    "unlimited": PlanTier.ENTERPRISE,
}


def normalize_plan(plan: Optional[str]) -> Optional[PlanTier]:
    """Map a raw plan name to a tier, or None if unknown."""
    if not plan:
        return None
    key = str(plan.value if isinstance(plan, PlanTier) else plan).lower().strip()
    try:
        return PlanTier(key)
    except ValueError:
        return PLAN_ALIASES.get(key)


def visible_tiers(plan: Optional[str]) -> FrozenSet[PlanTier]:
    """Tiers a plan is entitled to. Empty for unknown plans."""
    tier = normalize_plan(plan)
    if tier is None:
        return frozenset()
    rank = TIER_ORDER.index(tier)
    return frozenset(TIER_ORDER[: rank + 1])


def required_plan(model: ModelDescriptor) -> PlanTier:
    """Lowest plan that can use the model."""
    return model.tier


def is_allowed(model_id: str, plan: Optional[str], registry: "ModelRegistry") -> bool:
    """
    Check whether `plan` may dispatch `model_id`.

    Fails closed: unknown models, unknown plans and disabled models are
    never allowed.
    """
    model = registry.get(model_id)
    if model is None or not model.enabled:
        return False
    return model.tier in visible_tiers(plan)
