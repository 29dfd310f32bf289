"""
Model Registry & Plan Access Tests
==================================

- Catalog integrity
- Tier visibility is monotonic across plans
- Unknown plans, unknown models and disabled models fail closed
"""

import pytest

from promptop.core.access import is_allowed, normalize_plan, required_plan, visible_tiers
from promptop.core.config import PlanTier, TIER_ORDER
from promptop.core.models import ModelNotFoundError, ModelProvider
from promptop.core.providers import PROVIDER_CLIENTS
from promptop.core.registry import MODEL_CATALOG, ModelRegistry


# =============================================================================
# Registry
# =============================================================================

class TestModelRegistry:
    """Catalog lookups."""

    def test_catalog_loads_without_duplicates(self, registry):
        assert len(registry) == len(MODEL_CATALOG) == 25

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            ModelRegistry([MODEL_CATALOG[0], MODEL_CATALOG[0]])

    def test_describe_known_model(self, registry):
        model = registry.describe("gpt-4o")
        assert model.provider == ModelProvider.OPENAI
        assert model.tier == PlanTier.PRO
        assert model.vendor_model == "gpt-4o"

    def test_describe_unknown_model_raises(self, registry):
        with pytest.raises(ModelNotFoundError):
            registry.describe("gpt-99")

    def test_get_unknown_returns_none(self, registry):
        assert registry.get("gpt-99") is None
        assert "gpt-99" not in registry

    def test_list_by_tier_excludes_disabled(self, registry):
        free = {m.id for m in registry.list_by_tier(PlanTier.FREE)}
        assert "gpt-4o-mini" in free
        assert "claude-3-haiku" not in free
        assert "mistral-small" not in free

    def test_every_provider_has_a_client(self, registry):
        assert registry.providers() <= set(PROVIDER_CLIENTS)
        assert set(ModelProvider) == set(PROVIDER_CLIENTS)

    def test_free_models_cap_prompt_length(self, registry):
        assert registry.describe("gpt-4o-mini").max_prompt_length == 2000
        assert registry.describe("gpt-4o").max_prompt_length is None

    def test_reasoning_models_flagged(self, registry):
        assert registry.describe("deepseek-r1").reasoning
        assert registry.describe("deepseek-r1-pro").reasoning
        assert not registry.describe("deepseek-chat-v2").reasoning

    def test_list_for_plan(self, registry):
        free = {m.id for m in registry.list_for_plan("free")}
        assert "gpt-4o-mini" in free
        assert "gpt-4o" not in free
        assert registry.list_for_plan("platinum") == []


# =============================================================================
# Plan access
# =============================================================================

class TestPlanNormalization:

    @pytest.mark.parametrize("raw,expected", [
        ("free", PlanTier.FREE),
        ("PRO", PlanTier.PRO),
        (" team ", PlanTier.TEAM),
        ("enterprise", PlanTier.ENTERPRISE),
        ("basic", PlanTier.FREE),
        ("premium", PlanTier.PRO),
        ("business", PlanTier.TEAM),
        ("unlimited", PlanTier.ENTERPRISE),
        (PlanTier.PRO, PlanTier.PRO),
    ])
    def test_known_plans(self, raw, expected):
        assert normalize_plan(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "platinum", "admin"])
    def test_unknown_plans(self, raw):
        assert normalize_plan(raw) is None
        assert visible_tiers(raw) == frozenset()

    def test_visible_tiers(self):
        assert visible_tiers("free") == {PlanTier.FREE}
        assert visible_tiers("team") == {PlanTier.FREE, PlanTier.PRO, PlanTier.TEAM}
        assert visible_tiers("enterprise") == set(TIER_ORDER)


class TestIsAllowed:
    """Entitlement decisions over the whole catalog."""

    def test_matches_tier_rank_for_every_plan_and_model(self, registry):
        for plan in TIER_ORDER:
            for model in registry.all():
                expected = model.enabled and TIER_ORDER.index(model.tier) <= TIER_ORDER.index(plan)
                assert is_allowed(model.id, plan.value, registry) == expected, (plan, model.id)

    def test_monotonic_across_plans(self, registry):
        previous = set()
        for plan in TIER_ORDER:
            allowed = {m.id for m in registry.all() if is_allowed(m.id, plan.value, registry)}
            assert previous <= allowed
            previous = allowed

    def test_plan_aliases_are_monotonic(self, registry):
        for alias, tier in [("basic", "free"), ("premium", "pro"), ("business", "team")]:
            for model in registry.all():
                assert is_allowed(model.id, alias, registry) == is_allowed(model.id, tier, registry)

    def test_unknown_plan_denied_everything(self, registry):
        assert not any(is_allowed(m.id, "platinum", registry) for m in registry.all())

    def test_unknown_model_denied(self, registry):
        assert not is_allowed("gpt-99", "enterprise", registry)

    def test_disabled_model_denied_for_enterprise(self, registry):
        assert not is_allowed("claude-3-haiku", "enterprise", registry)
        assert not is_allowed("gpt-5", "enterprise", registry)

    def test_required_plan_is_model_tier(self, registry):
        assert required_plan(registry.describe("claude-3-opus")) == PlanTier.TEAM
        assert required_plan(registry.describe("command-r-plus")) == PlanTier.ENTERPRISE
