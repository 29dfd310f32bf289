"""
Model Registry

Static catalog of the models offered on the platform. Loaded once at startup
and shared read-only between requests.
"""

from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Set

from promptop.core.config import PlanTier
from promptop.core.models import (
    ModelCategory,
    ModelDescriptor,
    ModelNotFoundError,
    ModelProvider,
)


def _model(
    id: str,
    name: str,
    provider: ModelProvider,
    tier: PlanTier,
    vendor_model: str,
    credential_key: str,
    category: ModelCategory = ModelCategory.GENERAL,
    enabled: bool = True,
    context_length: str = "",
    description: str = "",
    reasoning: bool = False,
) -> ModelDescriptor:
    return ModelDescriptor(
        id=id,
        display_name=name,
        provider=provider,
        tier=tier,
        category=category,
        enabled=enabled,
        credential_key=credential_key,
        vendor_model=vendor_model,
        description=description,
        context_length=context_length,
        max_prompt_length=2000 if tier == PlanTier.FREE else None,
        reasoning=reasoning,
    )


# =============================================================================
# CATALOG
# =============================================================================

MODEL_CATALOG: List[ModelDescriptor] = [
    # Free tier: cheap or free to serve
    _model("deepseek-chat-v2", "DeepSeek Chat V2", ModelProvider.DEEPSEEK, PlanTier.FREE,
           "deepseek-chat", "DEEPSEEK_API_KEY", context_length="64K tokens",
           description="Super cheap, open model with competitive quality"),
    _model("deepseek-r1", "DeepSeek R1", ModelProvider.DEEPSEEK, PlanTier.FREE,
           "deepseek-reasoner", "DEEPSEEK_API_KEY", context_length="64K tokens",
           description="Advanced reasoning model, still very affordable", reasoning=True),
    _model("claude-3-haiku", "Claude 3 Haiku", ModelProvider.ANTHROPIC, PlanTier.FREE,
           "claude-3-haiku-20240307", "ANTHROPIC_API_KEY", enabled=False,
           context_length="200K tokens",
           description="Anthropic's fast and affordable Claude model"),
    _model("claude-3.5-sonnet", "Claude 3.5 Sonnet", ModelProvider.ANTHROPIC, PlanTier.FREE,
           "claude-3-5-sonnet-latest", "ANTHROPIC_API_KEY", context_length="200K tokens",
           description="Anthropic's most capable model with excellent reasoning"),
    _model("gpt-4o-mini", "GPT-4o Mini", ModelProvider.OPENAI, PlanTier.FREE,
           "gpt-4o-mini", "OPENAI_API_KEY", context_length="128K tokens",
           description="Cheaper than GPT-4o, great reasoning for cost"),
    _model("mistral-small", "Mistral Small", ModelProvider.MISTRAL, PlanTier.FREE,
           "mistral-small-latest", "MISTRAL_API_KEY", enabled=False,
           context_length="32K tokens", description="Open-source, free to host, efficient"),
    _model("mixtral-8x7b", "Mixtral 8x7B", ModelProvider.MISTRAL, PlanTier.FREE,
           "open-mixtral-8x7b", "MISTRAL_API_KEY", enabled=False,
           context_length="32K tokens", description="Open-source mixture of experts model"),
    _model("llama-3-8b", "LLaMA 3 8B", ModelProvider.META, PlanTier.FREE,
           "Llama-3.3-8B-Instruct", "META_API_KEY", context_length="8K tokens",
           description="Strong open-source baseline model"),
    _model("gemini-1.5-flash", "Gemini 1.5 Flash", ModelProvider.GOOGLE, PlanTier.FREE,
           "gemini-1.5-flash", "GEMINI_API_KEY", context_length="1M tokens",
           description="Fast and efficient Google model with good quality"),

    # Pro tier
    _model("claude-4-sonnet", "Claude 4 Sonnet", ModelProvider.ANTHROPIC, PlanTier.PRO,
           "claude-sonnet-4-20250514", "ANTHROPIC_API_KEY", enabled=False,
           context_length="200K tokens"),
    _model("gpt-4o", "GPT-4o", ModelProvider.OPENAI, PlanTier.PRO,
           "gpt-4o", "OPENAI_API_KEY", category=ModelCategory.MULTIMODAL,
           context_length="128K tokens", description="OpenAI's flagship multimodal model"),
    _model("mistral-large", "Mistral Large", ModelProvider.MISTRAL, PlanTier.PRO,
           "mistral-large-latest", "MISTRAL_API_KEY", enabled=False,
           context_length="128K tokens"),
    _model("llama-3-70b", "LLaMA 3 70B", ModelProvider.META, PlanTier.PRO,
           "Llama-3.3-70B-Instruct", "META_API_KEY", context_length="8K tokens"),
    _model("deepseek-r1-pro", "DeepSeek R1 Pro", ModelProvider.DEEPSEEK, PlanTier.PRO,
           "deepseek-reasoner", "DEEPSEEK_API_KEY", context_length="64K tokens",
           reasoning=True),
    _model("deepseek-coder", "DeepSeek Coder", ModelProvider.DEEPSEEK, PlanTier.PRO,
           "deepseek-chat", "DEEPSEEK_API_KEY", category=ModelCategory.CODING,
           context_length="64K tokens"),
    _model("gpt-5-nano", "GPT-5 Nano", ModelProvider.OPENAI, PlanTier.PRO,
           "gpt-5-nano", "OPENAI_API_KEY", enabled=False, context_length="64K tokens"),

    # Team tier
    _model("claude-3-opus", "Claude 3 Opus", ModelProvider.ANTHROPIC, PlanTier.TEAM,
           "claude-3-opus-latest", "ANTHROPIC_API_KEY", context_length="200K tokens"),
    _model("gpt-5-mini", "GPT-5 Mini", ModelProvider.OPENAI, PlanTier.TEAM,
           "gpt-5-mini", "OPENAI_API_KEY", enabled=False, context_length="128K tokens"),

    # Enterprise tier
    _model("gpt-4-turbo", "GPT-4 Turbo", ModelProvider.OPENAI, PlanTier.ENTERPRISE,
           "gpt-4-turbo", "OPENAI_API_KEY", category=ModelCategory.MULTIMODAL,
           context_length="128K tokens"),
    _model("gpt-4o-high-context", "GPT-4o High-Context", ModelProvider.OPENAI, PlanTier.ENTERPRISE,
           "gpt-4o", "OPENAI_API_KEY", category=ModelCategory.MULTIMODAL,
           context_length="512K tokens"),
    _model("gemini-1.5-pro", "Gemini 1.5 Pro", ModelProvider.GOOGLE, PlanTier.ENTERPRISE,
           "gemini-1.5-pro", "GEMINI_API_KEY", category=ModelCategory.MULTIMODAL,
           context_length="2M tokens"),
    _model("gemini-1.5-flash-high-context", "Gemini 1.5 Flash (High Context)",
           ModelProvider.GOOGLE, PlanTier.ENTERPRISE, "gemini-1.5-flash", "GEMINI_API_KEY",
           context_length="1M tokens"),
    _model("command-r-plus", "Command R+", ModelProvider.COHERE, PlanTier.ENTERPRISE,
           "command-r-plus", "COHERE_API_KEY", context_length="128K tokens"),
    _model("gpt-5", "GPT-5", ModelProvider.OPENAI, PlanTier.ENTERPRISE,
           "gpt-5", "OPENAI_API_KEY", category=ModelCategory.MULTIMODAL, enabled=False,
           context_length="256K tokens"),
    _model("claude-4-opus", "Claude 4 Opus", ModelProvider.ANTHROPIC, PlanTier.ENTERPRISE,
           "claude-opus-4-20250514", "ANTHROPIC_API_KEY", enabled=False,
           context_length="200K tokens"),
]


class ModelRegistry:
    """Read-only lookup over the model catalog."""

    def __init__(self, models: Optional[Iterable[ModelDescriptor]] = None):
        self._models: Dict[str, ModelDescriptor] = {}
        for model in (MODEL_CATALOG if models is None else models):
            if model.id in self._models:
                raise ValueError(f"Duplicate model id in catalog: {model.id}")
            self._models[model.id] = model

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    def describe(self, model_id: str) -> ModelDescriptor:
        """Get a descriptor by canonical id."""
        try:
            return self._models[model_id]
        except KeyError:
            raise ModelNotFoundError(f"Unknown model: {model_id}") from None

    def get(self, model_id: str) -> Optional[ModelDescriptor]:
        return self._models.get(model_id)

    def list_by_tier(self, tier: PlanTier) -> List[ModelDescriptor]:
        """Enabled models belonging to exactly this tier."""
        return [m for m in self._models.values() if m.tier == tier and m.enabled]

    def list_for_tiers(self, tiers: Iterable[PlanTier]) -> List[ModelDescriptor]:
        wanted = set(tiers)
        return [m for m in self._models.values() if m.tier in wanted and m.enabled]

    def providers(self) -> Set[ModelProvider]:
        return {m.provider for m in self._models.values()}

    def all(self) -> List[ModelDescriptor]:
        return list(self._models.values())

    def list_for_plan(self, plan: str) -> List[ModelDescriptor]:
        """Enabled models visible to a plan. Unknown plans see nothing."""
        from promptop.core.access import visible_tiers
        return self.list_for_tiers(visible_tiers(plan))
