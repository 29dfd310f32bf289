"""
Application Configuration

Central configuration for the Prompt Gateway.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Optional, List, Dict
from enum import Enum


class Environment(str, Enum):
    """Deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class PlanTier(str, Enum):
    """Subscription tiers, ordered by entitlement breadth."""
    FREE = "free"
    PRO = "pro"
    TEAM = "team"
    ENTERPRISE = "enterprise"


# Entitlement order. Each tier sees every tier at or below its own rank.
TIER_ORDER: List[PlanTier] = [
    PlanTier.FREE,
    PlanTier.PRO,
    PlanTier.TEAM,
    PlanTier.ENTERPRISE,
]

UNLIMITED = -1


@dataclass(frozen=True)
class PlanLimits:
    """Monthly usage limits for a plan. -1 means unlimited."""
    plan: PlanTier
    prompts_per_month: int
    enhancements_per_month: int
    prompt_slots: int

    @classmethod
    def for_tier(cls, tier: PlanTier) -> "PlanLimits":
        """Seed limits for a tier, matching the published pricing table."""
        tiers = {
            PlanTier.FREE: cls(
                plan=PlanTier.FREE,
                prompts_per_month=15,
                enhancements_per_month=5,
                prompt_slots=25,
            ),
            PlanTier.PRO: cls(
                plan=PlanTier.PRO,
                prompts_per_month=1000,
                enhancements_per_month=150,
                prompt_slots=500,
            ),
            PlanTier.TEAM: cls(
                plan=PlanTier.TEAM,
                prompts_per_month=7500,
                enhancements_per_month=2000,
                prompt_slots=UNLIMITED,
            ),
            PlanTier.ENTERPRISE: cls(
                plan=PlanTier.ENTERPRISE,
                prompts_per_month=UNLIMITED,
                enhancements_per_month=UNLIMITED,
                prompt_slots=UNLIMITED,
            ),
        }
        return tiers[tier]


# Pre-built limits for seeding stores
DEFAULT_PLAN_LIMITS: Dict[PlanTier, PlanLimits] = {
    tier: PlanLimits.for_tier(tier) for tier in TIER_ORDER
}


class StorageBackend(str, Enum):
    """Where account and catalog data lives."""
    MEMORY = "memory"
    FIRESTORE = "firestore"


@dataclass
class Config:
    """Application configuration."""

    # Environment
    env: Environment = Environment.DEVELOPMENT
    debug: bool = True

    # Application
    app_name: str = "PromptOp Gateway"
    cors_origins: List[str] = field(default_factory=list)

    # Storage
    storage_backend: StorageBackend = StorageBackend.MEMORY
    google_cloud_project: str = ""

    # LLM provider credentials. An empty value disables the provider.
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    deepseek_api_key: str = ""
    mistral_api_key: str = ""
    meta_api_key: str = ""
    cohere_api_key: str = ""

    # Caller-side deadline for a whole dispatch (seconds)
    request_timeout_seconds: float = 60.0

    def credential(self, credential_key: str) -> Optional[str]:
        """Look up a provider credential by its environment variable name."""
        values = {
            "OPENAI_API_KEY": self.openai_api_key,
            "ANTHROPIC_API_KEY": self.anthropic_api_key,
            "GEMINI_API_KEY": self.gemini_api_key,
            "DEEPSEEK_API_KEY": self.deepseek_api_key,
            "MISTRAL_API_KEY": self.mistral_api_key,
            "META_API_KEY": self.meta_api_key,
            "COHERE_API_KEY": self.cohere_api_key,
        }
        return values.get(credential_key) or None

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        env_str = os.getenv("ENV", "development").lower()
        env = Environment(env_str) if env_str in [e.value for e in Environment] else Environment.DEVELOPMENT

        backend_str = os.getenv("STORAGE_BACKEND", "memory").lower()
        backend = (
            StorageBackend(backend_str)
            if backend_str in [b.value for b in StorageBackend]
            else StorageBackend.MEMORY
        )

        cors = os.getenv("CORS_ORIGINS", "")

        return cls(
            env=env,
            debug=env == Environment.DEVELOPMENT,
            app_name=os.getenv("APP_NAME", "PromptOp Gateway"),
            cors_origins=[o.strip() for o in cors.split(",") if o.strip()],
            storage_backend=backend,
            google_cloud_project=os.getenv("GOOGLE_CLOUD_PROJECT", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            gemini_api_key=os.getenv("GEMINI_API_KEY", os.getenv("GOOGLE_AI_API_KEY", "")),
            deepseek_api_key=os.getenv("DEEPSEEK_API_KEY", ""),
            mistral_api_key=os.getenv("MISTRAL_API_KEY", ""),
            meta_api_key=os.getenv("META_API_KEY", ""),
            cohere_api_key=os.getenv("COHERE_API_KEY", ""),
            request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "60")),
        )
