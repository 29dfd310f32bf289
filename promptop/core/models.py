"""
Core Data Models

Model descriptors, account usage rows, invocation/enhancement results and the
structured outcomes returned across the gateway boundary.
"""

from __future__ import annotations
import secrets
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field, asdict
from enum import Enum

from promptop.core.config import PlanTier


# =============================================================================
# ENUMS
# =============================================================================

class ModelProvider(str, Enum):
    """External LLM vendors the gateway can dispatch to."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    DEEPSEEK = "deepseek"
    MISTRAL = "mistral"
    META = "meta"
    COHERE = "cohere"


class ModelCategory(str, Enum):
    """What a model is best at."""
    GENERAL = "general"
    CODING = "coding"
    REASONING = "reasoning"
    MULTIMODAL = "multimodal"


# =============================================================================
# MODEL DESCRIPTOR
# =============================================================================

@dataclass(frozen=True)
class ModelDescriptor:
    """
    A model offered on the platform.

    `id` is the canonical model id used everywhere inside the gateway;
    `vendor_model` is the name sent to the vendor API.
    """
    id: str
    display_name: str
    provider: ModelProvider
    tier: PlanTier
    category: ModelCategory
    enabled: bool
    credential_key: str
    vendor_model: str
    description: str = ""
    context_length: str = ""
    max_prompt_length: Optional[int] = None
    reasoning: bool = False


# =============================================================================
# ACCOUNT (EXTERNALLY OWNED)
# =============================================================================

@dataclass
class Account:
    """
    Account usage row.

    Owned by the relational store; the gateway only mutates the usage
    counters and the billing cycle window.
    """
    id: str
    plan: str = PlanTier.FREE.value
    prompts_used: int = 0
    enhancements_used: int = 0
    billing_cycle_start: Optional[datetime] = None
    billing_cycle_end: Optional[datetime] = None


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class InvocationResult:
    """Outcome of a single provider call."""
    response_text: str
    resolved_model_id: str
    elapsed_ms: int
    success: bool
    sanitized_error: Optional[str] = None
    provider: Optional[ModelProvider] = None
    model_name: str = ""
    # Provider had no credentials at startup
    unavailable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response_text,
            "model": self.resolved_model_id,
            "model_name": self.model_name,
            "provider": self.provider.value if self.provider else None,
            "response_time": self.elapsed_ms,
            "success": self.success,
            "error": self.sanitized_error,
        }


@dataclass
class EnhancementResult:
    """Outcome of the prompt enhancement pipeline."""
    enhanced_text: str
    original_score: int
    enhanced_score: int
    improvements: List[str] = field(default_factory=list)
    model: str = ""
    fallback_used: bool = False

    @property
    def score_improvement(self) -> int:
        return self.enhanced_score - self.original_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enhanced_prompt": self.enhanced_text,
            "original_score": self.original_score,
            "enhanced_score": self.enhanced_score,
            "score_improvement": self.score_improvement,
            "improvements": list(self.improvements),
            "model": self.model,
            "fallback_used": self.fallback_used,
        }


@dataclass
class PromptRun:
    """History record of a dispatch attempt."""
    account_id: str
    prompt_content: str
    response: str
    model: str
    response_time_ms: int
    success: bool
    error: Optional[str] = None
    id: str = field(default_factory=lambda: f"run_{secrets.token_hex(12)}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


# =============================================================================
# STRUCTURED OUTCOMES
# =============================================================================

@dataclass
class AccessDenied:
    """Plan is not entitled to the model, or the model is unknown/disabled."""
    model_id: str
    current_plan: str
    required_plan: Optional[str] = None
    reason: str = "model_not_available"

    status_code = 403

    def to_response(self) -> dict:
        return {
            "error": {
                "type": "access_denied",
                "message": self.message,
                "model": self.model_id,
                "required_plan": self.required_plan,
                "current_plan": self.current_plan,
            }
        }

    @property
    def message(self) -> str:
        if self.required_plan:
            return (
                f"Model '{self.model_id}' requires the {self.required_plan} plan "
                f"(current plan: {self.current_plan}). Please upgrade."
            )
        return f"Model '{self.model_id}' is not available."


@dataclass
class UnresolvableModel(AccessDenied):
    """The requested model id could not be resolved to a canonical id."""
    reason: str = "unresolvable_model"


@dataclass
class QuotaExceeded:
    """Monthly usage is at or over the plan limit."""
    current_usage: int
    limit: int
    plan: str
    quota: str = "prompts"

    status_code = 429

    def to_response(self) -> dict:
        return {
            "error": {
                "type": "quota_exceeded",
                "message": (
                    f"Monthly {self.quota} limit reached for your plan "
                    f"({self.current_usage}/{self.limit}). Please upgrade to continue."
                ),
                "current_usage": self.current_usage,
                "limit": self.limit,
                "plan": self.plan,
                "quota": self.quota,
            }
        }


@dataclass
class ProviderFailure:
    """The vendor call failed. `message` is already sanitized."""
    model_id: str
    message: str
    elapsed_ms: int = 0

    status_code = 502
    error_type = "provider_error"

    def to_response(self) -> dict:
        return {
            "error": {
                "type": self.error_type,
                "message": self.message,
                "model": self.model_id,
            }
        }


@dataclass
class ProviderUnavailable(ProviderFailure):
    """The vendor routing this model has no credentials configured."""
    status_code = 503
    error_type = "provider_unavailable"


@dataclass
class ServiceFault:
    """Internal fault; details are logged, never returned."""
    message: str = "The service is temporarily unavailable."
    status_code: int = 500

    def to_response(self) -> dict:
        return {"error": {"type": "service_fault", "message": self.message}}


# =============================================================================
# EXCEPTIONS
# =============================================================================

class PromptopError(Exception):
    """Base gateway error."""
    status_code = 500

    def to_response(self) -> dict:
        return {
            "error": {
                "message": str(self),
                "type": self.__class__.__name__,
            }
        }


class ModelNotFoundError(PromptopError):
    """Model id is not in the registry."""
    status_code = 404


class AccountNotFoundError(PromptopError):
    """No account row for the id."""
    status_code = 404


class LimitsNotConfiguredError(PromptopError):
    """No plan-limit row for the account's plan. Configuration fault."""
    status_code = 500


class ProviderError(PromptopError):
    """Error from an upstream vendor. Message is raw and must be sanitized."""
    status_code = 502
