"""
Prompt Testing API

- Test a prompt against one model
- Enhance a prompt and score the rewrite
- List the models the caller's plan can use
- Show monthly usage against plan limits

The caller's account id arrives in the X-Account-Id header; the plan is read
from the account row, never from the request.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from promptop.core.config import Config
from promptop.core.gateway import PromptGateway
from promptop.core.models import (
    Account,
    EnhancementResult,
    InvocationResult,
    PromptopError,
)
from promptop.core.storage import AccountStore

logger = logging.getLogger("promptop.api")
router = APIRouter(tags=["Prompts"])


# =============================================================================
# MODELS
# =============================================================================

class TestPromptRequest(BaseModel):
    """Request to run a prompt against a model."""
    prompt: str = Field(..., min_length=1, description="Prompt text")
    model: str = Field(..., min_length=1, description="Model id, alias or catalog key")


class TestPromptResponse(BaseModel):
    """Model response to a prompt test."""
    response: str
    model: str
    model_name: str
    provider: Optional[str] = None
    response_time: int
    success: bool
    error: Optional[str] = None


class EnhancePromptRequest(BaseModel):
    """Request to rewrite a prompt."""
    prompt: str = Field(..., min_length=1, description="Prompt text to improve")


class EnhancePromptResponse(BaseModel):
    """Rewritten prompt with before/after scores."""
    enhanced_prompt: str
    original_score: int
    enhanced_score: int
    score_improvement: int
    improvements: List[str]
    model: str
    fallback_used: bool


class ModelInfo(BaseModel):
    id: str
    name: str
    provider: str
    tier: str
    category: str
    description: str = ""
    context_length: str = ""
    max_prompt_length: Optional[int] = None
    available: bool


class ModelListResponse(BaseModel):
    plan: str
    models: List[ModelInfo]


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_gateway(request: Request) -> PromptGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(503, {"error": {"message": "Gateway not initialized"}})
    return gateway


def get_config(request: Request) -> Config:
    return getattr(request.app.state, "config", None) or Config()


async def get_account(
    request: Request,
    x_account_id: Optional[str] = Header(default=None),
) -> Account:
    """Load the calling account from the X-Account-Id header."""
    if not x_account_id:
        raise HTTPException(401, {"error": {"message": "X-Account-Id header required"}})

    accounts: Optional[AccountStore] = getattr(request.app.state, "accounts", None)
    if accounts is None:
        raise HTTPException(503, {"error": {"message": "Account store not initialized"}})

    account = await accounts.get_account(x_account_id)
    if account is None:
        raise HTTPException(404, {"error": {"message": "Account not found"}})
    return account


def raise_for_outcome(outcome) -> None:
    """Turn a structured gateway outcome into an HTTP error."""
    if isinstance(outcome, (InvocationResult, EnhancementResult)):
        return
    raise HTTPException(outcome.status_code, outcome.to_response())


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/test-prompt", response_model=TestPromptResponse)
async def test_prompt(
    body: TestPromptRequest,
    account: Account = Depends(get_account),
    gateway: PromptGateway = Depends(get_gateway),
    config: Config = Depends(get_config),
):
    """Run a prompt against one model. Counts against the monthly prompt quota on success."""
    try:
        outcome = await asyncio.wait_for(
            gateway.invoke(account.id, account.plan, body.model, body.prompt),
            timeout=config.request_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Prompt test for account {account.id} timed out on {body.model}")
        raise HTTPException(504, {"error": {"message": "The model took too long to respond."}})

    raise_for_outcome(outcome)
    return outcome.to_dict()


@router.post("/enhance-prompt", response_model=EnhancePromptResponse)
async def enhance_prompt(
    body: EnhancePromptRequest,
    account: Account = Depends(get_account),
    gateway: PromptGateway = Depends(get_gateway),
    config: Config = Depends(get_config),
):
    """Rewrite a prompt and report how much it improved."""
    try:
        outcome = await asyncio.wait_for(
            gateway.enhance(account.id, account.plan, body.prompt),
            timeout=config.request_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Enhancement for account {account.id} timed out")
        raise HTTPException(504, {"error": {"message": "Enhancement took too long."}})

    raise_for_outcome(outcome)
    return outcome.to_dict()


@router.get("/models", response_model=ModelListResponse)
async def list_models(
    account: Account = Depends(get_account),
    gateway: PromptGateway = Depends(get_gateway),
):
    """Enabled models the account's plan can use."""
    models = [
        ModelInfo(
            id=m.id,
            name=m.display_name,
            provider=m.provider.value,
            tier=m.tier.value,
            category=m.category.value,
            description=m.description,
            context_length=m.context_length,
            max_prompt_length=m.max_prompt_length,
            available=gateway.dispatcher.is_configured(m.provider),
        )
        for m in gateway.registry.list_for_plan(account.plan)
    ]
    return ModelListResponse(plan=account.plan, models=models)


@router.get("/usage")
async def get_usage(
    account: Account = Depends(get_account),
    gateway: PromptGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """Monthly usage against plan limits."""
    try:
        await gateway.quota.reset_if_cycle_elapsed(account.id)
        usage = await gateway.quota.get_usage(account.id)
    except PromptopError as e:
        logger.error(f"Usage lookup failed for account {account.id}: {e}")
        raise HTTPException(e.status_code, {"error": {"message": "Usage is unavailable."}})

    return usage.to_dict()
