"""
Prompt Gateway

The public surface of the core. Every prompt test runs the same sequence:

1. Resolve the raw model id to a canonical id
2. Check the plan is entitled to the model
3. Roll the billing cycle over if it has ended
4. Check the monthly quota
5. Dispatch to the vendor (errors sanitized by the dispatcher)
6. Record the run
7. Consume a quota slot, on success only

Outcomes are returned as values (InvocationResult, AccessDenied,
QuotaExceeded, ProviderFailure, ServiceFault); nothing is raised past this
class.
"""

from __future__ import annotations
import logging
from typing import Optional, Union

from promptop.core.access import is_allowed, normalize_plan, required_plan
from promptop.core.aliases import AliasResolver
from promptop.core.dispatcher import RequestDispatcher
from promptop.core.enhancer import PromptEnhancer
from promptop.core.models import (
    AccessDenied,
    AccountNotFoundError,
    EnhancementResult,
    InvocationResult,
    LimitsNotConfiguredError,
    PromptRun,
    PromptopError,
    ProviderFailure,
    ProviderUnavailable,
    QuotaExceeded,
    ServiceFault,
    UnresolvableModel,
)
from promptop.core.quota import ConsumeResult, QuotaAccessor
from promptop.core.registry import ModelRegistry
from promptop.core.storage import AccountStore

logger = logging.getLogger("promptop.gateway")


InvokeOutcome = Union[InvocationResult, AccessDenied, QuotaExceeded, ProviderFailure, ServiceFault]
EnhanceOutcome = Union[EnhancementResult, QuotaExceeded, ServiceFault]


class PromptGateway:
    """Mediates prompt tests and enhancements for an account."""

    def __init__(
        self,
        registry: ModelRegistry,
        resolver: AliasResolver,
        quota: QuotaAccessor,
        dispatcher: RequestDispatcher,
        enhancer: Optional[PromptEnhancer] = None,
        run_store: Optional[AccountStore] = None,
    ):
        self.registry = registry
        self.resolver = resolver
        self.quota = quota
        self.dispatcher = dispatcher
        self.enhancer = enhancer or PromptEnhancer(dispatcher)
        self.run_store = run_store

    async def invoke(
        self,
        account_id: str,
        plan: str,
        raw_model_id: str,
        prompt_text: str,
    ) -> InvokeOutcome:
        """Run a prompt test against the requested model."""
        try:
            return await self._invoke(account_id, plan, raw_model_id, prompt_text)
        except PromptopError as e:
            return self._fault(account_id, e)

    async def enhance(
        self,
        account_id: str,
        plan: str,
        prompt_text: str,
    ) -> EnhanceOutcome:
        """Rewrite and score a prompt."""
        try:
            return await self._enhance(account_id, plan, prompt_text)
        except PromptopError as e:
            return self._fault(account_id, e)

    # -------------------------------------------------------------------------

    async def _invoke(
        self,
        account_id: str,
        plan: str,
        raw_model_id: str,
        prompt_text: str,
    ) -> InvokeOutcome:
        model_id = await self.resolver.resolve(raw_model_id)
        if model_id is None:
            logger.info(f"Unresolvable model id '{raw_model_id}' from account {account_id}")
            return UnresolvableModel(model_id=raw_model_id or "", current_plan=plan)

        denied = self._check_access(model_id, plan)
        if denied:
            return denied

        await self.quota.reset_if_cycle_elapsed(account_id)
        exceeded = await self.quota.check_prompt_quota(account_id)
        if exceeded:
            logger.info(
                f"Account {account_id} at prompt limit ({exceeded.current_usage}/{exceeded.limit})"
            )
            return exceeded

        result = await self.dispatcher.execute(model_id, prompt_text)
        await self._record_run(account_id, prompt_text, result)

        if not result.success:
            failure_cls = ProviderUnavailable if result.unavailable else ProviderFailure
            return failure_cls(
                model_id=result.resolved_model_id,
                message=result.sanitized_error or "",
                elapsed_ms=result.elapsed_ms,
            )

        consumed = await self.quota.try_consume_prompt_slot(account_id)
        if consumed == ConsumeResult.LIMIT_REACHED:
            # A concurrent request took the last slot after our check
            logger.warning(f"Account {account_id} hit prompt limit during dispatch; slot not counted")

        return result

    async def _enhance(self, account_id: str, plan: str, prompt_text: str) -> EnhanceOutcome:
        await self.quota.reset_if_cycle_elapsed(account_id)
        exceeded = await self.quota.check_enhancement_quota(account_id)
        if exceeded:
            return exceeded

        result = await self.enhancer.enhance(prompt_text)

        # The offline rewrite involved no provider call
        if not result.fallback_used:
            consumed = await self.quota.consume_enhancement_slot(account_id)
            if consumed == ConsumeResult.LIMIT_REACHED:
                logger.warning(
                    f"Account {account_id} hit enhancement limit during dispatch; slot not counted"
                )

        logger.info(
            f"Enhanced prompt for account {account_id} ({plan}) via {result.model}: "
            f"{result.original_score} -> {result.enhanced_score}"
        )
        return result

    def _check_access(self, model_id: str, plan: str) -> Optional[AccessDenied]:
        if is_allowed(model_id, plan, self.registry):
            return None

        model = self.registry.get(model_id)
        if model is None:
            return AccessDenied(model_id=model_id, current_plan=plan, reason="unknown_model")
        if not model.enabled:
            return AccessDenied(model_id=model_id, current_plan=plan, reason="model_disabled")
        if normalize_plan(plan) is None:
            return AccessDenied(model_id=model_id, current_plan=plan, reason="unknown_plan")

        return AccessDenied(
            model_id=model_id,
            current_plan=plan,
            required_plan=required_plan(model).value,
            reason="plan_upgrade_required",
        )

    async def _record_run(self, account_id: str, prompt_text: str, result: InvocationResult) -> None:
        if self.run_store is None:
            return
        run = PromptRun(
            account_id=account_id,
            prompt_content=prompt_text,
            response=result.response_text,
            model=result.resolved_model_id,
            response_time_ms=result.elapsed_ms,
            success=result.success,
            error=result.sanitized_error,
        )
        try:
            await self.run_store.save_prompt_run(run)
        except Exception as e:
            logger.warning(f"Failed to record prompt run: {e}")

    def _fault(self, account_id: str, error: PromptopError) -> ServiceFault:
        if isinstance(error, AccountNotFoundError):
            logger.warning(f"Account not found: {account_id}")
            return ServiceFault(message="Account not found.", status_code=404)
        if isinstance(error, LimitsNotConfiguredError):
            logger.error(f"Configuration fault for account {account_id}: {error}")
            return ServiceFault()
        logger.error(f"Unexpected gateway error for account {account_id}: {error}")
        return ServiceFault()
