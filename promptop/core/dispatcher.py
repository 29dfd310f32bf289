"""
Request Dispatcher

Sends a prompt to the vendor behind a canonical model id and turns the
outcome into an InvocationResult. Vendor errors are sanitized here, before
they leave the dispatcher.

Direct prompt tests never retry on another provider. The enhancement flow
uses `execute_with_fallback`, which walks a fixed FallbackChain.
"""

from __future__ import annotations
import time
import logging
from typing import Dict, Optional

from promptop.core.fallback import FallbackChain, FallbackRouter
from promptop.core.models import (
    InvocationResult,
    ModelProvider,
    ProviderError,
)
from promptop.core.providers import ProviderClient
from promptop.core.registry import ModelRegistry
from promptop.core.sanitizer import sanitize, unavailable_message

logger = logging.getLogger("promptop.dispatcher")


def build_test_prompt(prompt_text: str) -> str:
    """Wrap a user prompt in the platform's response-formatting instructions."""
    return f"""You are an AI assistant providing helpful, clear, and actionable responses. Please:

1. Provide clear, well-structured answers
2. Use examples when helpful
3. Break down complex topics into understandable steps
4. Be concise but comprehensive
5. Format your response for easy reading

User's prompt: {prompt_text}

Please provide a thoughtful, well-formatted response:"""


class RequestDispatcher:
    """
    Routes canonical model ids to vendor clients.

    `clients` must contain an entry (client or None) for every provider the
    registry references; None marks a vendor without credentials.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        clients: Dict[ModelProvider, Optional[ProviderClient]],
        router: Optional[FallbackRouter] = None,
    ):
        missing = registry.providers() - set(clients)
        if missing:
            raise ValueError(
                f"No client entry for providers: {sorted(p.value for p in missing)}"
            )

        self.registry = registry
        self._clients = dict(clients)
        self.router = router or FallbackRouter()

    def is_configured(self, provider: ModelProvider) -> bool:
        return self._clients.get(provider) is not None

    async def execute(
        self,
        model_id: str,
        prompt_text: str,
        wrap_prompt: bool = True,
    ) -> InvocationResult:
        """
        Run a prompt against one model. Never raises for vendor failures.

        The result always names the requested model, success or not.
        """
        model = self.registry.describe(model_id)
        t0 = time.time()

        def failed(message: str, unavailable: bool = False) -> InvocationResult:
            return InvocationResult(
                response_text="",
                resolved_model_id=model.id,
                elapsed_ms=int((time.time() - t0) * 1000),
                success=False,
                sanitized_error=message,
                provider=model.provider,
                model_name=model.display_name,
                unavailable=unavailable,
            )

        if not model.enabled:
            logger.warning(f"Refusing to dispatch disabled model {model.id}")
            return failed(unavailable_message(model.display_name), unavailable=True)

        client = self._clients.get(model.provider)
        if client is None:
            logger.warning(f"Provider {model.provider.value} not configured for {model.id}")
            return failed(unavailable_message(model.display_name), unavailable=True)

        prompt = build_test_prompt(prompt_text) if wrap_prompt else prompt_text

        try:
            reply = await client.complete(model, prompt)
        except ProviderError as e:
            message = sanitize(str(e), model.display_name)
            logger.warning(f"{model.provider.value}/{model.id} failed: {message}")
            await self.router.record_failure(model.provider)
            return failed(message)

        elapsed_ms = int((time.time() - t0) * 1000)
        await self.router.record_success(model.provider, elapsed_ms)

        logger.info(
            f"{model.provider.value}/{model.id} ok in {elapsed_ms}ms "
            f"({reply.prompt_tokens}+{reply.completion_tokens} tokens, finish={reply.finish_reason})"
        )

        return InvocationResult(
            response_text=reply.text,
            resolved_model_id=model.id,
            elapsed_ms=elapsed_ms,
            success=True,
            provider=model.provider,
            model_name=model.display_name,
        )

    async def execute_with_fallback(
        self,
        prompt_text: str,
        chain: Optional[FallbackChain] = None,
    ) -> Optional[InvocationResult]:
        """
        Try each step of the chain in order.

        Returns the first successful, non-empty result, or None when every
        step failed or was skipped.
        """
        chain = chain or FallbackChain.enhancement()

        for step in chain.steps:
            if not self.is_configured(step.provider):
                logger.debug(f"Fallback skipping unconfigured provider {step.provider.value}")
                continue
            # Checked per step so the half-open trial call goes to a step that runs
            if not await self.router.is_available(step.provider):
                logger.info(f"Fallback skipping {step.provider.value}, circuit open")
                continue

            result = await self.execute(step.model_id, prompt_text, wrap_prompt=False)
            if result.success and result.response_text.strip():
                return result

            logger.info(f"Fallback step {step.provider.value}/{step.model_id} gave no usable output")

        return None
