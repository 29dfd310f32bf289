"""
Fallback Routing

Vendor health tracking and the fixed chain used by prompt enhancement:
- DeepSeek first (cheapest)
- then Google Gemini
- then OpenAI

Direct prompt tests never fall back; only the enhancement flow walks the
chain. A vendor that fails FAILURE_THRESHOLD times in a row is skipped for
RECOVERY_SECONDS, after which one trial call is let through.
"""

from __future__ import annotations
import asyncio
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any, List, Callable
from dataclasses import dataclass, field
from enum import Enum

from promptop.core.models import ModelProvider


FAILURE_THRESHOLD = 5
RECOVERY_SECONDS = 30
SLOW_LATENCY_MS = 10000
LATENCY_SMOOTHING = 0.1


class ProviderStatus(str, Enum):
    """Vendor health as seen by the gateway."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # answering, but slowly
    UNHEALTHY = "unhealthy"  # circuit open
    UNKNOWN = "unknown"


@dataclass
class ProviderHealth:
    """Rolling call outcomes for one vendor."""
    provider: ModelProvider
    status: ProviderStatus = ProviderStatus.UNKNOWN
    calls: int = 0
    failures: int = 0
    failure_streak: int = 0
    latency_ms: float = 0.0
    open_until: Optional[datetime] = None

    @property
    def successes(self) -> int:
        return self.calls - self.failures

    @property
    def success_rate(self) -> float:
        return self.successes / self.calls if self.calls else 1.0

    def available(self, now: datetime) -> bool:
        if self.open_until is not None:
            if now < self.open_until:
                return False
            # Half-open: this caller makes the trial call, everyone else waits
            # out another recovery window unless the trial succeeds first
            self.open_until = now + timedelta(seconds=RECOVERY_SECONDS)
            self.status = ProviderStatus.UNKNOWN
            return True
        return self.status != ProviderStatus.UNHEALTHY

    def mark_success(self, latency_ms: int) -> None:
        if self.successes == 0:
            self.latency_ms = float(latency_ms)
        else:
            self.latency_ms += LATENCY_SMOOTHING * (latency_ms - self.latency_ms)

        self.calls += 1
        self.failure_streak = 0
        self.open_until = None
        self.status = (
            ProviderStatus.DEGRADED if self.latency_ms >= SLOW_LATENCY_MS else ProviderStatus.HEALTHY
        )

    def mark_failure(self, now: datetime) -> None:
        self.calls += 1
        self.failures += 1
        self.failure_streak += 1
        if self.failure_streak >= FAILURE_THRESHOLD:
            self.status = ProviderStatus.UNHEALTHY
            self.open_until = now + timedelta(seconds=RECOVERY_SECONDS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "calls": self.calls,
            "success_rate": round(self.success_rate * 100, 2),
            "latency_ms": round(self.latency_ms, 1),
            "failure_streak": self.failure_streak,
            "circuit_open": self.open_until is not None,
        }


@dataclass(frozen=True)
class FallbackStep:
    """One entry of a fallback chain: which model to ask on which provider."""
    provider: ModelProvider
    model_id: str


@dataclass
class FallbackChain:
    """Ordered list of models to try, first success wins."""
    steps: List[FallbackStep] = field(default_factory=list)

    @classmethod
    def enhancement(cls) -> "FallbackChain":
        """Fixed priority order for prompt enhancement."""
        return cls(steps=[
            FallbackStep(ModelProvider.DEEPSEEK, "deepseek-chat-v2"),
            FallbackStep(ModelProvider.GOOGLE, "gemini-1.5-flash"),
            FallbackStep(ModelProvider.OPENAI, "gpt-4o-mini"),
        ])

    @property
    def providers(self) -> List[ModelProvider]:
        return [step.provider for step in self.steps]


class FallbackRouter:
    """Per-vendor health shared by every request in the process."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._health: Dict[ModelProvider, ProviderHealth] = {}
        self._lock = asyncio.Lock()

    async def health(self, provider: ModelProvider) -> ProviderHealth:
        async with self._lock:
            return self._health.setdefault(provider, ProviderHealth(provider=provider))

    async def record_success(self, provider: ModelProvider, latency_ms: int) -> None:
        (await self.health(provider)).mark_success(latency_ms)

    async def record_failure(self, provider: ModelProvider) -> None:
        (await self.health(provider)).mark_failure(self._clock())

    async def is_available(self, provider: ModelProvider) -> bool:
        return (await self.health(provider)).available(self._clock())

    async def snapshot(self) -> Dict[str, Any]:
        async with self._lock:
            return {provider.value: h.to_dict() for provider, h in self._health.items()}
