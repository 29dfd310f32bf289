"""
Usage Quotas & Billing Cycle

Meters prompt tests and enhancement calls against the monthly limits of the
account's plan:
- Free: 15 prompts / 5 enhancements
- Pro: 1000 / 150
- Team: 7500 / 2000
- Enterprise: unlimited

Limits are re-read from the store on every call. A slot is consumed with an
atomic conditional increment, so concurrent requests never push a counter
past its limit.
"""

from __future__ import annotations
import calendar
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple, Callable
from dataclasses import dataclass
from enum import Enum

from promptop.core.access import normalize_plan
from promptop.core.config import PlanLimits, PlanTier, UNLIMITED
from promptop.core.models import (
    Account,
    AccountNotFoundError,
    LimitsNotConfiguredError,
    QuotaExceeded,
)
from promptop.core.storage import AccountStore, UsageCounter

logger = logging.getLogger("promptop.quota")


class ConsumeResult(str, Enum):
    """Outcome of a slot consumption."""
    CONSUMED = "consumed"
    LIMIT_REACHED = "limit_reached"


def add_one_month(moment: datetime) -> datetime:
    """Same day next month, clamped to the month's last day."""
    year = moment.year + (moment.month // 12)
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def limit_reached(used: int, limit: int) -> bool:
    return limit != UNLIMITED and used >= limit


@dataclass
class UsageSnapshot:
    """Current usage of an account against its plan limits."""
    account_id: str
    plan: PlanTier
    prompts_used: int
    enhancements_used: int
    limits: PlanLimits
    cycle_start: Optional[datetime] = None
    cycle_end: Optional[datetime] = None

    def used(self, counter: UsageCounter) -> int:
        if counter == UsageCounter.PROMPTS:
            return self.prompts_used
        return self.enhancements_used

    def limit(self, counter: UsageCounter) -> int:
        if counter == UsageCounter.PROMPTS:
            return self.limits.prompts_per_month
        return self.limits.enhancements_per_month

    def remaining(self, counter: UsageCounter) -> Optional[int]:
        """None means unlimited."""
        limit = self.limit(counter)
        if limit == UNLIMITED:
            return None
        return max(0, limit - self.used(counter))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan.value,
            "prompts": {
                "used": self.prompts_used,
                "limit": self.limits.prompts_per_month,
                "remaining": self.remaining(UsageCounter.PROMPTS),
            },
            "enhancements": {
                "used": self.enhancements_used,
                "limit": self.limits.enhancements_per_month,
                "remaining": self.remaining(UsageCounter.ENHANCEMENTS),
            },
            "prompt_slots": self.limits.prompt_slots,
            "cycle_start": self.cycle_start.isoformat() if self.cycle_start else None,
            "cycle_end": self.cycle_end.isoformat() if self.cycle_end else None,
        }


class QuotaAccessor:
    """
    Reads and meters per-account monthly usage.

    Never caches: every check and every consume goes back to the store.
    """

    def __init__(
        self,
        store: AccountStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _load(self, account_id: str) -> Tuple[Account, PlanTier, PlanLimits]:
        account = await self.store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account not found: {account_id}")

        plan = normalize_plan(account.plan)
        limits = await self.store.get_plan_limits(plan) if plan else None
        if limits is None:
            logger.error(f"No plan limits configured for plan '{account.plan}' (account {account_id})")
            raise LimitsNotConfiguredError(f"Limits not configured for plan: {account.plan}")

        return account, plan, limits

    async def get_usage(self, account_id: str) -> UsageSnapshot:
        """Current counters and limits for an account."""
        account, plan, limits = await self._load(account_id)
        return UsageSnapshot(
            account_id=account.id,
            plan=plan,
            prompts_used=account.prompts_used,
            enhancements_used=account.enhancements_used,
            limits=limits,
            cycle_start=account.billing_cycle_start,
            cycle_end=account.billing_cycle_end,
        )

    async def _check(self, account_id: str, counter: UsageCounter) -> Optional[QuotaExceeded]:
        usage = await self.get_usage(account_id)
        used, limit = usage.used(counter), usage.limit(counter)
        if limit_reached(used, limit):
            return QuotaExceeded(
                current_usage=used,
                limit=limit,
                plan=usage.plan.value,
                quota="prompts" if counter == UsageCounter.PROMPTS else "enhancements",
            )
        return None

    async def check_prompt_quota(self, account_id: str) -> Optional[QuotaExceeded]:
        """QuotaExceeded if no prompt slot is left, else None. Read-only."""
        return await self._check(account_id, UsageCounter.PROMPTS)

    async def check_enhancement_quota(self, account_id: str) -> Optional[QuotaExceeded]:
        """QuotaExceeded if no enhancement slot is left, else None. Read-only."""
        return await self._check(account_id, UsageCounter.ENHANCEMENTS)

    async def _consume(self, account_id: str, counter: UsageCounter) -> ConsumeResult:
        _, _, limits = await self._load(account_id)
        limit = (
            limits.prompts_per_month
            if counter == UsageCounter.PROMPTS
            else limits.enhancements_per_month
        )

        new_value = await self.store.increment_usage_if_below(account_id, counter, limit)
        if new_value is None:
            return ConsumeResult.LIMIT_REACHED

        logger.debug(f"Account {account_id} {counter.value} -> {new_value}")
        return ConsumeResult.CONSUMED

    async def try_consume_prompt_slot(self, account_id: str) -> ConsumeResult:
        """Take one prompt slot unless the plan limit is reached."""
        return await self._consume(account_id, UsageCounter.PROMPTS)

    async def consume_enhancement_slot(self, account_id: str) -> ConsumeResult:
        """Take one enhancement slot unless the plan limit is reached."""
        return await self._consume(account_id, UsageCounter.ENHANCEMENTS)

    async def reset_if_cycle_elapsed(
        self,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Start a new billing cycle if the current one has ended.

        Zeroes both counters and sets the cycle end one month from `now`.
        Returns False (and writes nothing) while the cycle is still open.
        """
        now = now or self._clock()
        reset = await self.store.reset_cycle_if_elapsed(account_id, now, add_one_month(now))
        if reset:
            logger.info(f"Billing cycle reset for account {account_id}")
        return reset
