"""
Backing Stores

Key-based access to the account rows, plan-limit reference rows, the model
catalog table and prompt-run history.

Two implementations share one interface:

    InMemoryAccountStore / InMemoryCatalogStore   (default, tests)
    FirestoreAccountStore / FirestoreCatalogStore (promptop.core.database)

Usage counters are only mutated through `increment_usage_if_below` and
`reset_cycle_if_elapsed`, which are atomic per store.
"""

from __future__ import annotations
import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Iterable

from promptop.core.config import PlanLimits, PlanTier, DEFAULT_PLAN_LIMITS, UNLIMITED
from promptop.core.models import Account, AccountNotFoundError, PromptRun

logger = logging.getLogger("promptop.storage")


class UsageCounter(str, Enum):
    """Per-account monthly counters."""
    PROMPTS = "prompts_used"
    ENHANCEMENTS = "enhancements_used"


# =============================================================================
# INTERFACES
# =============================================================================

class AccountStore:
    """Account, plan-limit and prompt-run persistence."""

    async def get_account(self, account_id: str) -> Optional[Account]:
        raise NotImplementedError

    async def get_plan_limits(self, plan: PlanTier) -> Optional[PlanLimits]:
        raise NotImplementedError

    async def increment_usage_if_below(
        self,
        account_id: str,
        counter: UsageCounter,
        limit: int,
    ) -> Optional[int]:
        """
        Atomically add one to `counter` unless it is already at `limit`.

        Returns the new value, or None when the limit was reached (nothing
        written). `limit == -1` never blocks.
        """
        raise NotImplementedError

    async def reset_cycle_if_elapsed(
        self,
        account_id: str,
        now: datetime,
        new_cycle_end: datetime,
    ) -> bool:
        """Zero both counters and open a new cycle if `now` is past the end."""
        raise NotImplementedError

    async def save_prompt_run(self, run: PromptRun) -> None:
        raise NotImplementedError


class CatalogStore:
    """Surrogate-key lookup into the external model catalog table."""

    async def get_vendor_model_id(self, surrogate_key: str) -> Optional[str]:
        raise NotImplementedError


# =============================================================================
# IN-MEMORY
# =============================================================================

def cycle_elapsed(account: Account, now: datetime) -> bool:
    return account.billing_cycle_end is not None and now > account.billing_cycle_end


class InMemoryAccountStore(AccountStore):
    """
    In-memory account store.

    Replace with Firestore in production. All counter mutations run under
    one lock, so the conditional increment is atomic.
    """

    def __init__(
        self,
        accounts: Optional[Iterable[Account]] = None,
        plan_limits: Optional[Dict[PlanTier, PlanLimits]] = None,
        max_runs: int = 10000,
    ):
        self._accounts: Dict[str, Account] = {a.id: a for a in (accounts or [])}
        self._limits: Dict[PlanTier, PlanLimits] = dict(
            DEFAULT_PLAN_LIMITS if plan_limits is None else plan_limits
        )
        self._runs: List[PromptRun] = []
        self._max_runs = max_runs
        self._lock = asyncio.Lock()

    def add_account(self, account: Account) -> None:
        self._accounts[account.id] = account

    async def get_account(self, account_id: str) -> Optional[Account]:
        return self._accounts.get(account_id)

    async def get_plan_limits(self, plan: PlanTier) -> Optional[PlanLimits]:
        return self._limits.get(plan)

    async def increment_usage_if_below(
        self,
        account_id: str,
        counter: UsageCounter,
        limit: int,
    ) -> Optional[int]:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(f"Account not found: {account_id}")

            used = getattr(account, counter.value)
            if limit != UNLIMITED and used >= limit:
                return None

            setattr(account, counter.value, used + 1)
            return used + 1

    async def reset_cycle_if_elapsed(
        self,
        account_id: str,
        now: datetime,
        new_cycle_end: datetime,
    ) -> bool:
        async with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(f"Account not found: {account_id}")

            if not cycle_elapsed(account, now):
                return False

            account.prompts_used = 0
            account.enhancements_used = 0
            account.billing_cycle_start = now
            account.billing_cycle_end = new_cycle_end
            return True

    async def save_prompt_run(self, run: PromptRun) -> None:
        async with self._lock:
            self._runs.append(run)
            if len(self._runs) > self._max_runs:
                self._runs.pop(0)

    async def list_prompt_runs(self, account_id: str, limit: int = 20) -> List[PromptRun]:
        """Newest first."""
        runs = [r for r in self._runs if r.account_id == account_id]
        runs.sort(key=lambda r: r.created_at, reverse=True)
        return runs[:limit]


class InMemoryCatalogStore(CatalogStore):
    """Catalog rows keyed by surrogate id."""

    def __init__(self, rows: Optional[Dict[str, str]] = None):
        self._rows = {k.lower(): v for k, v in (rows or {}).items()}

    async def get_vendor_model_id(self, surrogate_key: str) -> Optional[str]:
        return self._rows.get(surrogate_key.lower())
