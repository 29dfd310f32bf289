"""
Quota Accessor & Billing Cycle Tests
====================================

- Limit checks against plan rows
- Atomic conditional increment
- Billing-cycle rollover
- Missing configuration
"""

import asyncio
from datetime import datetime, timezone

import pytest

from promptop.core.config import PlanTier
from promptop.core.models import Account, AccountNotFoundError, LimitsNotConfiguredError
from promptop.core.quota import ConsumeResult, QuotaAccessor, add_one_month, limit_reached
from promptop.core.storage import InMemoryAccountStore, UsageCounter


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestHelpers:

    def test_add_one_month(self):
        assert add_one_month(utc(2024, 3, 15)) == utc(2024, 4, 15)
        assert add_one_month(utc(2024, 12, 10)) == utc(2025, 1, 10)

    def test_add_one_month_clamps_day(self):
        assert add_one_month(utc(2023, 1, 31)) == utc(2023, 2, 28)
        assert add_one_month(utc(2024, 1, 31)) == utc(2024, 2, 29)
        assert add_one_month(utc(2024, 3, 31)) == utc(2024, 4, 30)

    def test_limit_reached(self):
        assert limit_reached(15, 15)
        assert limit_reached(16, 15)
        assert not limit_reached(14, 15)
        assert not limit_reached(10 ** 9, -1)


class TestQuotaChecks:

    @pytest.mark.asyncio
    async def test_free_plan_at_limit(self):
        store = InMemoryAccountStore([Account(id="a", plan="free", prompts_used=15)])
        exceeded = await QuotaAccessor(store).check_prompt_quota("a")

        assert exceeded is not None
        assert exceeded.current_usage == 15
        assert exceeded.limit == 15
        assert exceeded.plan == "free"
        assert exceeded.status_code == 429

    @pytest.mark.asyncio
    async def test_under_limit(self):
        store = InMemoryAccountStore([Account(id="a", plan="free", prompts_used=14)])
        assert await QuotaAccessor(store).check_prompt_quota("a") is None

    @pytest.mark.asyncio
    async def test_enhancement_limit(self):
        store = InMemoryAccountStore([Account(id="a", plan="free", enhancements_used=5)])
        exceeded = await QuotaAccessor(store).check_enhancement_quota("a")
        assert exceeded.limit == 5
        assert exceeded.quota == "enhancements"

    @pytest.mark.asyncio
    async def test_enterprise_is_unlimited(self):
        store = InMemoryAccountStore([Account(id="a", plan="enterprise", prompts_used=10 ** 6)])
        quota = QuotaAccessor(store)

        assert await quota.check_prompt_quota("a") is None
        assert await quota.try_consume_prompt_slot("a") == ConsumeResult.CONSUMED
        assert (await store.get_account("a")).prompts_used == 10 ** 6 + 1

    @pytest.mark.asyncio
    async def test_legacy_plan_name_uses_mapped_limits(self):
        store = InMemoryAccountStore([Account(id="a", plan="premium", prompts_used=900)])
        usage = await QuotaAccessor(store).get_usage("a")
        assert usage.plan == PlanTier.PRO
        assert usage.remaining(UsageCounter.PROMPTS) == 100

    @pytest.mark.asyncio
    async def test_usage_snapshot(self):
        store = InMemoryAccountStore([Account(id="a", plan="team", prompts_used=3, enhancements_used=2)])
        data = (await QuotaAccessor(store).get_usage("a")).to_dict()

        assert data["plan"] == "team"
        assert data["prompts"] == {"used": 3, "limit": 7500, "remaining": 7497}
        assert data["enhancements"]["limit"] == 2000
        assert data["prompt_slots"] == -1


class TestConsume:

    @pytest.mark.asyncio
    async def test_consume_increments(self):
        store = InMemoryAccountStore([Account(id="a", plan="free", prompts_used=3)])
        assert await QuotaAccessor(store).try_consume_prompt_slot("a") == ConsumeResult.CONSUMED
        assert (await store.get_account("a")).prompts_used == 4

    @pytest.mark.asyncio
    async def test_consume_at_limit_writes_nothing(self):
        store = InMemoryAccountStore([Account(id="a", plan="free", prompts_used=15)])
        assert await QuotaAccessor(store).try_consume_prompt_slot("a") == ConsumeResult.LIMIT_REACHED
        assert (await store.get_account("a")).prompts_used == 15

    @pytest.mark.asyncio
    async def test_exactly_limit_consumes(self):
        store = InMemoryAccountStore([Account(id="a", plan="free")])
        quota = QuotaAccessor(store)

        for _ in range(15):
            assert await quota.try_consume_prompt_slot("a") == ConsumeResult.CONSUMED

        assert await quota.try_consume_prompt_slot("a") == ConsumeResult.LIMIT_REACHED
        assert (await store.get_account("a")).prompts_used == 15

    @pytest.mark.asyncio
    async def test_concurrent_consumes_never_overshoot(self):
        store = InMemoryAccountStore([Account(id="a", plan="free", prompts_used=12)])
        quota = QuotaAccessor(store)

        results = await asyncio.gather(*[quota.try_consume_prompt_slot("a") for _ in range(10)])

        assert results.count(ConsumeResult.CONSUMED) == 3
        assert (await store.get_account("a")).prompts_used == 15

    @pytest.mark.asyncio
    async def test_enhancement_counter_is_separate(self):
        store = InMemoryAccountStore([Account(id="a", plan="free")])
        await QuotaAccessor(store).consume_enhancement_slot("a")
        account = await store.get_account("a")
        assert account.enhancements_used == 1
        assert account.prompts_used == 0


class TestBillingCycle:

    @pytest.mark.asyncio
    async def test_reset_when_elapsed(self):
        store = InMemoryAccountStore([Account(
            id="a", plan="free", prompts_used=15, enhancements_used=5,
            billing_cycle_start=utc(2023, 12, 31), billing_cycle_end=utc(2024, 1, 31),
        )])
        now = utc(2024, 2, 1, 9, 30)

        assert await QuotaAccessor(store).reset_if_cycle_elapsed("a", now) is True

        account = await store.get_account("a")
        assert account.prompts_used == 0
        assert account.enhancements_used == 0
        assert account.billing_cycle_start == now
        assert account.billing_cycle_end == utc(2024, 3, 1, 9, 30)

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self):
        store = InMemoryAccountStore([Account(
            id="a", plan="free", prompts_used=9, billing_cycle_end=utc(2024, 1, 1),
        )])
        quota = QuotaAccessor(store)
        now = utc(2024, 1, 31)

        assert await quota.reset_if_cycle_elapsed("a", now) is True
        await quota.try_consume_prompt_slot("a")
        assert await quota.reset_if_cycle_elapsed("a", now) is False

        account = await store.get_account("a")
        assert account.prompts_used == 1
        assert account.billing_cycle_end == utc(2024, 2, 29)

    @pytest.mark.asyncio
    async def test_no_reset_while_cycle_open(self):
        store = InMemoryAccountStore([Account(
            id="a", plan="free", prompts_used=7, billing_cycle_end=utc(2024, 5, 1),
        )])
        assert await QuotaAccessor(store).reset_if_cycle_elapsed("a", utc(2024, 4, 30)) is False
        assert (await store.get_account("a")).prompts_used == 7

    @pytest.mark.asyncio
    async def test_no_cycle_end_never_resets(self):
        store = InMemoryAccountStore([Account(id="a", plan="free", prompts_used=7)])
        assert await QuotaAccessor(store).reset_if_cycle_elapsed("a", utc(2030, 1, 1)) is False

    @pytest.mark.asyncio
    async def test_clock_used_when_now_omitted(self):
        store = InMemoryAccountStore([Account(
            id="a", plan="free", prompts_used=7, billing_cycle_end=utc(2024, 1, 1),
        )])
        quota = QuotaAccessor(store, clock=lambda: utc(2024, 1, 15))

        assert await quota.reset_if_cycle_elapsed("a") is True
        assert (await store.get_account("a")).billing_cycle_end == utc(2024, 2, 15)


class TestMissingConfiguration:

    @pytest.mark.asyncio
    async def test_missing_limit_row(self):
        store = InMemoryAccountStore([Account(id="a", plan="free")], plan_limits={})
        with pytest.raises(LimitsNotConfiguredError):
            await QuotaAccessor(store).check_prompt_quota("a")

    @pytest.mark.asyncio
    async def test_unknown_plan(self):
        store = InMemoryAccountStore([Account(id="a", plan="platinum")])
        with pytest.raises(LimitsNotConfiguredError):
            await QuotaAccessor(store).try_consume_prompt_slot("a")

    @pytest.mark.asyncio
    async def test_missing_account(self):
        quota = QuotaAccessor(InMemoryAccountStore())
        with pytest.raises(AccountNotFoundError):
            await quota.get_usage("nobody")
        with pytest.raises(AccountNotFoundError):
            await quota.reset_if_cycle_elapsed("nobody", utc(2024, 1, 1))
