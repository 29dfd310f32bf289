"""
Firestore Stores

Production implementations of the account and catalog stores.

Collections:
- users                 account rows (plan, prompts_used, enhancements_used, cycle)
- subscription_limits   one document per plan
- ai_models             model catalog rows keyed by surrogate id
- prompt_runs           dispatch history

Counter updates run inside Firestore transactions, so the conditional
increment cannot overshoot a limit under concurrent requests.
"""

from __future__ import annotations
import os
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from google.cloud import firestore

from promptop.core.config import PlanLimits, PlanTier, UNLIMITED
from promptop.core.models import Account, AccountNotFoundError, PromptRun
from promptop.core.storage import AccountStore, CatalogStore, UsageCounter, cycle_elapsed

logger = logging.getLogger("promptop.database")

FIRESTORE_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT", "promptop-prod")

USERS_COLLECTION = "users"
LIMITS_COLLECTION = "subscription_limits"
CATALOG_COLLECTION = "ai_models"
RUNS_COLLECTION = "prompt_runs"


def account_from_doc(doc_id: str, data: Dict[str, Any]) -> Account:
    return Account(
        id=doc_id,
        plan=data.get("plan", PlanTier.FREE.value),
        prompts_used=int(data.get("prompts_used") or 0),
        enhancements_used=int(data.get("enhancements_used") or 0),
        billing_cycle_start=data.get("billing_cycle_start"),
        billing_cycle_end=data.get("billing_cycle_end"),
    )


class _FirestoreClient:
    """Lazy Firestore client holder."""

    def __init__(self, project_id: Optional[str] = None, client=None):
        self.project_id = project_id or FIRESTORE_PROJECT
        self._db = client

    @property
    def db(self):
        if self._db is None:
            self._db = firestore.Client(project=self.project_id)
            logger.info(f"Firestore initialized for project: {self.project_id}")
        return self._db


class FirestoreAccountStore(_FirestoreClient, AccountStore):
    """Account store backed by Firestore."""

    async def get_account(self, account_id: str) -> Optional[Account]:
        doc = self.db.collection(USERS_COLLECTION).document(account_id).get()
        if not doc.exists:
            return None
        return account_from_doc(doc.id, doc.to_dict() or {})

    async def get_plan_limits(self, plan: PlanTier) -> Optional[PlanLimits]:
        doc = self.db.collection(LIMITS_COLLECTION).document(plan.value).get()
        if not doc.exists:
            return None
        data = doc.to_dict() or {}
        try:
            return PlanLimits(
                plan=plan,
                prompts_per_month=int(data["prompts_per_month"]),
                enhancements_per_month=int(data["ai_enhancements_per_month"]),
                prompt_slots=int(data.get("prompts_slots", UNLIMITED)),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed subscription_limits row for plan {plan.value}: {e}")
            return None

    async def increment_usage_if_below(
        self,
        account_id: str,
        counter: UsageCounter,
        limit: int,
    ) -> Optional[int]:
        ref = self.db.collection(USERS_COLLECTION).document(account_id)

        @firestore.transactional
        def _increment(transaction) -> Optional[int]:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise AccountNotFoundError(f"Account not found: {account_id}")

            used = int((snapshot.to_dict() or {}).get(counter.value) or 0)
            if limit != UNLIMITED and used >= limit:
                return None

            transaction.update(ref, {counter.value: used + 1})
            return used + 1

        return _increment(self.db.transaction())

    async def reset_cycle_if_elapsed(
        self,
        account_id: str,
        now: datetime,
        new_cycle_end: datetime,
    ) -> bool:
        ref = self.db.collection(USERS_COLLECTION).document(account_id)

        @firestore.transactional
        def _reset(transaction) -> bool:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise AccountNotFoundError(f"Account not found: {account_id}")

            account = account_from_doc(snapshot.id, snapshot.to_dict() or {})
            if not cycle_elapsed(account, now):
                return False

            transaction.update(ref, {
                UsageCounter.PROMPTS.value: 0,
                UsageCounter.ENHANCEMENTS.value: 0,
                "billing_cycle_start": now,
                "billing_cycle_end": new_cycle_end,
            })
            return True

        return _reset(self.db.transaction())

    async def save_prompt_run(self, run: PromptRun) -> None:
        data = run.to_dict()
        data["created_at"] = run.created_at
        self.db.collection(RUNS_COLLECTION).document(run.id).set(data)


class FirestoreCatalogStore(_FirestoreClient, CatalogStore):
    """Model catalog table backed by Firestore."""

    async def get_vendor_model_id(self, surrogate_key: str) -> Optional[str]:
        doc = self.db.collection(CATALOG_COLLECTION).document(surrogate_key.lower()).get()
        if not doc.exists:
            return None
        data = doc.to_dict() or {}
        return data.get("model_id") or data.get("api_model")
