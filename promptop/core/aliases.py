"""
Model Alias Resolution

Clients send model ids in three shapes:

1. Canonical ids ("gpt-4o", "claude-3.5-sonnet")
2. Legacy aliases from older clients ("deepseek-v3-pro", "gpt4o")
3. Surrogate keys: catalog row UUIDs from the admin model table

Everything is normalized to a canonical id before access checks run.
"""

from __future__ import annotations
import logging
import re
from typing import Dict, Optional

from promptop.core.storage import CatalogStore

logger = logging.getLogger("promptop.aliases")


# Legacy ids still sent by older clients. Checked before the surrogate-key
# test because some of them are UUID-shaped catalog leftovers.
LEGACY_ALIASES: Dict[str, str] = {
    "deepseek-v3-pro": "deepseek-r1-pro",
    "deepseek-v3": "deepseek-chat-v2",
    "deepseek-chat": "deepseek-chat-v2",
    "gpt4o": "gpt-4o",
    "gpt-4o-latest": "gpt-4o",
    "gpt4o-mini": "gpt-4o-mini",
    "claude-3-5-sonnet": "claude-3.5-sonnet",
    "claude-sonnet": "claude-3.5-sonnet",
    "gemini-flash": "gemini-1.5-flash",
    "gemini-2.5-flash": "gemini-1.5-flash",
    "gemini-pro": "gemini-1.5-pro",
    "llama3-8b": "llama-3-8b",
    "llama3-70b": "llama-3-70b",
    "cohere-command-r-plus": "command-r-plus",
    # Catalog rows that were deleted and recreated under a new key
    "00000000-0000-4000-8000-000000000001": "gpt-4o-mini",
    "00000000-0000-4000-8000-000000000002": "deepseek-chat-v2",
}

# Vendor model names stored in the catalog table -> canonical id
VENDOR_TO_CANONICAL: Dict[str, str] = {
    "deepseek-chat": "deepseek-chat-v2",
    "deepseek-reasoner": "deepseek-r1",
    "gpt-4o": "gpt-4o",
    "gpt-4o-mini": "gpt-4o-mini",
    "gpt-4-turbo": "gpt-4-turbo",
    "claude-3-5-sonnet-latest": "claude-3.5-sonnet",
    "claude-3-5-sonnet-20241022": "claude-3.5-sonnet",
    "claude-3-opus-latest": "claude-3-opus",
    "claude-3-opus-20240229": "claude-3-opus",
    "claude-3-haiku-20240307": "claude-3-haiku",
    "gemini-1.5-flash": "gemini-1.5-flash",
    "gemini-1.5-flash-latest": "gemini-1.5-flash",
    "gemini-1.5-pro": "gemini-1.5-pro",
    "gemini-1.5-pro-latest": "gemini-1.5-pro",
    "command-r-plus": "command-r-plus",
}

# Retired ids and their replacements. Applied last, unconditionally.
DEPRECATED_MODELS: Dict[str, str] = {
    "gemini-1.0-pro": "gemini-1.5-flash",
    "gpt-3.5-turbo": "gpt-4o-mini",
    "claude-3-haiku": "claude-3.5-sonnet",
    "claude-2.1": "claude-3.5-sonnet",
}

SURROGATE_KEY_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_surrogate_key(raw_model_id: str) -> bool:
    return bool(SURROGATE_KEY_PATTERN.match(raw_model_id))


class AliasResolver:
    """Normalizes raw model ids to canonical ids."""

    def __init__(
        self,
        catalog: Optional[CatalogStore] = None,
        legacy_aliases: Optional[Dict[str, str]] = None,
        vendor_to_canonical: Optional[Dict[str, str]] = None,
        deprecated: Optional[Dict[str, str]] = None,
    ):
        self.catalog = catalog
        self.legacy_aliases = LEGACY_ALIASES if legacy_aliases is None else legacy_aliases
        self.vendor_to_canonical = (
            VENDOR_TO_CANONICAL if vendor_to_canonical is None else vendor_to_canonical
        )
        self.deprecated = DEPRECATED_MODELS if deprecated is None else deprecated

    async def resolve(self, raw_model_id: Optional[str]) -> Optional[str]:
        """
        Resolve a raw id to a canonical id.

        Returns None when the id is empty or is a surrogate key the catalog
        does not know.
        """
        raw = (raw_model_id or "").strip()
        if not raw:
            return None

        resolved = await self._lookup(raw)
        if resolved is None:
            return None

        # Must run last: absorbs ids that older clients keep sending
        replacement = self.deprecated.get(resolved)
        if replacement:
            logger.info(f"Rewriting deprecated model {resolved} -> {replacement}")
            return replacement
        return resolved

    async def _lookup(self, raw: str) -> Optional[str]:
        alias = self.legacy_aliases.get(raw) or self.legacy_aliases.get(raw.lower())
        if alias:
            return alias

        if is_surrogate_key(raw):
            return await self._resolve_surrogate(raw)

        return raw

    async def _resolve_surrogate(self, key: str) -> Optional[str]:
        if self.catalog is None:
            logger.warning(f"Surrogate model key {key} received but no catalog is configured")
            return None

        vendor_id = await self.catalog.get_vendor_model_id(key)
        if not vendor_id:
            logger.warning(f"Surrogate model key {key} not found in catalog")
            return None

        return self.vendor_to_canonical.get(vendor_id, vendor_id)
