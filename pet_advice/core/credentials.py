from __future__ import annotations

import logging
import uuid
from typing import Optional

from pet_advice.core.errors import BackingStoreUnavailable
from pet_advice.core.logging_config import short_id
from pet_advice.core.metrics import metrics
from pet_advice.core.store import ExpiringStore

logger = logging.getLogger(__name__)

_CREDENTIAL_PREFIX = "credential:"
_OWNER_PREFIX = "owner:"


class CredentialCache:
    """Revocable, TTL-bound access credentials.

    ``credential:<id>`` is the only record consulted for validity. The
    ``owner:<owner_id>`` set exists so every credential of an owner can be
    revoked at once, and is maintained on a best-effort basis.

    ``is_valid`` fails open by default: while the store is unreachable every
    credential is treated as valid, so revocations are not enforced during an
    outage. Pass ``fail_open=False`` to reject instead.
    """

    def __init__(self, store: ExpiringStore, *, grace_sec: int = 3600, fail_open: bool = True) -> None:
        self._store = store
        self._grace_sec = max(0, int(grace_sec))
        self._fail_open = fail_open

    @staticmethod
    def _credential_key(credential_id: str) -> str:
        return f"{_CREDENTIAL_PREFIX}{credential_id}"

    @staticmethod
    def _owner_key(owner_id: str) -> str:
        return f"{_OWNER_PREFIX}{owner_id}"

    async def issue(self, owner_id: str, ttl_sec: int, credential_id: Optional[str] = None) -> str:
        if not owner_id:
            raise ValueError("owner_id is required")
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be positive")
        resolved_id = credential_id or uuid.uuid4().hex
        await self._store.set(self._credential_key(resolved_id), owner_id, ttl_sec)
        try:
            await self._store.add_to_set(self._owner_key(owner_id), resolved_id, ttl_sec + self._grace_sec)
        except BackingStoreUnavailable as exc:
            logger.warning("owner index update failed for credential %s: %s", short_id(resolved_id), exc)
        logger.info("issued credential %s for owner %s (ttl=%ss)", short_id(resolved_id), owner_id, ttl_sec)
        return resolved_id

    async def is_valid(self, credential_id: str) -> bool:
        if not credential_id:
            return False
        try:
            exists = await self._store.exists(self._credential_key(credential_id))
        except BackingStoreUnavailable as exc:
            metrics.inc("credential_check_total", {"result": "store_error"})
            logger.warning(
                "credential check for %s could not reach store, %s: %s",
                short_id(credential_id),
                "allowing" if self._fail_open else "rejecting",
                exc,
            )
            return self._fail_open
        metrics.inc("credential_check_total", {"result": "valid" if exists else "invalid"})
        return exists

    async def revoke(self, credential_id: str) -> bool:
        key = self._credential_key(credential_id)
        owner_id = await self._store.get(key)
        removed = await self._store.delete(key)
        metrics.inc("credential_revoke_total", {"result": "revoked" if removed else "noop"})
        if owner_id:
            try:
                await self._store.remove_from_set(self._owner_key(owner_id), credential_id)
            except BackingStoreUnavailable as exc:
                logger.warning("owner index cleanup failed for credential %s: %s", short_id(credential_id), exc)
        logger.info("revoked credential %s (owner=%s, existed=%s)", short_id(credential_id), owner_id or "unknown", removed)
        return removed

    async def revoke_all(self, owner_id: str) -> int:
        owner_key = self._owner_key(owner_id)
        revoked = 0
        for credential_id in sorted(await self._store.set_members(owner_key)):
            if await self._store.delete(self._credential_key(credential_id)):
                revoked += 1
        await self._store.delete(owner_key)
        metrics.inc("credential_revoke_total", {"result": "bulk"}, value=revoked)
        logger.info("revoked %d credentials for owner %s", revoked, owner_id)
        return revoked
