import asyncio
import logging

import pytest

from pet_advice.core.credentials import CredentialCache
from pet_advice.core.errors import BackingStoreUnavailable
from pet_advice.core.store import MemoryStore


class FakeClock:
    def __init__(self, now: float = 10_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_issue_writes_primary_key_and_owner_index():
    store = MemoryStore()
    credentials = CredentialCache(store)

    async def _run():
        credential_id = await credentials.issue("user-1", 600)
        return (
            credential_id,
            await store.get(f"credential:{credential_id}"),
            await store.set_members("owner:user-1"),
            await credentials.is_valid(credential_id),
        )

    credential_id, owner, index, valid = asyncio.run(_run())
    assert owner == "user-1"
    assert index == {credential_id}
    assert valid is True


def test_issue_accepts_caller_supplied_id():
    credentials = CredentialCache(MemoryStore())
    assert asyncio.run(credentials.issue("user-1", 60, credential_id="jti-123")) == "jti-123"


def test_issue_rejects_bad_arguments():
    credentials = CredentialCache(MemoryStore())
    with pytest.raises(ValueError):
        asyncio.run(credentials.issue("", 60))
    with pytest.raises(ValueError):
        asyncio.run(credentials.issue("user-1", 0))


def test_credential_expires_with_ttl_while_index_outlives_it():
    clock = FakeClock()
    store = MemoryStore(clock=clock)
    credentials = CredentialCache(store, grace_sec=3600)

    async def _run():
        credential_id = await credentials.issue("user-1", 60)
        clock.advance(61)
        return await credentials.is_valid(credential_id), await store.set_members("owner:user-1")

    valid, index = asyncio.run(_run())
    assert valid is False
    assert len(index) == 1


def test_revoke_is_idempotent():
    store = MemoryStore()
    credentials = CredentialCache(store)

    async def _run():
        credential_id = await credentials.issue("user-1", 600)
        first = await credentials.revoke(credential_id)
        valid = await credentials.is_valid(credential_id)
        second = await credentials.revoke(credential_id)
        unknown = await credentials.revoke("never-issued")
        return first, valid, second, unknown, await store.set_members("owner:user-1")

    first, valid, second, unknown, index = asyncio.run(_run())
    assert first is True
    assert valid is False
    assert second is False
    assert unknown is False
    assert index == set()


def test_validity_does_not_depend_on_owner_index():
    store = MemoryStore()
    credentials = CredentialCache(store)

    async def _run():
        credential_id = await credentials.issue("user-1", 600)
        await store.delete("owner:user-1")
        valid = await credentials.is_valid(credential_id)
        revoked = await credentials.revoke(credential_id)
        return valid, revoked, await credentials.is_valid(credential_id)

    assert asyncio.run(_run()) == (True, True, False)


def test_revoke_all_revokes_every_owner_credential():
    store = MemoryStore()
    credentials = CredentialCache(store)

    async def _run():
        ids = [await credentials.issue("user-1", 600) for _ in range(3)]
        other = await credentials.issue("user-2", 600)
        count = await credentials.revoke_all("user-1")
        return (
            count,
            [await credentials.is_valid(cid) for cid in ids],
            await credentials.is_valid(other),
            await store.exists("owner:user-1"),
        )

    count, states, other_valid, index_exists = asyncio.run(_run())
    assert count == 3
    assert states == [False, False, False]
    assert other_valid is True
    assert index_exists is False


def test_outage_fails_open_and_logs_warning(caplog):
    store = MemoryStore()
    credentials = CredentialCache(store)
    store.unavailable = True

    with caplog.at_level(logging.WARNING, logger="pet_advice.core.credentials"):
        assert asyncio.run(credentials.is_valid("any-id")) is True
    assert any("could not reach store" in record.getMessage() for record in caplog.records)


def test_outage_fails_closed_when_configured():
    store = MemoryStore()
    credentials = CredentialCache(store, fail_open=False)
    store.unavailable = True
    assert asyncio.run(credentials.is_valid("any-id")) is False


def test_empty_credential_id_is_invalid():
    assert asyncio.run(CredentialCache(MemoryStore()).is_valid("")) is False


def test_revoke_surfaces_outage_to_caller():
    store = MemoryStore()
    credentials = CredentialCache(store)
    store.unavailable = True
    with pytest.raises(BackingStoreUnavailable):
        asyncio.run(credentials.revoke("some-id"))
