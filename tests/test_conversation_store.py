import asyncio
import json

from pet_advice.core.activity import ActivityTracker
from pet_advice.core.conversation_store import (
    SYSTEM_PROMPT,
    ConversationStore,
    make_turn,
    trim_turns,
)
from pet_advice.core.profile import PetProfile
from pet_advice.core.store import MemoryStore


def _make_store(max_turns=20):
    store = MemoryStore()
    tracker = ActivityTracker()
    return store, tracker, ConversationStore(store, tracker, ttl_sec=3600, max_turns=max_turns)


def test_initialize_returns_single_system_turn():
    _, _, conversations = _make_store()
    turns = conversations.initialize()
    assert turns == [{"role": "system", "content": SYSTEM_PROMPT}]


def test_initialize_includes_profile_context():
    _, _, conversations = _make_store()
    profile = PetProfile(species="Cat", name="Miso", breed="Siamese", age=4, gender="female")
    turns = conversations.initialize(profile)
    assert len(turns) == 1
    assert turns[0]["role"] == "system"
    assert turns[0]["content"].startswith(SYSTEM_PROMPT)
    assert "species: Cat" in turns[0]["content"]
    assert "breed: Siamese" in turns[0]["content"]


def test_append_and_persist_round_trips_and_records_activity():
    _, tracker, conversations = _make_store()

    async def _run():
        turns = conversations.initialize()
        turns.append(make_turn("user", "hi"))
        await conversations.append_and_persist("s1", turns, "hello!")
        return await conversations.load("s1")

    loaded = asyncio.run(_run())
    assert [t["role"] for t in loaded] == ["system", "user", "assistant"]
    assert loaded[2]["content"] == "hello!"
    assert tracker.get("s1").turn_count == 3


def test_load_missing_and_malformed_return_none():
    store, _, conversations = _make_store()

    async def _run():
        await store.set("conversation:bad", "not json")
        await store.set("conversation:nosys", json.dumps([{"role": "user", "content": "x"}]))
        return (
            await conversations.load("missing"),
            await conversations.load("bad"),
            await conversations.load("nosys"),
        )

    assert asyncio.run(_run()) == (None, None, None)


def test_trim_removes_oldest_pair_and_keeps_system_turn():
    turns = [make_turn("system", "sys")]
    for i in range(10):
        turns.append(make_turn("user", f"q{i}"))
        turns.append(make_turn("assistant", f"a{i}"))
    assert len(turns) == 21

    trim_turns(turns, 20)

    assert len(turns) == 19
    assert turns[0] == make_turn("system", "sys")
    assert turns[1] == make_turn("user", "q1")
    assert turns[-1] == make_turn("assistant", "a9")


def test_trim_is_noop_at_or_below_ceiling():
    turns = [make_turn("system", "sys")] + [make_turn("user", "q")] * 19
    trim_turns(turns, 20)
    assert len(turns) == 20


def test_long_conversation_keeps_system_turn_and_bounded_length():
    _, _, conversations = _make_store()

    async def _run():
        turns = conversations.initialize()
        for i in range(40):
            turns.append(make_turn("user", f"q{i}"))
            turns = await conversations.append_and_persist("long", turns, f"a{i}")
            assert turns[0]["role"] == "system"
            assert len(turns) <= 21
            assert sum(1 for t in turns if t["role"] == "system") == 1
        return await conversations.load("long")

    loaded = asyncio.run(_run())
    assert loaded[0]["role"] == "system"
    assert loaded[-1] == make_turn("assistant", "a39")
    assert loaded[-2] == make_turn("user", "q39")


def test_save_failure_is_swallowed_and_turns_still_returned():
    store, tracker, conversations = _make_store()
    store.unavailable = True

    async def _run():
        turns = conversations.initialize()
        turns.append(make_turn("user", "hi"))
        result = await conversations.append_and_persist("s2", turns, "answer")
        return result, await conversations.load("s2")

    result, loaded = asyncio.run(_run())
    assert result[-1] == make_turn("assistant", "answer")
    assert loaded is None
    assert tracker.get("s2").turn_count == 3


def test_delete_removes_conversation():
    _, _, conversations = _make_store()

    async def _run():
        turns = conversations.initialize()
        turns.append(make_turn("user", "hi"))
        await conversations.append_and_persist("s3", turns, "yo")
        deleted = await conversations.delete("s3")
        return deleted, await conversations.load("s3")

    assert asyncio.run(_run()) == (True, None)
