import asyncio
import json

import pytest
import redis

from backend import RedisBackend
from conftest import FakeClock, FakeHandle, FakeRedis, emit, register
from conversations import room_id_for
from redis_keys import REDIS_SNAPSHOT_KEY, SNAPSHOT_CONVERSATIONS, SNAPSHOT_IDENTITIES
from state import ChatState


class FailingRedis(FakeRedis):
    def set(self, key, value):
        raise redis.ConnectionError("down")


@pytest.mark.asyncio
async def test_flush_writes_both_snapshots_only_when_dirty():
    fake = FakeRedis()
    clock = FakeClock()
    chat = ChatState(clock=clock, backend=RedisBackend(fake))

    assert await chat.snapshots.flush() is False
    assert fake.data == {}

    await register(chat, FakeHandle("a"), "Alice", user_id="alice")
    assert chat.snapshots.dirty
    assert await chat.snapshots.flush() is True
    assert not chat.snapshots.dirty

    identities = json.loads(fake.data[REDIS_SNAPSHOT_KEY.format(kind=SNAPSHOT_IDENTITIES)])
    assert [i["id"] for i in identities] == ["alice"]
    assert json.loads(fake.data[REDIS_SNAPSHOT_KEY.format(kind=SNAPSHOT_CONVERSATIONS)]) == []


@pytest.mark.asyncio
async def test_failed_flush_stays_dirty():
    chat = ChatState(clock=FakeClock(), backend=RedisBackend(FailingRedis()))
    chat.mark_dirty()
    assert await chat.snapshots.flush() is False
    assert chat.snapshots.dirty


@pytest.mark.asyncio
async def test_restart_restores_rooms_and_never_revives_expired_messages():
    fake = FakeRedis()
    clock = FakeClock()
    chat = ChatState(clock=clock, backend=RedisBackend(fake))
    alice, bob = FakeHandle("alice-1"), FakeHandle("bob-1")
    a = await register(chat, alice, "Alice", user_id="alice")
    await register(chat, bob, "Bob", user_id="bob")
    await emit(chat, bob, "connectWithCode", inviteCode=a["inviteCode"])
    room_id = room_id_for("alice", "bob")
    await emit(chat, alice, "sendMessage", roomId=room_id, text="old")
    clock.advance(400_000)
    await emit(chat, bob, "sendMessage", roomId=room_id, text="new")
    await chat.snapshots.flush()

    clock.advance(300_000)
    restarted = ChatState(clock=clock, backend=RedisBackend(fake))
    restarted.snapshots.load()
    assert len(restarted.store) == 1
    assert restarted.directory.resolve_invite(a["inviteCode"]) is None

    again = FakeHandle("alice-2")
    b = await register(restarted, again, "Alice", user_id="alice")
    assert b["inviteCode"] == a["inviteCode"]
    chats = again.last("chatsLoaded")["chats"]
    assert [c["roomId"] for c in chats] == [room_id]
    assert [m["text"] for m in chats[0]["messages"]] == ["new"]


@pytest.mark.asyncio
async def test_stop_flushes_pending_changes():
    fake = FakeRedis()
    chat = ChatState(clock=FakeClock(), backend=RedisBackend(fake))
    await chat.start()
    await register(chat, FakeHandle("a"), "Alice", user_id="alice")
    await chat.stop()
    assert REDIS_SNAPSHOT_KEY.format(kind=SNAPSHOT_IDENTITIES) in fake.data


def test_load_snapshot_ignores_garbage():
    fake = FakeRedis()
    fake.set(REDIS_SNAPSHOT_KEY.format(kind=SNAPSHOT_IDENTITIES), "{not json")
    assert RedisBackend(fake).load_snapshot(SNAPSHOT_IDENTITIES) == []
    assert RedisBackend(fake).load_snapshot(SNAPSHOT_CONVERSATIONS) == []


def test_snapshot_writer_is_skipped_without_backend():
    chat = ChatState(clock=FakeClock())
    assert chat.snapshots is None
    chat.mark_dirty()


@pytest.mark.asyncio
async def test_background_writer_flushes_on_its_interval():
    fake = FakeRedis()
    chat = ChatState(clock=FakeClock(), backend=RedisBackend(fake))
    chat.snapshots.interval = 0.01
    await chat.start()
    try:
        await register(chat, FakeHandle("a"), "Alice", user_id="alice")
        await asyncio.sleep(0.05)
        assert not chat.snapshots.dirty
        assert REDIS_SNAPSHOT_KEY.format(kind=SNAPSHOT_IDENTITIES) in fake.data
    finally:
        await chat.stop()
