"""Shared test fixtures: a controllable clock, recording connection handles and isolated chat state."""
import json

import pytest

from app import dispatch
from state import ChatState

T0 = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeHandle:
    """Stands in for a websocket connection and records what it was sent."""

    def __init__(self, name: str):
        self.id = name
        self.sent = []
        self.broken = False

    async def send_json(self, payload: dict) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(payload)

    def of_type(self, event_type: str) -> list:
        return [p for p in self.sent if p["type"] == event_type]

    def last(self, event_type: str) -> dict:
        events = self.of_type(event_type)
        assert events, f"{self.id} received no {event_type}"
        return events[-1]

    def __repr__(self) -> str:
        return f"FakeHandle({self.id})"


class FakeRedis:
    """Just enough of redis.Redis for snapshot storage."""

    def __init__(self):
        self.data = {}

    def ping(self):
        return True

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def close(self):
        pass


async def emit(chat: ChatState, handle: FakeHandle, event_type: str, **payload):
    await dispatch(chat, handle, json.dumps({"type": event_type, **payload}))


async def register(chat: ChatState, handle: FakeHandle, name: str, user_id: str = None) -> dict:
    payload = {"displayName": name}
    if user_id:
        payload["userId"] = user_id
    await emit(chat, handle, "register", **payload)
    return handle.last("registered")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chat(clock):
    return ChatState(clock=clock)
