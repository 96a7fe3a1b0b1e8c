import asyncio
import json
from typing import Callable, Optional

import redis

from constants import REDIS_HOST, REDIS_PASSWORD, REDIS_PORT, SNAPSHOT_FLUSH_INTERVAL_SECONDS
from conversations import ConversationStore
from directory import IdentityDirectory
from logging_config import get_logger
from redis_keys import REDIS_SNAPSHOT_KEY, SNAPSHOT_CONVERSATIONS, SNAPSHOT_IDENTITIES

logger = get_logger(__name__)


class RedisBackend:
    """Flat snapshot storage: one JSON document per snapshot kind."""

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client

    def connect(self) -> "RedisBackend":
        if self.redis_client is None:
            logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")
            self.redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD,
                                            decode_responses=True)
        try:
            self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise
        return self

    def save_snapshot(self, kind: str, payload: str) -> None:
        key = REDIS_SNAPSHOT_KEY.format(kind=kind)
        self.redis_client.set(key, payload)
        logger.debug(f"Saved snapshot {key} ({len(payload)} bytes)")

    def load_snapshot(self, kind: str) -> list:
        key = REDIS_SNAPSHOT_KEY.format(kind=kind)
        raw = self.redis_client.get(key)
        if not raw:
            logger.debug(f"No snapshot stored under {key}")
            return []
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Discarding unreadable snapshot {key}: {e}")
            return []
        return records if isinstance(records, list) else []

    def close(self) -> None:
        if self.redis_client is not None:
            self.redis_client.close()


class SnapshotWriter:
    """Keeps the Redis snapshots in step with in-memory state, off the event path.

    The event path only calls `mark_dirty`. A background task serializes the
    state on the event loop and hands the blocking Redis writes to the
    default executor.
    """

    def __init__(self, backend: RedisBackend, directory: IdentityDirectory, store: ConversationStore,
                 clock: Callable[[], int], interval: float = SNAPSHOT_FLUSH_INTERVAL_SECONDS):
        self.backend = backend
        self.directory = directory
        self.store = store
        self.clock = clock
        self.interval = interval
        self.dirty = False
        self._task: Optional[asyncio.Task] = None

    def mark_dirty(self) -> None:
        self.dirty = True

    def load(self) -> None:
        identities = self.directory.restore(self.backend.load_snapshot(SNAPSHOT_IDENTITIES))
        conversations = self.store.restore(self.backend.load_snapshot(SNAPSHOT_CONVERSATIONS))
        dropped = self.store.compact_all(self.clock())
        logger.info(f"Loaded snapshot: {identities} identities, {conversations} conversations, "
                    f"{dropped} expired messages dropped")

    def _write(self, identities: str, conversations: str) -> None:
        self.backend.save_snapshot(SNAPSHOT_IDENTITIES, identities)
        self.backend.save_snapshot(SNAPSHOT_CONVERSATIONS, conversations)

    async def flush(self) -> bool:
        if not self.dirty:
            return False
        self.dirty = False
        identities = json.dumps(self.directory.snapshot())
        conversations = json.dumps(self.store.snapshot())
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, identities, conversations)
        except redis.RedisError as e:
            logger.error(f"Snapshot flush failed, will retry: {e}", exc_info=True)
            self.dirty = True
            return False
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.flush()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            logger.debug(f"Started snapshot writer (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.flush()
        logger.info("Snapshot writer stopped")
