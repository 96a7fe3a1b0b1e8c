import asyncio
import time
from typing import Callable, Optional

from backend import RedisBackend, SnapshotWriter
from broadcaster import Broadcaster
from constants import COMPACT_INTERVAL_SECONDS, MESSAGE_TTL_MS
from conversations import ConversationStore
from directory import IdentityDirectory
from logging_config import get_logger
from pairing import PairingCoordinator
from reconciliation import ReconciliationHandler
from registry import ConnectionRegistry

logger = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class ChatState:
    """Process-scoped state for one server: the three stores plus the components wired over them."""

    def __init__(self, clock: Callable[[], int] = now_ms, directory: Optional[IdentityDirectory] = None,
                 ttl_ms: int = MESSAGE_TTL_MS, compact_interval: float = COMPACT_INTERVAL_SECONDS,
                 backend: Optional[RedisBackend] = None):
        self.clock = clock
        self.compact_interval = compact_interval
        self.directory = directory or IdentityDirectory()
        self.registry = ConnectionRegistry(on_absent=self.directory.withdraw)
        self.store = ConversationStore(ttl_ms=ttl_ms)
        self.snapshots = SnapshotWriter(backend, self.directory, self.store, clock) if backend else None

        self.broadcaster = Broadcaster(self.registry, self.store, clock, on_change=self.mark_dirty)
        self.pairing = PairingCoordinator(self.directory, self.registry, self.store, self.broadcaster, clock,
                                          on_change=self.mark_dirty)
        self.reconciler = ReconciliationHandler(self.directory, self.registry, self.store, clock)
        self._compactor: Optional[asyncio.Task] = None

    def mark_dirty(self) -> None:
        if self.snapshots:
            self.snapshots.mark_dirty()

    def compact(self) -> int:
        dropped = self.store.compact_all(self.clock())
        if dropped:
            logger.info(f"Compaction dropped {dropped} expired messages")
            self.mark_dirty()
        return dropped

    async def _compact_forever(self) -> None:
        while True:
            await asyncio.sleep(self.compact_interval)
            self.compact()

    async def start(self) -> None:
        if self.snapshots:
            self.snapshots.load()
            self.snapshots.start()
        self._compactor = asyncio.create_task(self._compact_forever())
        logger.info(f"Chat state started (compaction every {self.compact_interval}s)")

    async def stop(self) -> None:
        if self._compactor is not None:
            self._compactor.cancel()
            try:
                await self._compactor
            except asyncio.CancelledError:
                pass
            self._compactor = None
        if self.snapshots:
            await self.snapshots.stop()
        logger.info("Chat state stopped")
