import uuid
from datetime import datetime
from typing import Callable, Dict, Optional, Set

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)


class Connection:
    """One live socket. Distinct from the identity it speaks for."""

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None):
        self.id = connection_id or str(uuid.uuid4())
        self.websocket = websocket
        self.connected_at = datetime.now().isoformat()

    async def send_json(self, payload: dict) -> None:
        await self.websocket.send_json(payload)

    def __repr__(self) -> str:
        return f"Connection({self.id[:8]})"


class ConnectionRegistry:
    """Identity <-> live connection handles (1:N) and room broadcast groups.

    Handles are keyed by object, so anything hashable with an ``id`` and an
    async ``send_json`` can be registered.
    """

    def __init__(self, on_absent: Optional[Callable[[str], None]] = None):
        self.on_absent = on_absent
        # identity id -> live handles
        self._handles: Dict[str, Set] = {}
        # handle -> identity id
        self._identity_of: Dict[object, str] = {}
        # room id -> handles joined to its broadcast group
        self._groups: Dict[str, Set] = {}
        # handle -> room ids it has joined
        self._rooms_of: Dict[object, Set[str]] = {}

    def bind(self, handle, identity_id: str) -> None:
        current = self._identity_of.get(handle)
        if current == identity_id:
            return
        if current is not None:
            logger.info(f"Rebinding {handle} from {current} to {identity_id}")
            self.unbind(handle)
        self._identity_of[handle] = identity_id
        self._handles.setdefault(identity_id, set()).add(handle)
        logger.debug(f"Bound {handle} to {identity_id} (live handles: {len(self._handles[identity_id])})")

    def unbind(self, handle) -> Optional[str]:
        """Forget a handle and drop it from every group. Returns the identity it was bound to."""
        for room_id in self._rooms_of.pop(handle, set()):
            members = self._groups.get(room_id)
            if members is not None:
                members.discard(handle)
                if not members:
                    del self._groups[room_id]

        identity_id = self._identity_of.pop(handle, None)
        if identity_id is None:
            return None
        handles = self._handles.get(identity_id)
        if handles is not None:
            handles.discard(handle)
            if not handles:
                del self._handles[identity_id]
                logger.info(f"Identity {identity_id} is now absent")
                if self.on_absent:
                    self.on_absent(identity_id)
        return identity_id

    def identity_of(self, handle) -> Optional[str]:
        return self._identity_of.get(handle)

    def live_handles_of(self, identity_id: str) -> Set:
        return set(self._handles.get(identity_id, ()))

    def is_present(self, identity_id: str) -> bool:
        return bool(self._handles.get(identity_id))

    def join(self, handle, room_id: str) -> bool:
        """Add a handle to a room group. Returns True if it was not a member yet."""
        members = self._groups.setdefault(room_id, set())
        if handle in members:
            return False
        members.add(handle)
        self._rooms_of.setdefault(handle, set()).add(room_id)
        return True

    def members(self, room_id: str) -> Set:
        return set(self._groups.get(room_id, ()))

    def rooms_of(self, handle) -> Set[str]:
        return set(self._rooms_of.get(handle, ()))

    def connection_count(self) -> int:
        return len(self._identity_of)

    def present_identity_count(self) -> int:
        return len(self._handles)
