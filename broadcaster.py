import asyncio
from typing import Callable, Iterable, Optional

from conversations import ConversationStore
from errors import ForeignSender, RoomNotFound, UnregisteredSender
from logging_config import get_logger
from models import Conversation, Message
from registry import ConnectionRegistry
from schemas.events import NewMessage, UserTyping

logger = get_logger(__name__)


class Broadcaster:
    """Validates send/typing events and fans them out to room groups.

    All state changes for an event happen before the first await, so on a
    single event loop each event is atomic relative to the others and rooms
    see messages in processing order.
    """

    def __init__(self, registry: ConnectionRegistry, store: ConversationStore,
                 clock: Callable[[], int], on_change: Optional[Callable[[], None]] = None):
        self.registry = registry
        self.store = store
        self.clock = clock
        self.on_change = on_change

    def sender_of(self, handle) -> str:
        identity_id = self.registry.identity_of(handle)
        if identity_id is None:
            raise UnregisteredSender()
        return identity_id

    def _room_for(self, sender_id: str, room_id: str) -> Conversation:
        conversation = self.store.get(room_id)
        if conversation is None:
            raise RoomNotFound()
        if not conversation.has_participant(sender_id):
            raise ForeignSender()
        return conversation

    def join_participants(self, conversation: Conversation) -> int:
        """Join every live handle of both participants to the room group."""
        joined = 0
        for identity_id in (conversation.participantA, conversation.participantB):
            for handle in self.registry.live_handles_of(identity_id):
                if self.registry.join(handle, conversation.roomId):
                    joined += 1
        return joined

    async def send(self, handle, room_id: str, text, client_timestamp: Optional[int] = None) -> Message:
        sender_id = self.sender_of(handle)
        conversation = self._room_for(sender_id, room_id)
        message = self.store.append(room_id, sender_id, text, self.clock(), client_timestamp)
        self.join_participants(conversation)
        recipients = self.registry.members(room_id)
        if self.on_change:
            self.on_change()

        logger.debug(f"Message {message.id} in room {room_id} to {len(recipients)} connections")
        await self.deliver(recipients, NewMessage.from_message(message).model_dump())
        return message

    async def typing(self, handle, room_id: str, is_typing: bool) -> None:
        sender_id = self.sender_of(handle)
        self._room_for(sender_id, room_id)
        own = self.registry.live_handles_of(sender_id)
        recipients = self.registry.members(room_id) - own
        event = UserTyping(roomId=room_id, userId=sender_id, isTyping=bool(is_typing))
        await self.deliver(recipients, event.model_dump())

    async def deliver(self, handles: Iterable, payload: dict) -> int:
        """Send one payload to many handles concurrently. Dead handles are unbound."""
        handles = list(handles)
        if not handles:
            return 0
        results = await asyncio.gather(*[h.send_json(payload) for h in handles], return_exceptions=True)

        delivered = 0
        for handle, result in zip(handles, results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending {payload.get('type')} to {handle}: {result}")
                self.registry.unbind(handle)
            else:
                delivered += 1
        return delivered
