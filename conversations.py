import itertools
from typing import Dict, Iterable, List, Optional

from constants import MESSAGE_MAX_CHARS, MESSAGE_TTL_MS
from errors import ForeignSender, InvalidPayload, RoomNotFound
from logging_config import get_logger
from models import Conversation, Message

logger = get_logger(__name__)

ROOM_ID_SEPARATOR = ":"


def room_id_for(identity_a: str, identity_b: str) -> str:
    """Deterministic, order-independent room id for a pair of identities."""
    return ROOM_ID_SEPARATOR.join(sorted((identity_a, identity_b)))


def is_live(message: Message, now: int, ttl_ms: int = MESSAGE_TTL_MS) -> bool:
    return now - message.sentAt < ttl_ms


class ConversationStore:
    """Conversations keyed by room id, each with an append-only, TTL-filtered log.

    Reads filter by TTL on every call; `compact` is the only thing that
    mutates a log, and it never removes the conversation itself.
    """

    def __init__(self, ttl_ms: int = MESSAGE_TTL_MS, max_text_chars: int = MESSAGE_MAX_CHARS):
        self.ttl_ms = ttl_ms
        self.max_text_chars = max_text_chars
        self._conversations: Dict[str, Conversation] = {}
        self._seq = itertools.count(1)

    def __len__(self) -> int:
        return len(self._conversations)

    def get(self, room_id: str) -> Optional[Conversation]:
        return self._conversations.get(room_id)

    def get_or_create(self, identity_a: str, identity_b: str, now: int = 0) -> Conversation:
        room_id = room_id_for(identity_a, identity_b)
        conversation = self._conversations.get(room_id)
        if conversation is None:
            first, second = sorted((identity_a, identity_b))
            conversation = Conversation(roomId=room_id, participantA=first, participantB=second, createdAt=now)
            self._conversations[room_id] = conversation
            logger.info(f"Created conversation {room_id}")
        return conversation

    def conversations_of(self, identity_id: str) -> List[Conversation]:
        return [c for c in self._conversations.values() if c.has_participant(identity_id)]

    def append(self, room_id: str, sender_id: str, text, sent_at: int,
               client_timestamp: Optional[int] = None) -> Message:
        conversation = self._conversations.get(room_id)
        if conversation is None:
            raise RoomNotFound()
        if not conversation.has_participant(sender_id):
            raise ForeignSender()
        if not isinstance(text, str) or not text.strip():
            raise InvalidPayload("Message text is empty")
        if len(text) > self.max_text_chars:
            raise InvalidPayload(f"Message text exceeds {self.max_text_chars} characters")

        message = Message(
            id=f"{sent_at}-{next(self._seq)}",
            senderId=sender_id,
            roomId=room_id,
            text=text,
            sentAt=sent_at,
            clientTimestamp=client_timestamp,
        )
        conversation.messages.append(message)
        self.compact(room_id, sent_at)
        return message

    def live_messages(self, room_id: str, now: int) -> List[Message]:
        conversation = self._conversations.get(room_id)
        if conversation is None:
            raise RoomNotFound()
        return [m for m in conversation.messages if is_live(m, now, self.ttl_ms)]

    def compact(self, room_id: str, now: int) -> int:
        conversation = self._conversations.get(room_id)
        if conversation is None:
            return 0
        kept = [m for m in conversation.messages if is_live(m, now, self.ttl_ms)]
        dropped = len(conversation.messages) - len(kept)
        if dropped:
            conversation.messages = kept
            logger.debug(f"Compacted {dropped} expired messages from {room_id}")
        return dropped

    def compact_all(self, now: int) -> int:
        return sum(self.compact(room_id, now) for room_id in list(self._conversations))

    def snapshot(self) -> List[dict]:
        return [c.model_dump() for c in self._conversations.values()]

    def restore(self, records: Iterable[dict]) -> int:
        count = 0
        for record in records:
            conversation = Conversation.model_validate(record)
            self._conversations[conversation.roomId] = conversation
            count += 1
        return count
