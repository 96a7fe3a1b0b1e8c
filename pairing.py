from typing import Callable, Optional

from pydantic import BaseModel

from broadcaster import Broadcaster
from conversations import ConversationStore, room_id_for
from directory import IdentityDirectory
from errors import InvalidCode, PartyUnavailable, SelfPair
from logging_config import get_logger
from models import Conversation, Identity
from registry import ConnectionRegistry
from schemas.events import ChatConnected

logger = get_logger(__name__)


class PairResult(BaseModel):
    conversation: Conversation
    requester: Identity
    target: Identity
    created: bool
    notified: int = 0

    @property
    def room_id(self) -> str:
        return self.conversation.roomId


class PairingCoordinator:
    def __init__(self, directory: IdentityDirectory, registry: ConnectionRegistry, store: ConversationStore,
                 broadcaster: Broadcaster, clock: Callable[[], int],
                 on_change: Optional[Callable[[], None]] = None):
        self.directory = directory
        self.registry = registry
        self.store = store
        self.broadcaster = broadcaster
        self.clock = clock
        self.on_change = on_change

    def view_for(self, conversation: Conversation, identity_id: str, now: int) -> ChatConnected:
        partner_id = conversation.partner_of(identity_id)
        partner = self.directory.get(partner_id)
        return ChatConnected(
            roomId=conversation.roomId,
            partnerId=partner_id,
            partnerName=partner.displayName if partner else f"User_{partner_id[:8]}",
            messages=self.store.live_messages(conversation.roomId, now),
        )

    async def pair(self, requester_id: str, invite_code) -> PairResult:
        target = self.directory.resolve_invite(invite_code)
        if target is None:
            logger.warning(f"Pairing rejected for {requester_id}: unknown invite code {invite_code!r}")
            raise InvalidCode()
        if target.id == requester_id:
            raise SelfPair()

        requester = self.directory.get(requester_id)
        if requester is None or not requester.active or not target.active:
            logger.warning(f"Pairing rejected: {requester_id} -> {target.id} has an unavailable party")
            raise PartyUnavailable()

        existed = self.store.get(room_id_for(requester_id, target.id)) is not None
        now = self.clock()
        conversation = self.store.get_or_create(requester_id, target.id, now)
        joined = self.broadcaster.join_participants(conversation)
        if not existed and self.on_change:
            self.on_change()

        logger.info(f"Chat connected: {requester.displayName} <-> {target.displayName} "
                    f"in {conversation.roomId} (new={not existed}, joined={joined})")

        deliveries = [
            (self.registry.live_handles_of(identity_id), self.view_for(conversation, identity_id, now).model_dump())
            for identity_id in (requester.id, target.id)
        ]
        notified = 0
        for handles, payload in deliveries:
            notified += await self.broadcaster.deliver(handles, payload)

        return PairResult(conversation=conversation, requester=requester, target=target,
                          created=not existed, notified=notified)
