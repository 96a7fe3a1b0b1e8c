from typing import Callable

from conversations import ConversationStore
from directory import IdentityDirectory
from errors import UnregisteredSender
from logging_config import get_logger
from registry import ConnectionRegistry
from schemas.events import ChatEntry, ChatsLoaded

logger = get_logger(__name__)


class ReconciliationHandler:
    """Rebuilds an identity's view of its conversations for a (re)connecting handle.

    The returned snapshot is authoritative: it lists every conversation the
    server knows for the identity with only the messages still live. Clients
    merge it by message id and drop rooms the server does not list.
    """

    def __init__(self, directory: IdentityDirectory, registry: ConnectionRegistry,
                 store: ConversationStore, clock: Callable[[], int]):
        self.directory = directory
        self.registry = registry
        self.store = store
        self.clock = clock

    def reconcile(self, handle, identity_id: str) -> ChatsLoaded:
        if identity_id not in self.directory:
            raise UnregisteredSender()
        self.registry.bind(handle, identity_id)

        now = self.clock()
        chats = []
        for conversation in sorted(self.store.conversations_of(identity_id), key=lambda c: c.createdAt):
            self.registry.join(handle, conversation.roomId)
            partner_id = conversation.partner_of(identity_id)
            partner = self.directory.get(partner_id)
            chats.append(ChatEntry(
                roomId=conversation.roomId,
                partnerId=partner_id,
                partnerName=partner.displayName if partner else f"User_{partner_id[:8]}",
                messages=self.store.live_messages(conversation.roomId, now),
            ))

        logger.debug(f"Reconciled {handle} for {identity_id}: {len(chats)} chats")
        return ChatsLoaded(chats=chats)
