from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """A stable user identity. Outlives any single connection."""

    id: str
    displayName: str
    inviteCode: str
    active: bool = True


class Message(BaseModel):
    """Immutable chat message. Liveness is derived from `sentAt`, never stored."""

    model_config = ConfigDict(frozen=True)

    id: str
    senderId: str
    roomId: str
    text: str
    sentAt: int = Field(..., description="Server time in ms since epoch")
    clientTimestamp: Optional[int] = None


class Conversation(BaseModel):
    roomId: str
    participantA: str
    participantB: str
    createdAt: int = 0
    messages: List[Message] = Field(default_factory=list)

    def has_participant(self, identity_id: str) -> bool:
        return identity_id in (self.participantA, self.participantB)

    def partner_of(self, identity_id: str) -> str:
        return self.participantB if identity_id == self.participantA else self.participantA
