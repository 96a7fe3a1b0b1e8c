from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from models import Message


# Client -> server

class ClientEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RegisterRequest(ClientEvent):
    userId: Optional[str] = Field(default=None, max_length=128, pattern=r"^[A-Za-z0-9_\-]+$")
    displayName: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None

    def profile(self) -> dict:
        return self.model_dump(include={"displayName", "firstName", "lastName"}, exclude_none=True)


class GetChatsRequest(ClientEvent):
    identityId: Optional[str] = Field(default=None, validation_alias=AliasChoices("identityId", "userId"))


class ConnectWithCodeRequest(ClientEvent):
    inviteCode: str
    myIdentityId: Optional[str] = Field(default=None, validation_alias=AliasChoices("myIdentityId", "myUserId"))


class SendMessageRequest(ClientEvent):
    roomId: str
    text: str = Field(validation_alias=AliasChoices("text", "message"))
    clientTimestamp: Optional[int] = Field(default=None, validation_alias=AliasChoices("clientTimestamp", "timestamp"))


class TypingRequest(ClientEvent):
    roomId: str
    isTyping: bool = True


# Server -> client

class Registered(BaseModel):
    type: str = "registered"
    identityId: str
    displayName: str
    inviteCode: str


class ChatEntry(BaseModel):
    roomId: str
    partnerId: str
    partnerName: str
    messages: List[Message] = Field(default_factory=list)


class ChatsLoaded(BaseModel):
    type: str = "chatsLoaded"
    chats: List[ChatEntry] = Field(default_factory=list)


class ChatConnected(ChatEntry):
    type: str = "chatConnected"


class NewMessage(Message):
    type: str = "newMessage"

    @classmethod
    def from_message(cls, message: Message) -> "NewMessage":
        return cls(**message.model_dump())


class UserTyping(BaseModel):
    type: str = "userTyping"
    roomId: str
    userId: str
    isTyping: bool
