class ChatError(Exception):
    """Client-input error reported to the originating connection via an `error` event."""

    code = "ChatError"
    default_message = "Request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_event(self) -> dict:
        return {"type": "error", "code": self.code, "message": self.message}


class InvalidCode(ChatError):
    code = "InvalidCode"
    default_message = "Invalid invite code"


class SelfPair(ChatError):
    code = "SelfPair"
    default_message = "Cannot use your own invite code"


class PartyUnavailable(ChatError):
    code = "PartyUnavailable"
    default_message = "User is not available"


class RoomNotFound(ChatError):
    code = "RoomNotFound"
    default_message = "Chat room not found"


class UnregisteredSender(ChatError):
    code = "UnregisteredSender"
    default_message = "Connection is not registered"


class ForeignSender(ChatError):
    code = "ForeignSender"
    default_message = "Sender is not a participant of this chat"


class InvalidPayload(ChatError):
    code = "InvalidPayload"
    default_message = "Malformed event payload"


class UnknownEvent(ChatError):
    code = "UnknownEvent"
    default_message = "Unknown event type"
