from pydantic import BaseModel
from typing import List


class RoomParticipant(BaseModel):
    identity_id: str
    display_name: str
    online: bool
    connections: int

class RoomDetailsResponse(BaseModel):
    room_id: str
    created_at: int
    participants: List[RoomParticipant]
    live_message_count: int
    online_connections: int

class InviteLookupResponse(BaseModel):
    identity_id: str
    display_name: str

class IdentityStateResponse(BaseModel):
    identity_id: str
    display_name: str
    active: bool

class ServerStatusResponse(BaseModel):
    message: str
    active_users: int
    connections: int
    conversations: int

class HealthResponse(BaseModel):
    status: str
    timestamp: str
