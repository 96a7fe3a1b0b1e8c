from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import RoomDetailsResponse, RoomParticipant
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, request: Request):
    """
    Get room details: participants, presence and the number of live messages.

    Message contents are never exposed here; they are only delivered over the
    websocket to participants.
    """
    state = request.app.state.chat
    conversation = state.store.get(room_id)
    if conversation is None:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    participants = []
    for identity_id in (conversation.participantA, conversation.participantB):
        identity = state.directory.get(identity_id)
        handles = state.registry.live_handles_of(identity_id)
        participants.append(RoomParticipant(
            identity_id=identity_id,
            display_name=identity.displayName if identity else f"User_{identity_id[:8]}",
            online=bool(handles),
            connections=len(handles),
        ))

    live_count = len(state.store.live_messages(room_id, state.clock()))
    logger.info(f"Room details retrieved for {room_id}: {live_count} live messages")

    return RoomDetailsResponse(
        room_id=room_id,
        created_at=conversation.createdAt,
        participants=participants,
        live_message_count=live_count,
        online_connections=len(state.registry.members(room_id)),
    )
