"""Chat routes — open a room, post a message, mark a message read."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from backend.auth import get_session
from backend.deps import get_store
from backend.models.chat import CreateRoomRequest, RoomResponse, SendChatMessageRequest
from backend.models.session import SessionContext
from backend.services.chat import ROOMS, ChatActions
from engine.recordsync.transport import DocumentNotFound, DocumentStore

router = APIRouter(prefix="/api/chat", tags=["chat"])


async def _require_participant(actions: ChatActions, room_id: str, session: SessionContext) -> None:
    if room_id == actions.global_room_id:
        return
    room = await actions.store.get(ROOMS, room_id)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat room not found.")
    if session.user_id not in (room.data.get("participants") or []):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a participant of this room.")


@router.post("/rooms", status_code=200)
async def open_room(
    req: CreateRoomRequest,
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> RoomResponse:
    """Get or create the direct room between the current user and another."""
    if req.other_user_id == session.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot open a chat with yourself.")
    return await ChatActions(store).get_or_create_room(session.user_id, req.other_user_id)


@router.post("/rooms/{room_id}/messages", status_code=201)
async def send_message(
    room_id: str,
    req: SendChatMessageRequest,
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> dict[str, str]:
    actions = ChatActions(store)
    await _require_participant(actions, room_id, session)
    try:
        message_id = await actions.send_message(room_id, session, req.text, receiver_id=req.receiver_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return {"id": message_id}


@router.post("/rooms/{room_id}/messages/{message_id}/read", status_code=204)
async def mark_message_read(
    room_id: str,
    message_id: str,
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
) -> Response:
    actions = ChatActions(store)
    await _require_participant(actions, room_id, session)
    try:
        await actions.mark_read(room_id, message_id, session.user_id)
    except DocumentNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found.") from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
