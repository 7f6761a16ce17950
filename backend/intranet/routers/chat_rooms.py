"""Chat room, participant and message API endpoints."""

import asyncio
import contextlib
import logging
from typing import NoReturn

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
)
from sqlalchemy.orm import Session

from intranet.core import database
from intranet.core.auth import (
    get_current_employee,
    principal_from_token,
    resolve_employee_or_raise,
)
from intranet.core.database import get_db
from intranet.core.errors import (
    IntranetError,
    MessageNotFound,
    MessageSendFailed,
    PermissionDenied,
    RoomCreationFailed,
    RoomNotFound,
    ValidationFailed,
)
from intranet.models.employee import Employee
from intranet.schemas.chat import (
    ChatRoomCreate,
    ChatRoomResponse,
    ChatRoomUpdate,
    MessageCreate,
    MessageRecord,
    MessageUpdate,
    ParticipantRecord,
    ParticipantRoleUpdate,
    ParticipantsAdd,
    ReactionToggle,
    ReactionToggleResponse,
    ReadStateResponse,
)
from intranet.services.chat_runtime import get_chat_runtime
from intranet.services.delivery import MessageStream
from intranet.services.message_service import MessageService
from intranet.services.read_state_service import ReadStateService
from intranet.services.room_service import RoomService

logger = logging.getLogger(__name__)

router = APIRouter()

WS_UNAUTHORIZED = 4401
WS_NOT_FOUND = 4404


def _raise_http(exc: IntranetError) -> NoReturn:
    if isinstance(exc, ValidationFailed):
        raise HTTPException(status_code=400, detail=str(exc)) from None
    if isinstance(exc, PermissionDenied):
        raise HTTPException(status_code=403, detail=str(exc)) from None
    if isinstance(exc, RoomNotFound | MessageNotFound):
        raise HTTPException(status_code=404, detail=str(exc)) from None
    if isinstance(exc, RoomCreationFailed | MessageSendFailed):
        logger.error("Chat persistence error: %s", exc.cause)
        raise HTTPException(status_code=503, detail=str(exc)) from None
    raise HTTPException(status_code=500, detail=str(exc)) from None


@router.post(
    "",
    response_model=ChatRoomResponse,
    status_code=201,
    summary="Create a chat room",
    responses={
        400: {"description": "Invalid room type, name or participants"},
        401: {"description": "Unauthorized – invalid or missing access token"},
        503: {"description": "Room could not be stored"},
    },
)
async def create_room(
    data: ChatRoomCreate,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> ChatRoomResponse:
    """Create a room; the caller joins as its admin."""
    service = RoomService(db)
    try:
        room = service.create_room(
            name=data.name,
            type=data.type,
            participants=data.participants,
            creator=employee,
            description=data.description,
            department_id=data.department_id,
        )
        return service.get_room(room.id, employee)
    except IntranetError as exc:
        _raise_http(exc)


@router.get(
    "",
    response_model=list[ChatRoomResponse],
    summary="List my chat rooms",
    responses={401: {"description": "Unauthorized – invalid or missing access token"}},
)
async def list_rooms(
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> list[ChatRoomResponse]:
    """List active rooms the caller belongs to, most recently active first."""
    return RoomService(db).list_rooms(employee)


@router.get(
    "/{room_id}",
    response_model=ChatRoomResponse,
    summary="Get a chat room",
    responses={
        401: {"description": "Unauthorized – invalid or missing access token"},
        404: {"description": "Chat room not found"},
    },
)
async def get_room(
    room_id: str,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> ChatRoomResponse:
    try:
        return RoomService(db).get_room(room_id, employee)
    except IntranetError as exc:
        _raise_http(exc)


@router.put(
    "/{room_id}",
    response_model=ChatRoomResponse,
    summary="Update a chat room",
    responses={
        400: {"description": "Invalid name or description"},
        401: {"description": "Unauthorized – invalid or missing access token"},
        403: {"description": "Caller is not a room admin"},
        404: {"description": "Chat room not found"},
    },
)
async def update_room(
    room_id: str,
    data: ChatRoomUpdate,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> ChatRoomResponse:
    service = RoomService(db)
    try:
        service.update_room(room_id, employee, name=data.name, description=data.description)
        return service.get_room(room_id, employee)
    except IntranetError as exc:
        _raise_http(exc)


@router.delete(
    "/{room_id}",
    status_code=204,
    summary="Deactivate a chat room",
    responses={
        401: {"description": "Unauthorized – invalid or missing access token"},
        403: {"description": "Caller is not a room admin"},
        404: {"description": "Chat room not found"},
    },
)
async def deactivate_room(
    room_id: str,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> None:
    try:
        RoomService(db).deactivate_room(room_id, employee)
    except IntranetError as exc:
        _raise_http(exc)


@router.post(
    "/{room_id}/participants",
    response_model=list[ParticipantRecord],
    status_code=201,
    summary="Add participants",
    responses={
        400: {"description": "Unknown employees or direct room"},
        403: {"description": "Caller is not a room admin"},
        404: {"description": "Chat room not found"},
    },
)
async def add_participants(
    room_id: str,
    data: ParticipantsAdd,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> list[ParticipantRecord]:
    try:
        return RoomService(db).add_participants(room_id, employee, data.employee_ids)
    except IntranetError as exc:
        _raise_http(exc)


@router.delete(
    "/{room_id}/participants/{employee_id}",
    response_model=ParticipantRecord,
    summary="Remove a participant or leave the room",
    responses={
        400: {"description": "Employee is not in the room"},
        403: {"description": "Caller is not a room admin"},
        404: {"description": "Chat room not found"},
    },
)
async def remove_participant(
    room_id: str,
    employee_id: str,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> ParticipantRecord:
    try:
        return RoomService(db).remove_participant(room_id, employee, employee_id)
    except IntranetError as exc:
        _raise_http(exc)


@router.put(
    "/{room_id}/participants/{employee_id}",
    response_model=ParticipantRecord,
    summary="Change a participant's role",
    responses={
        400: {"description": "Employee is not in the room"},
        403: {"description": "Caller is not a room admin or targets themself"},
        404: {"description": "Chat room not found"},
    },
)
async def change_participant_role(
    room_id: str,
    employee_id: str,
    data: ParticipantRoleUpdate,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> ParticipantRecord:
    try:
        return RoomService(db).change_participant_role(room_id, employee, employee_id, data.role)
    except IntranetError as exc:
        _raise_http(exc)


@router.post(
    "/{room_id}/read",
    response_model=ReadStateResponse,
    summary="Mark the room as read",
    responses={404: {"description": "Chat room not found"}},
)
async def mark_read(
    room_id: str,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> ReadStateResponse:
    service = ReadStateService(db)
    try:
        ok = service.mark_read(room_id, employee)
        return ReadStateResponse(
            room_id=room_id, ok=ok, unread_count=service.unread_count(room_id, employee)
        )
    except IntranetError as exc:
        _raise_http(exc)


@router.get(
    "/{room_id}/messages",
    response_model=list[MessageRecord],
    summary="List messages",
    responses={404: {"description": "Chat room not found"}},
)
async def list_messages(
    room_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> list[MessageRecord]:
    """Return the newest messages of the room, oldest first."""
    try:
        return MessageService(db).list_messages(room_id, employee, limit=limit)
    except IntranetError as exc:
        _raise_http(exc)


@router.post(
    "/{room_id}/messages",
    response_model=MessageRecord,
    status_code=201,
    summary="Send a message",
    responses={
        400: {"description": "Empty content or invalid reply target"},
        403: {"description": "Caller is not a participant"},
        404: {"description": "Chat room not found"},
        503: {"description": "Message could not be stored"},
    },
)
async def send_message(
    room_id: str,
    data: MessageCreate,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> MessageRecord:
    try:
        return MessageService(db).append_message(
            room_id=room_id,
            sender=employee,
            content=data.content,
            message_type=data.message_type,
            file_url=data.file_url,
            file_name=data.file_name,
            file_size=data.file_size,
            reply_to_id=data.reply_to_id,
        )
    except IntranetError as exc:
        _raise_http(exc)


@router.put(
    "/{room_id}/messages/{message_id}",
    response_model=MessageRecord,
    summary="Edit a message",
    responses={
        403: {"description": "Caller is not the sender"},
        404: {"description": "Message not found"},
    },
)
async def edit_message(
    room_id: str,
    message_id: str,
    data: MessageUpdate,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> MessageRecord:
    try:
        return MessageService(db).edit_message(message_id, employee, data.content, room_id=room_id)
    except IntranetError as exc:
        _raise_http(exc)


@router.post(
    "/{room_id}/messages/{message_id}/reactions",
    response_model=ReactionToggleResponse,
    summary="Toggle a reaction",
    responses={
        400: {"description": "Reactions unavailable for temporary messages"},
        403: {"description": "Caller is not a participant"},
        404: {"description": "Message not found"},
    },
)
async def toggle_reaction(
    room_id: str,
    message_id: str,
    data: ReactionToggle,
    db: Session = Depends(get_db),
    employee: Employee = Depends(get_current_employee),
) -> ReactionToggleResponse:
    try:
        active = MessageService(db).toggle_reaction(
            message_id, employee, data.reaction, room_id=room_id
        )
    except IntranetError as exc:
        _raise_http(exc)
    return ReactionToggleResponse(message_id=message_id, reaction=data.reaction, active=active)


async def _close_on_disconnect(websocket: WebSocket, stream: MessageStream) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await stream.aclose()


@router.websocket("/{room_id}/stream")
async def stream_messages(websocket: WebSocket, room_id: str, token: str | None = None) -> None:
    """Push new and edited messages of a room to a connected client."""
    db = database.new_session()
    try:
        principal = principal_from_token(token)
        employee = resolve_employee_or_raise(db, principal)
        RoomService(db).get_room(room_id, employee)
    except HTTPException:
        await websocket.close(code=WS_UNAUTHORIZED)
        return
    except IntranetError:
        await websocket.close(code=WS_NOT_FOUND)
        return
    finally:
        db.close()

    stream = MessageStream(get_chat_runtime().fanout, room_id)
    await websocket.accept()
    watcher = asyncio.create_task(_close_on_disconnect(websocket, stream))
    try:
        async for item in stream:
            await websocket.send_json(
                {"event": item.event, "message": item.message.model_dump(mode="json")}
            )
    except WebSocketDisconnect:
        logger.debug("Stream client for room %s went away", room_id)
    finally:
        await stream.aclose()
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
