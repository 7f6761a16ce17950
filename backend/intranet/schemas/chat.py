"""Pydantic schemas for chat rooms, participants and messages.

``RoomRecord``, ``ParticipantRecord`` and ``MessageRecord`` are the storage
boundary shapes: both the SQL store and the in-memory store return them, so
callers never see ORM rows or ad-hoc dicts.
"""

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from intranet.models.chat_room import ChatRoomType
from intranet.models.chat_room_participant import ParticipantRole
from intranet.models.message import MessageType

SYSTEM_SENDER_ID = "system"


def _as_str(value: Any) -> Any:
    return str(value) if value is not None else None


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


RecordId = Annotated[str, BeforeValidator(_as_str)]
UtcDatetime = Annotated[datetime, BeforeValidator(_as_utc)]


class SenderInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: RecordId
    name: str
    email: str
    position: str | None = None


class RoomRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: RecordId
    name: str
    description: str | None = None
    type: ChatRoomType
    hospital_id: RecordId
    department_id: RecordId | None = None
    creator_id: RecordId
    is_active: bool = True
    created_at: UtcDatetime
    updated_at: UtcDatetime


class ParticipantRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_id: RecordId
    employee_id: RecordId
    role: ParticipantRole
    is_active: bool = True
    joined_at: UtcDatetime
    last_read_at: UtcDatetime
    employee: SenderInfo | None = None


class MessageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: RecordId
    room_id: RecordId
    sender_id: str
    content: str
    message_type: MessageType = MessageType.TEXT
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    reply_to_id: RecordId | None = None
    is_edited: bool = False
    created_at: UtcDatetime
    updated_at: UtcDatetime
    sender: SenderInfo | None = None

    @field_validator("sender_id", mode="before")
    @classmethod
    def _system_sender(cls, value: Any) -> Any:
        return SYSTEM_SENDER_ID if value is None else str(value)


# ── Requests ──────────────────────────────────────────────────────


class ChatRoomCreate(BaseModel):
    name: str = Field(default="", max_length=50)
    type: ChatRoomType = ChatRoomType.GROUP
    description: str | None = Field(default=None, max_length=200)
    department_id: str | None = None
    participants: list[str] = Field(default_factory=list)


class ChatRoomUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=200)


class ParticipantsAdd(BaseModel):
    employee_ids: list[str] = Field(min_length=1)


class ParticipantRoleUpdate(BaseModel):
    role: ParticipantRole


class MessageCreate(BaseModel):
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    file_url: str | None = None
    file_name: str | None = Field(default=None, max_length=255)
    file_size: int | None = Field(default=None, ge=0)
    reply_to_id: str | None = None

    @field_validator("message_type")
    @classmethod
    def _no_system(cls, value: MessageType) -> MessageType:
        if value == MessageType.SYSTEM:
            raise ValueError("system messages cannot be posted")
        return value


class MessageUpdate(BaseModel):
    content: str = Field(min_length=1)


class ReactionToggle(BaseModel):
    reaction: str = Field(min_length=1, max_length=32)


# ── Responses ─────────────────────────────────────────────────────


class ChatRoomResponse(RoomRecord):
    participants: list[ParticipantRecord] = Field(default_factory=list)
    unread_count: int = 0
    temporary: bool = False


class ReactionToggleResponse(BaseModel):
    message_id: str
    reaction: str
    active: bool


class ReadStateResponse(BaseModel):
    room_id: str
    ok: bool
    unread_count: int
