"""Chat storage interface and its SQL implementation.

Every store speaks in ``RoomRecord``/``ParticipantRecord``/``MessageRecord``
and string ids. Persisted ids are UUIDs; ids minted by the in-memory store
carry ``TEMP_ID_PREFIX`` and never parse as UUIDs.
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from intranet.core.errors import MessageNotFound, RoomNotFound, RowParseError
from intranet.models.employee import Employee
from intranet.models.message import Message, MessageType
from intranet.repositories.chat_room_repository import ChatRoomRepository
from intranet.repositories.message_reaction_repository import MessageReactionRepository
from intranet.repositories.message_repository import MessageRepository
from intranet.repositories.participant_repository import ParticipantRepository
from intranet.schemas.chat import MessageRecord, ParticipantRecord, RoomRecord, SenderInfo

TEMP_ID_PREFIX = "temp_"

# undefined_table, invalid_recursion (RLS policy loop), insufficient_privilege
CAPABILITY_ABSENT_PGCODES = frozenset({"42P01", "42P17", "42501"})
CAPABILITY_ABSENT_MARKERS = ("does not exist", "no such table", "policy", "infinite recursion")


def is_temporary_id(value: str | None) -> bool:
    return value is not None and str(value).startswith(TEMP_ID_PREFIX)


def new_temporary_id(now: datetime) -> str:
    return f"{TEMP_ID_PREFIX}{int(now.timestamp() * 1000)}_{secrets.token_hex(4)}"


def is_capability_absent(exc: BaseException) -> bool:
    """True when a database error means the chat tables are unusable.

    Matches missing relations and row-level-security rejections, not
    connectivity failures.
    """
    if not isinstance(exc, ProgrammingError | OperationalError):
        return False
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in CAPABILITY_ABSENT_PGCODES:
        return True
    text = str(orig if orig is not None else exc).lower()
    if isinstance(exc, OperationalError):
        return "no such table" in text
    return any(marker in text for marker in CAPABILITY_ABSENT_MARKERS)


def parse_uuid(value: str | UUID | None) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _to_record(record_type: type[BaseModel], row: Any, **extra: Any) -> Any:
    try:
        record = record_type.model_validate(row)
    except ValidationError as exc:
        raise RowParseError(f"Malformed {record_type.__name__} row: {exc}") from exc
    if extra:
        record = record.model_copy(update=extra)
    return record


class ChatStore(ABC):
    """Storage operations needed by the room, message and read-state services."""

    @abstractmethod
    def create_room(
        self,
        *,
        name: str,
        type: str,
        hospital_id: str,
        creator_id: str,
        participant_ids: list[str],
        description: str | None = None,
        department_id: str | None = None,
    ) -> RoomRecord: ...

    @abstractmethod
    def get_room(self, room_id: str) -> RoomRecord | None: ...

    @abstractmethod
    def list_rooms_for_employee(self, employee_id: str) -> list[RoomRecord]: ...

    @abstractmethod
    def update_room(
        self, room_id: str, *, name: str | None = None, description: str | None = None
    ) -> RoomRecord: ...

    @abstractmethod
    def deactivate_room(self, room_id: str) -> RoomRecord: ...

    @abstractmethod
    def get_participant(self, room_id: str, employee_id: str) -> ParticipantRecord | None: ...

    @abstractmethod
    def list_participants(self, room_id: str) -> list[ParticipantRecord]: ...

    @abstractmethod
    def add_participants(self, room_id: str, employee_ids: list[str]) -> list[ParticipantRecord]: ...

    @abstractmethod
    def deactivate_participant(self, room_id: str, employee_id: str) -> ParticipantRecord: ...

    @abstractmethod
    def set_participant_role(
        self, room_id: str, employee_id: str, role: str
    ) -> ParticipantRecord: ...

    @abstractmethod
    def append_message(
        self,
        *,
        room_id: str,
        sender: SenderInfo | None,
        content: str,
        message_type: str = MessageType.TEXT.value,
        file_url: str | None = None,
        file_name: str | None = None,
        file_size: int | None = None,
        reply_to_id: str | None = None,
    ) -> MessageRecord: ...

    @abstractmethod
    def get_message(self, message_id: str) -> MessageRecord | None: ...

    @abstractmethod
    def list_messages(self, room_id: str, limit: int = 50) -> list[MessageRecord]: ...

    @abstractmethod
    def update_message(self, message_id: str, content: str) -> MessageRecord: ...

    @abstractmethod
    def mark_read(self, room_id: str, employee_id: str, when: datetime) -> bool: ...

    @abstractmethod
    def unread_count(self, room_id: str, employee_id: str) -> int: ...


def sender_info(employee: Employee | None) -> SenderInfo | None:
    if employee is None:
        return None
    return _to_record(SenderInfo, employee)


class RemoteChatStore(ChatStore):
    """Chat storage backed by the SQL tables."""

    def __init__(self, db: Session):
        self.db = db
        self.room_repo = ChatRoomRepository(db)
        self.participant_repo = ParticipantRepository(db)
        self.message_repo = MessageRepository(db)
        self.reaction_repo = MessageReactionRepository(db)

    def _room_uuid(self, room_id: str) -> UUID:
        parsed = parse_uuid(room_id)
        if parsed is None:
            raise RoomNotFound(f"Chat room {room_id} not found")
        return parsed

    def _message_record(self, message: Message, sender: Employee | None) -> MessageRecord:
        return _to_record(MessageRecord, message, sender=sender_info(sender))

    def create_room(
        self,
        *,
        name: str,
        type: str,
        hospital_id: str,
        creator_id: str,
        participant_ids: list[str],
        description: str | None = None,
        department_id: str | None = None,
    ) -> RoomRecord:
        room, _ = self.room_repo.create_with_participants(
            name=name,
            type=type,
            hospital_id=UUID(hospital_id),
            creator_id=UUID(creator_id),
            participant_ids=[UUID(p) for p in participant_ids],
            description=description,
            department_id=parse_uuid(department_id),
        )
        return _to_record(RoomRecord, room)

    def get_room(self, room_id: str) -> RoomRecord | None:
        parsed = parse_uuid(room_id)
        if parsed is None:
            return None
        room = self.room_repo.get_by_id(parsed)
        return _to_record(RoomRecord, room) if room is not None else None

    def list_rooms_for_employee(self, employee_id: str) -> list[RoomRecord]:
        rooms = self.room_repo.get_for_employee(UUID(employee_id))
        return [_to_record(RoomRecord, room) for room in rooms]

    def update_room(
        self, room_id: str, *, name: str | None = None, description: str | None = None
    ) -> RoomRecord:
        room = self.room_repo.get_by_id(self._room_uuid(room_id))
        if room is None:
            raise RoomNotFound(f"Chat room {room_id} not found")
        return _to_record(
            RoomRecord, self.room_repo.update(room, name=name, description=description)
        )

    def deactivate_room(self, room_id: str) -> RoomRecord:
        room = self.room_repo.get_by_id(self._room_uuid(room_id))
        if room is None:
            raise RoomNotFound(f"Chat room {room_id} not found")
        return _to_record(RoomRecord, self.room_repo.deactivate(room))

    def get_participant(self, room_id: str, employee_id: str) -> ParticipantRecord | None:
        room_uuid, employee_uuid = parse_uuid(room_id), parse_uuid(employee_id)
        if room_uuid is None or employee_uuid is None:
            return None
        participant = self.participant_repo.get(room_uuid, employee_uuid)
        return _to_record(ParticipantRecord, participant) if participant is not None else None

    def list_participants(self, room_id: str) -> list[ParticipantRecord]:
        rows = self.participant_repo.get_for_room(self._room_uuid(room_id))
        return [_to_record(ParticipantRecord, row) for row in rows]

    def add_participants(self, room_id: str, employee_ids: list[str]) -> list[ParticipantRecord]:
        rows = self.participant_repo.add_or_reactivate(
            self._room_uuid(room_id), [UUID(e) for e in employee_ids]
        )
        return [_to_record(ParticipantRecord, row) for row in rows]

    def deactivate_participant(self, room_id: str, employee_id: str) -> ParticipantRecord:
        participant = self.participant_repo.get(self._room_uuid(room_id), UUID(employee_id))
        if participant is None:
            raise RoomNotFound(f"Employee {employee_id} is not in room {room_id}")
        return _to_record(ParticipantRecord, self.participant_repo.deactivate(participant))

    def set_participant_role(
        self, room_id: str, employee_id: str, role: str
    ) -> ParticipantRecord:
        participant = self.participant_repo.get(self._room_uuid(room_id), UUID(employee_id))
        if participant is None:
            raise RoomNotFound(f"Employee {employee_id} is not in room {room_id}")
        return _to_record(ParticipantRecord, self.participant_repo.set_role(participant, role))

    def append_message(
        self,
        *,
        room_id: str,
        sender: SenderInfo | None,
        content: str,
        message_type: str = MessageType.TEXT.value,
        file_url: str | None = None,
        file_name: str | None = None,
        file_size: int | None = None,
        reply_to_id: str | None = None,
    ) -> MessageRecord:
        message = self.message_repo.create(
            room_id=self._room_uuid(room_id),
            sender_id=UUID(sender.id) if sender is not None else None,
            content=content,
            message_type=message_type,
            file_url=file_url,
            file_name=file_name,
            file_size=file_size,
            reply_to_id=parse_uuid(reply_to_id),
        )
        record = self.get_message(str(message.id))
        if record is None:
            raise MessageNotFound(f"Message {message.id} vanished after insert")
        return record

    def get_message(self, message_id: str) -> MessageRecord | None:
        parsed = parse_uuid(message_id)
        if parsed is None:
            return None
        row = self.message_repo.get_with_sender(parsed)
        if row is None:
            return None
        return self._message_record(*row)

    def list_messages(self, room_id: str, limit: int = 50) -> list[MessageRecord]:
        rows = self.message_repo.get_for_room(self._room_uuid(room_id), limit=limit)
        return [self._message_record(message, sender) for message, sender in rows]

    def update_message(self, message_id: str, content: str) -> MessageRecord:
        parsed = parse_uuid(message_id)
        message = self.message_repo.get_by_id(parsed) if parsed is not None else None
        if message is None:
            raise MessageNotFound(f"Message {message_id} not found")
        self.message_repo.update_content(message, content)
        record = self.get_message(message_id)
        if record is None:
            raise MessageNotFound(f"Message {message_id} not found")
        return record

    def mark_read(self, room_id: str, employee_id: str, when: datetime) -> bool:
        return self.participant_repo.touch_last_read(
            self._room_uuid(room_id), UUID(employee_id), when
        )

    def unread_count(self, room_id: str, employee_id: str) -> int:
        participant = self.participant_repo.get(self._room_uuid(room_id), UUID(employee_id))
        if participant is None:
            return 0
        return self.message_repo.count_after(
            participant.room_id,  # type: ignore[arg-type]
            participant.last_read_at,  # type: ignore[arg-type]
        )

    def toggle_reaction(self, message_id: str, employee_id: str, reaction: str) -> bool:
        """Add the reaction, or remove it if present. Returns True when added."""
        parsed = parse_uuid(message_id)
        if parsed is None:
            raise MessageNotFound(f"Message {message_id} not found")
        existing = self.reaction_repo.get(parsed, UUID(employee_id), reaction)
        if existing is not None:
            self.reaction_repo.delete(existing)
            return False
        self.reaction_repo.create(parsed, UUID(employee_id), reaction)
        return True
