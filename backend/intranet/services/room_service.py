"""Chat room creation, listing and membership management."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from intranet.core.errors import (
    CapabilityAbsent,
    PermissionDenied,
    RoomCreationFailed,
    RoomNotFound,
    ValidationFailed,
)
from intranet.models.chat_room import ChatRoomType
from intranet.models.chat_room_participant import ParticipantRole
from intranet.models.employee import Employee
from intranet.models.message import MessageType
from intranet.repositories.department_repository import DepartmentRepository
from intranet.repositories.employee_repository import EmployeeRepository
from intranet.schemas.chat import ChatRoomResponse, ParticipantRecord, RoomRecord
from intranet.services.chat_runtime import ChatRuntime, get_chat_runtime
from intranet.services.chat_store import ChatStore, is_temporary_id, parse_uuid, sender_info

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ROOM_NAME_LENGTH = 50
MAX_ROOM_DESCRIPTION_LENGTH = 200


def _parse_employee_ids(values: Iterable[str | UUID]) -> list[UUID]:
    parsed: list[UUID] = []
    for value in values:
        try:
            employee_id = value if isinstance(value, UUID) else UUID(str(value))
        except ValueError:
            raise ValidationFailed(f"Invalid employee id: {value}") from None
        if employee_id not in parsed:
            parsed.append(employee_id)
    return parsed


class RoomService:
    def __init__(self, db: Session, runtime: ChatRuntime | None = None):
        self.db = db
        self.runtime = runtime or get_chat_runtime()
        self.router = self.runtime.router
        self.employee_repo = EmployeeRepository(db)
        self.department_repo = DepartmentRepository(db)

    def _run(self, room_id: str, op: Callable[[ChatStore], T]) -> T:
        try:
            return self.router.execute(self.db, op, record_id=room_id)
        except CapabilityAbsent:
            raise RoomNotFound(f"Chat room {room_id} not found") from None

    def _check_tenant_members(self, employee_ids: list[UUID], hospital_id: UUID) -> None:
        found = {e.id for e in self.employee_repo.get_many(employee_ids, hospital_id)}
        missing = [str(e) for e in employee_ids if e not in found]
        if missing:
            raise ValidationFailed(f"Not employees of this hospital: {', '.join(missing)}")

    def create_room(
        self,
        *,
        name: str,
        type: str | ChatRoomType,
        participants: Iterable[str | UUID],
        creator: Employee,
        description: str | None = None,
        department_id: str | UUID | None = None,
    ) -> RoomRecord:
        """Create a room in the creator's hospital.

        The creator joins as ``admin`` and every other participant as
        ``member``. When the chat tables are unavailable the room is created
        in the in-memory store with a temporary id and a welcome message.
        """
        try:
            room_type = ChatRoomType(type)
        except ValueError:
            raise ValidationFailed(f"Unknown room type: {type}") from None

        hospital_id: UUID = creator.hospital_id  # type: ignore[assignment]
        creator_id: UUID = creator.id  # type: ignore[assignment]
        name = (name or "").strip()
        if description is not None and len(description) > MAX_ROOM_DESCRIPTION_LENGTH:
            raise ValidationFailed(
                f"Description must be at most {MAX_ROOM_DESCRIPTION_LENGTH} characters"
            )

        member_ids = [e for e in _parse_employee_ids(participants) if e != creator_id]
        department_uuid: UUID | None = None

        if room_type == ChatRoomType.DIRECT:
            if len(member_ids) != 1:
                raise ValidationFailed("A direct room needs exactly one other participant")
            self._check_tenant_members(member_ids, hospital_id)
            if not name:
                other = self.employee_repo.get_by_id(member_ids[0])
                name = str(other.name) if other is not None else ""
        elif room_type == ChatRoomType.DEPARTMENT:
            if not department_id:
                raise ValidationFailed("A department room needs a department")
            try:
                department_uuid = UUID(str(department_id))
            except ValueError:
                raise ValidationFailed(f"Invalid department id: {department_id}") from None
            department = self.department_repo.get_by_id(department_uuid, hospital_id)
            if department is None:
                raise ValidationFailed(f"Department {department_id} not found")
            self._check_tenant_members(member_ids, hospital_id)
            for employee in self.employee_repo.get_active_by_department(
                hospital_id, department_uuid
            ):
                if employee.id != creator_id and employee.id not in member_ids:
                    member_ids.append(employee.id)  # type: ignore[arg-type]
            if not name:
                name = f"{department.name} chat"
        else:
            self._check_tenant_members(member_ids, hospital_id)

        if not name:
            raise ValidationFailed("Room name is required")
        if len(name) > MAX_ROOM_NAME_LENGTH:
            raise ValidationFailed(f"Room name must be at most {MAX_ROOM_NAME_LENGTH} characters")
        if not member_ids:
            raise ValidationFailed("A room needs at least one participant besides the creator")

        try:
            room = self.router.execute(
                self.db,
                lambda store: store.create_room(
                    name=name,
                    type=room_type.value,
                    hospital_id=str(hospital_id),
                    creator_id=str(creator_id),
                    participant_ids=[str(e) for e in member_ids],
                    description=description,
                    department_id=str(department_uuid) if department_uuid else None,
                ),
            )
        except SQLAlchemyError as exc:
            raise RoomCreationFailed(exc) from exc

        if is_temporary_id(room.id):
            welcome = self.router.memory.append_message(
                room_id=room.id,
                sender=None,
                content=f"{creator.name} created the chat room.",
                message_type=MessageType.SYSTEM.value,
            )
            self.runtime.fanout.publish_local(room.id, welcome)

        logger.info(
            "Chat room %s (%s) created by %s with %d participants",
            room.id,
            room_type.value,
            creator_id,
            len(member_ids) + 1,
        )
        return room

    def _with_employees(self, participants: list[ParticipantRecord]) -> list[ParticipantRecord]:
        ids = [u for u in (parse_uuid(p.employee_id) for p in participants) if u is not None]
        employees = {str(e.id): e for e in self.employee_repo.get_many(ids)}
        return [
            p.model_copy(update={"employee": sender_info(employees.get(p.employee_id))})
            for p in participants
        ]

    def _response(self, store: ChatStore, room: RoomRecord, employee_id: str) -> ChatRoomResponse:
        return ChatRoomResponse(
            **room.model_dump(),
            participants=self._with_employees(store.list_participants(room.id)),
            unread_count=store.unread_count(room.id, employee_id),
            temporary=is_temporary_id(room.id),
        )

    def list_rooms(self, employee: Employee) -> list[ChatRoomResponse]:
        """Active rooms the employee belongs to, most recently active first."""
        employee_id = str(employee.id)

        def op(store: ChatStore) -> list[ChatRoomResponse]:
            return [
                self._response(store, room, employee_id)
                for room in store.list_rooms_for_employee(employee_id)
            ]

        return self.router.execute(self.db, op)

    def _membership(
        self, store: ChatStore, room_id: str, employee_id: str
    ) -> tuple[RoomRecord, ParticipantRecord]:
        room = store.get_room(room_id)
        if room is None or not room.is_active:
            raise RoomNotFound(f"Chat room {room_id} not found")
        participant = store.get_participant(room_id, employee_id)
        if participant is None or not participant.is_active:
            raise RoomNotFound(f"Chat room {room_id} not found")
        return room, participant

    def _require_admin(
        self, store: ChatStore, room_id: str, actor: Employee
    ) -> tuple[RoomRecord, ParticipantRecord]:
        room, participant = self._membership(store, room_id, str(actor.id))
        if participant.role != ParticipantRole.ADMIN:
            raise PermissionDenied("Only room admins can do this")
        return room, participant

    def get_room(self, room_id: str, employee: Employee) -> ChatRoomResponse:
        def op(store: ChatStore) -> ChatRoomResponse:
            room, _ = self._membership(store, room_id, str(employee.id))
            return self._response(store, room, str(employee.id))

        return self._run(room_id, op)

    def update_room(
        self,
        room_id: str,
        actor: Employee,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> RoomRecord:
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailed("Room name is required")
            if len(name) > MAX_ROOM_NAME_LENGTH:
                raise ValidationFailed(
                    f"Room name must be at most {MAX_ROOM_NAME_LENGTH} characters"
                )
        if description is not None and len(description) > MAX_ROOM_DESCRIPTION_LENGTH:
            raise ValidationFailed(
                f"Description must be at most {MAX_ROOM_DESCRIPTION_LENGTH} characters"
            )

        def op(store: ChatStore) -> RoomRecord:
            self._require_admin(store, room_id, actor)
            return store.update_room(room_id, name=name, description=description)

        return self._run(room_id, op)

    def deactivate_room(self, room_id: str, actor: Employee) -> RoomRecord:
        def op(store: ChatStore) -> RoomRecord:
            self._require_admin(store, room_id, actor)
            return store.deactivate_room(room_id)

        room = self._run(room_id, op)
        logger.info("Chat room %s deactivated by %s", room_id, actor.id)
        return room

    def add_participants(
        self, room_id: str, actor: Employee, employee_ids: Iterable[str | UUID]
    ) -> list[ParticipantRecord]:
        """Add members, reactivating any that were previously removed."""
        parsed = _parse_employee_ids(employee_ids)
        if not parsed:
            raise ValidationFailed("No participants given")

        def op(store: ChatStore) -> list[ParticipantRecord]:
            room, _ = self._require_admin(store, room_id, actor)
            if room.type == ChatRoomType.DIRECT:
                raise ValidationFailed("Direct rooms cannot gain participants")
            self._check_tenant_members(parsed, UUID(room.hospital_id))
            return store.add_participants(room_id, [str(e) for e in parsed])

        return self._run(room_id, op)

    def remove_participant(
        self, room_id: str, actor: Employee, employee_id: str | UUID
    ) -> ParticipantRecord:
        """Soft-remove a member. Anyone may remove themself; others need admin."""
        target_id = str(_parse_employee_ids([employee_id])[0])

        def op(store: ChatStore) -> ParticipantRecord:
            if target_id == str(actor.id):
                self._membership(store, room_id, target_id)
            else:
                self._require_admin(store, room_id, actor)
                target = store.get_participant(room_id, target_id)
                if target is None or not target.is_active:
                    raise ValidationFailed(f"Employee {target_id} is not in this room")
            return store.deactivate_participant(room_id, target_id)

        return self._run(room_id, op)

    def change_participant_role(
        self,
        room_id: str,
        actor: Employee,
        employee_id: str | UUID,
        role: str | ParticipantRole,
    ) -> ParticipantRecord:
        target_id = str(_parse_employee_ids([employee_id])[0])
        if target_id == str(actor.id):
            raise PermissionDenied("You cannot change your own role")
        try:
            new_role = ParticipantRole(role)
        except ValueError:
            raise ValidationFailed(f"Unknown participant role: {role}") from None

        def op(store: ChatStore) -> ParticipantRecord:
            self._require_admin(store, room_id, actor)
            target = store.get_participant(room_id, target_id)
            if target is None or not target.is_active:
                raise ValidationFailed(f"Employee {target_id} is not in this room")
            return store.set_participant_role(room_id, target_id, new_role.value)

        return self._run(room_id, op)
