"""Process-local chat store used while the chat tables are unavailable.

Rooms, participants and messages live only as long as the process and are
bounded: the least recently active rooms are evicted with everything
attached to them, and each room keeps only its newest messages.
"""

from __future__ import annotations

import threading
from collections import OrderedDict, deque
from datetime import datetime

from intranet.core.errors import MessageNotFound, RoomNotFound
from intranet.models.chat_room_participant import ParticipantRole
from intranet.models.message import MessageType
from intranet.models.shared import utc_now
from intranet.schemas.chat import MessageRecord, ParticipantRecord, RoomRecord, SenderInfo
from intranet.services.chat_store import ChatStore, new_temporary_id


class InMemoryChatStore(ChatStore):
    def __init__(self, max_rooms: int = 500, max_messages_per_room: int = 1000):
        self.max_rooms = max_rooms
        self.max_messages_per_room = max_messages_per_room
        self._lock = threading.RLock()
        self._rooms: OrderedDict[str, RoomRecord] = OrderedDict()
        self._participants: dict[str, dict[str, ParticipantRecord]] = {}
        self._messages: dict[str, deque[MessageRecord]] = {}
        self._message_rooms: dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def clear(self) -> None:
        with self._lock:
            self._rooms.clear()
            self._participants.clear()
            self._messages.clear()
            self._message_rooms.clear()

    # ── Rooms ─────────────────────────────────────────────────────

    def _require_room(self, room_id: str) -> RoomRecord:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFound(f"Chat room {room_id} not found")
        return room

    def _evict_least_recent(self) -> None:
        while len(self._rooms) >= self.max_rooms:
            room_id, _ = self._rooms.popitem(last=False)
            self._participants.pop(room_id, None)
            for message in self._messages.pop(room_id, ()):
                self._message_rooms.pop(message.id, None)

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
        now = utc_now()
        room = RoomRecord(
            id=new_temporary_id(now),
            name=name,
            description=description,
            type=type,
            hospital_id=hospital_id,
            department_id=department_id,
            creator_id=creator_id,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        members = {
            creator_id: ParticipantRecord(
                room_id=room.id,
                employee_id=creator_id,
                role=ParticipantRole.ADMIN,
                joined_at=now,
                last_read_at=now,
            )
        }
        for employee_id in participant_ids:
            members.setdefault(
                employee_id,
                ParticipantRecord(
                    room_id=room.id,
                    employee_id=employee_id,
                    role=ParticipantRole.MEMBER,
                    joined_at=now,
                    last_read_at=now,
                ),
            )

        with self._lock:
            self._evict_least_recent()
            self._rooms[room.id] = room
            self._participants[room.id] = members
            self._messages[room.id] = deque()
        return room

    def get_room(self, room_id: str) -> RoomRecord | None:
        with self._lock:
            return self._rooms.get(room_id)

    def list_rooms_for_employee(self, employee_id: str) -> list[RoomRecord]:
        with self._lock:
            rooms = [
                room
                for room_id, room in self._rooms.items()
                if room.is_active
                and (member := self._participants.get(room_id, {}).get(employee_id)) is not None
                and member.is_active
            ]
        return sorted(rooms, key=lambda room: room.updated_at, reverse=True)

    def update_room(
        self, room_id: str, *, name: str | None = None, description: str | None = None
    ) -> RoomRecord:
        changes: dict[str, object] = {"updated_at": utc_now()}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        with self._lock:
            room = self._require_room(room_id).model_copy(update=changes)
            self._rooms[room_id] = room
        return room

    def deactivate_room(self, room_id: str) -> RoomRecord:
        with self._lock:
            room = self._require_room(room_id).model_copy(
                update={"is_active": False, "updated_at": utc_now()}
            )
            self._rooms[room_id] = room
        return room

    # ── Participants ──────────────────────────────────────────────

    def get_participant(self, room_id: str, employee_id: str) -> ParticipantRecord | None:
        with self._lock:
            return self._participants.get(room_id, {}).get(employee_id)

    def list_participants(self, room_id: str) -> list[ParticipantRecord]:
        with self._lock:
            self._require_room(room_id)
            members = self._participants.get(room_id, {}).values()
            return [member for member in members if member.is_active]

    def add_participants(self, room_id: str, employee_ids: list[str]) -> list[ParticipantRecord]:
        now = utc_now()
        touched: list[ParticipantRecord] = []
        with self._lock:
            self._require_room(room_id)
            members = self._participants.setdefault(room_id, {})
            for employee_id in employee_ids:
                existing = members.get(employee_id)
                if existing is not None and existing.is_active:
                    continue
                if existing is None:
                    member = ParticipantRecord(
                        room_id=room_id,
                        employee_id=employee_id,
                        role=ParticipantRole.MEMBER,
                        joined_at=now,
                        last_read_at=now,
                    )
                else:
                    member = existing.model_copy(
                        update={"is_active": True, "role": ParticipantRole.MEMBER}
                    )
                members[employee_id] = member
                touched.append(member)
        return touched

    def _replace_participant(self, room_id: str, employee_id: str, **changes: object) -> ParticipantRecord:
        with self._lock:
            self._require_room(room_id)
            members = self._participants.get(room_id, {})
            existing = members.get(employee_id)
            if existing is None:
                raise RoomNotFound(f"Employee {employee_id} is not in room {room_id}")
            member = existing.model_copy(update=changes)
            members[employee_id] = member
        return member

    def deactivate_participant(self, room_id: str, employee_id: str) -> ParticipantRecord:
        return self._replace_participant(room_id, employee_id, is_active=False)

    def set_participant_role(
        self, room_id: str, employee_id: str, role: str
    ) -> ParticipantRecord:
        return self._replace_participant(room_id, employee_id, role=ParticipantRole(role))

    # ── Messages ──────────────────────────────────────────────────

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
        now = utc_now()
        message = MessageRecord(
            id=new_temporary_id(now),
            room_id=room_id,
            sender_id=sender.id if sender is not None else None,
            content=content,
            message_type=message_type,
            file_url=file_url,
            file_name=file_name,
            file_size=file_size,
            reply_to_id=reply_to_id,
            is_edited=False,
            created_at=now,
            updated_at=now,
            sender=sender,
        )
        with self._lock:
            room = self._require_room(room_id)
            messages = self._messages.setdefault(room_id, deque())
            while len(messages) >= self.max_messages_per_room:
                dropped = messages.popleft()
                self._message_rooms.pop(dropped.id, None)
            messages.append(message)
            self._message_rooms[message.id] = room_id
            self._rooms[room_id] = room.model_copy(update={"updated_at": now})
            self._rooms.move_to_end(room_id)
        return message

    def get_message(self, message_id: str) -> MessageRecord | None:
        with self._lock:
            room_id = self._message_rooms.get(message_id)
            if room_id is None:
                return None
            for message in self._messages.get(room_id, ()):
                if message.id == message_id:
                    return message
        return None

    def list_messages(self, room_id: str, limit: int = 50) -> list[MessageRecord]:
        with self._lock:
            self._require_room(room_id)
            messages = list(self._messages.get(room_id, ()))
        if limit <= 0:
            return []
        return messages[-limit:]

    def update_message(self, message_id: str, content: str) -> MessageRecord:
        with self._lock:
            room_id = self._message_rooms.get(message_id)
            messages = self._messages.get(room_id, deque()) if room_id is not None else deque()
            for index, message in enumerate(messages):
                if message.id == message_id:
                    updated = message.model_copy(
                        update={"content": content, "is_edited": True, "updated_at": utc_now()}
                    )
                    messages[index] = updated
                    return updated
        raise MessageNotFound(f"Message {message_id} not found")

    # ── Read state ────────────────────────────────────────────────

    def mark_read(self, room_id: str, employee_id: str, when: datetime) -> bool:
        with self._lock:
            members = self._participants.get(room_id, {})
            existing = members.get(employee_id)
            if existing is None:
                return False
            members[employee_id] = existing.model_copy(update={"last_read_at": when})
        return True

    def unread_count(self, room_id: str, employee_id: str) -> int:
        with self._lock:
            member = self._participants.get(room_id, {}).get(employee_id)
            if member is None:
                return 0
            return sum(
                1
                for message in self._messages.get(room_id, ())
                if message.created_at > member.last_read_at
            )
