"""Sending, reading and editing chat messages."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from intranet.core.errors import (
    CapabilityAbsent,
    MessageNotFound,
    MessageSendFailed,
    PermissionDenied,
    RoomNotFound,
    ValidationFailed,
)
from intranet.models.employee import Employee
from intranet.models.message import MessageType
from intranet.schemas.chat import MessageRecord
from intranet.services.chat_runtime import ChatRuntime, get_chat_runtime
from intranet.services.chat_store import ChatStore, RemoteChatStore, is_temporary_id, sender_info
from intranet.services.delivery import EVENT_INSERT, EVENT_UPDATE

logger = logging.getLogger(__name__)

ATTACHMENT_TYPES = frozenset({MessageType.FILE, MessageType.IMAGE})
MAX_PAGE_SIZE = 200


def message_row(message: MessageRecord) -> dict[str, Any]:
    """Raw row payload for realtime events; sender details are fetched by subscribers."""
    return message.model_dump(mode="json", exclude={"sender"})


class MessageService:
    def __init__(self, db: Session, runtime: ChatRuntime | None = None):
        self.db = db
        self.runtime = runtime or get_chat_runtime()
        self.router = self.runtime.router
        self.fanout = self.runtime.fanout

    def _deliver(self, message: MessageRecord, event: str) -> None:
        if is_temporary_id(message.id):
            self.fanout.publish_local(message.room_id, message, event)
        else:
            self.fanout.publish_remote(message.room_id, event, message_row(message))

    def append_message(
        self,
        *,
        room_id: str,
        sender: Employee | None,
        content: str,
        message_type: str | MessageType = MessageType.TEXT,
        file_url: str | None = None,
        file_name: str | None = None,
        file_size: int | None = None,
        reply_to_id: str | None = None,
    ) -> MessageRecord:
        """Append a message to a room and deliver it to subscribers.

        ``sender`` is None exactly for system messages. Messages in
        temporary rooms reach local subscribers before this returns;
        messages in persisted rooms are published on the broker.
        """
        try:
            kind = MessageType(message_type)
        except ValueError:
            raise ValidationFailed(f"Unknown message type: {message_type}") from None

        content = content or ""
        if not content.strip() and not (kind in ATTACHMENT_TYPES and file_url):
            raise ValidationFailed("Message content is required")
        if sender is None and kind != MessageType.SYSTEM:
            raise ValidationFailed("Only system messages may omit the sender")
        if sender is not None and kind == MessageType.SYSTEM:
            raise ValidationFailed("System messages cannot be sent by an employee")

        info = sender_info(sender)

        def op(store: ChatStore) -> MessageRecord:
            room = store.get_room(room_id)
            if room is None:
                raise RoomNotFound(f"Chat room {room_id} not found")
            if not room.is_active:
                raise ValidationFailed("This chat room is no longer active")
            if info is not None:
                participant = store.get_participant(room_id, info.id)
                if participant is None or not participant.is_active:
                    raise PermissionDenied("Sender is not a participant of this room")
            if reply_to_id is not None:
                target = store.get_message(reply_to_id)
                if target is None or target.room_id != room_id:
                    raise ValidationFailed("Reply target is not in this room")
            return store.append_message(
                room_id=room_id,
                sender=info,
                content=content,
                message_type=kind.value,
                file_url=file_url,
                file_name=file_name,
                file_size=file_size,
                reply_to_id=reply_to_id,
            )

        try:
            message = self.router.execute(self.db, op, record_id=room_id)
        except CapabilityAbsent as exc:
            raise MessageSendFailed(exc.cause or exc) from exc
        except SQLAlchemyError as exc:
            raise MessageSendFailed(exc) from exc

        logger.debug("Message %s appended to room %s", message.id, room_id)
        self._deliver(message, EVENT_INSERT)
        return message

    def list_messages(self, room_id: str, viewer: Employee, limit: int = 50) -> list[MessageRecord]:
        """The newest ``limit`` messages of a room, oldest first."""
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationFailed(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        def op(store: ChatStore) -> list[MessageRecord]:
            room = store.get_room(room_id)
            participant = store.get_participant(room_id, str(viewer.id))
            if room is None or participant is None or not participant.is_active:
                raise RoomNotFound(f"Chat room {room_id} not found")
            return store.list_messages(room_id, limit=limit)

        try:
            return self.router.execute(self.db, op, record_id=room_id)
        except CapabilityAbsent:
            raise RoomNotFound(f"Chat room {room_id} not found") from None

    def edit_message(
        self,
        message_id: str,
        editor: Employee,
        content: str,
        room_id: str | None = None,
    ) -> MessageRecord:
        if not (content or "").strip():
            raise ValidationFailed("Message content is required")

        def op(store: ChatStore) -> MessageRecord:
            message = store.get_message(message_id)
            if message is None:
                raise MessageNotFound(f"Message {message_id} not found")
            if room_id is not None and message.room_id != room_id:
                raise MessageNotFound(f"Message {message_id} not found")
            if message.sender_id != str(editor.id):
                raise PermissionDenied("Only the sender can edit a message")
            return store.update_message(message_id, content)

        try:
            updated = self.router.execute(self.db, op, record_id=message_id)
        except CapabilityAbsent:
            raise MessageNotFound(f"Message {message_id} not found") from None

        self._deliver(updated, EVENT_UPDATE)
        return updated

    def toggle_reaction(
        self,
        message_id: str,
        employee: Employee,
        reaction: str,
        room_id: str | None = None,
    ) -> bool:
        """Add ``reaction`` to a message, or remove it if already present.

        Returns True when the reaction is now present.
        """
        reaction = (reaction or "").strip()
        if not reaction:
            raise ValidationFailed("Reaction is required")
        if is_temporary_id(message_id):
            raise ValidationFailed("Reactions are not available for temporary messages")

        def op(store: ChatStore) -> bool:
            if not isinstance(store, RemoteChatStore):
                raise ValidationFailed("Reactions are not available for temporary messages")
            message = store.get_message(message_id)
            if message is None:
                raise MessageNotFound(f"Message {message_id} not found")
            if room_id is not None and message.room_id != room_id:
                raise MessageNotFound(f"Message {message_id} not found")
            participant = store.get_participant(message.room_id, str(employee.id))
            if participant is None or not participant.is_active:
                raise PermissionDenied("Only room participants can react")
            return store.toggle_reaction(message_id, str(employee.id), reaction)

        try:
            return self.router.execute(self.db, op, record_id=message_id)
        except CapabilityAbsent as exc:
            raise MessageSendFailed(exc.cause or exc) from exc
        except SQLAlchemyError as exc:
            raise MessageSendFailed(exc) from exc
