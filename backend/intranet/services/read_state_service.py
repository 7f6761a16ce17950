"""Per-participant read markers and unread counts."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from intranet.core.errors import CapabilityAbsent, ReadStateUpdateFailed
from intranet.models.employee import Employee
from intranet.models.shared import utc_now
from intranet.services.chat_runtime import ChatRuntime, get_chat_runtime

logger = logging.getLogger(__name__)


class ReadStateService:
    """Read markers follow the same store routing as rooms and messages.

    Marking read is best effort: failures are logged and reported as False.
    """

    def __init__(self, db: Session, runtime: ChatRuntime | None = None):
        self.db = db
        self.router = (runtime or get_chat_runtime()).router

    def mark_read(self, room_id: str, employee: Employee) -> bool:
        employee_id = str(employee.id)
        now = utc_now()
        try:
            return self.router.execute(
                self.db,
                lambda store: store.mark_read(room_id, employee_id, now),
                record_id=room_id,
            )
        except (CapabilityAbsent, SQLAlchemyError) as exc:
            failure = ReadStateUpdateFailed(exc)
            logger.warning(
                "Read state update failed for room %s, employee %s: %s",
                room_id,
                employee_id,
                failure,
            )
            return False

    def unread_count(self, room_id: str, employee: Employee) -> int:
        """Messages in the room created after the employee's read marker."""
        try:
            return self.router.execute(
                self.db,
                lambda store: store.unread_count(room_id, str(employee.id)),
                record_id=room_id,
            )
        except CapabilityAbsent:
            return 0
