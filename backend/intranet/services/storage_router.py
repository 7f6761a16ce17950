"""Chooses between the SQL chat store and the in-memory store.

The router starts on the SQL store. It switches to degraded mode, for the
rest of the process, either when a one-time table check finds the chat
tables missing or when an operation fails with a capability-absent error.
Records with temporary ids always go to the in-memory store.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from intranet.core.errors import CapabilityAbsent
from intranet.services.chat_store import (
    ChatStore,
    RemoteChatStore,
    is_capability_absent,
    is_temporary_id,
)
from intranet.services.memory_chat_store import InMemoryChatStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

REQUIRED_TABLES = ("chat_room", "chat_room_participant", "message")


class StorageRouter:
    def __init__(self, memory: InMemoryChatStore, fallback_enabled: bool = True):
        self.memory = memory
        self.fallback_enabled = fallback_enabled
        self._degraded = False
        self._checked = False
        self._lock = threading.Lock()

    @property
    def degraded(self) -> bool:
        return self._degraded

    def mark_degraded(self, reason: object) -> None:
        with self._lock:
            if self._degraded:
                return
            self._degraded = True
        logger.warning("Chat storage switched to in-memory fallback: %s", reason)

    def check_tables(self, db: Session) -> None:
        """Check once per process that the chat tables exist."""
        if self._checked or not self.fallback_enabled:
            return
        self._checked = True
        try:
            tables = set(inspect(db.get_bind()).get_table_names())
        except SQLAlchemyError as exc:
            logger.warning("Chat table check failed: %s", exc)
            return
        missing = [name for name in REQUIRED_TABLES if name not in tables]
        if missing:
            self.mark_degraded(f"missing tables {', '.join(missing)}")

    def remote(self, db: Session) -> RemoteChatStore:
        return RemoteChatStore(db)

    def store_for(self, db: Session, record_id: str | None = None) -> ChatStore:
        if record_id is not None:
            return self.memory if is_temporary_id(record_id) else self.remote(db)
        self.check_tables(db)
        return self.memory if self._degraded else self.remote(db)

    def execute(
        self,
        db: Session,
        op: Callable[[ChatStore], T],
        record_id: str | None = None,
    ) -> T:
        """Run ``op`` against the store that owns ``record_id``.

        Without a ``record_id`` (new rooms, room listings) a capability-absent
        failure on the SQL store is retried on the in-memory store. With a
        persisted ``record_id`` it surfaces as ``CapabilityAbsent``, since that
        record cannot exist in memory.
        """
        store = self.store_for(db, record_id)
        if store is self.memory:
            return op(store)
        try:
            return op(store)
        except SQLAlchemyError as exc:
            db.rollback()
            if not (self.fallback_enabled and is_capability_absent(exc)):
                raise
            self.mark_degraded(exc)
            if record_id is not None:
                raise CapabilityAbsent(exc) from exc
            return op(self.memory)
