"""Process-wide chat objects: the in-memory store, the router and the fanout."""

from __future__ import annotations

from intranet.core import database
from intranet.core.config import settings
from intranet.core.realtime import RealtimeBroker, get_broker
from intranet.schemas.chat import MessageRecord
from intranet.services.chat_store import RemoteChatStore
from intranet.services.delivery import DeliveryFanout
from intranet.services.memory_chat_store import InMemoryChatStore
from intranet.services.storage_router import StorageRouter


class ChatRuntime:
    def __init__(
        self,
        broker: RealtimeBroker,
        memory: InMemoryChatStore | None = None,
        fallback_enabled: bool = True,
    ):
        self.memory = memory or InMemoryChatStore()
        self.router = StorageRouter(self.memory, fallback_enabled=fallback_enabled)
        self.fanout = DeliveryFanout(broker, self._fetch_remote_message)

    def _fetch_remote_message(self, message_id: str) -> MessageRecord | None:
        db = database.new_session()
        try:
            return RemoteChatStore(db).get_message(message_id)
        finally:
            db.close()


_runtime: ChatRuntime | None = None


def get_chat_runtime() -> ChatRuntime:
    global _runtime
    if _runtime is None:
        _runtime = ChatRuntime(
            get_broker(),
            InMemoryChatStore(
                max_rooms=settings.CHAT_FALLBACK_MAX_ROOMS,
                max_messages_per_room=settings.CHAT_FALLBACK_MAX_MESSAGES_PER_ROOM,
            ),
            fallback_enabled=settings.CHAT_FALLBACK_ENABLED,
        )
    return _runtime


def reset_chat_runtime() -> None:
    """Drop the cached runtime. Used for testing."""
    global _runtime
    _runtime = None
