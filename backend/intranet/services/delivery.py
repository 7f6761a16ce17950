"""Per-room delivery of new and edited messages to subscribers.

Messages in temporary rooms are handed to local subscribers synchronously
from the sending request. Messages in persisted rooms travel as row-change
events over the realtime broker; each subscriber re-fetches the enriched
message before its callback runs.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from intranet.core.errors import RowParseError
from intranet.core.realtime import (
    BrokerSubscription,
    RealtimeBroker,
    RealtimeUnavailable,
    room_channel,
)
from intranet.schemas.chat import MessageRecord
from intranet.services.chat_store import is_temporary_id

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
MESSAGE_TABLE = "message"

MessageCallback = Callable[[MessageRecord], None]
MessageFetcher = Callable[[str], "MessageRecord | None"]


@dataclass
class _LocalHandlers:
    on_insert: MessageCallback
    on_update: MessageCallback | None


class Subscription:
    """Handle returned by ``DeliveryFanout.subscribe``; calling it unsubscribes."""

    def __init__(
        self,
        fanout: DeliveryFanout,
        room_id: str,
        handlers: _LocalHandlers,
        remote: BrokerSubscription | None,
    ):
        self.room_id = room_id
        self._fanout = fanout
        self._handlers = handlers
        self._remote = remote
        self._closed = False

    @property
    def remote_attached(self) -> bool:
        return self._remote is not None

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._fanout._remove_local(self.room_id, self._handlers)
        if self._remote is not None:
            try:
                self._remote.close()
            except Exception:
                logger.exception("Failed to close realtime subscription for room %s", self.room_id)
            self._remote = None

    __call__ = unsubscribe


class DeliveryFanout:
    def __init__(self, broker: RealtimeBroker, fetch_message: MessageFetcher):
        self.broker = broker
        self.fetch_message = fetch_message
        self._local: dict[str, list[_LocalHandlers]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        room_id: str,
        on_insert: MessageCallback,
        on_update: MessageCallback | None = None,
    ) -> Subscription:
        handlers = _LocalHandlers(on_insert=on_insert, on_update=on_update)
        with self._lock:
            self._local.setdefault(room_id, []).append(handlers)

        remote: BrokerSubscription | None = None
        if not is_temporary_id(room_id):
            try:
                remote = self.broker.subscribe(
                    room_channel(room_id),
                    lambda payload: self._handle_remote(room_id, handlers, payload),
                )
            except RealtimeUnavailable as exc:
                logger.warning("Room %s subscribed locally only: %s", room_id, exc)
        return Subscription(self, room_id, handlers, remote)

    def local_subscriber_count(self, room_id: str) -> int:
        with self._lock:
            return len(self._local.get(room_id, ()))

    def _remove_local(self, room_id: str, handlers: _LocalHandlers) -> None:
        with self._lock:
            entries = self._local.get(room_id)
            if not entries:
                return
            if handlers in entries:
                entries.remove(handlers)
            if not entries:
                del self._local[room_id]

    def _handle_remote(
        self, room_id: str, handlers: _LocalHandlers, payload: dict[str, Any]
    ) -> None:
        if payload.get("table", MESSAGE_TABLE) != MESSAGE_TABLE:
            return
        event = payload.get("event")
        record = payload.get("record") or {}
        message_id = record.get("id")
        if event not in (EVENT_INSERT, EVENT_UPDATE) or not message_id:
            logger.warning("Dropping malformed realtime event on room %s", room_id)
            return

        try:
            message = self.fetch_message(str(message_id))
        except (SQLAlchemyError, RowParseError) as exc:
            logger.warning("Dropping realtime event for message %s: %s", message_id, exc)
            return
        if message is None:
            logger.debug("Message %s no longer exists; event dropped", message_id)
            return

        _dispatch(handlers, event, message)

    def publish_local(self, room_id: str, message: MessageRecord, event: str = EVENT_INSERT) -> None:
        """Invoke local subscribers of ``room_id`` in registration order."""
        with self._lock:
            snapshot = list(self._local.get(room_id, ()))
        for handlers in snapshot:
            try:
                _dispatch(handlers, event, message)
            except Exception:
                logger.exception("Local subscriber failed for room %s", room_id)

    def publish_remote(self, room_id: str, event: str, record: dict[str, Any]) -> None:
        """Publish a row-change event for a persisted message."""
        payload = {"event": event, "table": MESSAGE_TABLE, "record": record}
        try:
            self.broker.publish(room_channel(room_id), payload)
        except RealtimeUnavailable as exc:
            logger.warning("Realtime publish failed for room %s: %s", room_id, exc)


def _dispatch(handlers: _LocalHandlers, event: str, message: MessageRecord) -> None:
    if event == EVENT_UPDATE:
        if handlers.on_update is not None:
            handlers.on_update(message)
        return
    handlers.on_insert(message)


class MessageTimeline:
    """Ordered view of a room's messages that tolerates replays.

    Inserting an id already present is a no-op. An update for an unknown id
    is inserted; an update no newer than the stored version is ignored.
    """

    def __init__(self, messages: list[MessageRecord] | None = None):
        self._messages: dict[str, MessageRecord] = {}
        self._order: dict[str, int] = {}
        for message in messages or ():
            self.merge(EVENT_INSERT, message)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def merge(self, event: str, message: MessageRecord) -> bool:
        """Apply one event. Returns True when the timeline changed."""
        existing = self._messages.get(message.id)
        if existing is None:
            self._order[message.id] = len(self._order)
            self._messages[message.id] = message
            return True
        if event != EVENT_UPDATE or message.updated_at <= existing.updated_at:
            return False
        self._messages[message.id] = message
        return True

    @property
    def messages(self) -> list[MessageRecord]:
        return sorted(
            self._messages.values(),
            key=lambda message: (message.created_at, self._order[message.id]),
        )


@dataclass(frozen=True)
class DeliveryEvent:
    event: str
    message: MessageRecord


class MessageStream:
    """Async iterator over a room's deliveries.

    Callbacks may fire on broker listener threads; they hand events to the
    owning event loop with ``call_soon_threadsafe``. Each event passes through
    a ``MessageTimeline`` so replays are not yielded twice.
    """

    def __init__(
        self,
        fanout: DeliveryFanout,
        room_id: str,
        timeline: MessageTimeline | None = None,
    ):
        self.room_id = room_id
        self.timeline = timeline or MessageTimeline()
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[DeliveryEvent | None] = asyncio.Queue()
        self._closed = False
        self._subscription = fanout.subscribe(
            room_id,
            on_insert=lambda message: self._push(EVENT_INSERT, message),
            on_update=lambda message: self._push(EVENT_UPDATE, message),
        )

    def _push(self, event: str, message: MessageRecord) -> None:
        if self._closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, DeliveryEvent(event, message))
        except RuntimeError:
            logger.debug("Stream for room %s dropped an event after loop shutdown", self.room_id)

    def __aiter__(self) -> MessageStream:
        return self

    async def __anext__(self) -> DeliveryEvent:
        while True:
            item = await self._queue.get()
            if item is None:
                raise StopAsyncIteration
            if self.timeline.merge(item.event, item.message):
                return item

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._subscription.unsubscribe()
        self._queue.put_nowait(None)

    async def __aenter__(self) -> MessageStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
