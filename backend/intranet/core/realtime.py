"""Realtime broker used to fan row-change events out to room subscribers.

``MemoryBroker`` dispatches in-process and is selected when ``REDIS_URL`` is
``memory://``; ``RedisBroker`` uses Redis pub/sub so every API instance sees
events published by the others.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
from typing import Any

import redis

from intranet.core.config import settings

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], None]

REDIS_DISABLED_URL = "memory://"


class RealtimeUnavailable(Exception):
    """The broker could not publish or open a subscription."""


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


class BrokerSubscription(ABC):
    @abstractmethod
    def close(self) -> None:
        """Stop receiving events. Safe to call more than once."""


class RealtimeBroker(ABC):
    @abstractmethod
    def publish(self, channel: str, payload: dict[str, Any]) -> None: ...

    @abstractmethod
    def subscribe(self, channel: str, handler: EventHandler) -> BrokerSubscription: ...

    def close(self) -> None:  # noqa: B027
        pass


class _MemorySubscription(BrokerSubscription):
    def __init__(self, broker: MemoryBroker, channel: str, handler: EventHandler):
        self._broker = broker
        self._channel = channel
        self._handler = handler
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broker._remove(self._channel, self._handler)


class MemoryBroker(RealtimeBroker):
    """Synchronous in-process broker."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

    def publish(self, channel: str, payload: dict[str, Any]) -> None:
        with self._lock:
            handlers = list(self._handlers.get(channel, ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Realtime handler failed on channel %s", channel)

    def subscribe(self, channel: str, handler: EventHandler) -> BrokerSubscription:
        with self._lock:
            self._handlers[channel].append(handler)
        return _MemorySubscription(self, channel, handler)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._handlers.get(channel, ()))

    def _remove(self, channel: str, handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.get(channel)
            if not handlers:
                return
            if handler in handlers:
                handlers.remove(handler)
            if not handlers:
                del self._handlers[channel]


class _RedisSubscription(BrokerSubscription):
    def __init__(self, pubsub: Any, thread: Any):
        self._pubsub = pubsub
        self._thread = thread
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._thread.stop()
            self._pubsub.close()
        except redis.RedisError as exc:
            logger.warning("Error closing realtime subscription: %s", exc)


class RedisBroker(RealtimeBroker):
    """Redis pub/sub broker; each subscription runs its own listener thread."""

    def __init__(self, url: str, client: redis.Redis | None = None):
        self._client = client or redis.Redis.from_url(url)

    def publish(self, channel: str, payload: dict[str, Any]) -> None:
        try:
            self._client.publish(channel, json.dumps(payload, default=str))
        except redis.RedisError as exc:
            raise RealtimeUnavailable(str(exc)) from exc

    def subscribe(self, channel: str, handler: EventHandler) -> BrokerSubscription:
        def _on_message(message: dict[str, Any]) -> None:
            data = message.get("data")
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            try:
                payload = json.loads(data) if isinstance(data, str) else data
            except ValueError:
                logger.warning("Dropping malformed realtime payload on %s", channel)
                return
            handler(payload)

        try:
            pubsub = self._client.pubsub(ignore_subscribe_messages=True)
            pubsub.subscribe(**{channel: _on_message})
            thread = pubsub.run_in_thread(sleep_time=0.01, daemon=True)
        except redis.RedisError as exc:
            raise RealtimeUnavailable(str(exc)) from exc
        return _RedisSubscription(pubsub, thread)

    def close(self) -> None:
        self._client.close()


_broker: RealtimeBroker | None = None


def get_broker() -> RealtimeBroker:
    """Get or create the process-wide broker from settings."""
    global _broker
    if _broker is None:
        url = (settings.REDIS_URL or "").strip()
        if not url or url.lower() == REDIS_DISABLED_URL:
            _broker = MemoryBroker()
        else:
            _broker = RedisBroker(url)
            logger.info("Realtime events routed through Redis")
    return _broker


def reset_broker() -> None:
    """Drop the cached broker. Used for testing."""
    global _broker
    if _broker is not None:
        _broker.close()
    _broker = None
