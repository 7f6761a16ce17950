"""Tests for the delivery fanout, message timeline and message streams."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from intranet.core.errors import RowParseError
from intranet.core.realtime import MemoryBroker, RealtimeUnavailable, room_channel
from intranet.schemas.chat import MessageRecord
from intranet.services.delivery import (
    EVENT_INSERT,
    EVENT_UPDATE,
    DeliveryFanout,
    MessageStream,
    MessageTimeline,
)

ROOM_ID = "7b0b7d46-4a59-4d44-9d6b-0e2f1f6f2a01"
TEMP_ROOM_ID = "temp_1_abcd"
BASE_TIME = datetime(2026, 10, 17, 9, 0, tzinfo=UTC)


def make_message(message_id="m1", content="hello", room_id=ROOM_ID, offset=0, updated=None):
    created = BASE_TIME + timedelta(seconds=offset)
    return MessageRecord(
        id=message_id,
        room_id=room_id,
        sender_id="emp-alice",
        content=content,
        created_at=created,
        updated_at=updated or created,
    )


@pytest.fixture
def broker():
    return MemoryBroker()


@pytest.fixture
def messages():
    """Backing rows looked up by the fanout when a remote event arrives."""
    return {}


@pytest.fixture
def fanout(broker, messages):
    return DeliveryFanout(broker, messages.get)


class TestLocalDelivery:
    def test_publish_local_in_registration_order(self, fanout):
        calls = []
        fanout.subscribe(TEMP_ROOM_ID, on_insert=lambda m: calls.append(("first", m.id)))
        fanout.subscribe(TEMP_ROOM_ID, on_insert=lambda m: calls.append(("second", m.id)))

        fanout.publish_local(TEMP_ROOM_ID, make_message(room_id=TEMP_ROOM_ID))
        assert calls == [("first", "m1"), ("second", "m1")]

    def test_temporary_rooms_do_not_touch_broker(self, broker, fanout):
        subscription = fanout.subscribe(TEMP_ROOM_ID, on_insert=lambda m: None)
        assert subscription.remote_attached is False
        assert broker.subscriber_count(room_channel(TEMP_ROOM_ID)) == 0

    def test_update_goes_to_on_update(self, fanout):
        inserts, updates = [], []
        fanout.subscribe(TEMP_ROOM_ID, on_insert=inserts.append, on_update=updates.append)

        fanout.publish_local(TEMP_ROOM_ID, make_message(), EVENT_UPDATE)
        assert inserts == []
        assert len(updates) == 1

    def test_update_without_handler_is_ignored(self, fanout):
        inserts = []
        fanout.subscribe(TEMP_ROOM_ID, on_insert=inserts.append)
        fanout.publish_local(TEMP_ROOM_ID, make_message(), EVENT_UPDATE)
        assert inserts == []

    def test_failing_subscriber_does_not_block_others(self, fanout):
        received = []

        def broken(message):
            raise RuntimeError("boom")

        fanout.subscribe(TEMP_ROOM_ID, on_insert=broken)
        fanout.subscribe(TEMP_ROOM_ID, on_insert=received.append)
        fanout.publish_local(TEMP_ROOM_ID, make_message())
        assert len(received) == 1

    def test_unsubscribe_is_idempotent(self, fanout):
        subscription = fanout.subscribe(TEMP_ROOM_ID, on_insert=lambda m: None)
        assert fanout.local_subscriber_count(TEMP_ROOM_ID) == 1

        subscription.unsubscribe()
        subscription()
        assert fanout.local_subscriber_count(TEMP_ROOM_ID) == 0

    def test_subscriber_removed_during_publish(self, fanout):
        received = []
        holder = {}

        def unsubscribe_self(message):
            holder["sub"].unsubscribe()

        holder["sub"] = fanout.subscribe(TEMP_ROOM_ID, on_insert=unsubscribe_self)
        fanout.subscribe(TEMP_ROOM_ID, on_insert=received.append)

        fanout.publish_local(TEMP_ROOM_ID, make_message())
        assert len(received) == 1
        assert fanout.local_subscriber_count(TEMP_ROOM_ID) == 1


class TestRemoteDelivery:
    def test_insert_event_fetches_enriched_message(self, fanout, messages):
        messages["m1"] = make_message(content="from db")
        received = []
        subscription = fanout.subscribe(ROOM_ID, on_insert=received.append)
        assert subscription.remote_attached is True

        fanout.publish_remote(ROOM_ID, EVENT_INSERT, {"id": "m1", "content": "raw"})
        assert [m.content for m in received] == ["from db"]

    def test_update_event(self, fanout, messages):
        messages["m1"] = make_message(content="edited")
        updates = []
        fanout.subscribe(ROOM_ID, on_insert=lambda m: None, on_update=updates.append)

        fanout.publish_remote(ROOM_ID, EVENT_UPDATE, {"id": "m1"})
        assert [m.content for m in updates] == ["edited"]

    def test_missing_row_is_dropped(self, fanout):
        received = []
        fanout.subscribe(ROOM_ID, on_insert=received.append)
        fanout.publish_remote(ROOM_ID, EVENT_INSERT, {"id": "gone"})
        assert received == []

    def test_malformed_events_are_dropped(self, broker, fanout, messages):
        messages["m1"] = make_message()
        received = []
        fanout.subscribe(ROOM_ID, on_insert=received.append)

        channel = room_channel(ROOM_ID)
        broker.publish(channel, {"event": "DELETE", "record": {"id": "m1"}})
        broker.publish(channel, {"event": EVENT_INSERT, "record": {}})
        broker.publish(channel, {"event": EVENT_INSERT, "table": "other", "record": {"id": "m1"}})
        assert received == []

    @pytest.mark.parametrize(
        "error",
        [
            OperationalError("SELECT", {}, Exception("connection refused")),
            RowParseError("bad row"),
        ],
    )
    def test_fetch_failure_is_dropped(self, broker, error):
        fetch = MagicMock(side_effect=error)
        fanout = DeliveryFanout(broker, fetch)
        received = []
        fanout.subscribe(ROOM_ID, on_insert=received.append)

        fanout.publish_remote(ROOM_ID, EVENT_INSERT, {"id": "m1"})
        assert received == []
        fetch.assert_called_once_with("m1")

    def test_unsubscribe_closes_broker_subscription(self, broker, fanout):
        subscription = fanout.subscribe(ROOM_ID, on_insert=lambda m: None)
        assert broker.subscriber_count(room_channel(ROOM_ID)) == 1

        subscription.unsubscribe()
        assert broker.subscriber_count(room_channel(ROOM_ID)) == 0
        assert subscription.remote_attached is False

    def test_broker_unavailable_keeps_local_subscription(self):
        broker = MagicMock()
        broker.subscribe.side_effect = RealtimeUnavailable("redis down")
        fanout = DeliveryFanout(broker, lambda message_id: None)

        subscription = fanout.subscribe(ROOM_ID, on_insert=lambda m: None)
        assert subscription.remote_attached is False
        assert fanout.local_subscriber_count(ROOM_ID) == 1

    def test_publish_remote_swallows_outage(self):
        broker = MagicMock()
        broker.publish.side_effect = RealtimeUnavailable("redis down")
        fanout = DeliveryFanout(broker, lambda message_id: None)

        fanout.publish_remote(ROOM_ID, EVENT_INSERT, {"id": "m1"})
        broker.publish.assert_called_once_with(
            room_channel(ROOM_ID),
            {"event": EVENT_INSERT, "table": "message", "record": {"id": "m1"}},
        )


class TestMessageTimeline:
    def test_orders_by_created_at(self):
        timeline = MessageTimeline()
        timeline.merge(EVENT_INSERT, make_message("late", offset=10))
        timeline.merge(EVENT_INSERT, make_message("early", offset=0))
        assert [m.id for m in timeline.messages] == ["early", "late"]

    def test_ties_keep_arrival_order(self):
        timeline = MessageTimeline([make_message("b"), make_message("a")])
        assert [m.id for m in timeline.messages] == ["b", "a"]

    def test_duplicate_insert_ignored(self):
        timeline = MessageTimeline([make_message(content="first")])
        assert timeline.merge(EVENT_INSERT, make_message(content="replayed")) is False
        assert len(timeline) == 1
        assert timeline.messages[0].content == "first"

    def test_newer_update_applied(self):
        timeline = MessageTimeline([make_message(content="draft")])
        edited = make_message(content="final", updated=BASE_TIME + timedelta(minutes=1))
        assert timeline.merge(EVENT_UPDATE, edited) is True
        assert timeline.messages[0].content == "final"

    def test_stale_update_ignored(self):
        current = make_message(content="final", updated=BASE_TIME + timedelta(minutes=2))
        timeline = MessageTimeline([current])
        stale = make_message(content="older", updated=BASE_TIME + timedelta(minutes=1))
        assert timeline.merge(EVENT_UPDATE, stale) is False
        assert timeline.messages[0].content == "final"

    def test_update_for_unknown_message_inserts(self):
        timeline = MessageTimeline()
        assert timeline.merge(EVENT_UPDATE, make_message("m9")) is True
        assert "m9" in timeline


class TestMessageStream:
    @pytest.mark.asyncio
    async def test_yields_local_deliveries(self, fanout):
        async with MessageStream(fanout, TEMP_ROOM_ID) as stream:
            fanout.publish_local(TEMP_ROOM_ID, make_message("m1", room_id=TEMP_ROOM_ID))
            event = await asyncio.wait_for(stream.__anext__(), timeout=1)

        assert event.event == EVENT_INSERT
        assert event.message.id == "m1"
        assert fanout.local_subscriber_count(TEMP_ROOM_ID) == 0

    @pytest.mark.asyncio
    async def test_replays_are_filtered(self, fanout):
        stream = MessageStream(fanout, TEMP_ROOM_ID)
        message = make_message("m1", room_id=TEMP_ROOM_ID)
        fanout.publish_local(TEMP_ROOM_ID, message)
        fanout.publish_local(TEMP_ROOM_ID, message)
        fanout.publish_local(TEMP_ROOM_ID, make_message("m2", room_id=TEMP_ROOM_ID, offset=1))
        await asyncio.sleep(0)
        await stream.aclose()

        seen = [event.message.id async for event in stream]
        assert seen == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_remote_events_from_listener_thread(self, fanout, messages):
        messages["m1"] = make_message("m1")
        stream = MessageStream(fanout, ROOM_ID)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, fanout.publish_remote, ROOM_ID, EVENT_INSERT, {"id": "m1"}
        )
        event = await asyncio.wait_for(stream.__anext__(), timeout=1)
        await stream.aclose()

        assert event.message.id == "m1"

    @pytest.mark.asyncio
    async def test_events_after_close_are_dropped(self, fanout):
        stream = MessageStream(fanout, TEMP_ROOM_ID)
        await stream.aclose()
        await stream.aclose()
        fanout.publish_local(TEMP_ROOM_ID, make_message(room_id=TEMP_ROOM_ID))

        assert [event async for event in stream] == []
