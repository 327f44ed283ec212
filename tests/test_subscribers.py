"""Tests for subscribers and the broadcast registry."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from hookview.subscribers import (
    KEEPALIVE_FRAME,
    QueueSubscriber,
    SubscriberClosed,
    SubscriberRegistry,
    format_sse,
)


class RecordingSubscriber:
    """In-memory subscriber that keeps every event it receives."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: list[tuple[str, object]] = []
        self.close_count = 0

    def send(self, event, payload):
        if self.fail:
            raise BrokenPipeError("connection reset")
        self.events.append((event, payload))

    def close(self):
        self.close_count += 1


def _parse_frame(frame: str) -> tuple[str, object]:
    lines = frame.strip("\n").split("\n")
    assert lines[0].startswith("event: ")
    assert lines[1].startswith("data: ")
    return lines[0][len("event: "):], json.loads(lines[1][len("data: "):])


class TestFormatSSE:
    """Tests for SSE frame encoding."""

    def test_frame_layout(self):
        assert format_sse("entries", [{"a": 1}]) == 'event: entries\ndata: [{"a": 1}]\n\n'

    def test_payload_is_single_data_line(self):
        """Embedded newlines are JSON-escaped, never split across data lines."""
        frame = format_sse("entries", [{"text": "line1\nline2"}])
        assert frame.count("\n") == 3
        assert _parse_frame(frame) == ("entries", [{"text": "line1\nline2"}])


class TestRegistry:
    """Tests for add/remove/broadcast."""

    def test_broadcast_reaches_all(self):
        registry = SubscriberRegistry()
        subs = [RecordingSubscriber() for _ in range(3)]
        for s in subs:
            registry.add(s)

        assert registry.broadcast("entries", [1]) == 3
        for s in subs:
            assert s.events == [("entries", [1])]

    def test_failing_subscriber_is_isolated_and_removed(self):
        """The second of three subscribers throws; the others still receive."""
        registry = SubscriberRegistry()
        first, broken, third = RecordingSubscriber(), RecordingSubscriber(fail=True), RecordingSubscriber()
        for s in (first, broken, third):
            registry.add(s)

        delivered = registry.broadcast("entries", ["x"])

        assert delivered == 2
        assert first.events == [("entries", ["x"])]
        assert third.events == [("entries", ["x"])]
        assert broken not in registry
        assert len(registry) == 2
        assert broken.close_count == 1

        registry.broadcast("entries", ["y"])
        assert first.events[-1] == ("entries", ["y"])
        assert third.events[-1] == ("entries", ["y"])
        assert broken.close_count == 1

    def test_per_subscriber_order_is_broadcast_order(self):
        registry = SubscriberRegistry()
        sub = RecordingSubscriber()
        registry.add(sub)
        for n in range(5):
            registry.broadcast("entries", n)
        assert [p for _, p in sub.events] == [0, 1, 2, 3, 4]

    def test_remove_during_broadcast(self):
        """A subscriber may unregister another while a broadcast is running."""
        registry = SubscriberRegistry()
        victim = RecordingSubscriber()

        class Remover(RecordingSubscriber):
            def send(self, event, payload):
                super().send(event, payload)
                registry.remove(victim)

        remover = Remover()
        registry.add(remover)
        registry.add(victim)

        registry.broadcast("entries", 1)
        assert victim not in registry
        registry.broadcast("entries", 2)
        assert [p for _, p in remover.events] == [1, 2]
        assert all(p == 1 for _, p in victim.events)

    def test_add_during_broadcast(self):
        registry = SubscriberRegistry()
        late = RecordingSubscriber()

        class Adder(RecordingSubscriber):
            def send(self, event, payload):
                super().send(event, payload)
                registry.add(late)

        registry.add(Adder())
        registry.broadcast("entries", 1)
        assert late in registry

    def test_remove_unknown_returns_false(self):
        registry = SubscriberRegistry()
        assert registry.remove(RecordingSubscriber()) is False

    def test_close_all_closes_each_once(self):
        registry = SubscriberRegistry()
        subs = [RecordingSubscriber() for _ in range(2)]
        for s in subs:
            registry.add(s)

        assert registry.close_all() == 2
        assert registry.close_all() == 0
        assert [s.close_count for s in subs] == [1, 1]
        assert len(registry) == 0

    def test_no_broadcast_after_close_all(self):
        registry = SubscriberRegistry()
        sub = RecordingSubscriber()
        registry.add(sub)
        registry.close_all()

        assert registry.broadcast("entries", 1) == 0
        assert sub.events == []

    def test_add_after_close_all_closes_subscriber(self):
        registry = SubscriberRegistry()
        registry.close_all()
        sub = RecordingSubscriber()

        assert registry.add(sub) is False
        assert sub.close_count == 1
        assert sub not in registry

    def test_close_errors_are_contained(self):
        registry = SubscriberRegistry()
        bad = MagicMock()
        bad.close.side_effect = OSError("already gone")
        good = RecordingSubscriber()
        registry.add(bad)
        registry.add(good)

        assert registry.close_all() == 2
        assert good.close_count == 1


class TestQueueSubscriber:
    """Tests for the SSE queue adapter."""

    @pytest.mark.asyncio
    async def test_frames_in_order_then_end_on_close(self):
        sub = QueueSubscriber("client", max_pending=10)
        sub.send("entries", [1])
        sub.send("entries", [1, 2])
        sub.close()

        frames = [frame async for frame in sub.frames()]
        assert [_parse_frame(f) for f in frames] == [("entries", [1]), ("entries", [1, 2])]

    def test_full_queue_raises(self):
        sub = QueueSubscriber("slow", max_pending=2)
        sub.send("entries", 1)
        sub.send("entries", 2)
        with pytest.raises(SubscriberClosed):
            sub.send("entries", 3)

    def test_send_after_close_raises(self):
        sub = QueueSubscriber()
        sub.close()
        sub.close()
        assert sub.closed
        with pytest.raises(SubscriberClosed):
            sub.send("entries", [])

    @pytest.mark.asyncio
    async def test_close_on_full_queue_still_ends_stream(self):
        sub = QueueSubscriber(max_pending=1)
        sub.send("entries", 1)
        sub.close()

        frames = [frame async for frame in sub.frames()]
        assert frames == []

    @pytest.mark.asyncio
    async def test_stuck_subscriber_is_dropped_by_registry(self):
        registry = SubscriberRegistry()
        stuck = QueueSubscriber("stuck", max_pending=1)
        healthy = QueueSubscriber("healthy", max_pending=10)
        registry.add(stuck)
        registry.add(healthy)

        registry.broadcast("entries", 1)
        registry.broadcast("entries", 2)

        assert stuck not in registry
        assert stuck.closed
        assert healthy.pending == 2

    @pytest.mark.asyncio
    async def test_reader_wakes_on_send(self):
        sub = QueueSubscriber()
        frames = sub.frames()
        pending = asyncio.ensure_future(frames.__anext__())
        await asyncio.sleep(0)
        sub.send("entries", ["late"])
        frame = await asyncio.wait_for(pending, timeout=1)
        assert _parse_frame(frame) == ("entries", ["late"])
        await frames.aclose()

    @pytest.mark.asyncio
    async def test_keepalive_when_idle(self):
        sub = QueueSubscriber()
        frames = sub.frames(keepalive=0.01)

        assert await asyncio.wait_for(frames.__anext__(), timeout=1) == KEEPALIVE_FRAME

        sub.close()
        assert [f async for f in frames] == []
