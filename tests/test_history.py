"""
Tests for the bounded event history.

Tests cover:
- Pure append/latest contract
- HistoryBuffer bounds, ordering and eviction
- No deduplication
- Append notification
"""

import pytest

from smsrelay.history import HISTORY_CAPACITY, HistoryBuffer, append, latest
from smsrelay.schemas import SmsEvent


def make_event(n: int, message_id: str = None) -> SmsEvent:
    """Helper to build a distinct event."""
    return SmsEvent(
        message_id=message_id or f"m{n}",
        from_msisdn="447911123456",
        text=f"message {n}",
        type="text",
        timestamp=1700000000000 + n,
    )


class TestPureAppend:
    """Tests for the append/latest functions."""

    def test_append_to_empty(self):
        event = make_event(1)

        assert append((), event) == (event,)

    def test_does_not_modify_input(self):
        history = [make_event(1)]
        append(history, make_event(2))

        assert len(history) == 1

    def test_under_capacity_keeps_everything(self):
        events = [make_event(i) for i in range(150)]
        history = ()
        for event in events:
            history = append(history, event)

        assert history == tuple(events)

    def test_over_capacity_keeps_newest(self):
        events = [make_event(i) for i in range(250)]
        history = ()
        for event in events:
            history = append(history, event)

        assert len(history) == HISTORY_CAPACITY
        assert history == tuple(events[-HISTORY_CAPACITY:])

    def test_latest(self):
        history = tuple(make_event(i) for i in range(5))

        assert latest(history, 2) == history[3:]
        assert latest(history, 10) == history
        assert latest(history, 0) == ()


class TestHistoryBuffer:
    """Tests for the deque-backed per-viewer buffer."""

    def test_starts_empty(self):
        buffer = HistoryBuffer()

        assert len(buffer) == 0
        assert buffer.snapshot() == ()

    @pytest.mark.parametrize("count", [1, 199, 200])
    def test_up_to_capacity_preserves_order(self, count):
        events = [make_event(i) for i in range(count)]
        buffer = HistoryBuffer()
        for event in events:
            buffer.append(event)

        assert len(buffer) == count
        assert list(buffer) == events

    @pytest.mark.parametrize("count", [201, 450])
    def test_over_capacity_evicts_oldest(self, count):
        events = [make_event(i) for i in range(count)]
        buffer = HistoryBuffer()
        for event in events:
            buffer.append(event)

        assert len(buffer) == 200
        assert list(buffer) == events[-200:]

    def test_matches_pure_append(self):
        buffer = HistoryBuffer(capacity=3)
        history = ()
        for i in range(7):
            event = make_event(i)
            buffer.append(event)
            history = append(history, event, capacity=3)
            assert buffer.snapshot() == history

    def test_duplicates_retained(self):
        event = make_event(1, message_id="dup")
        buffer = HistoryBuffer()
        buffer.append(event)
        buffer.append(event)

        assert len(buffer) == 2
        assert buffer.snapshot() == (event, event)

    def test_latest(self):
        events = [make_event(i) for i in range(10)]
        buffer = HistoryBuffer()
        for event in events:
            buffer.append(event)

        assert buffer.latest(3) == tuple(events[-3:])

    def test_listener_sees_updated_buffer(self):
        buffer = HistoryBuffer()
        seen = []
        buffer.on_append(lambda event: seen.append((event, len(buffer))))

        first, second = make_event(1), make_event(2)
        buffer.append(first)
        buffer.append(second)

        assert seen == [(first, 1), (second, 2)]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            HistoryBuffer(capacity=0)
