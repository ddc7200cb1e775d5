"""
Bounded, arrival-ordered history of received events.

`append` and `latest` are the pure sequence contract; `HistoryBuffer` is
the per-viewer container built on a bounded deque, with the same results.
"""

import logging
from collections import deque
from typing import Callable, Iterator, List, Sequence, Tuple

from smsrelay.schemas import SmsEvent

logger = logging.getLogger(__name__)

HISTORY_CAPACITY = 200


def append(history: Sequence[SmsEvent], event: SmsEvent, capacity: int = HISTORY_CAPACITY) -> Tuple[SmsEvent, ...]:
    """
    Return a new history: the last capacity-1 entries of `history`, then `event`.

    No deduplication: the same event appended twice is kept twice.
    """
    keep = min(len(history), capacity - 1)
    retained = tuple(history[len(history) - keep:]) if keep > 0 else ()
    return retained + (event,)


def latest(history: Sequence[SmsEvent], k: int) -> Tuple[SmsEvent, ...]:
    """Return the most recent k events, oldest first."""
    if k <= 0:
        return ()
    return tuple(history[-k:])


class HistoryBuffer:
    """
    Per-viewer history with O(1) append and FIFO eviction.

    Listeners registered with on_append run after the buffer has been
    updated, so they always observe the new contents.
    """

    def __init__(self, capacity: int = HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._events: deque = deque(maxlen=capacity)
        self._listeners: List[Callable[[SmsEvent], None]] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[SmsEvent]:
        return iter(self._events)

    def on_append(self, listener: Callable[[SmsEvent], None]) -> None:
        self._listeners.append(listener)

    def append(self, event: SmsEvent) -> None:
        if len(self._events) == self.capacity:
            logger.debug(f"History full ({self.capacity}), evicting oldest event")
        self._events.append(event)
        for listener in self._listeners:
            listener(event)

    def latest(self, k: int) -> Tuple[SmsEvent, ...]:
        return latest(self.snapshot(), k)

    def snapshot(self) -> Tuple[SmsEvent, ...]:
        return tuple(self._events)
