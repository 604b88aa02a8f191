"""Priority queue of scheduled events.

The queue always yields the globally earliest ``(day, event)`` pair. Ties on
``day`` are broken by an insertion counter assigned at push time, which makes
the pop order a stable, reproducible total order for a fixed sequence of
pushes. Handlers must still treat same-day relative order as an
implementation detail and never as a contract.

Since:
    Version 0.1.0
"""

import heapq
from typing import List, Optional, Tuple

from .events import Event
from .market_types import Day


class EventQueue:
    """Binary min-heap keyed on ``(day, insertion_counter)``.

    Push and pop are ``O(log n)``. Popping an empty queue returns ``None``;
    that is the normal termination signal of a run, not an error.

    Examples:
        Same-day events come back in insertion order::

            queue = EventQueue()
            queue.push(5, YearEnd(year=1))
            queue.push(2, YearStart(year=1))
            queue.pop_min()  # (2, YearStart(year=1))
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[Day, int, Event]] = []
        self._counter = 0

    def push(self, day: Day, event: Event) -> None:
        """Schedule ``event`` on ``day``.

        Raises:
            ValueError: If ``day`` is negative.
        """
        if day < 0:
            raise ValueError(f"Cannot schedule an event on negative day {day}")
        heapq.heappush(self._heap, (day, self._counter, event))
        self._counter += 1

    def pop_min(self) -> Optional[Tuple[Day, Event]]:
        """Remove and return the earliest ``(day, event)``, or None if empty."""
        if not self._heap:
            return None
        day, _, event = heapq.heappop(self._heap)
        return day, event

    def peek_day(self) -> Optional[Day]:
        """Day of the next event without removing it, or None if empty."""
        if not self._heap:
            return None
        return self._heap[0][0]

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)
