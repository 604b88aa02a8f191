"""Identity and calendar types shared by every aggregate.

Agents never hold references to one another; they refer to each other
through the typed integer identities defined here, and only the dispatch
loop resolves an identity to a live aggregate for the duration of one
handler call.

Simulated time is measured in whole days using the insurance convention of
360 days per year (twelve 30-day months). There is no clock ticking through
the gaps between events: the kernel jumps from one scheduled day to the next.

Examples:
    Calendar helpers::

        from insurance_market.market_types import year_end, year_of, year_start

        year_start(2)   # 360
        year_end(2)     # 719
        year_of(719)    # 2

Since:
    Version 0.1.0
"""

from dataclasses import dataclass
from typing import NewType

InsurerId = NewType("InsurerId", int)
InsuredId = NewType("InsuredId", int)
BrokerId = NewType("BrokerId", int)
SubmissionId = NewType("SubmissionId", int)
PolicyId = NewType("PolicyId", int)
LossEventId = NewType("LossEventId", int)
"""Occurrence id; unique within its loss class (catastrophe or attritional)."""

LOSS_EVENT_BLOCK: int = 100_000
"""Occurrence ids reserved per catastrophe year and per policy."""

Day = int
"""A non-negative simulated day; the sole ordering key of the event queue."""

DAYS_PER_YEAR: int = 360
"""Length of a simulated year in days."""

BASIS_POINTS: int = 10_000
"""Panel shares are expressed in basis points and must sum to this value."""


def year_start(year: int) -> Day:
    """Return the first day of a 1-based simulation year."""
    if year < 1:
        raise ValueError(f"Years are 1-based, got {year}")
    return (year - 1) * DAYS_PER_YEAR


def year_end(year: int) -> Day:
    """Return the last day of a 1-based simulation year."""
    if year < 1:
        raise ValueError(f"Years are 1-based, got {year}")
    return year * DAYS_PER_YEAR - 1


def year_of(day: Day) -> int:
    """Return the 1-based year that contains ``day``."""
    if day < 0:
        raise ValueError(f"Day must be non-negative, got {day}")
    return day // DAYS_PER_YEAR + 1


def _block_id(owner: int, index: int) -> LossEventId:
    if owner < 0 or not 0 <= index < LOSS_EVENT_BLOCK:
        raise ValueError(f"Occurrence {index} of {owner} is outside its id block")
    return LossEventId(owner * LOSS_EVENT_BLOCK + index)


def catastrophe_event_id(year: int, index: int) -> LossEventId:
    """Id of the ``index``-th catastrophe occurrence drawn for ``year``.

    Derived from data carried by ``YearStart`` so that replaying the loss
    generator's events reproduces every id without the generator holding an
    allocator.
    """
    return _block_id(year, index)


def attritional_event_id(policy_id: int, index: int) -> LossEventId:
    """Id of the ``index``-th attritional occurrence drawn for ``policy_id``."""
    return _block_id(policy_id, index)


@dataclass
class IdAllocator:
    """Monotonic id source owned by exactly one aggregate.

    Allocators are plain fields of the aggregate that issues the ids (the
    broker for submissions, the market coordinator for policies). Because they advance only while their owner
    handles an event, replaying the owner's events reproduces them exactly.

    Attributes:
        next_id: The id that the next call to :meth:`allocate` returns.
    """

    next_id: int = 0

    def allocate(self) -> int:
        """Return the next id and advance the allocator."""
        allocated = self.next_id
        self.next_id += 1
        return allocated
