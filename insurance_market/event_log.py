"""Append-only event log: the single ground truth of a simulation run.

The log records every dispatched event in dispatch order. It has no deletion
or mutation API; every derived view (per-aggregate state, analytics tables,
invariant checks) is a fold over :meth:`EventLog.slice` from index 0.

The persisted projection is newline-delimited JSON, one record per
dispatched event::

    {"day":10,"event":{"PolicyBound":{"policy_id":0,"submission_id":0,...}}}

Examples:
    Incremental consumption with a cursor::

        cursor = ReplayCursor(sim.log)
        for entry in cursor.advance():
            ...  # everything appended so far
        sim.run()
        for entry in cursor.advance():
            ...  # only the suffix appended by the second run

    Tabular projection::

        df = sim.log.to_dataframe()
        df.groupby(["year", "event_type"]).size()

Since:
    Version 0.1.0
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, NamedTuple, Tuple, Union
import warnings

import pandas as pd

from ._warnings import ReplayWarning
from .events import Event, event_from_dict, event_to_dict
from .market_types import Day, year_of

logger = logging.getLogger(__name__)


class LogEntry(NamedTuple):
    """One dispatched event.

    Attributes:
        seq: Position in the log; the only total order across days.
        day: Day on which the event was dispatched.
        event: The immutable event payload.
    """

    seq: int
    day: Day
    event: Event

    def to_record(self) -> Dict[str, Any]:
        """Persisted representation (the sequence index is implicit)."""
        return {"day": self.day, "event": event_to_dict(self.event)}


class EventLog:
    """Append-only, in-memory sequence of :class:`LogEntry` values."""

    def __init__(self) -> None:
        self._entries: List[LogEntry] = []

    def append(self, day: Day, event: Event) -> int:
        """Record ``event`` as dispatched on ``day`` and return its index."""
        seq = len(self._entries)
        if self._entries:
            assert day >= self._entries[-1].day, (
                f"log day regression: {day} after {self._entries[-1].day}"
            )
        self._entries.append(LogEntry(seq, day, event))
        return seq

    def slice(self, from_index: int = 0) -> Tuple[LogEntry, ...]:
        """Entries from ``from_index`` onward, in log order."""
        if from_index < 0:
            raise ValueError(f"from_index must be non-negative, got {from_index}")
        return tuple(self._entries[from_index:])

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.slice(0))

    def __getitem__(self, index: int) -> LogEntry:
        return self._entries[index]

    def events_of(self, *event_types: type) -> Iterator[LogEntry]:
        """Iterate over entries whose event is an instance of ``event_types``."""
        return (entry for entry in self._entries if isinstance(entry.event, event_types))

    # ------------------------------------------------------------------ #
    #  Serialized projection
    # ------------------------------------------------------------------ #

    def to_ndjson_lines(self) -> Iterator[str]:
        """Yield one compact JSON document per entry."""
        for entry in self._entries:
            yield json.dumps(entry.to_record(), separators=(",", ":"))

    def write_ndjson(self, path: Union[str, Path]) -> Path:
        """Write the log as newline-delimited JSON.

        Args:
            path: Destination file; parent directories are created.

        Returns:
            The path written.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            for line in self.to_ndjson_lines():
                f.write(line)
                f.write("\n")
        logger.info("Wrote %d events to %s", len(self._entries), path)
        return path

    @classmethod
    def read_ndjson(cls, path: Union[str, Path]) -> "EventLog":
        """Rebuild a log from a file written by :meth:`write_ndjson`.

        Blank lines, lines that are not JSON, records missing ``day`` or
        ``event`` and records with unknown variant tags are skipped with a
        :class:`~insurance_market._warnings.ReplayWarning`.

        Raises:
            FileNotFoundError: If ``path`` does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Event log not found: {path}")

        log = cls()
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    warnings.warn(f"Skipping blank line {line_no} in {path}", ReplayWarning)
                    continue
                try:
                    record = json.loads(line)
                    day = int(record["day"])
                    event = event_from_dict(record["event"])
                except (KeyError, TypeError, ValueError) as e:
                    warnings.warn(f"Skipping line {line_no} in {path}: {e!r}", ReplayWarning)
                    continue
                log.append(day, event)
        return log

    def to_dataframe(self) -> pd.DataFrame:
        """Flatten the log into a DataFrame.

        Returns:
            One row per entry with ``seq``, ``day``, ``year`` and
            ``event_type`` columns followed by the payload fields. Nested
            payloads are flattened with dotted names (``risk.sum_insured``).
        """
        rows = []
        for entry in self._entries:
            row: Dict[str, Any] = {
                "seq": entry.seq,
                "day": entry.day,
                "year": year_of(entry.day),
                "event_type": entry.event.tag,
            }
            row.update(entry.event.model_dump(mode="json"))
            rows.append(row)
        if not rows:
            return pd.DataFrame(columns=["seq", "day", "year", "event_type"])
        return pd.json_normalize(rows)


class ReplayCursor:
    """Incremental reader over an :class:`EventLog`.

    The cursor remembers the index of the last entry it yielded and on each
    :meth:`advance` folds only the suffix appended since. It never mutates
    the log and can be restarted with :meth:`reset`.
    """

    def __init__(self, log: EventLog, start: int = 0) -> None:
        self.log = log
        self.position = start

    def advance(self) -> Tuple[LogEntry, ...]:
        """Return entries appended since the previous call."""
        entries = self.log.slice(self.position)
        self.position += len(entries)
        return entries

    def reset(self) -> None:
        """Rewind to the beginning of the log."""
        self.position = 0
