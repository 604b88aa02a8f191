"""Tests for the append-only event log and its projections."""

import json
import warnings

import pytest

from insurance_market._warnings import ReplayWarning
from insurance_market.event_log import EventLog, LogEntry, ReplayCursor
from insurance_market.events import (
    ClaimSettled,
    InsurerInsolvent,
    Peril,
    PolicyExpired,
    YearEnd,
    YearStart,
)


@pytest.fixture
def small_log():
    """Log with a handful of entries over two years."""
    log = EventLog()
    log.append(0, YearStart(year=1))
    log.append(40, ClaimSettled(policy_id=2, insurer_id=1, peril=Peril.FLOOD, amount=75))
    log.append(40, InsurerInsolvent(insurer_id=1))
    log.append(360, YearEnd(year=1))
    log.append(400, PolicyExpired(policy_id=2, insured_id=5, insurer_ids=(1,)))
    return log


class TestEventLog:
    """Test append, slicing and ordering."""

    def test_append_returns_sequence_index(self):
        """Indices are consecutive positions in the log."""
        log = EventLog()
        assert log.append(0, YearStart(year=1)) == 0
        assert log.append(3, YearEnd(year=1)) == 1
        assert len(log) == 2
        assert log[1] == LogEntry(1, 3, YearEnd(year=1))

    def test_slice_from_index(self, small_log):
        """slice returns the suffix starting at the index."""
        tail = small_log.slice(3)
        assert [e.seq for e in tail] == [3, 4]
        assert isinstance(tail, tuple)

    def test_slice_negative_index_rejected(self, small_log):
        """Negative slice starts are a caller error."""
        with pytest.raises(ValueError):
            small_log.slice(-1)

    def test_day_regression_is_a_kernel_error(self):
        """The log refuses to go back in time."""
        log = EventLog()
        log.append(10, YearStart(year=1))
        with pytest.raises(AssertionError):
            log.append(9, YearEnd(year=1))

    def test_events_of_filters_by_type(self, small_log):
        """events_of yields only matching variants."""
        entries = list(small_log.events_of(InsurerInsolvent, YearEnd))
        assert [e.event.tag for e in entries] == ["InsurerInsolvent", "YearEnd"]


class TestReplayCursor:
    """Test incremental consumption."""

    def test_advance_yields_only_new_entries(self):
        """Each advance returns the suffix appended since the previous call."""
        log = EventLog()
        cursor = ReplayCursor(log)
        log.append(0, YearStart(year=1))
        assert len(cursor.advance()) == 1
        assert cursor.advance() == ()

        log.append(5, InsurerInsolvent(insurer_id=2))
        log.append(6, InsurerInsolvent(insurer_id=3))
        assert [e.seq for e in cursor.advance()] == [1, 2]

    def test_reset_restarts_from_beginning(self, small_log):
        """reset rewinds the cursor."""
        cursor = ReplayCursor(small_log)
        cursor.advance()
        cursor.reset()
        assert len(cursor.advance()) == len(small_log)


class TestNdjsonProjection:
    """Test the persisted newline-delimited JSON format."""

    def test_record_layout(self, small_log):
        """Each line carries the day and an externally tagged event."""
        first = json.loads(next(small_log.to_ndjson_lines()))
        assert first == {"day": 0, "event": {"YearStart": {"year": 1}}}

    def test_round_trip_through_file(self, small_log, tmp_path):
        """A written log reads back entry for entry."""
        path = small_log.write_ndjson(tmp_path / "out" / "events.ndjson")
        restored = EventLog.read_ndjson(path)
        assert list(restored) == list(small_log)

    def test_missing_file(self, tmp_path):
        """Reading a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            EventLog.read_ndjson(tmp_path / "nope.ndjson")

    def test_unknown_tags_skipped_with_warning(self, tmp_path):
        """Unknown variants and blank lines are skipped, not fatal."""
        path = tmp_path / "events.ndjson"
        path.write_text(
            '{"day":0,"event":{"YearStart":{"year":1}}}\n'
            "\n"
            '{"day":1,"event":{"Meteor":{"size":9}}}\n'
            '{"day":2,"event":{"YearEnd":{"year":1}}}\n',
            encoding="utf-8",
        )
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            log = EventLog.read_ndjson(path)

        assert [e.event.tag for e in log] == ["YearStart", "YearEnd"]
        assert sum(issubclass(w.category, ReplayWarning) for w in caught) == 2

    def test_corrupt_records_skipped_with_warning(self, tmp_path):
        """Truncated JSON and records missing a key are skipped, not fatal."""
        path = tmp_path / "events.ndjson"
        path.write_text(
            '{"day":0,"event":{"YearStart":{"year":1}}}\n'
            '{"day":1,"event":{"YearEnd":\n'
            '{"event":{"YearEnd":{"year":1}}}\n'
            '{"day":2}\n'
            "7\n"
            '{"day":3,"event":{"YearEnd":{"year":1}}}\n',
            encoding="utf-8",
        )
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            log = EventLog.read_ndjson(path)

        assert [(e.day, e.event.tag) for e in log] == [(0, "YearStart"), (3, "YearEnd")]
        assert sum(issubclass(w.category, ReplayWarning) for w in caught) == 4


class TestDataFrameProjection:
    """Test the tabular projection."""

    def test_columns_and_rows(self, small_log):
        """One row per entry with calendar columns and flattened payloads."""
        df = small_log.to_dataframe()
        assert len(df) == 5
        assert list(df.columns[:4]) == ["seq", "day", "year", "event_type"]
        assert df.loc[3, "year"] == 2
        assert df.loc[1, "amount"] == 75

    def test_empty_log(self):
        """An empty log gives an empty frame with the fixed columns."""
        df = EventLog().to_dataframe()
        assert df.empty
        assert list(df.columns) == ["seq", "day", "year", "event_type"]
