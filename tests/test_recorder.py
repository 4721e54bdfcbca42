"""
Test recorder.py - Periodic jobs, manual entries and the CLI
"""

import pytest
import json
import os
import tempfile
import threading
import time
from datetime import datetime, timezone, timedelta
from pathlib import Path
import sys

import schedule

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from hydrolog.current import CurrentValues, DAY_LIGHT_LUX
from hydrolog.feed import FeedError, MockSensorFeed
from hydrolog.fields import ENVIRONMENTAL, PLANT_GROWTH
from hydrolog.ledger import Ledger, LedgerPolicy, Origin
from hydrolog.recorder import (
    AUTO_NOTES,
    MANUAL_NOTES,
    POLL_NOTES,
    Recorder,
    main,
    parse_entry_time,
)

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class BrokenFeed:
    def fetch(self):
        raise FeedError("sensor offline")


def make_recorder(domain=ENVIRONMENTAL, feed=None, clock=None):
    clock = clock or FakeClock()
    ledger = Ledger(domain.name, LedgerPolicy(capacity=1000, spacing=timedelta(seconds=60)), clock=clock)
    current = CurrentValues(domain.fields, clock=clock, tz=timezone.utc)
    return Recorder(domain, ledger, current, feed, clock, tz=timezone.utc)


class TestPeriodicJobs:
    """Test sensor poll and auto-entry jobs."""

    def setup_method(self):
        self.clock = FakeClock()
        self.recorder = make_recorder(feed=MockSensorFeed(), clock=self.clock)

    def test_poll_records_raw_feed_values(self):
        stored = self.recorder.poll_feed()

        assert stored.origin is Origin.AUTOMATIC
        assert stored.notes == POLL_NOTES
        assert stored.values == {"temperature": 22.5, "humidity": 58.0, "light": None}
        assert stored.timestamp == T0

    def test_polls_within_spacing_are_dropped(self):
        self.recorder.poll_feed()
        self.clock.advance(10)
        assert self.recorder.poll_feed() is None
        self.clock.advance(60)
        assert self.recorder.poll_feed() is not None
        assert len(self.recorder.ledger) == 2

    def test_auto_entry_uses_current_values(self):
        """Test auto-entry captures scheduled light and feed values."""
        self.recorder.poll_feed()
        self.clock.advance(300)
        stored = self.recorder.auto_entry()

        assert stored.notes == AUTO_NOTES
        assert stored.values == {"temperature": 22.5, "humidity": 58.0, "light": DAY_LIGHT_LUX}

    def test_auto_entry_with_manual_override(self):
        self.recorder.current.apply_manual_entry({"temperature": 18.0})
        stored = self.recorder.auto_entry()
        assert stored.get("temperature") == 18.0

    def test_auto_entry_without_values(self):
        recorder = make_recorder(domain=PLANT_GROWTH)
        assert recorder.auto_entry() is None
        assert len(recorder.ledger) == 0

    def test_both_jobs_over_an_hour(self):
        """Test auto-entries are kept while the sensor poll is recording."""
        self.recorder.current.apply_manual_entry({"humidity": 65.0})
        for step in range(360):
            self.clock.advance(10)
            self.recorder.poll_feed()
            if step % 30 == 0:
                self.recorder.auto_entry()

        notes = [r.notes for r in self.recorder.ledger]
        assert notes.count(AUTO_NOTES) == 12
        assert notes.count(POLL_NOTES) == 60
        auto_entries = [r for r in self.recorder.ledger if r.notes == AUTO_NOTES]
        assert all(r.get("humidity") == 65.0 for r in auto_entries)
        assert all(r.get("light") is not None for r in auto_entries)

    def test_auto_entry_within_own_spacing_is_dropped(self):
        assert self.recorder.auto_entry() is not None
        self.clock.advance(5)
        assert self.recorder.auto_entry() is None

    def test_feed_error_records_nothing(self):
        recorder = make_recorder(feed=BrokenFeed())
        assert recorder.poll_feed() is None
        assert len(recorder.ledger) == 0

    def test_empty_feed_records_nothing(self):
        recorder = make_recorder(feed=MockSensorFeed({"temperature": None, "humidity": None}))
        assert recorder.poll_feed() is None

    def test_no_feed(self):
        assert make_recorder().poll_feed() is None


class TestManualEntry:
    """Test manual form entries."""

    def setup_method(self):
        self.clock = FakeClock()
        self.recorder = make_recorder(feed=MockSensorFeed(), clock=self.clock)

    def test_invalid_form_changes_nothing(self):
        stored, errors = self.recorder.record_manual({"temperature": "hot", "humidity": "120"})

        assert stored is None
        assert set(errors) == {"temperature", "humidity"}
        assert len(self.recorder.ledger) == 0
        assert not self.recorder.current.overrides.is_manual("temperature")

    def test_valid_form(self):
        stored, errors = self.recorder.record_manual({"temperature": "20.5", "humidity": ""},
                                                     date="2025-05-31", time="07:15")
        assert errors == {}
        assert stored.origin is Origin.MANUAL
        assert stored.notes == MANUAL_NOTES
        assert stored.timestamp == datetime(2025, 5, 31, 7, 15, tzinfo=timezone.utc)
        assert stored.values == {"temperature": 20.5}
        assert self.recorder.current.current_value("temperature") == 20.5

    def test_zero_is_recorded(self):
        stored, errors = self.recorder.record_manual({"light": "0"})
        assert errors == {}
        assert stored.get("light") == 0.0

    def test_custom_notes(self):
        stored, _ = self.recorder.record_manual({"temperature": "20"}, notes="  after pruning ")
        assert stored.notes == "after pruning"

    def test_empty_form(self):
        stored, errors = self.recorder.record_manual({})
        assert stored is None
        assert "form" in errors

    def test_bad_date(self):
        stored, errors = self.recorder.record_manual({"temperature": "20"}, date="31/05/2025")
        assert stored is None
        assert "timestamp" in errors

    def test_plant_totals(self):
        recorder = make_recorder(domain=PLANT_GROWTH)
        stored, errors = recorder.record_manual({
            "stem_a_open_buds": "2",
            "stem_c_open_buds": "3",
            "stem_b_height": "40",
        })
        assert errors == {}
        assert stored.get("total_open_buds") == 5.0
        assert stored.get("total_matured_flowers") is None

    def test_manual_entries_not_deduplicated(self):
        self.recorder.poll_feed()
        stored, _ = self.recorder.record_manual({"temperature": "20"})
        assert stored is not None
        assert len(self.recorder.ledger) == 2


class TestEntryTime:
    def test_defaults_to_now(self):
        clock = FakeClock()
        assert parse_entry_time(None, None, timezone.utc, clock) == T0

    def test_date_only_keeps_current_time(self):
        clock = FakeClock()
        assert parse_entry_time("2025-05-01", None, timezone.utc, clock) == datetime(
            2025, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_local_timezone_converted_to_utc(self):
        tz = timezone(timedelta(hours=2))
        ts = parse_entry_time("2025-06-01", "09:00", tz, FakeClock())
        assert ts == datetime(2025, 6, 1, 7, 0, tzinfo=timezone.utc)

    @pytest.mark.skipif(
        not hasattr(time, "tzset") or not Path("/usr/share/zoneinfo/America/New_York").exists(),
        reason="needs tzset and the system zone database",
    )
    def test_system_local_time_uses_offset_of_entry_date(self):
        """Test a winter date entered in summer gets the winter offset."""
        saved = os.environ.get("TZ")
        os.environ["TZ"] = "America/New_York"
        time.tzset()
        try:
            ts = parse_entry_time("2025-01-15", "09:00", None, FakeClock())
        finally:
            if saved is None:
                del os.environ["TZ"]
            else:
                os.environ["TZ"] = saved
            time.tzset()
        assert ts == datetime(2025, 1, 15, 14, 0, tzinfo=timezone.utc)


class TestScheduling:
    """Test job scheduling and shutdown."""

    def test_schedule_and_stop(self):
        recorder = make_recorder(feed=MockSensorFeed())
        scheduler = schedule.Scheduler()

        recorder.schedule_jobs(scheduler, poll_s=10, auto_s=300)
        periods = sorted(job.interval for job in scheduler.jobs)
        assert periods == [10, 300]

        recorder.stop()
        assert scheduler.jobs == []

    def test_run_until_stopped(self):
        recorder = make_recorder(feed=MockSensorFeed())
        stop = threading.Event()
        stop.set()

        recorder.run(stop)

        assert len(recorder.ledger) == 1
        assert recorder._jobs == []


class TestCli:
    """Test the hydrolog command line."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.saved_env = {k: os.environ.pop(k) for k in list(os.environ) if k.startswith("HYDROLOG_")}
        os.environ["HYDROLOG_MOCK_FEED"] = "1"

    def teardown_method(self):
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        for k in [k for k in os.environ if k.startswith("HYDROLOG_")]:
            del os.environ[k]
        os.environ.update(self.saved_env)

    def test_once_writes_ledger(self, capsys):
        assert main(["--once", "--data-dir", self.temp_dir]) == 0

        data_file = Path(self.temp_dir) / "environmental-entries.json"
        entries = json.loads(data_file.read_text())
        assert [e["notes"] for e in entries] == [POLL_NOTES, AUTO_NOTES]
        assert [e["source"] for e in entries] == ["sensor-poll", "auto-entry"]
        assert "Garden Reading Recorder" in capsys.readouterr().out

    def test_export_csv(self, capsys):
        main(["--once", "--data-dir", self.temp_dir])
        capsys.readouterr()

        assert main(["--export", "csv", "--data-dir", self.temp_dir]) == 0
        lines = capsys.readouterr().out.strip().split("\n")
        assert lines[0].startswith("Timestamp (ISO),Date,Time")
        assert len(lines) == 3

    def test_stats(self, capsys):
        main(["--once", "--data-dir", self.temp_dir])
        capsys.readouterr()

        assert main(["--stats", "--data-dir", self.temp_dir]) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["total_readings"] == 2
        assert summary["windows"]["10min"]["fields"]["temperature"]["latest"] == 22.5


if __name__ == "__main__":
    pytest.main([__file__])
