#!/usr/bin/env python3
"""
recorder.py - Garden reading recorder
=====================================

Runs the two periodic jobs that feed the environmental ledger:
  - sensor poll (every 10 s): latest feed values -> automatic reading
  - auto-entry (every 5 min): current values (manual or sensor) -> automatic reading
The jobs are independent; either may run first. Each job tags its readings
with its own source, and the ledger drops a reading that lands too close to
the previous one from the same source.

Manual form entries go through record_manual(), which validates first and
never touches the ledger when any field is invalid.

Usage:
  hydrolog                      # run both jobs until Ctrl+C
  hydrolog --once               # one poll + one auto-entry, then exit
  hydrolog --export csv --window 1day
  hydrolog --stats
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
import threading
from datetime import datetime, timezone, tzinfo
from typing import Mapping

import schedule

from .config import Settings, load_settings
from .current import CurrentValues, ManualOverrides
from .export import export_csv, export_json
from .feed import FeedError, SensorFeed, create_feed
from .fields import ENVIRONMENTAL, PLANT_GROWTH, Domain, with_plant_totals
from .ledger import (
    AUTO_ENTRY,
    SENSOR_POLL,
    Clock,
    Ledger,
    Origin,
    Reading,
    format_timestamp,
    utc_now,
)
from .store import ApiStore, JsonFileStore
from .summaries import build_summary
from .validation import parse_form

logger = logging.getLogger(__name__)

POLL_NOTES = "Auto-recorded from sensor feed"
AUTO_NOTES = "Auto-entry (5-min interval)"
MANUAL_NOTES = "Manual entry"


def open_ledger(settings: Settings, domain: Domain, clock: Clock = utc_now) -> Ledger:
    """Ledger for a domain backed by its JSON file (and the remote API if configured)."""
    stores = [JsonFileStore(settings.ledger_file(domain.name))]
    if settings.api_url:
        stores.append(ApiStore(settings.api_url, domain.kind))
    ledger = Ledger(domain.name, settings.policy, stores, clock)
    ledger.restore()
    return ledger


def parse_entry_time(date: str | None, time: str | None, tz: tzinfo | None = None,
                     clock: Clock = utc_now) -> datetime:
    """Timestamp for a manual entry from form date (YYYY-MM-DD) and time (HH:MM).

    Missing parts default to the current local date/time.

    Raises:
        ValueError: if date or time is malformed
    """
    now = clock().astimezone(tz)
    if not date and not time:
        return clock()
    day = datetime.strptime(date, "%Y-%m-%d").date() if date else now.date()
    if time:
        parsed = datetime.strptime(time, "%H:%M")
        hour, minute = parsed.hour, parsed.minute
    else:
        hour, minute = now.hour, now.minute
    local = datetime(day.year, day.month, day.day, hour, minute)
    if tz is None:
        # System local time, with the UTC offset in effect on that date
        return local.astimezone(timezone.utc)
    return local.replace(tzinfo=tz).astimezone(timezone.utc)


class Recorder:
    """Periodic and manual recording into one ledger."""

    def __init__(self, domain: Domain, ledger: Ledger, current: CurrentValues,
                 feed: SensorFeed | None = None, clock: Clock | None = None,
                 tz: tzinfo | None = None):
        self.domain = domain
        self.ledger = ledger
        self.current = current
        self.feed = feed
        self.clock = clock or ledger.clock
        self.tz = tz
        self._jobs: list[schedule.Job] = []
        self._scheduler: schedule.Scheduler | None = None

    def poll_feed(self) -> Reading | None:
        """Fetch the sensor feed and record its raw values."""
        if self.feed is None:
            return None
        try:
            payload = self.feed.fetch()
        except FeedError as e:
            logger.warning("Sensor poll failed: %s", e)
            return None

        self.current.update_feed(payload)
        values = {f: payload.get(f) for f in self.domain.fields}
        if all(v is None for v in values.values()):
            logger.debug("Sensor feed has no values, nothing recorded")
            return None

        reading = Reading(self.clock(), values, Origin.AUTOMATIC, POLL_NOTES, SENSOR_POLL)
        return self.ledger.append(reading)

    def auto_entry(self) -> Reading | None:
        """Record whatever values are currently in effect."""
        values = self.current.snapshot()
        if all(v is None for v in values.values()):
            logger.debug("No current values, auto-entry skipped")
            return None
        reading = Reading(self.clock(), values, Origin.AUTOMATIC, AUTO_NOTES, AUTO_ENTRY)
        return self.ledger.append(reading)

    def record_manual(self, form: Mapping[str, str], date: str | None = None,
                      time: str | None = None, notes: str | None = None
                      ) -> tuple[Reading | None, dict[str, str]]:
        """Validate a submitted form and record it as a manual reading.

        Args:
            form: Raw form inputs keyed by field name
            date: Entry date (YYYY-MM-DD), today if omitted
            time: Entry time (HH:MM), now if omitted
            notes: Free-text notes, "Manual entry" if blank

        Returns:
            (stored reading or None, errors keyed by field)
        """
        values, errors = parse_form(form, self.domain.fields)

        timestamp = None
        try:
            timestamp = parse_entry_time(date, time, self.tz, self.clock)
        except ValueError:
            errors["timestamp"] = "Please enter a valid date and time"

        if errors:
            return None, errors
        if not values:
            return None, {"form": "Enter at least one value"}

        if self.domain is PLANT_GROWTH:
            values = with_plant_totals(values)

        reading = Reading(timestamp, values, Origin.MANUAL, (notes or "").strip() or MANUAL_NOTES)
        stored = self.ledger.append(reading)
        self.current.apply_manual_entry(values)
        return stored, {}

    def schedule_jobs(self, scheduler: schedule.Scheduler, poll_s: float = 10,
                      auto_s: float = 300) -> None:
        self._scheduler = scheduler
        self._jobs = [
            scheduler.every(int(poll_s)).seconds.do(self.poll_feed),
            scheduler.every(int(auto_s)).seconds.do(self.auto_entry),
        ]

    def stop(self) -> None:
        """Cancel both periodic jobs."""
        if self._scheduler is not None:
            for job in self._jobs:
                self._scheduler.cancel_job(job)
        self._jobs = []

    def run(self, stop_event: threading.Event, poll_s: float = 10, auto_s: float = 300) -> None:
        """Run the periodic jobs until stop_event is set."""
        scheduler = schedule.Scheduler()
        self.schedule_jobs(scheduler, poll_s, auto_s)
        self.poll_feed()
        try:
            while not stop_event.is_set():
                scheduler.run_pending()
                stop_event.wait(1)
        finally:
            self.stop()


def build_recorder(settings: Settings, clock: Clock = utc_now) -> Recorder:
    ledger = open_ledger(settings, ENVIRONMENTAL, clock)
    current = CurrentValues(
        ENVIRONMENTAL.fields,
        ManualOverrides.load(settings.overrides_file),
        clock=clock,
        overrides_file=settings.overrides_file,
    )
    feed = create_feed(settings.feed_url, settings.mock_feed)
    return Recorder(ENVIRONMENTAL, ledger, current, feed, clock)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Garden reading recorder (environmental ledger)"
    )
    parser.add_argument("--once", action="store_true",
                        help="Poll the feed and take one auto-entry, then exit")
    parser.add_argument("--data-dir", default=None,
                        help="Data directory (default: $HYDROLOG_DATA_DIR or ./data)")
    parser.add_argument("--poll-interval", type=float, default=None,
                        help="Seconds between sensor polls (default: 10)")
    parser.add_argument("--auto-interval", type=float, default=None,
                        help="Seconds between auto-entries (default: 300)")
    parser.add_argument("--export", choices=("csv", "json"),
                        help="Print the ledger in the given format and exit")
    parser.add_argument("--window", default=None,
                        help="Limit --export to a window (10min, 1hour, 6hours, 1day, 1week)")
    parser.add_argument("--stats", action="store_true",
                        help="Print window statistics and exit")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings(args.data_dir)
    recorder = build_recorder(settings)
    ledger = recorder.ledger

    if args.export:
        readings = ledger.filter_window(args.window) if args.window else ledger.readings()
        if args.export == "csv":
            print(export_csv(readings, ENVIRONMENTAL))
        else:
            print(export_json(readings, ENVIRONMENTAL))
        return 0

    if args.stats:
        print(json.dumps(build_summary(ledger, ENVIRONMENTAL.fields), indent=2))
        return 0

    if args.once:
        print("Garden Reading Recorder")
        print("=" * 40)
        polled = recorder.poll_feed()
        entry = recorder.auto_entry()
        print(f"Poll: {'recorded' if polled else 'nothing recorded'}")
        print(f"Auto-entry: {'recorded' if entry else 'nothing recorded'}")
        print(f"{len(ledger)} readings in {settings.ledger_file(ENVIRONMENTAL.name)}")
        return 0 if (polled or entry) else 1

    poll_s = args.poll_interval or settings.poll_s
    auto_s = args.auto_interval or settings.auto_s
    print("Garden Reading Recorder")
    print("=" * 40)
    print(f"Polling every {poll_s:g}s, auto-entry every {auto_s:g}s")
    print("Press Ctrl+C to stop\n")

    stop = threading.Event()
    try:
        recorder.run(stop, poll_s, auto_s)
    except KeyboardInterrupt:
        print("\nStopping recorder")
        stop.set()
    print(f"[{format_timestamp(utc_now())}] {len(ledger)} readings recorded")
    return 0


if __name__ == "__main__":
    sys.exit(main())
