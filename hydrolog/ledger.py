"""
Reading Ledger
==============

Append-only, capacity-bounded time series of garden readings.

Each entry is a timestamped set of named numeric values tagged with the
origin that produced it (a manual form entry or an automatic sensor capture).
Readings are never mutated or deleted; they only fall out of the ledger when
the retention cap evicts the oldest entries.
"""

import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_CAPACITY = 1000
DEFAULT_SPACING = timedelta(seconds=60)

# Producers of automatic readings. Each is spaced against its own last entry.
SENSOR_POLL = "sensor-poll"
AUTO_ENTRY = "auto-entry"
DEFAULT_SOURCE_SPACING = {AUTO_ENTRY: timedelta(seconds=8)}

# A single point cannot draw a trend line
MIN_TREND_POINTS = 2


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_aware(ts: Union[str, datetime, None]) -> Optional[datetime]:
    """Return a timezone-aware UTC datetime from either a string or a datetime.

    Accepts '...Z' and '...+00:00'. Treats naive datetimes as UTC.
    """
    if isinstance(ts, str):
        if ts.endswith('Z'):
            ts = ts[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(ts)
        except ValueError:
            return None
    elif isinstance(ts, datetime):
        dt = ts
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return dt.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class Origin(enum.Enum):
    """Where a reading came from."""

    MANUAL = "manual"
    AUTOMATIC = "automatic"

    @classmethod
    def from_notes(cls, notes: Optional[str]) -> "Origin":
        # Older entries carried the origin only inside the free-text notes
        if notes and notes.strip().lower().startswith("auto"):
            return cls.AUTOMATIC
        return cls.MANUAL


class TimeWindow(enum.Enum):
    """Trend-chart time ranges."""

    TEN_MINUTES = "10min"
    ONE_HOUR = "1hour"
    SIX_HOURS = "6hours"
    ONE_DAY = "1day"
    ONE_WEEK = "1week"

    @property
    def duration(self) -> timedelta:
        return _WINDOW_DURATIONS[self]

    @classmethod
    def parse(cls, value: Union[str, "TimeWindow"]) -> "TimeWindow":
        """Resolve a window name, falling back to one hour for unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            logger.debug("Unknown time window %r, using 1hour", value)
            return cls.ONE_HOUR


_WINDOW_DURATIONS = {
    TimeWindow.TEN_MINUTES: timedelta(minutes=10),
    TimeWindow.ONE_HOUR: timedelta(hours=1),
    TimeWindow.SIX_HOURS: timedelta(hours=6),
    TimeWindow.ONE_DAY: timedelta(days=1),
    TimeWindow.ONE_WEEK: timedelta(weeks=1),
}


@dataclass(frozen=True)
class Reading:
    """One timestamped data point."""

    timestamp: Optional[datetime] = None
    values: Mapping[str, Optional[float]] = field(default_factory=dict)
    origin: Origin = Origin.MANUAL
    notes: str = ""
    source: str = ""

    def __post_init__(self):
        # Naive timestamps are UTC
        if self.timestamp is not None:
            object.__setattr__(self, "timestamp", to_aware(self.timestamp))

    @property
    def is_automatic(self) -> bool:
        return self.origin is Origin.AUTOMATIC

    def get(self, name: str) -> Optional[float]:
        return self.values.get(name)

    def has_values(self) -> bool:
        return any(v is not None for v in self.values.values())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"timestamp": format_timestamp(self.timestamp)}
        data.update(self.values)
        data["origin"] = self.origin.value
        data["notes"] = self.notes
        if self.source:
            data["source"] = self.source
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Reading":
        """Build a reading from its stored form.

        Raises:
            ValueError: if the timestamp is missing or unparseable
        """
        timestamp = to_aware(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"Invalid timestamp: {data.get('timestamp')!r}")

        notes = data.get("notes") or ""
        raw_origin = data.get("origin")
        origin = Origin(raw_origin) if raw_origin else Origin.from_notes(notes)

        values = {
            k: (float(v) if v is not None else None)
            for k, v in data.items()
            if k not in ("timestamp", "origin", "notes", "source")
            and (v is None or (isinstance(v, (int, float)) and not isinstance(v, bool)))
        }
        return cls(timestamp=timestamp, values=values, origin=origin, notes=notes,
                   source=str(data.get("source") or ""))


@dataclass(frozen=True)
class LedgerPolicy:
    """Retention cap and automatic-entry spacing for one ledger.

    `spacing` applies to every automatic source unless `source_spacing`
    names a different gap for it.
    """

    capacity: int = DEFAULT_CAPACITY
    spacing: timedelta = DEFAULT_SPACING
    source_spacing: Mapping[str, timedelta] = field(
        default_factory=lambda: dict(DEFAULT_SOURCE_SPACING))

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError(f"capacity must be positive, got {self.capacity}")
        gaps = [self.spacing, *self.source_spacing.values()]
        if any(gap < timedelta(0) for gap in gaps):
            raise ValueError("spacing cannot be negative")

    def spacing_for(self, source: str) -> timedelta:
        return self.source_spacing.get(source, self.spacing)


class Ledger:
    """Bounded, append-only series of readings.

    Persistence is delegated to stores: the first store is the one
    `restore()` reads from, and every store is told about each accepted
    append. Store failures never reach the caller.
    """

    def __init__(self, name: str, policy: Optional[LedgerPolicy] = None,
                 stores: Sequence[Any] = (), clock: Clock = utc_now):
        """Initialize an empty ledger.

        Args:
            name: Ledger name (domain name, used in logs and exports)
            policy: Retention and spacing policy
            stores: Persistence backends with load()/record()
            clock: Source of "now" for default timestamps and windows
        """
        self.name = name
        self.policy = policy or LedgerPolicy()
        self.stores = list(stores)
        self.clock = clock
        self._entries: List[Reading] = []
        self._lock = threading.RLock()
        self._persist_lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[Reading]:
        return iter(self.readings())

    def readings(self) -> List[Reading]:
        with self._lock:
            return list(self._entries)

    def latest(self) -> Optional[Reading]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def restore(self) -> int:
        """Load entries from the primary store, keeping the newest `capacity`.

        Returns:
            Number of entries loaded
        """
        if not self.stores:
            return 0

        try:
            raw = self.stores[0].load()
        except Exception as e:
            logger.error("Failed to restore %s ledger: %s", self.name, e)
            raw = []

        entries = []
        for item in raw:
            try:
                entries.append(Reading.from_dict(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed %s entry: %s", self.name, e)

        with self._lock:
            self._entries = entries[-self.policy.capacity:]
            count = len(self._entries)
        logger.info("Restored %d %s readings", count, self.name)
        return count

    def append(self, reading: Reading) -> Optional[Reading]:
        """Append a reading, applying de-duplication and the retention cap.

        Args:
            reading: Reading to add; a missing timestamp defaults to now

        Returns:
            The stored reading, or None if it was discarded as a duplicate
        """
        if reading.timestamp is None:
            reading = Reading(self.clock(), reading.values, reading.origin, reading.notes,
                              reading.source)

        # Stores see snapshots in append order
        with self._persist_lock:
            with self._lock:
                if self._is_duplicate(reading):
                    logger.debug("Discarding %s reading at %s: within %s of previous %r entry",
                                 self.name, format_timestamp(reading.timestamp),
                                 self.policy.spacing_for(reading.source), reading.source)
                    return None

                self._entries.append(reading)
                if len(self._entries) > self.policy.capacity:
                    del self._entries[:-self.policy.capacity]
                snapshot = list(self._entries)

            self._persist(reading, snapshot)
        return reading

    def _is_duplicate(self, new: Reading) -> bool:
        if not new.is_automatic:
            return False
        for last in reversed(self._entries):
            if last.is_automatic and last.source == new.source:
                return new.timestamp - last.timestamp < self.policy.spacing_for(new.source)
        return False

    def _persist(self, reading: Reading, snapshot: List[Reading]) -> None:
        entry = reading.to_dict()
        entries = None
        for store in self.stores:
            try:
                if entries is None:
                    entries = [r.to_dict() for r in snapshot]
                if not store.record(entry, entries):
                    logger.warning("Store %s did not save %s entry", type(store).__name__, self.name)
            except Exception as e:
                logger.error("Failed to persist %s entry: %s", self.name, e)

    def filter_window(self, window: Union[str, TimeWindow]) -> List[Reading]:
        """Readings no older than the given window, in ledger order."""
        cutoff = self.clock() - TimeWindow.parse(window).duration
        return [r for r in self.readings() if r.timestamp >= cutoff]

    def since(self, cutoff: datetime) -> List[Reading]:
        return [r for r in self.readings() if r.timestamp >= cutoff]

    def trend(self, window: Union[str, TimeWindow]) -> Optional[List[Reading]]:
        """Chronologically sorted window, or None when there is too little to plot."""
        points = sorted(self.filter_window(window), key=lambda r: r.timestamp)
        if len(points) < MIN_TREND_POINTS:
            return None
        return points
