"""
Current Values
==============

Merges the latest sensor feed values with per-field manual overrides into
the "current" value shown on the dashboard and captured by auto-entries.

Precedence for each field:
  1. manual mode on  -> the manually entered value
  2. light           -> the grow-light schedule (day/night constant)
  3. otherwise       -> the latest sensor feed value
A field with none of these has no current value and displays as "--".
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from .ledger import Clock, utc_now
from .store import load_json, save_json

logger = logging.getLogger(__name__)

DAY_LIGHT_LUX = 30000.0
NIGHT_LIGHT_LUX = 250.0
LIGHTS_ON_HOUR = 8
LIGHTS_OFF_HOUR = 20

PLACEHOLDER = "--"


def scheduled_light(hour: int) -> float:
    """Light intensity from the grow-light schedule for a local hour (0-23)."""
    if LIGHTS_ON_HOUR <= hour < LIGHTS_OFF_HOUR:
        return DAY_LIGHT_LUX
    return NIGHT_LIGHT_LUX


def display(value: Optional[float], digits: int = 1) -> str:
    """Format a current value for display."""
    if value is None:
        return PLACEHOLDER
    return f"{value:.{digits}f}"


@dataclass
class ManualOverrides:
    """Per-field manual mode flags and manually entered values."""

    modes: Dict[str, bool] = field(default_factory=dict)
    values: Dict[str, Optional[float]] = field(default_factory=dict)

    def is_manual(self, name: str) -> bool:
        return bool(self.modes.get(name, False))

    def to_dict(self) -> dict:
        return {"manualMode": dict(self.modes), "manualValues": dict(self.values)}

    @classmethod
    def from_dict(cls, data: Mapping) -> "ManualOverrides":
        modes = data.get("manualMode") or {}
        values = data.get("manualValues") or {}
        if not isinstance(modes, dict) or not isinstance(values, dict):
            return cls()
        return cls(
            modes={k: bool(v) for k, v in modes.items()},
            values={
                k: (float(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else None)
                for k, v in values.items()
            },
        )

    @classmethod
    def load(cls, path: Path) -> "ManualOverrides":
        data = load_json(path, {})
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed manual overrides in %s", path)
            return cls()
        return cls.from_dict(data)

    def save(self, path: Path) -> bool:
        return save_json(path, self.to_dict())


class CurrentValues:
    """Current value per field for one domain."""

    def __init__(self, fields: Iterable[str], overrides: Optional[ManualOverrides] = None,
                 clock: Clock = utc_now, tz: Optional[tzinfo] = None,
                 overrides_file: Optional[Path] = None):
        """Initialize current values.

        Args:
            fields: Fields of the domain
            overrides: Manual overrides (fresh, all off, if omitted)
            clock: Source of "now" for the light schedule
            tz: Timezone the light schedule runs in (system local if None)
            overrides_file: Where to persist overrides after each change
        """
        self.fields = tuple(fields)
        self.overrides = overrides or ManualOverrides()
        self.clock = clock
        self.tz = tz
        self.overrides_file = overrides_file
        self._feed: Dict[str, Optional[float]] = {}
        self._lock = threading.Lock()

    def update_feed(self, payload: Mapping[str, Optional[float]]) -> None:
        """Remember the latest sensor feed values."""
        with self._lock:
            for name, value in payload.items():
                if name in self.fields:
                    self._feed[name] = value

    def _local_hour(self) -> int:
        return self.clock().astimezone(self.tz).hour

    def current_value(self, name: str) -> Optional[float]:
        with self._lock:
            if self.overrides.is_manual(name):
                return self.overrides.values.get(name)
            if name == "light":
                return scheduled_light(self._local_hour())
            return self._feed.get(name)

    def snapshot(self) -> Dict[str, Optional[float]]:
        return {name: self.current_value(name) for name in self.fields}

    def apply_manual_entry(self, values: Mapping[str, Optional[float]]) -> None:
        """Adopt submitted form values as manual overrides.

        Every submitted field switches to manual mode and keeps the value
        until manual mode is turned off again.
        """
        with self._lock:
            for name, value in values.items():
                if name not in self.fields or value is None:
                    continue
                self.overrides.values[name] = value
                self.overrides.modes[name] = True
        self._save()

    def toggle_manual(self, name: str) -> bool:
        """Flip manual mode for a field.

        Returns:
            The new manual mode state
        """
        with self._lock:
            state = not self.overrides.is_manual(name)
            self.overrides.modes[name] = state
        self._save()
        return state

    def _save(self) -> None:
        if self.overrides_file is None:
            return
        if not self.overrides.save(self.overrides_file):
            logger.warning("Manual overrides not saved to %s", self.overrides_file)
