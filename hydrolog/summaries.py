"""
summaries.py - Trend statistics over ledger windows

Per-field stats (count/latest/min/max/avg) for each trend window and
per-day averages, as shown next to the dashboard charts.
"""

from __future__ import annotations
from datetime import tzinfo
from typing import Iterable, Sequence

from .ledger import Ledger, Reading, TimeWindow, format_timestamp


def _avg(values: list[float]) -> float | None:
    return round(sum(values) / len(values), 2) if values else None


def field_stats(readings: Sequence[Reading], field: str) -> dict | None:
    """Stats for one field, or None if no reading carries a value for it."""
    values = [r.get(field) for r in readings]
    values = [v for v in values if v is not None]
    if not values:
        return None
    return {
        "count": len(values),
        "latest": values[-1],
        "min": min(values),
        "max": max(values),
        "avg": _avg(values),
    }


def daily_averages(readings: Iterable[Reading], fields: Sequence[str],
                   tz: tzinfo | None = None) -> list[dict]:
    """Average of each field per calendar day, oldest day first.

    Days are UTC unless `tz` is given.
    """
    days: dict[str, dict[str, list[float]]] = {}
    for r in readings:
        ts = r.timestamp.astimezone(tz) if tz else r.timestamp
        d = ts.date().isoformat()
        days.setdefault(d, {f: [] for f in fields})
        for f in fields:
            v = r.get(f)
            if v is not None:
                days[d][f].append(v)

    out = []
    for d, vals in sorted(days.items()):
        row = {"date": d}
        row.update({f: _avg(vals[f]) for f in fields})
        out.append(row)
    return out


def build_summary(ledger: Ledger, fields: Sequence[str],
                  windows: Iterable[TimeWindow | str] = tuple(TimeWindow)) -> dict:
    """Stats per window plus daily averages over the last week."""
    out = {
        "ledger": ledger.name,
        "generated": format_timestamp(ledger.clock()),
        "total_readings": len(ledger),
        "windows": {},
    }
    for window in windows:
        window = TimeWindow.parse(window)
        points = ledger.filter_window(window)
        out["windows"][window.value] = {
            "readings": len(points),
            "plottable": ledger.trend(window) is not None,
            "fields": {f: field_stats(points, f) for f in fields},
        }
    out["daily_avg"] = daily_averages(ledger.filter_window(TimeWindow.ONE_WEEK), fields)
    return out
