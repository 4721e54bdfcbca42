"""
Data Export
===========

Serializes ledger readings to CSV and JSON for download, per domain and as
a multi-section "complete system" export that also lists stored media.

CSV layout follows the dashboard's historical download format: a header row
then one row per reading in ledger order, joined with "\\n" and no trailing
newline. Text cells are double-quoted with embedded quotes doubled; embedded
newlines are written as-is. Numbers are fixed-point, so the CSV is lossy.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .fields import (
    ENVIRONMENTAL,
    HYDROPONIC,
    PLANT_GROWTH,
    STEMS,
    STEM_COUNTERS,
    Domain,
    get_domain,
    stem_field,
    total_field,
)
from .ledger import Reading, format_timestamp, utc_now


@dataclass(frozen=True)
class Column:
    header: str
    field: str
    digits: int


_COUNTER_LABELS = {
    "matured_flowers": "Matured Flowers",
    "open_buds": "Open Buds",
    "unopened_buds": "Unopened Buds",
    "leaves": "Leaves",
}


def _plant_columns() -> List[Column]:
    columns = []
    for stem in STEMS:
        label = f"Stem {stem.upper()}"
        columns.append(Column(f"{label} Height (cm)", stem_field(stem, "height"), 1))
        for counter in STEM_COUNTERS + ("leaves",):
            columns.append(Column(f"{label} {_COUNTER_LABELS[counter]}", stem_field(stem, counter), 0))
    for counter in STEM_COUNTERS:
        columns.append(Column(f"Total {_COUNTER_LABELS[counter]}", total_field(counter), 0))
    return columns


# (include ISO timestamp column, value columns) per domain
CSV_LAYOUTS: Dict[str, Tuple[bool, List[Column]]] = {
    ENVIRONMENTAL.name: (True, [
        Column("Temperature (°C)", "temperature", 1),
        Column("Humidity (%)", "humidity", 1),
        Column("Light Intensity (lux)", "light", 0),
    ]),
    HYDROPONIC.name: (False, [
        Column("pH Level", "ph", 1),
        Column("EC (mS/cm)", "ec", 1),
        Column("Water Temperature (°C)", "water_temp", 1),
    ]),
    PLANT_GROWTH.name: (False, _plant_columns()),
}

# Field names as they appear in JSON exports
JSON_KEYS = {
    "light": "lightIntensity",
    "water_temp": "waterTemp",
}

SECTION_TITLES = {
    ENVIRONMENTAL.name: "ENVIRONMENTAL DATA",
    HYDROPONIC.name: "HYDROPONIC DATA",
    PLANT_GROWTH.name: "PLANT GROWTH DATA",
}

MEDIA_HEADER = "Upload Date,Original Name,Category,File Size (MB),Description"


@dataclass(frozen=True)
class MediaItem:
    """Descriptor of an uploaded photo, video, document or link."""

    id: str
    url: str
    original_name: str
    upload_date: str
    size: int
    category: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "url": self.url,
            "originalName": self.original_name,
            "uploadDate": self.upload_date,
            "size": self.size,
            "category": self.category,
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MediaItem":
        return cls(
            id=str(data["id"]),
            url=str(data["url"]),
            original_name=str(data.get("originalName", "")),
            upload_date=str(data.get("uploadDate", "")),
            size=int(data.get("size") or 0),
            category=str(data.get("category", "")),
            description=data.get("description"),
        )


def quote(text: Optional[str]) -> str:
    """Double-quote a CSV text cell, doubling embedded quotes."""
    return '"' + (text or "").replace('"', '""') + '"'


def fixed(value: Optional[float], digits: int) -> str:
    return "" if value is None else f"{value:.{digits}f}"


def local_date(dt: datetime, tz: Optional[tzinfo] = None) -> str:
    """Date as M/D/YYYY in the given timezone (system local if None)."""
    local = dt.astimezone(tz)
    return f"{local.month}/{local.day}/{local.year}"


def local_time(dt: datetime, tz: Optional[tzinfo] = None) -> str:
    """Time as h:MM:SS AM/PM in the given timezone (system local if None)."""
    local = dt.astimezone(tz)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d}:{local.second:02d} {suffix}"


def _csv_header(domain: Domain) -> str:
    with_iso, columns = CSV_LAYOUTS[domain.name]
    headers = (["Timestamp (ISO)"] if with_iso else []) + ["Date", "Time"]
    headers += [c.header for c in columns] + ["Notes"]
    return ",".join(headers)


def _csv_row(reading: Reading, domain: Domain, tz: Optional[tzinfo]) -> str:
    with_iso, columns = CSV_LAYOUTS[domain.name]
    cells = [quote(format_timestamp(reading.timestamp))] if with_iso else []
    cells += [quote(local_date(reading.timestamp, tz)), quote(local_time(reading.timestamp, tz))]
    cells += [fixed(reading.get(c.field), c.digits) for c in columns]
    cells.append(quote(reading.notes))
    return ",".join(cells)


def export_csv(readings: Sequence[Reading], domain: Domain, tz: Optional[tzinfo] = None) -> str:
    """Serialize readings of one domain as CSV.

    Args:
        readings: Readings in ledger order
        domain: Domain the readings belong to
        tz: Timezone for the Date/Time columns (system local if None)

    Returns:
        CSV text with len(readings) + 1 lines
    """
    lines = [_csv_header(domain)]
    lines.extend(_csv_row(r, domain, tz) for r in readings)
    return "\n".join(lines)


def _json_entry(reading: Reading, domain: Domain, tz: Optional[tzinfo]) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": format_timestamp(reading.timestamp),
        "date": local_date(reading.timestamp, tz),
        "time": local_time(reading.timestamp, tz),
    }
    for name in domain.fields:
        entry[JSON_KEYS.get(name, name)] = reading.get(name)
    entry["origin"] = reading.origin.value
    entry["notes"] = reading.notes or None
    return entry


def export_json(readings: Sequence[Reading], domain: Domain, tz: Optional[tzinfo] = None,
                now: Optional[datetime] = None) -> str:
    """Serialize readings of one domain as a JSON export envelope."""
    payload = {
        "exportDate": format_timestamp(now or utc_now()),
        "dataType": domain.label,
        "description": domain.description,
        "totalEntries": len(readings),
        "data": [_json_entry(r, domain, tz) for r in readings],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _media_row(item: MediaItem) -> str:
    size_mb = f"{item.size / (1024 * 1024):.2f}" if item.size else ""
    return ",".join([
        quote(item.upload_date),
        quote(item.original_name),
        quote(item.category),
        quote(size_mb),
        quote(item.description),
    ])


def _media_by_category(media: Sequence[MediaItem]) -> Dict[str, List[MediaItem]]:
    groups: Dict[str, List[MediaItem]] = {}
    for item in media:
        groups.setdefault(item.category or "uncategorized", []).append(item)
    return groups


def export_system_csv(ledgers: Mapping[str, Sequence[Reading]], media: Sequence[MediaItem] = (),
                      now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> Tuple[str, int]:
    """Export every non-empty ledger and the media list as one CSV document.

    Args:
        ledgers: Readings keyed by domain name
        media: Stored media descriptors
        now: Export time
        tz: Timezone for Date/Time columns

    Returns:
        (csv text, total record count); a count of 0 means nothing to export
    """
    out = [
        "=== COMPLETE SYSTEM EXPORT ===",
        f"Export Date: {format_timestamp(now or utc_now())}",
        "Export Type: Complete System Data",
        "",
    ]
    total = 0

    for name, readings in ledgers.items():
        if not readings:
            continue
        domain = get_domain(name)
        out.append(f"=== {SECTION_TITLES.get(domain.name, domain.label.upper())} ===")
        out.append(export_csv(readings, domain, tz))
        out.append("")
        total += len(readings)

    for category, items in _media_by_category(media).items():
        out.append(f"=== MEDIA: {category.upper()} ===")
        out.append(MEDIA_HEADER)
        out.extend(_media_row(item) for item in items)
        out.append("")
        total += len(items)

    return "\n".join(out), total


def export_system_json(ledgers: Mapping[str, Sequence[Reading]], media: Sequence[MediaItem] = (),
                       now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> Tuple[str, int]:
    """JSON counterpart of export_system_csv(); empty ledgers are kept as empty sections."""
    sections: Dict[str, Any] = {}
    total = 0
    for name, readings in ledgers.items():
        domain = get_domain(name)
        sections[domain.name] = {
            "description": domain.description,
            "totalEntries": len(readings),
            "data": [_json_entry(r, domain, tz) for r in readings],
        }
        total += len(readings)

    total += len(media)
    payload = {
        "metadata": {
            "exportDate": format_timestamp(now or utc_now()),
            "exportType": "Complete System Data",
            "totalRecords": total,
        },
        **sections,
        "media": {
            "totalEntries": len(media),
            "data": [item.to_dict() for item in media],
        },
    }
    return json.dumps(payload, indent=2, ensure_ascii=False), total


def export_filename(stem: str, ext: str, now: Optional[datetime] = None) -> str:
    """Download filename such as environmental_data_2025-01-31.csv."""
    day = (now or utc_now()).astimezone(timezone.utc).date().isoformat()
    return f"{stem}_{day}.{ext}"
