"""
Test export.py - CSV/JSON exports and the complete system export
"""

import pytest
import json
from datetime import datetime, timezone, timedelta
from pathlib import Path
import sys

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from hydrolog.export import (
    MediaItem,
    export_csv,
    export_filename,
    export_json,
    export_system_csv,
    export_system_json,
    local_date,
    local_time,
)
from hydrolog.fields import ENVIRONMENTAL, HYDROPONIC, PLANT_GROWTH
from hydrolog.ledger import Origin, Reading

T0 = datetime(2025, 6, 1, 14, 5, 9, tzinfo=timezone.utc)
UTC = timezone.utc


def env_readings():
    return [
        Reading(T0, {"temperature": 22.46, "humidity": 58.0, "light": 30000.4},
                Origin.AUTOMATIC, "Auto-entry (5-min interval)"),
        Reading(T0 + timedelta(minutes=5), {"temperature": 21.0, "humidity": None, "light": None},
                Origin.MANUAL, 'Checked "fan" speed'),
    ]


class TestCsvExport:
    """Test per-domain CSV export."""

    def test_environmental_layout(self):
        csv = export_csv(env_readings(), ENVIRONMENTAL, tz=UTC)
        lines = csv.split("\n")

        assert lines[0] == ("Timestamp (ISO),Date,Time,Temperature (°C),Humidity (%),"
                            "Light Intensity (lux),Notes")
        assert lines[1] == ('"2025-06-01T14:05:09.000Z","6/1/2025","2:05:09 PM",'
                            '22.5,58.0,30000,"Auto-entry (5-min interval)"')

    def test_line_count_and_no_trailing_newline(self):
        csv = export_csv(env_readings(), ENVIRONMENTAL, tz=UTC)
        assert len(csv.split("\n")) == len(env_readings()) + 1
        assert not csv.endswith("\n")

    def test_quotes_doubled_and_nulls_empty(self):
        line = export_csv(env_readings(), ENVIRONMENTAL, tz=UTC).split("\n")[2]
        assert line.endswith(',21.0,,,"Checked ""fan"" speed"')

    def test_newlines_in_notes_are_not_escaped(self):
        """Test embedded newlines are written as-is."""
        reading = Reading(T0, {"ph": 6.0}, Origin.MANUAL, "line one\nline two")
        csv = export_csv([reading], HYDROPONIC, tz=UTC)
        assert '"line one\nline two"' in csv
        assert len(csv.split("\n")) == 3

    def test_hydroponic_layout(self):
        reading = Reading(T0, {"ph": 6.24, "ec": 1.26, "water_temp": 20.0}, Origin.MANUAL, "Manual entry")
        lines = export_csv([reading], HYDROPONIC, tz=UTC).split("\n")

        assert lines[0] == "Date,Time,pH Level,EC (mS/cm),Water Temperature (°C),Notes"
        assert lines[1] == '"6/1/2025","2:05:09 PM",6.2,1.3,20.0,"Manual entry"'

    def test_plant_growth_layout(self):
        reading = Reading(T0, {"stem_a_height": 31.25, "stem_a_open_buds": 2.0, "total_open_buds": 2.0},
                          Origin.MANUAL, "")
        lines = export_csv([reading], PLANT_GROWTH, tz=UTC).split("\n")

        headers = lines[0].split(",")
        assert headers[:4] == ["Date", "Time", "Stem A Height (cm)", "Stem A Matured Flowers"]
        assert headers[-1] == "Notes"
        assert "Total Open Buds" in headers
        cells = lines[1].split(",")
        assert cells[2] == "31.2"
        assert cells[headers.index("Stem A Open Buds")] == "2"
        assert cells[headers.index("Total Open Buds")] == "2"
        assert cells[-1] == '""'

    def test_empty_export_is_header_only(self):
        assert export_csv([], HYDROPONIC) == "Date,Time,pH Level,EC (mS/cm),Water Temperature (°C),Notes"


class TestJsonExport:
    """Test per-domain JSON export envelope."""

    def test_envelope(self):
        now = T0 + timedelta(hours=1)
        payload = json.loads(export_json(env_readings(), ENVIRONMENTAL, tz=UTC, now=now))

        assert payload["exportDate"] == "2025-06-01T15:05:09.000Z"
        assert payload["dataType"] == "Environmental Parameters"
        assert payload["description"] == "Hydroponic system environmental monitoring data"
        assert payload["totalEntries"] == 2
        assert len(payload["data"]) == 2

    def test_entries(self):
        payload = json.loads(export_json(env_readings(), ENVIRONMENTAL, tz=UTC, now=T0))
        first, second = payload["data"]

        assert first == {
            "timestamp": "2025-06-01T14:05:09.000Z",
            "date": "6/1/2025",
            "time": "2:05:09 PM",
            "temperature": 22.46,
            "humidity": 58.0,
            "lightIntensity": 30000.4,
            "origin": "automatic",
            "notes": "Auto-entry (5-min interval)",
        }
        assert second["humidity"] is None
        assert second["origin"] == "manual"

    def test_empty_notes_are_null(self):
        reading = Reading(T0, {"ph": 6.0}, Origin.MANUAL, "")
        payload = json.loads(export_json([reading], HYDROPONIC, tz=UTC, now=T0))
        assert payload["data"][0]["notes"] is None
        assert payload["data"][0]["waterTemp"] is None


class TestSystemExport:
    """Test the multi-section complete system export."""

    def setup_method(self):
        self.media = [
            MediaItem("v1", "/uploads/v1.mp4", "week1.mp4", "2025-06-01", 2 * 1024 * 1024, "videos"),
            MediaItem("d1", "/uploads/d1.pdf", "notes.pdf", "2025-06-02", 0, "documents", "Nutrient plan"),
        ]
        self.ledgers = {
            "environmental": env_readings(),
            "hydroponic": [],
            "plant_growth": [Reading(T0, {"stem_a_height": 10.0}, Origin.MANUAL, "")],
        }

    def test_csv_sections(self):
        csv, total = export_system_csv(self.ledgers, self.media, now=T0, tz=UTC)

        assert total == 5
        assert csv.startswith("=== COMPLETE SYSTEM EXPORT ===\nExport Date: 2025-06-01T14:05:09.000Z\n")
        assert "=== ENVIRONMENTAL DATA ===" in csv
        assert "=== PLANT GROWTH DATA ===" in csv
        assert "=== HYDROPONIC DATA ===" not in csv
        assert "=== MEDIA: VIDEOS ===" in csv
        assert '"2025-06-01","week1.mp4","videos","2.00",""' in csv
        assert '"2025-06-02","notes.pdf","documents","","Nutrient plan"' in csv

    def test_csv_nothing_to_export(self):
        csv, total = export_system_csv({"environmental": []}, [], now=T0)
        assert total == 0
        assert "=== ENVIRONMENTAL DATA ===" not in csv

    def test_json_sections(self):
        text, total = export_system_json(self.ledgers, self.media, now=T0, tz=UTC)
        payload = json.loads(text)

        assert total == 5
        assert payload["metadata"]["totalRecords"] == 5
        assert payload["metadata"]["exportType"] == "Complete System Data"
        assert payload["environmental"]["totalEntries"] == 2
        assert payload["hydroponic"]["totalEntries"] == 0
        assert payload["plant_growth"]["data"][0]["stem_a_height"] == 10.0
        assert payload["media"]["data"][1]["description"] == "Nutrient plan"
        assert "description" not in payload["media"]["data"][0]

    def test_media_item_round_trip(self):
        item = self.media[1]
        assert MediaItem.from_dict(item.to_dict()) == item


class TestFormatting:
    def test_local_date_time(self):
        midnight = datetime(2025, 12, 31, 0, 7, 3, tzinfo=UTC)
        assert local_date(midnight, UTC) == "12/31/2025"
        assert local_time(midnight, UTC) == "12:07:03 AM"
        assert local_time(midnight.replace(hour=12), UTC) == "12:07:03 PM"

    def test_timezone_shifts_date(self):
        tz = timezone(timedelta(hours=-5))
        assert local_date(datetime(2025, 6, 1, 2, 0, tzinfo=UTC), tz) == "5/31/2025"

    def test_export_filename(self):
        assert export_filename("environmental_data", "csv", T0) == "environmental_data_2025-06-01.csv"


if __name__ == "__main__":
    pytest.main([__file__])
