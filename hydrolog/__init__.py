"""
Garden Reading Ledger
=====================

Environmental, hydroponic and plant-growth readings for a small
hydroponic garden. Provides the bounded reading ledger, current-value
merging, validation, exports, and the recorder/server entry points.
"""

from .ledger import (
    Ledger,
    LedgerPolicy,
    Origin,
    Reading,
    TimeWindow,
    MIN_TREND_POINTS,
)
from .fields import Domain, ENVIRONMENTAL, HYDROPONIC, PLANT_GROWTH, get_domain
from .current import CurrentValues, ManualOverrides, scheduled_light, display
from .validation import validate_input, parse_form, validate_sensor_range
from .export import MediaItem, export_csv, export_json, export_system_csv, export_system_json
from .store import JsonFileStore, ApiStore, validate_data_integrity
from .feed import FeedError, HttpSensorFeed, MockSensorFeed, create_feed
from .config import Settings, load_settings

__version__ = "1.0.0"

__all__ = [
    # Ledger core
    "Ledger",
    "LedgerPolicy",
    "Origin",
    "Reading",
    "TimeWindow",
    "MIN_TREND_POINTS",

    # Domains
    "Domain",
    "ENVIRONMENTAL",
    "HYDROPONIC",
    "PLANT_GROWTH",
    "get_domain",

    # Current values
    "CurrentValues",
    "ManualOverrides",
    "scheduled_light",
    "display",

    # Validation
    "validate_input",
    "parse_form",
    "validate_sensor_range",

    # Export
    "MediaItem",
    "export_csv",
    "export_json",
    "export_system_csv",
    "export_system_json",

    # Persistence and feed
    "JsonFileStore",
    "ApiStore",
    "validate_data_integrity",
    "FeedError",
    "HttpSensorFeed",
    "MockSensorFeed",
    "create_feed",

    # Configuration
    "Settings",
    "load_settings",
]
