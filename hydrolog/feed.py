"""
Sensor Feed Abstraction
=======================

Defines the sensor feed protocol and its implementations: an HTTP client
for the live feed endpoint and a deterministic mock for offline use and
testing. The feed is polled; it returns the latest value per field, any of
which may be null.
"""

from typing import Dict, Optional, Protocol
import logging
import math
import os

import requests

from .validation import FEED_RANGES, validate_sensor_range

logger = logging.getLogger(__name__)

FEED_FIELDS = ("temperature", "humidity", "light")


class FeedError(Exception):
    """The sensor feed could not be read."""


class SensorFeed(Protocol):
    """Protocol for a polled sensor feed."""

    def fetch(self) -> Dict[str, Optional[float]]:
        """Return the latest value for each feed field.

        Returns:
            Mapping of field name to value, None where the sensor has no data

        Raises:
            FeedError: if the feed is unreachable or returns garbage
        """
        ...


def sanitize_payload(payload: dict, fields=FEED_FIELDS) -> Dict[str, Optional[float]]:
    """Keep only numeric, in-range values for the known fields."""
    values: Dict[str, Optional[float]] = {}
    for name in fields:
        raw = payload.get(name)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            values[name] = None
            continue
        lo, hi = FEED_RANGES.get(name, (-math.inf, math.inf))
        if not validate_sensor_range(raw, lo, hi):
            logger.warning("Feed value %s=%r out of range [%s, %s], discarding", name, raw, lo, hi)
            values[name] = None
            continue
        values[name] = float(raw)
    return values


class HttpSensorFeed:
    """Sensor feed served as JSON over HTTP."""

    def __init__(self, url: str, timeout: float = 5.0,
                 session: Optional[requests.Session] = None):
        """Initialize HTTP feed.

        Args:
            url: Endpoint returning {temperature, humidity, light}
            timeout: Request timeout in seconds
            session: Optional requests session (shared connection pool)
        """
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self) -> Dict[str, Optional[float]]:
        try:
            resp = self.session.get(self.url, timeout=self.timeout,
                                    headers={"Cache-Control": "no-cache"})
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            raise FeedError(f"Sensor feed request failed: {e}") from e
        except ValueError as e:
            raise FeedError(f"Sensor feed returned invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise FeedError(f"Sensor feed returned {type(payload).__name__}, expected object")
        return sanitize_payload(payload)


class MockSensorFeed:
    """Deterministic sensor feed for testing and offline dashboards."""

    def __init__(self, values: Optional[Dict[str, Optional[float]]] = None):
        self.mock_values: Dict[str, Optional[float]] = {
            "temperature": 22.5,
            "humidity": 58.0,
            "light": None,  # no light sensor on the default rig
        }
        if values:
            self.mock_values.update(values)

    def fetch(self) -> Dict[str, Optional[float]]:
        return dict(self.mock_values)


def create_feed(url: Optional[str] = None, mock: bool = False) -> SensorFeed:
    """Factory function to create a sensor feed.

    Args:
        url: Live feed endpoint
        mock: If True, return mock implementation

    Returns:
        SensorFeed instance (HTTP or mock)
    """
    if mock or os.getenv('HYDROLOG_MOCK_FEED', '0') == '1':
        return MockSensorFeed()

    if not url:
        logger.warning("No sensor feed URL configured, using mock feed")
        return MockSensorFeed()

    return HttpSensorFeed(url)
