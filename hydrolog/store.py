"""
Ledger Persistence
==================

Handles loading and saving ledger entries, locally as JSON files and
remotely through the readings API. Provides atomic file writes and a
fail-open load: anything unreadable is logged and treated as empty.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
from jsonschema.exceptions import best_match
import requests

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema" / "ledger.schema.json"

_validator: Optional[jsonschema.Draft202012Validator] = None


def ledger_validator() -> jsonschema.Draft202012Validator:
    """Validator for persisted ledger files (loaded once)."""
    global _validator
    if _validator is None:
        with open(SCHEMA_FILE) as f:
            schema = json.load(f)
        _validator = jsonschema.Draft202012Validator(schema)
    return _validator


def load_json(path: Path, default: Any) -> Any:
    """Read a JSON document, returning `default` if missing or unreadable."""
    path = Path(path)
    if not path.exists():
        return default
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.error("Error loading %s: %s", path, e)
        return default


def save_json(path: Path, payload: Any) -> bool:
    """Write a JSON document atomically.

    Returns:
        True if save successful, False otherwise
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write to temporary file first for atomic operation
        temp_fd, temp_path = tempfile.mkstemp(suffix='.json', dir=path.parent)
        try:
            with os.fdopen(temp_fd, 'w') as f:
                json.dump(payload, f, indent=2)
            os.replace(temp_path, path)
            return True
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    except Exception as e:
        logger.error("Error saving %s: %s", path, e)
        return False


class JsonFileStore:
    """Ledger entries kept in a local JSON array file."""

    def __init__(self, data_file: Path):
        """Initialize file store.

        Args:
            data_file: Path to JSON data file
        """
        self.data_file = Path(data_file)

    def load(self) -> List[Dict[str, Any]]:
        """Load ledger entries from file.

        Returns:
            List of entry dictionaries in stored order, or [] when the file is
            missing, corrupt, or fails schema validation
        """
        data = load_json(self.data_file, [])

        if not isinstance(data, list):
            logger.warning("%s contains invalid data format", self.data_file)
            return []

        error = best_match(ledger_validator().iter_errors(data))
        if error is not None:
            logger.error("%s failed validation at %s: %s",
                         self.data_file, list(error.absolute_path), error.message)
            return []

        return data

    def save(self, data: List[Dict[str, Any]]) -> bool:
        return save_json(self.data_file, data)

    def record(self, entry: Dict[str, Any], entries: List[Dict[str, Any]]) -> bool:
        """Persist the full ledger after an append."""
        return self.save(entries)

    def get_data_stats(self) -> Dict[str, Any]:
        """Get statistics about the data file.

        Returns:
            Dictionary with data statistics
        """
        data = self.load()
        exists = self.data_file.exists()

        timestamps = sorted(r['timestamp'] for r in data if r.get('timestamp'))

        days_covered = 0
        if len(timestamps) >= 2:
            try:
                oldest = datetime.fromisoformat(timestamps[0].replace('Z', '+00:00'))
                newest = datetime.fromisoformat(timestamps[-1].replace('Z', '+00:00'))
                days_covered = (newest - oldest).days
            except ValueError:
                pass

        return {
            "total_readings": len(data),
            "file_exists": exists,
            "file_size_bytes": self.data_file.stat().st_size if exists else 0,
            "oldest_reading": timestamps[0] if timestamps else None,
            "newest_reading": timestamps[-1] if timestamps else None,
            "days_covered": days_covered,
        }


class ApiStore:
    """Ledger entries kept by the readings backend.

    Each append POSTs only the new entry; the backend keeps the
    accumulated, capped list and returns it on GET.
    """

    def __init__(self, base_url: str, kind: str, timeout: float = 5.0,
                 session: Optional[requests.Session] = None):
        self.url = f"{base_url.rstrip('/')}/api/{kind}-entries"
        self.timeout = timeout
        self.session = session or requests.Session()

    def load(self) -> List[Dict[str, Any]]:
        try:
            resp = self.session.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
            entries = resp.json().get("entries", [])
        except (requests.RequestException, ValueError, AttributeError) as e:
            logger.error("Failed to load entries from %s: %s", self.url, e)
            return []

        if not isinstance(entries, list):
            logger.warning("%s returned invalid entries payload", self.url)
            return []
        return entries

    def record(self, entry: Dict[str, Any], entries: List[Dict[str, Any]]) -> bool:
        try:
            resp = self.session.post(self.url, json=entry, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Failed to save entry to %s: %s", self.url, e)
            return False

        if resp.status_code not in (200, 201):
            logger.warning("Saving entry to %s failed: %s %s", self.url, resp.status_code, resp.text)
            return False
        return True


def validate_data_integrity(file_path: Path) -> Dict[str, Any]:
    """Validate a ledger file entry by entry.

    Unlike JsonFileStore.load(), this reports every problem instead of
    discarding the whole file.

    Args:
        file_path: Path to data file

    Returns:
        Validation results dictionary
    """
    results = {
        "valid": True,
        "errors": [],
        "warnings": [],
        "total_readings": 0,
        "valid_readings": 0,
    }

    data = load_json(file_path, None)
    if data is None:
        if Path(file_path).exists():
            results["errors"].append("Failed to load data: unreadable JSON")
        results["valid"] = not results["errors"]
        return results

    if not isinstance(data, list):
        results["errors"].append("Data is not a list")
        results["valid"] = False
        return results

    results["total_readings"] = len(data)
    validator = ledger_validator()

    for i, reading in enumerate(data):
        errors = list(validator.iter_errors([reading]))
        if errors:
            for error in errors:
                where = ".".join(str(p) for p in list(error.absolute_path)[1:]) or "entry"
                results["errors"].append(f"Reading {i}: {where}: {error.message}")
            continue

        try:
            datetime.fromisoformat(reading["timestamp"].replace('Z', '+00:00'))
        except ValueError:
            results["errors"].append(f"Reading {i}: Invalid timestamp format")
            continue

        if "origin" not in reading:
            results["warnings"].append(f"Reading {i}: Missing origin")

        results["valid_readings"] += 1

    timestamps = [r.get("timestamp", "") for r in data if isinstance(r, dict)]
    if timestamps != sorted(timestamps):
        results["warnings"].append("Readings are not in chronological order")

    results["valid"] = len(results["errors"]) == 0
    return results
