"""
config.py - Runtime settings for the garden recorder

Env (overrides config.json if present):
  HYDROLOG_DATA_DIR=./data
  HYDROLOG_FEED_URL=http://localhost:8000/api/sensor-data
  HYDROLOG_API_URL=             # remote readings backend, optional
  HYDROLOG_MOCK_FEED=0|1
  HYDROLOG_CAPACITY=1000        # retention cap per ledger
  HYDROLOG_SPACING_S=60         # min gap between automatic entries from one source
  HYDROLOG_AUTO_SPACING_S=8     # min gap between auto-entries
  HYDROLOG_POLL_S=10            # sensor feed poll period
  HYDROLOG_AUTO_S=300           # auto-entry period

Config file (optional): <data dir>/config.json
  {
    "ledger":    { "capacity": 1000, "spacing_s": 60, "auto_spacing_s": 8 },
    "intervals": { "poll_s": 10, "auto_s": 300 },
    "feed_url": "http://...",
    "api_url": "http://..."
  }
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from .ledger import AUTO_ENTRY, LedgerPolicy

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.cwd() / "data"

# Env var for each well-known config path
ENV_KEYS = {
    "ledger.capacity": "HYDROLOG_CAPACITY",
    "ledger.spacing_s": "HYDROLOG_SPACING_S",
    "ledger.auto_spacing_s": "HYDROLOG_AUTO_SPACING_S",
    "intervals.poll_s": "HYDROLOG_POLL_S",
    "intervals.auto_s": "HYDROLOG_AUTO_S",
    "feed_url": "HYDROLOG_FEED_URL",
    "api_url": "HYDROLOG_API_URL",
}


def load_config(path: Path) -> dict:
    cfg = {}
    try:
        if path.exists():
            with open(path, "r") as f:
                cfg = json.load(f) or {}
    except (OSError, ValueError) as e:
        logger.warning("Failed to read %s: %s", path, e)
    if not isinstance(cfg, dict):
        logger.warning("Ignoring %s: expected a JSON object", path)
        return {}
    return cfg


def get_env_or_cfg(cfg: dict, path: str, default=None):
    """
    Lookup with env override. `path` like 'ledger.capacity' or 'feed_url'.
    """
    env_key = ENV_KEYS.get(path)
    if env_key:
        v = os.getenv(env_key)
        if v not in (None, ""):
            return v

    cur = cfg
    for key in path.split("."):
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


@dataclass(frozen=True)
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    feed_url: str | None = None
    api_url: str | None = None
    mock_feed: bool = False
    capacity: int = 1000
    spacing_s: float = 60.0
    auto_spacing_s: float = 8.0
    poll_s: float = 10.0
    auto_s: float = 300.0

    @property
    def policy(self) -> LedgerPolicy:
        return LedgerPolicy(
            capacity=self.capacity,
            spacing=timedelta(seconds=self.spacing_s),
            source_spacing={AUTO_ENTRY: timedelta(seconds=self.auto_spacing_s)},
        )

    def ledger_file(self, domain_name: str) -> Path:
        return self.data_dir / f"{domain_name.replace('_', '-')}-entries.json"

    @property
    def overrides_file(self) -> Path:
        return self.data_dir / "manual-overrides.json"


def load_settings(data_dir: Path | None = None) -> Settings:
    """Resolve settings from the environment and <data dir>/config.json."""
    data_dir = Path(data_dir or os.getenv("HYDROLOG_DATA_DIR") or DEFAULT_DATA_DIR)
    cfg = load_config(data_dir / "config.json")

    return Settings(
        data_dir=data_dir,
        feed_url=get_env_or_cfg(cfg, "feed_url") or None,
        api_url=get_env_or_cfg(cfg, "api_url") or None,
        mock_feed=os.getenv("HYDROLOG_MOCK_FEED", "0") == "1" or bool(cfg.get("mock_feed", False)),
        capacity=int(get_env_or_cfg(cfg, "ledger.capacity", 1000)),
        spacing_s=float(get_env_or_cfg(cfg, "ledger.spacing_s", 60)),
        auto_spacing_s=float(get_env_or_cfg(cfg, "ledger.auto_spacing_s", 8)),
        poll_s=float(get_env_or_cfg(cfg, "intervals.poll_s", 10)),
        auto_s=float(get_env_or_cfg(cfg, "intervals.auto_s", 300)),
    )
