#!/usr/bin/env python3
"""
generate_demo_data.py - Generate demo garden ledgers for testing
================================================================

Fills <data dir>/environmental-entries.json and hydroponic-entries.json
with realistic readings every N minutes for the given number of days,
going through the same ledger rules (spacing, retention cap) the
recorder uses. Useful for exercising charts and exports offline.

Usage:
  python3 generate_demo_data.py [options]

Options:
  --days N         Number of days to generate (default: 3)
  --step-min N     Minutes between readings (default: 10)
  --data-dir DIR   Output directory (default: $HYDROLOG_DATA_DIR or ./data)
  --seed N         Random seed for repeatable output

Examples:
  python3 generate_demo_data.py --days 7
  python3 generate_demo_data.py --days 1 --step-min 5 --data-dir /tmp/garden
"""

import argparse
import math
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from hydrolog.config import load_settings
from hydrolog.current import scheduled_light
from hydrolog.fields import ENVIRONMENTAL, HYDROPONIC
from hydrolog.ledger import Ledger, Origin, Reading
from hydrolog.store import JsonFileStore


def environmental_reading(timestamp, rng):
    """Generate an environmental reading with a daily temperature cycle.

    Args:
        timestamp (datetime): Reading timestamp (UTC)
        rng (random.Random): Random source

    Returns:
        Reading: Automatic environmental reading
    """
    hour = timestamp.hour

    # Warmer in the afternoon, more humid at night
    temperature = 22.0 + 3.0 * math.sin((hour - 9) * math.pi / 12) + rng.gauss(0, 0.3)
    humidity = 60.0 - 8.0 * math.sin((hour - 9) * math.pi / 12) + rng.gauss(0, 1.5)

    values = {
        "temperature": round(max(-10.0, min(60.0, temperature)), 1),
        "humidity": round(max(0.0, min(100.0, humidity)), 1),
        "light": scheduled_light(hour),
    }
    return Reading(timestamp, values, Origin.AUTOMATIC, "Auto-entry (5-min interval)")


def hydroponic_reading(timestamp, rng):
    """Generate a once-a-day manual nutrient check."""
    values = {
        "ph": round(6.0 + rng.gauss(0, 0.2), 2),
        "ec": round(max(0.0, 1.4 + rng.gauss(0, 0.1)), 2),
        "water_temp": round(20.0 + rng.gauss(0, 0.5), 1),
    }
    return Reading(timestamp, values, Origin.MANUAL, "Manual entry")


def generate_demo_ledgers(environmental, hydroponic, days, step_minutes, end=None, seed=None):
    """Append demo readings to the given ledgers.

    Returns:
        tuple: (environmental readings kept, hydroponic readings kept)
    """
    rng = random.Random(seed)
    end_time = end or datetime.now(timezone.utc)
    current_time = end_time - timedelta(days=days)
    step_delta = timedelta(minutes=step_minutes)
    last_check_day = None

    while current_time <= end_time:
        environmental.append(environmental_reading(current_time, rng))
        if current_time.hour >= 9 and current_time.date() != last_check_day:
            hydroponic.append(hydroponic_reading(current_time, rng))
            last_check_day = current_time.date()
        current_time += step_delta

    return len(environmental), len(hydroponic)


def main(argv=None):
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Generate demo garden ledgers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--days', type=int, default=3,
                        help='Number of days to generate (default: 3)')
    parser.add_argument('--step-min', type=int, default=10,
                        help='Minutes between readings (default: 10)')
    parser.add_argument('--data-dir', type=str, default=None,
                        help='Output directory (default: $HYDROLOG_DATA_DIR or ./data)')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed for repeatable output')
    args = parser.parse_args(argv)

    settings = load_settings(args.data_dir)

    print("Demo Data Generator")
    print("=" * 40)

    # Each ledger saves after every append; one final save is enough here
    env_store = JsonFileStore(settings.ledger_file(ENVIRONMENTAL.name))
    hydro_store = JsonFileStore(settings.ledger_file(HYDROPONIC.name))
    environmental = Ledger(ENVIRONMENTAL.name, settings.policy)
    hydroponic = Ledger(HYDROPONIC.name, settings.policy)

    env_count, hydro_count = generate_demo_ledgers(
        environmental, hydroponic, args.days, args.step_min, seed=args.seed
    )

    ok = env_store.save([r.to_dict() for r in environmental])
    ok = hydro_store.save([r.to_dict() for r in hydroponic]) and ok
    if not ok:
        print("Error saving demo data")
        return 1

    print(f"Generated {env_count} environmental and {hydro_count} hydroponic readings")
    print(f"Saved to: {settings.data_dir.absolute()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
