"""
Garden data domains: which fields each ledger carries.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

STEMS = ("a", "b", "c", "d")
STEM_COUNTERS = ("matured_flowers", "open_buds", "unopened_buds")
STEM_FIELDS = ("height",) + STEM_COUNTERS + ("leaves",)


def stem_field(stem: str, name: str) -> str:
    return f"stem_{stem}_{name}"


def total_field(counter: str) -> str:
    return f"total_{counter}"


@dataclass(frozen=True)
class Domain:
    """A family of readings stored in one ledger."""

    name: str
    fields: Tuple[str, ...]
    label: str
    description: str

    @property
    def kind(self) -> str:
        """URL slug used by the readings API."""
        return self.name.replace("_", "-")


ENVIRONMENTAL = Domain(
    name="environmental",
    fields=("temperature", "humidity", "light"),
    label="Environmental Parameters",
    description="Hydroponic system environmental monitoring data",
)

HYDROPONIC = Domain(
    name="hydroponic",
    fields=("ph", "ec", "water_temp"),
    label="Hydroponic Parameters",
    description="Nutrient solution chemistry readings (pH, EC, water temperature)",
)

PLANT_GROWTH = Domain(
    name="plant_growth",
    fields=tuple(stem_field(s, f) for s in STEMS for f in STEM_FIELDS)
    + tuple(total_field(c) for c in STEM_COUNTERS),
    label="Plant Growth",
    description="Per-stem growth measurements and flower/bud counts",
)

DOMAINS: Dict[str, Domain] = {d.name: d for d in (ENVIRONMENTAL, HYDROPONIC, PLANT_GROWTH)}


def get_domain(name: str) -> Domain:
    """Look up a domain by name or URL slug.

    Raises:
        KeyError: for unknown domains
    """
    key = name.replace("-", "_")
    if key not in DOMAINS:
        raise KeyError(f"Unknown domain: {name}")
    return DOMAINS[key]


def with_plant_totals(values: Mapping[str, Optional[float]]) -> Dict[str, Optional[float]]:
    """Fill in the flower/bud totals from the individual stem counts.

    A total stays None only when no stem reported that counter.
    """
    result = dict(values)
    for counter in STEM_COUNTERS:
        counts = [values.get(stem_field(s, counter)) for s in STEMS]
        present = [c for c in counts if c is not None]
        result[total_field(counter)] = float(sum(present)) if present else None
    return result
