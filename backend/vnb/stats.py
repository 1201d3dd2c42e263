from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable

from vnb.types import MITTELSPANNUNG, NIEDERSPANNUNG, IndexRecord

BOTH = "Both"

# (label, lower bound m², upper bound m²); lower inclusive, upper exclusive.
AREA_BUCKETS: tuple[tuple[str, float, float], ...] = (
    ("< 10 km²", 0.0, 10_000_000.0),
    ("10-100 km²", 10_000_000.0, 100_000_000.0),
    ("100-500 km²", 100_000_000.0, 500_000_000.0),
    ("> 500 km²", 500_000_000.0, math.inf),
)


@dataclass(frozen=True)
class VnbStats:
    total_count: int
    total_area: float
    by_voltage_type: tuple[tuple[str, int], ...]
    area_distribution: tuple[tuple[str, int], ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCount": self.total_count,
            "totalArea": self.total_area,
            "byVoltageType": [{"type": t, "count": c} for t, c in self.by_voltage_type],
            "areaDistribution": [{"range": r, "count": c} for r, c in self.area_distribution],
        }


def compute_stats(records: Iterable[IndexRecord]) -> VnbStats:
    recs = list(records)
    if not recs:
        return VnbStats(total_count=0, total_area=0.0, by_voltage_type=(), area_distribution=())

    voltage = {MITTELSPANNUNG: 0, NIEDERSPANNUNG: 0, BOTH: 0}
    for r in recs:
        mittel = MITTELSPANNUNG in r.tags
        nieder = NIEDERSPANNUNG in r.tags
        if mittel and nieder:
            voltage[BOTH] += 1
        elif mittel:
            voltage[MITTELSPANNUNG] += 1
        elif nieder:
            voltage[NIEDERSPANNUNG] += 1

    buckets = tuple(
        (label, sum(1 for r in recs if lo <= r.area < hi)) for label, lo, hi in AREA_BUCKETS
    )
    return VnbStats(
        total_count=len(recs),
        total_area=sum(r.area or 0.0 for r in recs),
        by_voltage_type=tuple((t, c) for t, c in voltage.items() if c > 0),
        area_distribution=buckets,
    )
