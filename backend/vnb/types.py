from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from geo.aoi import BBox
from layers.types import PolygonFeature

MITTELSPANNUNG = "Mittelspannung"
NIEDERSPANNUNG = "Niederspannung"
VOLTAGE_TAGS: tuple[str, ...] = (MITTELSPANNUNG, NIEDERSPANNUNG)


@dataclass(frozen=True)
class IndexRecord:
    """
    Lightweight metadata for one VNB service area, as written by the index builder.
    """

    id: str
    vnb_id: str
    name: str
    tags: frozenset[str]
    bbox: BBox
    area: float
    file_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vnbId": self.vnb_id,
            "vnbName": self.name,
            # Vocabulary order first, then anything unexpected.
            "voltageTypes": [t for t in VOLTAGE_TAGS if t in self.tags]
            + sorted(t for t in self.tags if t not in VOLTAGE_TAGS),
            "bbox": self.bbox.as_list(),
            "area": self.area,
            "fileName": self.file_name,
        }


@dataclass(frozen=True)
class GeometryRecord:
    """
    Full geometry of one VNB: the raw GeoJSON features (handed to the renderer)
    plus their parsed polygons.
    """

    id: str
    features: tuple[dict[str, Any], ...]
    polygons: tuple[PolygonFeature, ...]


def parse_voltage_types(raw: Any) -> frozenset[str]:
    """
    Normalize voltage classes from either a list or the free-text property
    (e.g. "Mittelspannung, Niederspannung").
    """
    if not raw:
        return frozenset()
    if isinstance(raw, str):
        return frozenset(t for t in VOLTAGE_TAGS if t in raw)
    if isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset(str(t).strip() for t in raw if str(t or "").strip())
    return frozenset()
