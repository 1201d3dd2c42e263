from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PointFeature:
    id: str
    lon: float
    lat: float
    props: dict[str, Any]


@dataclass(frozen=True)
class PolygonFeature:
    id: str
    rings: list[
        list[tuple[float, float]]
    ]  # [outer_ring, ...]; each ring is [(lon, lat), ...]
    props: dict[str, Any]


@dataclass(frozen=True)
class FeatureCollection:
    """
    A GeoJSON FeatureCollection kept as raw feature dicts.

    Boundary layers are handed to the renderer as-is, so we only validate the
    envelope and keep the features untouched.
    """

    features: tuple[dict[str, Any], ...]

    def __len__(self) -> int:
        return len(self.features)

    def to_geojson(self) -> dict[str, Any]:
        return {"type": "FeatureCollection", "features": list(self.features)}

    @classmethod
    def empty(cls) -> "FeatureCollection":
        return cls(features=())
