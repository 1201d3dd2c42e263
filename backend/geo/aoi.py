from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence


@dataclass(frozen=True)
class BBox:
    """
    WGS84 bounding box in lon/lat degrees.

    Convention used throughout this repo:
    - minLon, minLat, maxLon, maxLat
    - [0, 0, 0, 0] means "unknown extent" (written by the index builder when a
      geometry file carries no bbox); it is a valid value, not an error.
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def unknown(cls) -> "BBox":
        return cls(0.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_list(cls, raw: Any) -> "BBox":
        """
        Parse a `[minLon, minLat, maxLon, maxLat]` list; anything else is unknown.
        """
        if not isinstance(raw, (list, tuple)) or len(raw) != 4:
            return cls.unknown()
        try:
            vals = [float(v) for v in raw]
        except (TypeError, ValueError):
            return cls.unknown()
        return cls(*vals)

    @classmethod
    def from_corners(
        cls, south_west: Sequence[float], north_east: Sequence[float]
    ) -> "BBox":
        """
        Build from map-style corners: `[[south, west], [north, east]]` (lat first).
        """
        return cls(
            min_lon=float(south_west[1]),
            min_lat=float(south_west[0]),
            max_lon=float(north_east[1]),
            max_lat=float(north_east[0]),
        ).normalized()

    @property
    def is_unknown(self) -> bool:
        return (
            self.min_lon == 0.0
            and self.min_lat == 0.0
            and self.max_lon == 0.0
            and self.max_lat == 0.0
        )

    @property
    def is_valid(self) -> bool:
        return self.min_lon <= self.max_lon and self.min_lat <= self.max_lat

    def normalized(self) -> "BBox":
        min_lon = min(self.min_lon, self.max_lon)
        max_lon = max(self.min_lon, self.max_lon)
        min_lat = min(self.min_lat, self.max_lat)
        max_lat = max(self.min_lat, self.max_lat)
        return BBox(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    def intersects(self, other: "BBox") -> bool:
        # Unknown extents never hide a record.
        if self.is_unknown or other.is_unknown:
            return True
        a = self.normalized()
        b = other.normalized()
        return not (
            a.max_lon < b.min_lon
            or a.min_lon > b.max_lon
            or a.max_lat < b.min_lat
            or a.min_lat > b.max_lat
        )

    def center(self) -> tuple[float, float]:
        """(lat, lon) of the box centre."""
        b = self.normalized()
        return ((b.min_lat + b.max_lat) / 2.0, (b.min_lon + b.max_lon) / 2.0)

    def as_list(self) -> list[float]:
        return [self.min_lon, self.min_lat, self.max_lon, self.max_lat]
