from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from geo.aoi import BBox


@dataclass(frozen=True)
class SelectRecord:
    id: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "selectRecord", "id": self.id}


@dataclass(frozen=True)
class FitBounds:
    """Ask the renderer to fit the map to `bbox` (pixel padding: x, y)."""

    bbox: BBox
    padding: tuple[int, int] = (50, 50)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "fitBounds",
            "bbox": self.bbox.as_list(),
            "padding": list(self.padding),
        }


Intent = Union[SelectRecord, FitBounds]
