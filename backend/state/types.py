from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Literal, Mapping

from assets.types import AssetRecord, FilterRule
from geo.aoi import BBox
from layers.types import FeatureCollection
from vnb.types import GeometryRecord, IndexRecord

LayerId = Literal[
    "vnb",
    "bundeslaender",
    "kreise",
    "gemeinden",
    "anlagen_solar",
    "anlagen_bess",
]


class LoadStatus(str, Enum):
    not_requested = "not_requested"
    loading = "loading"
    loaded = "loaded"
    failed = "failed"


@dataclass(frozen=True)
class Viewport:
    center: tuple[float, float]  # (lat, lon)
    zoom: int
    # None until the map reports its first visible rectangle.
    bounds: BBox | None = None


@dataclass(frozen=True)
class LayerVisibility:
    vnb: bool = True
    bundeslaender: bool = True
    kreise: bool = False
    gemeinden: bool = False
    anlagen_solar: bool = True
    anlagen_bess: bool = True

    def is_visible(self, layer_id: str) -> bool:
        if layer_id not in layer_ids():
            raise KeyError(layer_id)
        return bool(getattr(self, layer_id))

    def with_visible(self, layer_id: str, visible: bool) -> "LayerVisibility":
        if layer_id not in layer_ids():
            raise KeyError(layer_id)
        return replace(self, **{layer_id: bool(visible)})

    def toggled(self, layer_id: str) -> "LayerVisibility":
        return self.with_visible(layer_id, not self.is_visible(layer_id))

    def to_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def layer_ids() -> tuple[str, ...]:
    return tuple(f.name for f in fields(LayerVisibility))


@dataclass(frozen=True)
class Filters:
    voltage_types: tuple[str, ...] = ()
    search_query: str = ""
    rules: tuple[FilterRule, ...] = ()


@dataclass(frozen=True)
class VnbDisplay:
    """
    The VNB features currently handed to the renderer plus batch progress.
    """

    features: tuple[dict[str, Any], ...] = ()
    loaded: int = 0
    total: int = 0

    @property
    def is_loading(self) -> bool:
        return self.total > 0 and self.loaded < self.total


@dataclass(frozen=True)
class AppState:
    """
    The whole application state.

    Every update builds a new instance (and new mappings for changed keys), so
    observers can compare sub-trees by identity. Mappings are never mutated.
    """

    viewport: Viewport
    visibility: LayerVisibility = field(default_factory=LayerVisibility)
    filters: Filters = field(default_factory=Filters)
    selected_id: str | None = None

    vnb_index: tuple[IndexRecord, ...] | None = None
    admin_data: Mapping[str, FeatureCollection] = field(default_factory=dict)
    admin_status: Mapping[str, LoadStatus] = field(default_factory=dict)
    asset_data: Mapping[str, tuple[AssetRecord, ...]] = field(default_factory=dict)
    asset_status: Mapping[str, LoadStatus] = field(default_factory=dict)

    # Insertion-ordered; owned by the geometry cache.
    geometries: Mapping[str, GeometryRecord] = field(default_factory=dict)
    display: VnbDisplay = field(default_factory=VnbDisplay)

    # Keyed by resource name, e.g. "vnbIndex", "admin.kreise", "anlagen.solar".
    loading: Mapping[str, bool] = field(default_factory=dict)
