from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Sequence, TypeVar

from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry import box as shapely_box
from shapely.strtree import STRtree

from geo.aoi import BBox
from layers.types import PolygonFeature

T = TypeVar("T")


@dataclass
class BBoxIndex(Generic[T]):
    """
    STRtree over item bounding boxes (EPSG:4326) for viewport slicing.

    Items whose bbox is the unknown sentinel are not placed in the tree; they
    match every query so an unknown extent never hides a record.
    """

    items: Sequence[T]
    bboxes: Sequence[BBox]

    _tree: STRtree | None = field(default=None, repr=False)
    _tree_pos: list[int] = field(default_factory=list, repr=False)
    _unknown_pos: list[int] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        geoms = []
        for pos, bb in enumerate(self.bboxes):
            if bb.is_unknown:
                self._unknown_pos.append(pos)
                continue
            b = bb.normalized()
            geoms.append(shapely_box(b.min_lon, b.min_lat, b.max_lon, b.max_lat))
            self._tree_pos.append(pos)
        self._tree = STRtree(geoms) if geoms else None

    def query(self, aoi: BBox) -> list[T]:
        if aoi.is_unknown:
            return list(self.items)
        b = aoi.normalized()
        hits: set[int] = set(self._unknown_pos)
        if self._tree is not None:
            q = shapely_box(b.min_lon, b.min_lat, b.max_lon, b.max_lat)
            for i in _to_int_list(self._tree.query(q)):
                hits.add(self._tree_pos[i])
        # Keep input order for stable rendering.
        return [self.items[pos] for pos in sorted(hits)]


def polygons_bounds(polygons: Sequence[PolygonFeature]) -> BBox | None:
    """
    Bounds of all outer rings, or None when nothing is usable.
    """
    shapes: list[Polygon] = []
    for f in polygons:
        if not f.rings or len(f.rings[0]) < 3:
            continue
        try:
            poly = Polygon(f.rings[0])
        except (ValueError, TypeError):
            continue
        if not poly.is_empty:
            shapes.append(poly)
    if not shapes:
        return None
    # Bounds only: no need to repair or union possibly invalid rings.
    min_lon, min_lat, max_lon, max_lat = MultiPolygon(shapes).bounds
    return BBox(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)


def _to_int_list(arr: Any) -> list[int]:
    # Shapely STRtree returns numpy.ndarray of indices.
    try:
        return [int(x) for x in arr.tolist()]
    except AttributeError:
        return [int(x) for x in arr]
