from __future__ import annotations

from typing import Any, Iterable

from layers.types import FeatureCollection, PointFeature, PolygonFeature


def parse_feature_collection(data: Any) -> FeatureCollection:
    """
    Validate a decoded GeoJSON document and wrap its features.

    Raises ValueError when the document is not a FeatureCollection.
    """
    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        raise ValueError("expected a GeoJSON FeatureCollection")
    features = data.get("features")
    if features is None:
        features = []
    if not isinstance(features, list):
        raise ValueError("`features` must be a list")
    return FeatureCollection(
        features=tuple(f for f in features if isinstance(f, dict))
    )


def polygons_from_features(features: Iterable[dict[str, Any]]) -> list[PolygonFeature]:
    out: list[PolygonFeature] = []
    for i, feature in enumerate(features):
        geom = _as_dict((feature or {}).get("geometry"))
        props = _as_dict((feature or {}).get("properties"))
        gtype = geom.get("type")
        coords = geom.get("coordinates")
        if not coords:
            continue

        fid = str((feature or {}).get("id") or props.get("_id") or f"poly-{i}")

        if gtype == "Polygon":
            rings = [_to_ring(r) for r in coords]
            if rings:
                out.append(PolygonFeature(id=fid, rings=rings, props=props))
        elif gtype == "MultiPolygon":
            for j, poly in enumerate(coords):
                rings = [_to_ring(r) for r in poly]
                if rings:
                    out.append(
                        PolygonFeature(id=f"{fid}-{j}", rings=rings, props=props)
                    )

    return out


def _to_ring(ring: Any) -> list[tuple[float, float]]:
    out: list[tuple[float, float]] = []
    for p in ring or []:
        if not p or len(p) < 2:
            continue
        lon, lat = float(p[0]), float(p[1])
        out.append((lon, lat))
    return out


def points_from_features(features: Iterable[dict[str, Any]]) -> list[PointFeature]:
    """
    Point features only; anything without a usable `[lon, lat]` is skipped.
    """
    out: list[PointFeature] = []
    for i, feature in enumerate(features):
        geom = _as_dict((feature or {}).get("geometry"))
        props = _as_dict((feature or {}).get("properties"))
        if geom.get("type") != "Point":
            continue
        coords = geom.get("coordinates") or []
        if len(coords) < 2 or coords[0] is None or coords[1] is None:
            continue
        try:
            lon, lat = float(coords[0]), float(coords[1])
        except (TypeError, ValueError):
            continue
        fid = str(props.get("id") or (feature or {}).get("id") or f"point-{i}")
        out.append(PointFeature(id=fid, lon=lon, lat=lat, props=props))
    return out


def _as_dict(v: Any) -> dict[str, Any]:
    return v if isinstance(v, dict) else {}
