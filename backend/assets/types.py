from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Literal, Union

from layers.types import PointFeature

logger = logging.getLogger(__name__)

AssetCategory = Literal["solar", "bess"]
ASSET_CATEGORIES: tuple[AssetCategory, ...] = ("solar", "bess")

# Wire key (GeoJSON property / filter field) -> AssetRecord attribute.
ASSET_FIELDS: dict[str, str] = {
    "id": "id",
    "name": "name",
    "type": "category",
    "status": "status",
    "grossPower": "gross_power",
    "netPower": "net_power",
    "bundesland": "state",
    "city": "city",
    "postalCode": "postal_code",
    "operator": "operator",
    "commissioningDate": "commissioning_date",
    "storageTechnology": "storage_technology",
    "storageCapacity": "storage_capacity",
    "solarType": "solar_type",
    "moduleCount": "module_count",
}

FilterValue = Union[str, int, float, None]


@dataclass(frozen=True)
class AssetRecord:
    """
    A generation (solar) or storage (bess) installation.

    Exactly one category-specific group is populated: `storage_*` for bess,
    `solar_type`/`module_count` for solar. The other group stays None.
    Descriptive fields missing from the source stay None, which filters
    treat as absent rather than empty.
    """

    id: str
    name: str
    category: AssetCategory
    status: str | None
    gross_power: float  # kW
    net_power: float  # kW
    state: str | None
    city: str | None
    postal_code: str | None
    operator: str | None
    commissioning_date: str | None
    lon: float
    lat: float
    storage_technology: str | None = None
    storage_capacity: float | None = None  # kWh
    solar_type: str | None = None
    module_count: int | None = None

    def value(self, field_key: str) -> Any:
        attr = ASSET_FIELDS.get(field_key)
        if attr is None:
            return None
        return getattr(self, attr)

    def to_feature(self) -> dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [self.lon, self.lat]},
            "properties": {key: self.value(key) for key in ASSET_FIELDS},
        }


@dataclass(frozen=True)
class FilterRule:
    """
    One user-authored predicate over an AssetRecord field (addressed by wire key).

    `operator` stays a plain string: rules restored from older clients may carry
    operators this version does not know.
    """

    id: str
    field: str
    operator: str
    value: FilterValue = ""
    value2: FilterValue = None


def asset_from_point(point: PointFeature, category: AssetCategory) -> AssetRecord:
    props = point.props
    common = dict(
        id=str(props.get("id") or point.id),
        name=_as_str(props.get("name")),
        category=category,
        status=_keep_str(props.get("status")),
        gross_power=_non_negative(props.get("grossPower")),
        net_power=_non_negative(props.get("netPower")),
        state=_keep_str(props.get("bundesland")),
        city=_keep_str(props.get("city")),
        postal_code=_keep_str(props.get("postalCode")),
        operator=_keep_str(props.get("operator")),
        commissioning_date=_keep_str(props.get("commissioningDate")),
        lon=point.lon,
        lat=point.lat,
    )
    if category == "bess":
        return AssetRecord(
            **common,
            storage_technology=_opt_str(props.get("storageTechnology")),
            storage_capacity=_non_negative(props.get("storageCapacity")),
        )
    module_count = _as_float(props.get("moduleCount"))
    return AssetRecord(
        **common,
        solar_type=_opt_str(props.get("solarType")),
        module_count=int(module_count) if module_count is not None else None,
    )


def _as_str(v: Any) -> str:
    return "" if v is None else str(v)


def _keep_str(v: Any) -> str | None:
    return None if v is None else str(v)


def _opt_str(v: Any) -> str | None:
    s = _as_str(v).strip()
    return s or None


def _as_float(v: Any) -> float | None:
    try:
        if v is None or v == "":
            return None
        f = float(v)
    except (TypeError, ValueError, OverflowError):
        return None
    return f if math.isfinite(f) else None


def _non_negative(v: Any) -> float:
    f = _as_float(v)
    if f is None:
        return 0.0
    if f < 0:
        logger.warning("Negative power/capacity value %r clamped to 0", v)
        return 0.0
    return f
