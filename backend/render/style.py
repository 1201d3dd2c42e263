from __future__ import annotations

from typing import Any, Iterable, Literal, Mapping

from vnb.types import MITTELSPANNUNG, NIEDERSPANNUNG

Interaction = Literal["normal", "hover"]

NO_VOLTAGE_COLOR = "#888888"
VOLTAGE_COLORS = {
    "both": "#9b59b6",
    MITTELSPANNUNG: "#e74c3c",
    NIEDERSPANNUNG: "#3498db",
}

ASSET_COLORS = {"solar": "#ff9500", "bess": "#a855f7"}

BUNDESLAENDER_COLORS: dict[str, str] = {
    "Baden-Württemberg": "#1f77b4",
    "Bayern": "#ff7f0e",
    "Berlin": "#2ca02c",
    "Brandenburg": "#d62728",
    "Bremen": "#9467bd",
    "Hamburg": "#8c564b",
    "Hessen": "#e377c2",
    "Mecklenburg-Vorpommern": "#7f7f7f",
    "Niedersachsen": "#bcbd22",
    "Nordrhein-Westfalen": "#17becf",
    "Rheinland-Pfalz": "#aec7e8",
    "Saarland": "#ffbb78",
    "Sachsen": "#98df8a",
    "Sachsen-Anhalt": "#ff9896",
    "Schleswig-Holstein": "#c5b0d5",
    "Thüringen": "#c49c94",
}

ADMIN_STYLES: dict[str, dict[str, Any]] = {
    "bundeslaender": {
        "weight": 2,
        "opacity": 0.8,
        "color": "#333",
        "fillOpacity": 0.1,
        "fillColor": "#ff7800",
    },
    "kreise": {
        "weight": 1,
        "opacity": 0.6,
        "color": "#666",
        "fillOpacity": 0.05,
        "fillColor": "#27ae60",
    },
    "gemeinden": {
        "weight": 0.5,
        "opacity": 0.4,
        "color": "#999",
        "fillOpacity": 0.02,
        "fillColor": "#9b59b6",
    },
}

# Property keys probed, in order, for a feature's display name.
_NAME_KEYS = ("vnbName", "name", "gen", "NAME_1", "NAME_2", "NAME_3")


def voltage_color(voltage_types: str | Iterable[str] | None) -> str:
    if not voltage_types:
        return NO_VOLTAGE_COLOR
    if isinstance(voltage_types, str):
        types = [t.strip() for t in voltage_types.split(",")]
    else:
        types = [str(t) for t in voltage_types]
    mittel = any(MITTELSPANNUNG in t for t in types)
    nieder = any(NIEDERSPANNUNG in t for t in types)
    if mittel and nieder:
        return VOLTAGE_COLORS["both"]
    if mittel:
        return VOLTAGE_COLORS[MITTELSPANNUNG]
    if nieder:
        return VOLTAGE_COLORS[NIEDERSPANNUNG]
    return NO_VOLTAGE_COLOR


def _props(feature: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if not feature:
        return {}
    return feature.get("properties") or {}


def feature_name(feature: Mapping[str, Any] | None) -> str:
    props = _props(feature)
    for key in _NAME_KEYS:
        if props.get(key):
            return str(props[key])
    return "Unknown"


def vnb_style(feature: Mapping[str, Any] | None, interaction: Interaction = "normal") -> dict[str, Any]:
    props = _props(feature)
    voltage = props.get("voltageTypes") or props.get("properties.voltageTypes")
    style = {
        "fillColor": voltage_color(voltage),
        "weight": 1.5,
        "opacity": 0.8,
        "color": "#2c3e50",
        "fillOpacity": 0.4,
    }
    if interaction == "hover":
        style.update(weight=3, fillOpacity=0.6)
    return style


def admin_style(
    layer_id: str, feature: Mapping[str, Any] | None = None, interaction: Interaction = "normal"
) -> dict[str, Any]:
    if layer_id not in ADMIN_STYLES:
        raise KeyError(layer_id)
    style = dict(ADMIN_STYLES[layer_id])
    if layer_id == "bundeslaender" and feature is not None:
        style["fillColor"] = BUNDESLAENDER_COLORS.get(feature_name(feature), style["fillColor"])
    if interaction == "hover":
        style.update(weight=3 if layer_id == "bundeslaender" else 2, fillOpacity=0.3)
    return style


def marker_radius(power_kw: float) -> int:
    if power_kw >= 100_000:
        return 15
    if power_kw >= 50_000:
        return 12
    if power_kw >= 10_000:
        return 10
    if power_kw >= 5_000:
        return 8
    return 6


def asset_style(category: str, power_kw: float) -> dict[str, Any]:
    return {
        "radius": marker_radius(power_kw),
        "fillColor": ASSET_COLORS.get(category, NO_VOLTAGE_COLOR),
        "fillOpacity": 0.7,
        "color": "#fff",
        "weight": 1,
        "opacity": 0.9,
    }


def format_power(kw: float) -> str:
    if kw >= 1000:
        return f"{kw / 1000:.1f} MW"
    return f"{kw:.0f} kW"


def _de_number(value: float, max_decimals: int) -> str:
    # German grouping: "." for thousands, "," for decimals, trailing zeros dropped.
    text = f"{value:,.{max_decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text.replace(",", "\0").replace(".", ",").replace("\0", ".")


def format_area(area_m2: float | None) -> str:
    if not area_m2 or area_m2 <= 0:
        return "N/A"
    km2 = area_m2 / 1_000_000
    if km2 < 1:
        return f"{_de_number(area_m2, 0)} m²"
    return f"{_de_number(km2, 1)} km²"
