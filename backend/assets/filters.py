from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping

from assets.types import AssetRecord, FilterRule

FieldType = Literal["string", "number"]


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    type: FieldType
    options: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"key": self.key, "label": self.label, "type": self.type}
        if self.options:
            out["options"] = list(self.options)
        return out


ASSET_STATUSES = (
    "In Betrieb",
    "In Planung",
    "Vorübergehend stillgelegt",
    "Endgültig stillgelegt",
)

BUNDESLAENDER = (
    "Baden-Württemberg",
    "Bayern",
    "Berlin",
    "Brandenburg",
    "Bremen",
    "Hamburg",
    "Hessen",
    "Mecklenburg-Vorpommern",
    "Niedersachsen",
    "Nordrhein-Westfalen",
    "Rheinland-Pfalz",
    "Saarland",
    "Sachsen",
    "Sachsen-Anhalt",
    "Schleswig-Holstein",
    "Thüringen",
)

FIELDS: dict[str, FieldSpec] = {
    f.key: f
    for f in (
        FieldSpec("id", "MaStR-Nr", "string"),
        FieldSpec("name", "Name", "string"),
        FieldSpec("type", "Typ", "string", ("solar", "bess")),
        FieldSpec("status", "Status", "string", ASSET_STATUSES),
        FieldSpec("grossPower", "Bruttoleistung (kW)", "number"),
        FieldSpec("netPower", "Nettoleistung (kW)", "number"),
        FieldSpec("bundesland", "Bundesland", "string", BUNDESLAENDER),
        FieldSpec("city", "Stadt", "string"),
        FieldSpec("postalCode", "PLZ", "string"),
        FieldSpec("operator", "Betreiber", "string"),
        FieldSpec("commissioningDate", "Inbetriebnahme", "string"),
        FieldSpec("storageTechnology", "Speichertechnologie", "string", ("Batterie", "Pumpspeicher")),
        FieldSpec("storageCapacity", "Speicherkapazität (kWh)", "number"),
        FieldSpec(
            "solarType",
            "Anlagenart",
            "string",
            ("Freiflächensolaranlage", "Gebäudesolaranlage", "Sonstige Solaranlage"),
        ),
        FieldSpec("moduleCount", "Anzahl Module", "number"),
    )
}

STRING_OPERATORS: dict[str, str] = {
    "contains": "enthält",
    "not_contains": "enthält nicht",
    "equals": "ist gleich",
    "not_equals": "ist nicht gleich",
    "starts_with": "beginnt mit",
    "ends_with": "endet mit",
    "is_empty": "ist leer",
    "is_not_empty": "ist nicht leer",
}

NUMBER_OPERATORS: dict[str, str] = {
    "equals": "=",
    "not_equals": "≠",
    "gt": ">",
    "gte": "≥",
    "lt": "<",
    "lte": "≤",
    "between": "zwischen",
}

EMPTINESS_OPERATORS = frozenset({"is_empty", "is_not_empty"})


def operators_for(field_key: str) -> dict[str, str]:
    """Operators (value -> label) offered for `field_key`; unknown fields get none."""
    spec = FIELDS.get(field_key)
    if spec is None:
        return {}
    return dict(NUMBER_OPERATORS if spec.type == "number" else STRING_OPERATORS)


def _as_number(v: Any) -> float:
    # Browser Number(): None -> NaN, "" -> 0, garbage -> NaN.
    if isinstance(v, bool):
        return 1.0 if v else 0.0
    if isinstance(v, (int, float)):
        return float(v)
    if v is None:
        return math.nan
    s = str(v).strip()
    if s == "":
        return 0.0
    try:
        return float(s)
    except ValueError:
        return math.nan


def _as_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def _field_value(record: AssetRecord | Mapping[str, Any], field_key: str) -> Any:
    if isinstance(record, AssetRecord):
        return record.value(field_key)
    return record.get(field_key)


def evaluate(record: AssetRecord | Mapping[str, Any], rule: FilterRule) -> bool:
    """
    Evaluate one rule against one record.

    Strings compare case-insensitively; numbers compare against the rule value
    coerced to a number. An operator that makes no sense for the value's type
    passes the record.
    """
    value = _field_value(record, rule.field)
    op = rule.operator

    if value is None:
        return op == "is_empty"

    if isinstance(value, str):
        text = value.lower()
        needle = _as_text(rule.value).lower()
        if op == "contains":
            return needle in text
        if op == "not_contains":
            return needle not in text
        if op == "equals":
            return text == needle
        if op == "not_equals":
            return text != needle
        if op == "starts_with":
            return text.startswith(needle)
        if op == "ends_with":
            return text.endswith(needle)
        if op == "is_empty":
            return text == ""
        if op == "is_not_empty":
            return text != ""
        return True

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        num = float(value)
        other = _as_number(rule.value)
        if op == "equals":
            return num == other
        if op == "not_equals":
            return num != other
        if op == "gt":
            return num > other
        if op == "gte":
            return num >= other
        if op == "lt":
            return num < other
        if op == "lte":
            return num <= other
        if op == "between":
            return other <= num <= _as_number(rule.value2)
        return True

    return True


def is_active(rule: FilterRule) -> bool:
    if rule.operator in EMPTINESS_OPERATORS:
        return True
    return rule.value is not None and rule.value != ""


def matches_all(record: AssetRecord | Mapping[str, Any], rules: Iterable[FilterRule]) -> bool:
    return all(evaluate(record, r) for r in rules if is_active(r))


def apply_rules(records: Iterable[AssetRecord], rules: Iterable[FilterRule]) -> list[AssetRecord]:
    active = [r for r in rules if is_active(r)]
    if not active:
        return list(records)
    return [rec for rec in records if all(evaluate(rec, r) for r in active)]
