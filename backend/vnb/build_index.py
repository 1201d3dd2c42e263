from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer

from vnb.types import VOLTAGE_TAGS

logger = logging.getLogger(__name__)

app = typer.Typer(help="Build the VNB index document from per-operator GeoJSON files.")


def index_entry(doc: Any, file_name: str) -> dict[str, Any] | None:
    """
    Index entry for one per-VNB FeatureCollection, or None when it has no
    features. The first feature is authoritative for all metadata.
    """
    features = doc.get("features") if isinstance(doc, dict) else None
    if not features:
        return None

    feature = features[0] or {}
    props = feature.get("properties") or {}
    raw_voltage = props.get("voltageTypes") or props.get("properties.voltageTypes") or ""
    voltage = [t for t in VOLTAGE_TAGS if t in str(raw_voltage)]

    return {
        "id": str(feature.get("id") or props.get("_id") or Path(file_name).stem),
        "vnbId": str(props.get("vnbId") or props.get("properties.vnbId") or ""),
        "vnbName": str(props.get("vnbName") or "Unknown"),
        "voltageTypes": voltage,
        "bbox": feature.get("bbox") or doc.get("bbox") or [0, 0, 0, 0],
        "area": props.get("properties.geometryArea") or props.get("geometryArea") or 0,
        "fileName": file_name,
    }


def build_index(source_dir: Path) -> dict[str, Any]:
    files = sorted(p for p in Path(source_dir).iterdir() if p.suffix == ".geojson")
    logger.info("Found %d VNB files in %s", len(files), source_dir)

    entries: list[dict[str, Any]] = []
    for path in files:
        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("Error processing %s: %s", path.name, e)
            continue
        entry = index_entry(doc, path.name)
        if entry is not None:
            entries.append(entry)

    entries.sort(key=lambda e: e["vnbName"].casefold())

    by_voltage: dict[str, list[str]] = {t: [] for t in VOLTAGE_TAGS}
    for e in entries:
        for t in e["voltageTypes"]:
            by_voltage[t].append(e["id"])

    # totalCount counts files, including ones that produced no entry.
    return {"vnbs": entries, "totalCount": len(files), "byVoltageType": by_voltage}


@app.command()
def main(
    source: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=False,
        help="Directory with one <vnb>.geojson per operator.",
    ),
    output: Path = typer.Option(
        Path("index.json"),
        "--output",
        "-o",
        help="Where to write the index document.",
    ),
) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    index = build_index(source)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(index, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Index written to %s (%d VNBs)", output, len(index["vnbs"]))


if __name__ == "__main__":
    app()
