import json

from fakes import index_doc, index_entry
from vnb.build_index import build_index, index_entry as build_entry
from vnb.index_store import parse_index
from vnb.stats import compute_stats


def test_stats_over_index_records():
    parsed = parse_index(
        index_doc(
            [
                index_entry("a", voltage=["Mittelspannung"], area=5_000_000),
                index_entry("b", voltage=["Mittelspannung", "Niederspannung"], area=50_000_000),
                index_entry("c", voltage=["Mittelspannung", "Niederspannung"], area=700_000_000),
                index_entry("d", voltage=[], area=0),
            ]
        )
    )
    stats = compute_stats(parsed.records).to_dict()
    assert stats["totalCount"] == 4
    assert stats["totalArea"] == 755_000_000
    # Classes without members are left out.
    assert stats["byVoltageType"] == [
        {"type": "Mittelspannung", "count": 1},
        {"type": "Both", "count": 2},
    ]
    assert stats["areaDistribution"] == [
        {"range": "< 10 km²", "count": 2},
        {"range": "10-100 km²", "count": 1},
        {"range": "100-500 km²", "count": 0},
        {"range": "> 500 km²", "count": 1},
    ]


def test_stats_of_empty_index():
    stats = compute_stats(()).to_dict()
    assert stats == {
        "totalCount": 0,
        "totalArea": 0.0,
        "byVoltageType": [],
        "areaDistribution": [],
    }


def _write(path, features, **extra):
    path.write_text(
        json.dumps({"type": "FeatureCollection", "features": features, **extra}),
        encoding="utf-8",
    )


def test_build_index_from_geojson_directory(tmp_path):
    _write(
        tmp_path / "zeta.geojson",
        [
            {
                "type": "Feature",
                "id": "z-1",
                "bbox": [9.0, 50.0, 9.5, 50.5],
                "properties": {
                    "vnbName": "Zeta Netz",
                    "properties.vnbId": "9901",
                    "properties.voltageTypes": "Mittelspannung, Niederspannung",
                    "properties.geometryArea": 1234.5,
                },
            },
            {"type": "Feature", "id": "ignored", "properties": {"vnbName": "Second"}},
        ],
    )
    _write(
        tmp_path / "alpha.geojson",
        [{"type": "Feature", "properties": {"_id": "a-1", "vnbName": "alpha Werke"}}],
        bbox=[7.0, 48.0, 8.0, 49.0],
    )
    _write(tmp_path / "empty.geojson", [])
    (tmp_path / "broken.geojson").write_text("{not json", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("skip me", encoding="utf-8")

    index = build_index(tmp_path)

    assert [e["id"] for e in index["vnbs"]] == ["a-1", "z-1"]
    assert index["totalCount"] == 4
    zeta = index["vnbs"][1]
    assert zeta["vnbId"] == "9901"
    assert zeta["voltageTypes"] == ["Mittelspannung", "Niederspannung"]
    assert zeta["bbox"] == [9.0, 50.0, 9.5, 50.5]
    assert zeta["area"] == 1234.5
    assert zeta["fileName"] == "zeta.geojson"
    alpha = index["vnbs"][0]
    assert alpha["bbox"] == [7.0, 48.0, 8.0, 49.0]
    assert alpha["voltageTypes"] == []
    assert index["byVoltageType"] == {"Mittelspannung": ["z-1"], "Niederspannung": ["z-1"]}

    # The builder's output is readable by the index parser.
    parsed = parse_index(index)
    assert [r.id for r in parsed.records] == ["a-1", "z-1"]


def test_index_entry_defaults():
    entry = build_entry({"features": [{"properties": {}}]}, "x.geojson")
    assert entry["id"] == "x"
    assert entry["vnbName"] == "Unknown"
    assert entry["bbox"] == [0, 0, 0, 0]
    assert entry["area"] == 0
    assert build_entry({"features": []}, "y.geojson") is None
