import pytest
from fastapi.testclient import TestClient

from browser.session import create_session
from fakes import FakeFetcher, asset_fc, index_entry, polygon_fc, vnb_docs
from main import app, get_session


@pytest.fixture
def client(config):
    docs = vnb_docs(
        [
            index_entry("v1", "Stadtwerke Kiel", vnb_id="9900001", voltage=["Niederspannung"], area=20_000_000),
            index_entry(
                "v2",
                "Netze BW",
                vnb_id="9900002",
                voltage=["Mittelspannung", "Niederspannung"],
                bbox=[8.0, 48.0, 9.0, 49.0],
            ),
        ]
    )
    docs["data/admin/bundeslaender.geojson"] = polygon_fc("by", gen="Bayern")
    docs["data/admin/kreise.geojson"] = polygon_fc("k1")
    docs["data/anlagen/solar.geojson"] = asset_fc(
        [
            {"id": "S1", "name": "Park A", "status": "In Betrieb", "grossPower": 12000},
            {"id": "S2", "name": "Dach B", "status": "In Planung", "grossPower": 30},
        ]
    )
    docs["data/anlagen/bess.geojson"] = asset_fc([])
    session = create_session(config=config, fetcher=FakeFetcher(docs))

    async def override():
        await session.start()
        return session

    app.dependency_overrides[get_session] = override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _events(body: str) -> list[str]:
    return [
        line.split(":", 1)[1].strip()
        for line in body.splitlines()
        if line.startswith("event:")
    ]


def test_health():
    assert TestClient(app).get("/health").json() == {"status": "ok"}


def test_dataset(client):
    body = client.get("/dataset").json()
    assert body["id"] == "germany"
    assert body["geometryCache"]["batchSize"] == 20


def test_list_vnbs_with_filters(client):
    assert client.get("/vnbs").json()["count"] == 2
    body = client.get("/vnbs", params={"tags": ["Mittelspannung"]}).json()
    assert [v["id"] for v in body["vnbs"]] == ["v2"]
    body = client.get("/vnbs", params={"q": "kiel"}).json()
    assert [v["vnbName"] for v in body["vnbs"]] == ["Stadtwerke Kiel"]


def test_in_view_uses_viewport_bounds(client):
    client.post("/viewport", json={"bounds": {"minLon": 7.5, "minLat": 47.5, "maxLon": 9.5, "maxLat": 49.5}})
    body = client.get("/vnbs", params={"inView": "true"}).json()
    assert [v["id"] for v in body["vnbs"]] == ["v2"]


def test_search_and_stats(client):
    hits = client.get("/vnbs/search", params={"q": "netze"}).json()
    assert hits[0]["id"] == "v2"
    assert client.get("/vnbs/search", params={"q": "n"}).json() == []

    stats = client.get("/vnbs/stats").json()
    assert stats["totalCount"] == 2
    assert {"type": "Both", "count": 1} in stats["byVoltageType"]


def test_load_stream_emits_progress_features_done(client):
    resp = client.post("/vnbs/load")
    assert resp.status_code == 200
    events = _events(resp.text)
    assert events[0] == "progress"
    assert events[-2:] == ["features", "done"]
    assert '"total": 2' in resp.text


def test_select(client):
    body = client.post("/vnbs/v2/select").json()
    assert body["intents"][0] == {"type": "selectRecord", "id": "v2"}
    assert body["intents"][1]["bbox"] == [8.0, 48.0, 9.0, 49.0]
    assert client.post("/vnbs/nope/select").status_code == 404


def test_admin_layer_gating_through_api(client):
    assert client.post("/layers/kreise/toggle").json()["visibility"]["kreise"] is True
    assert client.get("/admin/kreise").json()["features"] == []

    body = client.post("/viewport", json={"zoom": 8}).json()
    assert body["viewport"]["zoom"] == 8
    assert body["layers"]["adminStatus"]["kreise"] == "loaded"
    assert len(client.get("/admin/kreise").json()["features"]) == 1

    assert client.get("/admin/bezirke").status_code == 404
    assert client.post("/layers/bezirke/toggle").status_code == 404


def test_assets_with_filter_rules(client):
    assert len(client.get("/assets/solar").json()["features"]) == 2

    rule = client.post(
        "/filters/rules", json={"field": "grossPower", "operator": "gt", "value": 1000}
    ).json()
    body = client.get("/assets/solar").json()
    assert [f["properties"]["id"] for f in body["features"]] == ["S1"]
    assert body["total"] == 2

    client.patch(f"/filters/rules/{rule['id']}", json={"operator": "lt"})
    assert [f["properties"]["id"] for f in client.get("/assets/solar").json()["features"]] == ["S2"]

    assert client.delete(f"/filters/rules/{rule['id']}").status_code == 200
    assert client.get("/filters/rules").json() == []
    assert client.delete("/filters/rules/missing").status_code == 404
    assert client.get("/assets/wind").status_code == 404


def test_rule_validation_and_fields(client):
    resp = client.post("/filters/rules", json={"field": "color", "operator": "equals", "value": "x"})
    assert resp.status_code == 422

    fields = {f["key"]: f for f in client.get("/filters/fields").json()}
    assert "between" in fields["grossPower"]["operators"]
    assert fields["status"]["options"][0] == "In Betrieb"

    rules = client.put(
        "/filters/rules",
        json=[{"id": "a", "field": "status", "operator": "is_empty"}],
    ).json()
    assert rules == [
        {"id": "a", "field": "status", "operator": "is_empty", "value": "", "value2": None}
    ]
