import asyncio

import pytest

from assets.loader import AssetLayerLoader
from assets.types import FilterRule
from fakes import FakeFetcher, asset_fc
from state.types import LoadStatus

SOLAR = "data/anlagen/solar.geojson"
BESS = "data/anlagen/bess.geojson"


def _docs():
    return {
        SOLAR: asset_fc(
            [
                {
                    "id": "SEE1",
                    "name": "Solarpark Nord",
                    "status": "In Betrieb",
                    "grossPower": 12000,
                    "netPower": 11000,
                    "bundesland": "Bayern",
                    "solarType": "Freiflächensolaranlage",
                    "moduleCount": 24000,
                    "storageTechnology": "Batterie",
                },
                {
                    "id": "SEE2",
                    "name": "Dach Süd",
                    "status": "In Planung",
                    "grossPower": -5,
                    "netPower": 400,
                    "bundesland": "Hessen",
                },
            ]
        ),
        BESS: asset_fc(
            [
                {
                    "id": "SSE1",
                    "name": "Speicher Ost",
                    "status": "In Betrieb",
                    "grossPower": 50000,
                    "netPower": 50000,
                    "storageTechnology": "Batterie",
                    "storageCapacity": 80000,
                    "solarType": "Gebäudesolaranlage",
                }
            ]
        ),
    }


def test_visible_categories_load_once(store, config):
    fetcher = FakeFetcher(_docs())
    loader = AssetLayerLoader.from_config(fetcher, store, config)

    async def run():
        await asyncio.gather(loader.ensure_loaded("solar"), loader.ensure_loaded("solar"))
        await loader.sync()

    asyncio.run(run())
    assert loader.status("solar") == LoadStatus.loaded
    assert loader.status("bess") == LoadStatus.loaded
    assert fetcher.count(SOLAR) == 1
    assert fetcher.count(BESS) == 1
    assert store.state.loading == {}


def test_records_keep_only_their_category_fields(store, config):
    loader = AssetLayerLoader.from_config(FakeFetcher(_docs()), store, config)
    asyncio.run(loader.sync())

    solar = {r.id: r for r in loader.records("solar")}
    assert solar["SEE1"].solar_type == "Freiflächensolaranlage"
    assert solar["SEE1"].module_count == 24000
    assert solar["SEE1"].storage_technology is None
    assert solar["SEE1"].category == "solar"
    # Negative capacities are clamped.
    assert solar["SEE2"].gross_power == 0.0

    (bess,) = loader.records("bess")
    assert bess.storage_technology == "Batterie"
    assert bess.storage_capacity == 80000.0
    assert bess.solar_type is None
    assert bess.module_count is None
    assert (bess.lon, bess.lat) == (10.0, 50.0)


def test_hidden_category_is_not_fetched(store, config):
    fetcher = FakeFetcher(_docs())
    loader = AssetLayerLoader.from_config(fetcher, store, config)
    store.set_layer_visible("anlagen_bess", False)

    asyncio.run(loader.sync())
    assert loader.status("bess") == LoadStatus.not_requested
    assert fetcher.count(BESS) == 0


def test_failed_category_retries_after_toggle_cycle(store, config):
    fetcher = FakeFetcher(_docs(), fail=[SOLAR])
    loader = AssetLayerLoader.from_config(fetcher, store, config)

    async def run():
        loader.attach()
        await loader.sync()
        assert loader.status("solar") == LoadStatus.failed

        # Still failed while the layer stays visible.
        await loader.sync()
        assert fetcher.count(SOLAR) == 1

        fetcher.fail.clear()
        store.set_layer_visible("anlagen_solar", False)
        assert loader.status("solar") == LoadStatus.not_requested
        store.set_layer_visible("anlagen_solar", True)
        await asyncio.sleep(0)
        await loader.sync()

    asyncio.run(run())
    assert loader.status("solar") == LoadStatus.loaded
    assert fetcher.count(SOLAR) == 2
    assert len(loader.records("solar")) == 2


def test_filtered_applies_active_rules(store, config):
    loader = AssetLayerLoader.from_config(FakeFetcher(_docs()), store, config)
    asyncio.run(loader.sync())

    store.add_filter_rule(FilterRule(id="r1", field="grossPower", operator="gte", value=1000))
    assert [r.id for r in loader.filtered("solar")] == ["SEE1"]

    store.add_filter_rule(FilterRule(id="r2", field="bundesland", operator="equals", value=""))
    assert [r.id for r in loader.filtered("solar")] == ["SEE1"]

    explicit = [FilterRule(id="x", field="status", operator="contains", value="planung")]
    assert [r.id for r in loader.filtered("solar", explicit)] == ["SEE2"]


def test_unknown_category_raises(store, config):
    loader = AssetLayerLoader.from_config(FakeFetcher(_docs()), store, config)
    with pytest.raises(KeyError):
        asyncio.run(loader.ensure_loaded("wind"))


def test_absent_text_fields_only_match_is_empty(store, config):
    docs = {
        SOLAR: asset_fc(
            [
                {"id": "SEE1", "name": "Ohne Betreiber", "grossPower": 900, "operator": None},
                {"id": "SEE2", "name": "Mit Betreiber", "grossPower": 900, "operator": "Sonnen AG", "city": ""},
            ]
        ),
        BESS: asset_fc([]),
    }
    loader = AssetLayerLoader.from_config(FakeFetcher(docs), store, config)
    asyncio.run(loader.sync())

    solar = {r.id: r for r in loader.records("solar")}
    assert solar["SEE1"].value("operator") is None
    assert solar["SEE1"].status is None
    assert solar["SEE2"].city == ""

    def ids(*rules):
        return [r.id for r in loader.filtered("solar", list(rules))]

    assert ids(FilterRule(id="a", field="operator", operator="not_contains", value="GmbH")) == ["SEE2"]
    assert ids(FilterRule(id="b", field="operator", operator="not_equals", value="x")) == ["SEE2"]
    assert ids(FilterRule(id="c", field="operator", operator="is_empty")) == ["SEE1"]
    assert ids(FilterRule(id="d", field="city", operator="is_empty")) == ["SEE1", "SEE2"]
    assert ids(FilterRule(id="e", field="status", operator="not_contains", value="x")) == []


def test_bad_values_do_not_fail_the_category(store, config):
    docs = {
        SOLAR: asset_fc(
            [
                {"id": "SEE1", "name": "Unendlich", "grossPower": float("inf"), "moduleCount": float("inf")},
                {"id": "SEE2", "name": "Riesig", "grossPower": 10**400, "moduleCount": "viele"},
                {"id": "SEE3", "name": "Normal", "grossPower": 800, "moduleCount": 1500},
            ]
        ),
        BESS: {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "properties": "kaputt", "geometry": {"type": "Point", "coordinates": [9, 51]}},
                {"type": "Feature", "properties": {"id": "SSE1"}, "geometry": "kaputt"},
            ],
        },
    }
    loader = AssetLayerLoader.from_config(FakeFetcher(docs), store, config)
    asyncio.run(loader.sync())

    assert loader.status("solar") == LoadStatus.loaded
    solar = {r.id: r for r in loader.records("solar")}
    assert set(solar) == {"SEE1", "SEE2", "SEE3"}
    assert solar["SEE1"].module_count is None
    assert solar["SEE1"].gross_power == 0.0
    assert solar["SEE2"].gross_power == 0.0
    assert solar["SEE2"].module_count is None
    assert solar["SEE3"].module_count == 1500

    assert loader.status("bess") == LoadStatus.loaded
    assert [r.id for r in loader.records("bess")] == ["point-0"]
    assert store.state.loading == {}


def test_unexpected_conversion_error_marks_category_failed(store, config, monkeypatch):
    import assets.loader as asset_loader

    def explode(point, category):
        raise RuntimeError("boom")

    monkeypatch.setattr(asset_loader, "asset_from_point", explode)
    loader = AssetLayerLoader.from_config(FakeFetcher(_docs()), store, config)
    asyncio.run(loader.sync())

    assert loader.status("solar") == LoadStatus.failed
    assert loader.records("solar") == ()
    assert store.state.loading == {}
