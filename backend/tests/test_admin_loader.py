import asyncio

from admin.loader import ViewportGatedLoader
from fakes import FakeFetcher, polygon_fc
from state.types import LoadStatus

PATHS = {
    "bundeslaender": "data/admin/bundeslaender.geojson",
    "kreise": "data/admin/kreise.geojson",
    "gemeinden": "data/admin/gemeinden.geojson",
}


def _fetcher(**kwargs):
    return FakeFetcher(
        {
            PATHS["bundeslaender"]: polygon_fc("bayern", gen="Bayern"),
            PATHS["kreise"]: polygon_fc("kreis-1"),
            PATHS["gemeinden"]: polygon_fc("gemeinde-1"),
        },
        **kwargs,
    )


def test_default_view_loads_only_visible_ungated_layer(store, config):
    fetcher = _fetcher()
    loader = ViewportGatedLoader.from_config(fetcher, store, config)

    asyncio.run(loader.sync())
    assert loader.status("bundeslaender") == LoadStatus.loaded
    assert loader.status("kreise") == LoadStatus.not_requested
    assert loader.status("gemeinden") == LoadStatus.not_requested
    assert fetcher.calls == [PATHS["bundeslaender"]]
    assert len(loader.displayed("bundeslaender")) == 1


def test_zoom_gate_loads_once_and_keeps_data_after_zoom_out(store, config):
    fetcher = _fetcher()
    loader = ViewportGatedLoader.from_config(fetcher, store, config)
    store.set_layer_visible("kreise", True)

    async def run():
        store.set_viewport(zoom=5)
        await loader.sync()
        assert loader.status("kreise") == LoadStatus.not_requested

        store.set_viewport(zoom=6)
        await loader.sync()
        assert loader.status("kreise") == LoadStatus.not_requested
        assert fetcher.count(PATHS["kreise"]) == 0

        store.set_viewport(zoom=7)
        await loader.sync()
        assert loader.status("kreise") == LoadStatus.loaded
        assert fetcher.count(PATHS["kreise"]) == 1

        store.set_viewport(zoom=8)
        await loader.sync()
        assert loader.status("kreise") == LoadStatus.loaded
        assert fetcher.count(PATHS["kreise"]) == 1
        assert len(loader.displayed("kreise")) == 1

        store.set_viewport(zoom=5)
        await loader.sync()
        assert loader.status("kreise") == LoadStatus.loaded
        assert len(loader.displayed("kreise")) == 0
        assert "kreise" in store.state.admin_data

        store.set_viewport(zoom=9)
        await loader.sync()

    asyncio.run(run())
    assert fetcher.count(PATHS["kreise"]) == 1
    assert len(loader.displayed("kreise")) == 1


def test_display_and_load_thresholds_are_independent(store, config):
    fetcher = _fetcher()
    loader = ViewportGatedLoader.from_config(fetcher, store, config)
    store.set_layer_visible("kreise", True)

    asyncio.run(loader.sync())
    # Zoom 6: past the display threshold, short of the load threshold.
    assert store.state.viewport.zoom == 6
    assert loader.is_displayed("kreise")
    assert not loader.should_load("kreise")
    assert fetcher.count(PATHS["kreise"]) == 0
    assert len(loader.displayed("kreise")) == 0


def test_hidden_layer_is_never_fetched(store, config):
    fetcher = _fetcher()
    loader = ViewportGatedLoader.from_config(fetcher, store, config)
    store.set_viewport(zoom=12)

    asyncio.run(loader.sync())
    assert fetcher.count(PATHS["gemeinden"]) == 0
    assert fetcher.count(PATHS["kreise"]) == 0


def test_failed_layer_stays_failed(store, config):
    fetcher = _fetcher(fail=[PATHS["gemeinden"]])
    loader = ViewportGatedLoader.from_config(fetcher, store, config)
    store.set_layer_visible("gemeinden", True)

    async def run():
        store.set_viewport(zoom=11)
        await loader.sync()
        assert loader.status("gemeinden") == LoadStatus.failed

        store.set_layer_visible("gemeinden", False)
        store.set_layer_visible("gemeinden", True)
        store.set_viewport(zoom=12)
        await loader.sync()

    asyncio.run(run())
    assert loader.status("gemeinden") == LoadStatus.failed
    assert fetcher.count(PATHS["gemeinden"]) == 1
    assert "admin.gemeinden" not in store.state.loading
    assert len(loader.displayed("gemeinden")) == 0


def test_attached_loader_reacts_to_state_changes(store, config):
    fetcher = _fetcher(delay=0.005)
    loader = ViewportGatedLoader.from_config(fetcher, store, config)
    store.set_layer_visible("gemeinden", True)

    async def run():
        unsubscribe = loader.attach()
        store.set_viewport(zoom=10)
        await asyncio.sleep(0)
        assert loader.status("gemeinden") in (LoadStatus.loading, LoadStatus.loaded)
        await loader.sync()
        unsubscribe()

    asyncio.run(run())
    assert loader.status("gemeinden") == LoadStatus.loaded
    assert fetcher.count(PATHS["gemeinden"]) == 1
