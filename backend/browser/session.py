from __future__ import annotations

import logging
from typing import Callable

from admin.loader import ViewportGatedLoader
from assets.loader import AssetLayerLoader
from catalog.registry import get_dataset, http_timeout_s
from catalog.types import DatasetConfig
from fetch.http import HttpFetcher
from fetch.types import JsonFetcher
from geo.aoi import BBox
from geo.index import polygons_bounds
from render.intents import FitBounds, Intent, SelectRecord
from state.store import UNSET, StateStore
from state.types import AppState
from vnb.geometry_cache import LazyGeometryCache
from vnb.index_store import SpatialIndexStore
from vnb.search import FuzzySearchIndex
from vnb.stats import VnbStats, compute_stats
from vnb.types import GeometryRecord, IndexRecord

logger = logging.getLogger(__name__)


class BrowserSession:
    """
    One browsing session: the state store plus every loader bound to it.

    The session owns no rendering objects; callers read `store.state` and the
    loaders' `displayed`/`filtered` views, and act on returned intents.
    """

    def __init__(self, config: DatasetConfig, fetcher: JsonFetcher):
        self.config = config
        self.fetcher = fetcher
        self.store = StateStore.from_config(config)
        self.index = SpatialIndexStore(fetcher, self.store, index_path=config.index.path)
        self.geometries = LazyGeometryCache(
            fetcher,
            self.store,
            self.index,
            geometry_dir=config.index.geometryDir,
            max_entries=config.geometryCache.maxEntries,
            batch_size=config.geometryCache.batchSize,
        )
        self.admin = ViewportGatedLoader.from_config(fetcher, self.store, config)
        self.assets = AssetLayerLoader.from_config(fetcher, self.store, config)

        self._search = self._build_search(())
        self._unsubscribe: list[Callable[[], None]] = []
        self._started = False

    def _build_search(self, records: tuple[IndexRecord, ...]) -> FuzzySearchIndex:
        s = self.config.search
        return FuzzySearchIndex(
            records,
            threshold=s.threshold,
            min_query_length=s.minQueryLength,
            max_results=s.maxResults,
        )

    @property
    def search_index(self) -> FuzzySearchIndex:
        return self._search

    async def start(self) -> None:
        """Load the index and arm the layer loaders. Safe to call twice."""
        if self._started:
            return
        self._started = True
        self._unsubscribe.append(self.store.subscribe(self._on_state_change))
        self._unsubscribe.append(self.admin.attach())
        self._unsubscribe.append(self.assets.attach())
        await self.index.load()
        await self.admin.sync()
        await self.assets.sync()

    async def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        aclose = getattr(self.fetcher, "aclose", None)
        if aclose is not None:
            await aclose()

    def _on_state_change(self, new: AppState, old: AppState) -> None:
        if new.vnb_index is not old.vnb_index:
            self._search = self._build_search(new.vnb_index)
            logger.debug("Search index rebuilt over %d records", len(new.vnb_index))

    # VNB layer

    def filtered_vnbs(self) -> list[IndexRecord]:
        f = self.store.state.filters
        return self.index.filter(voltage_types=f.voltage_types, search_query=f.search_query)

    def visible_vnbs(self) -> list[IndexRecord]:
        """Filtered records whose extent intersects the current viewport."""
        bounds = self.store.state.viewport.bounds
        if bounds is None:
            return self.filtered_vnbs()
        in_view = {r.id for r in self.index.query_by_bounds(bounds)}
        return [r for r in self.filtered_vnbs() if r.id in in_view]

    async def load_vnbs(self) -> list[GeometryRecord]:
        """
        Load and display geometries for the visible VNBs; hides everything when
        the VNB layer is off or nothing matches.
        """
        if not self.store.state.visibility.is_visible("vnb"):
            self.geometries.clear_display()
            return []
        ids = [r.id for r in self.visible_vnbs()]
        if not ids:
            self.geometries.clear_display()
            return []
        return await self.geometries.get_batch(ids)

    async def select(self, record_id: str | None) -> list[Intent]:
        """
        Select a record, preload its geometry and return the renderer intents.

        Records with an unknown extent fall back to the bounds of their loaded
        polygons; without either no fit is requested.
        """
        if record_id is None:
            self.store.select_record(None)
            return []
        record = self.index.get(record_id)
        if record is None:
            raise KeyError(record_id)
        self.store.select_record(record.id)

        intents: list[Intent] = [SelectRecord(record.id)]
        geom = await self.geometries.get(record.id)
        bbox: BBox | None = record.bbox if not record.bbox.is_unknown else None
        if bbox is None and geom is not None:
            bbox = polygons_bounds(geom.polygons)
        if bbox is not None:
            intents.append(FitBounds(bbox))
        return intents

    def stats(self) -> VnbStats:
        return compute_stats(self.index.records)

    # Viewport / layers

    async def set_viewport(
        self,
        *,
        center: tuple[float, float] | None = None,
        zoom: float | None = None,
        bounds: BBox | None = UNSET,
    ) -> AppState:
        state = self.store.set_viewport(center=center, zoom=zoom, bounds=bounds)
        await self.admin.sync()
        return state

    async def toggle_layer(self, layer_id: str) -> AppState:
        state = self.store.toggle_layer(layer_id)
        await self.admin.sync()
        await self.assets.sync()
        return state


def create_session(
    config: DatasetConfig | None = None, fetcher: JsonFetcher | None = None
) -> BrowserSession:
    cfg = config or get_dataset()
    if fetcher is None:
        fetcher = HttpFetcher(cfg.baseUrl, timeout_s=http_timeout_s())
    logger.info("Session for dataset %s (%s)", cfg.id, cfg.baseUrl)
    return BrowserSession(cfg, fetcher)
