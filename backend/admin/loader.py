from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Sequence

from catalog.types import DatasetConfig
from errors import BoundaryLoadError, ResourceFetchError
from fetch.types import JsonFetcher
from layers.loaders import parse_feature_collection
from layers.types import FeatureCollection
from state.store import StateStore
from state.types import AppState, LoadStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatedLayer:
    id: str
    path: str
    # Zoom at which the layer may trigger a network load.
    load_min_zoom: int
    # Zoom at which loaded data is handed to the renderer.
    display_min_zoom: int


class ViewportGatedLoader:
    """
    Fetch gate for administrative boundary layers.

    Per layer: NOT_REQUESTED -> LOADING -> LOADED | FAILED. A load starts only
    when the layer is visible, the zoom reached its load threshold and nothing
    was requested yet. Loaded data is kept for the process lifetime; zooming
    out only hides it. FAILED is terminal for the session.
    """

    def __init__(self, fetcher: JsonFetcher, store: StateStore, layers: Sequence[GatedLayer]):
        self._fetcher = fetcher
        self._store = store
        self._layers = {layer.id: layer for layer in layers}
        self._tasks: dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(
        cls, fetcher: JsonFetcher, store: StateStore, config: DatasetConfig
    ) -> "ViewportGatedLoader":
        return cls(
            fetcher,
            store,
            [
                GatedLayer(
                    id=layer.id,
                    path=layer.path,
                    load_min_zoom=layer.loadMinZoom,
                    display_min_zoom=layer.displayMinZoom,
                )
                for layer in config.adminLayers
            ],
        )

    @property
    def layer_ids(self) -> list[str]:
        return list(self._layers.keys())

    def layer(self, layer_id: str) -> GatedLayer | None:
        return self._layers.get(layer_id)

    def status(self, layer_id: str, state: AppState | None = None) -> LoadStatus:
        s = state or self._store.state
        return s.admin_status.get(layer_id, LoadStatus.not_requested)

    def should_load(self, layer_id: str, state: AppState | None = None) -> bool:
        layer = self._layers.get(layer_id)
        if layer is None:
            return False
        s = state or self._store.state
        return (
            s.visibility.is_visible(layer_id)
            and s.viewport.zoom >= layer.load_min_zoom
            and self.status(layer_id, s) == LoadStatus.not_requested
        )

    def is_displayed(self, layer_id: str, state: AppState | None = None) -> bool:
        layer = self._layers.get(layer_id)
        if layer is None:
            return False
        s = state or self._store.state
        return s.visibility.is_visible(layer_id) and s.viewport.zoom >= layer.display_min_zoom

    def displayed(self, layer_id: str) -> FeatureCollection:
        """
        What the renderer should draw for `layer_id` right now.
        """
        s = self._store.state
        if not self.is_displayed(layer_id, s):
            return FeatureCollection.empty()
        return s.admin_data.get(layer_id) or FeatureCollection.empty()

    def attach(self) -> Callable[[], None]:
        """
        Re-evaluate the gate whenever zoom or visibility change.

        Loads are started from the running event loop on the next tick; without
        a running loop callers drive the gate with `await sync()`.
        """

        def on_change(new: AppState, old: AppState) -> None:
            if new.viewport.zoom == old.viewport.zoom and new.visibility is old.visibility:
                return
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            loop.call_soon(self._start_eligible)

        return self._store.subscribe(on_change)

    def _start_eligible(self) -> list[asyncio.Task]:
        started: list[asyncio.Task] = []
        for layer_id in self._layers:
            if not self.should_load(layer_id):
                continue
            # Mark before the first await so a second evaluation can't double-fetch.
            self._store.set_admin_status(layer_id, LoadStatus.loading)
            task = asyncio.ensure_future(self._load(self._layers[layer_id]))
            self._tasks[layer_id] = task
            started.append(task)
        return started

    async def sync(self) -> None:
        """Start every eligible load and wait for all pending ones."""
        self._start_eligible()
        pending = [t for t in self._tasks.values() if not t.done()]
        if pending:
            await asyncio.gather(*pending)

    async def _load(self, layer: GatedLayer) -> None:
        key = f"admin.{layer.id}"
        self._store.set_loading(key, True)
        try:
            try:
                doc = await self._fetcher.get_json(layer.path)
                data = parse_feature_collection(doc)
            except (ResourceFetchError, ValueError) as e:
                raise BoundaryLoadError(layer.id, e) from e
        except BoundaryLoadError as e:
            logger.error("%s", e)
            self._store.set_admin_status(layer.id, LoadStatus.failed)
        else:
            self._store.set_admin_data(layer.id, data)
            self._store.set_admin_status(layer.id, LoadStatus.loaded)
            logger.info("Loaded %s: %d features", layer.id, len(data))
        finally:
            self._store.set_loading(key, False)
