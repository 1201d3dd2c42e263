from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Mapping

from assets.filters import apply_rules
from assets.types import ASSET_CATEGORIES, AssetCategory, AssetRecord, FilterRule, asset_from_point
from catalog.types import DatasetConfig
from errors import AssetLoadError, ResourceFetchError
from fetch.types import JsonFetcher
from layers.loaders import parse_feature_collection, points_from_features
from layers.types import PointFeature
from state.store import StateStore
from state.types import AppState, LoadStatus

logger = logging.getLogger(__name__)


def visibility_key(category: str) -> str:
    return f"anlagen_{category}"


class AssetLayerLoader:
    """
    Loads each asset category's bulk file at most once, when its layer is visible.

    No zoom gating: the upstream export only keeps installations above a
    capacity threshold, so counts stay small. A failed category is not retried
    until its layer is hidden and shown again.
    """

    def __init__(self, fetcher: JsonFetcher, store: StateStore, paths: Mapping[str, str]):
        self._fetcher = fetcher
        self._store = store
        self._paths = dict(paths)
        self._tasks: dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(
        cls, fetcher: JsonFetcher, store: StateStore, config: DatasetConfig
    ) -> "AssetLayerLoader":
        return cls(fetcher, store, {a.id: a.path for a in config.assetLayers})

    @property
    def categories(self) -> list[str]:
        return [c for c in ASSET_CATEGORIES if c in self._paths]

    def status(self, category: str) -> LoadStatus:
        return self._store.state.asset_status.get(category, LoadStatus.not_requested)

    def records(self, category: str) -> tuple[AssetRecord, ...]:
        return self._store.state.asset_data.get(category, ())

    def filtered(
        self, category: str, rules: Iterable[FilterRule] | None = None
    ) -> list[AssetRecord]:
        if rules is None:
            rules = self._store.state.filters.rules
        return apply_rules(self.records(category), rules)

    async def ensure_loaded(self, category: str) -> tuple[AssetRecord, ...]:
        if category not in self._paths:
            raise KeyError(category)
        if not self._store.state.visibility.is_visible(visibility_key(category)):
            return self.records(category)

        self._start(category)
        task = self._tasks.get(category)
        if task is not None and not task.done():
            await asyncio.shield(task)
        return self.records(category)

    async def sync(self) -> None:
        for category in self.categories:
            await self.ensure_loaded(category)

    def attach(self) -> Callable[[], None]:
        def on_change(new: AppState, old: AppState) -> None:
            if new.visibility is old.visibility:
                return
            for category in self.categories:
                key = visibility_key(category)
                was, now = old.visibility.is_visible(key), new.visibility.is_visible(key)
                if was and not now and self.status(category) == LoadStatus.failed:
                    # Hiding a failed layer re-arms it for the next show.
                    self._store.set_asset_status(category, LoadStatus.not_requested)
                elif now and not was:
                    self._schedule(category)

        return self._store.subscribe(on_change)

    def _schedule(self, category: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_soon(self._start, category)

    def _start(self, category: str) -> None:
        if not self._store.state.visibility.is_visible(visibility_key(category)):
            return
        if self.status(category) != LoadStatus.not_requested:
            return
        # Mark before the first await so overlapping calls share one fetch.
        self._store.set_asset_status(category, LoadStatus.loading)
        self._tasks[category] = asyncio.ensure_future(self._load(category))

    async def _load(self, category: AssetCategory) -> None:
        key = f"anlagen.{category}"
        path = self._paths[category]
        self._store.set_loading(key, True)
        try:
            try:
                doc = await self._fetcher.get_json(path)
                fc = parse_feature_collection(doc)
            except (ResourceFetchError, ValueError) as e:
                raise AssetLoadError(category, e) from e
            records = _convert(points_from_features(fc.features), category)
        except AssetLoadError as e:
            logger.error("%s", e)
            self._store.set_asset_status(category, LoadStatus.failed)
        except Exception:
            logger.exception("Unexpected error loading %s assets", category)
            self._store.set_asset_status(category, LoadStatus.failed)
        else:
            self._store.set_asset_data(category, records)
            self._store.set_asset_status(category, LoadStatus.loaded)
            logger.info("Loaded %s assets: %d records", category, len(records))
        finally:
            self._store.set_loading(key, False)


def _convert(points: Iterable[PointFeature], category: AssetCategory) -> tuple[AssetRecord, ...]:
    out: list[AssetRecord] = []
    for p in points:
        try:
            out.append(asset_from_point(p, category))
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning("Skipping %s asset %r: %s", category, p.id, e)
    return tuple(out)
