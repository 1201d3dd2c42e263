from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from errors import GeometryLoadError, ResourceFetchError
from fetch.types import JsonFetcher
from layers.loaders import parse_feature_collection, polygons_from_features
from state.store import StateStore
from state.types import VnbDisplay
from vnb.index_store import SpatialIndexStore
from vnb.types import GeometryRecord, IndexRecord

logger = logging.getLogger(__name__)

MAX_ENTRIES = 100
BATCH_SIZE = 20


class LoadGeneration:
    """
    Monotonic token source used to detect superseded batch loads.

    A loader takes a token when it starts and checks `is_current(token)` after
    every await; once a newer token was issued it must not write anything back.
    """

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def next(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, token: int) -> bool:
        return token == self._current


class LazyGeometryCache:
    """
    Bounded, on-demand cache of full VNB geometries keyed by record id.

    - Eviction is FIFO by insertion (reads do not refresh an entry).
    - Concurrent `get` calls for one id share a single fetch.
    - `get_batch` fetches in fixed-size groups: parallel within a group,
      sequential across groups, publishing progress after each group.
    """

    def __init__(
        self,
        fetcher: JsonFetcher,
        store: StateStore,
        index: SpatialIndexStore,
        *,
        geometry_dir: str,
        max_entries: int = MAX_ENTRIES,
        batch_size: int = BATCH_SIZE,
        generation: LoadGeneration | None = None,
    ):
        self._fetcher = fetcher
        self._store = store
        self._index = index
        self._geometry_dir = geometry_dir if geometry_dir.endswith("/") else geometry_dir + "/"
        self.max_entries = int(max_entries)
        self.batch_size = int(batch_size)
        self.generation = generation or LoadGeneration()

        self._entries: dict[str, GeometryRecord] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._batch_key: tuple[str, ...] | None = None
        self._batch_task: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._entries

    def ids(self) -> list[str]:
        """Cached ids, oldest insertion first."""
        return list(self._entries.keys())

    def peek(self, record_id: str) -> GeometryRecord | None:
        return self._entries.get(record_id)

    async def get(self, record_id: str) -> GeometryRecord | None:
        """
        Cached geometry, or fetch it. Returns None when the id is unknown or the
        fetch failed (the failure is logged, never raised).
        """
        hit = self._entries.get(record_id)
        if hit is not None:
            return hit

        task = self._inflight.get(record_id)
        if task is None:
            record = self._index.get(record_id)
            if record is None:
                logger.warning("No index record for geometry id %r", record_id)
                return None
            task = asyncio.ensure_future(self._fetch(record))
            self._inflight[record_id] = task
            task.add_done_callback(lambda t, rid=record_id: self._forget(rid, t))
        return await asyncio.shield(task)

    def _forget(self, record_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(record_id) is task:
            del self._inflight[record_id]

    async def _fetch(self, record: IndexRecord) -> GeometryRecord | None:
        key = f"vnb.{record.id}"
        self._store.set_loading(key, True)
        try:
            try:
                doc = await self._fetcher.get_json(self._geometry_dir + record.file_name)
                fc = parse_feature_collection(doc)
                geom = GeometryRecord(
                    id=record.id,
                    features=fc.features,
                    polygons=tuple(polygons_from_features(fc.features)),
                )
            except (ResourceFetchError, ValueError, TypeError) as e:
                raise GeometryLoadError(record.id, e) from e
        except GeometryLoadError as e:
            logger.error("%s", e)
            return None
        finally:
            self._store.set_loading(key, False)

        self._insert(geom)
        return geom

    def _insert(self, geom: GeometryRecord) -> None:
        if geom.id in self._entries:
            return
        self._entries[geom.id] = geom
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Evicted geometry %r", oldest)
        self._store.set_geometries(self._entries)

    async def get_batch(self, ids: Iterable[str]) -> list[GeometryRecord]:
        """
        Load geometries for `ids` and publish them as the displayed VNB set.

        Starting a load for a different id set supersedes the running one: it
        stops issuing groups, writes nothing further and returns []. Asking for
        the id set that is already loading joins that load.
        """
        key = tuple(ids)
        running = self._batch_task
        if running is not None and not running.done() and self._batch_key == key:
            return await asyncio.shield(running)

        token = self.generation.next()
        self._batch_key = key
        task = asyncio.ensure_future(self._run_batches(key, token, running))
        self._batch_task = task
        return await asyncio.shield(task)

    async def _run_batches(
        self, ids: Sequence[str], token: int, previous: asyncio.Task | None = None
    ) -> list[GeometryRecord]:
        total = len(ids)
        prev = self._store.state.display
        self._store.set_display(VnbDisplay(features=prev.features, loaded=0, total=total))
        if total == 0:
            self._store.set_display(VnbDisplay())
            return []

        # A superseded load finishes its current group before this one issues,
        # so at most one group of fetches is in flight.
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
            if not self.generation.is_current(token):
                return []

        out: list[GeometryRecord] = []
        features: list[dict] = []
        for start in range(0, total, self.batch_size):
            if start:
                # Give listeners woken by the last progress update a chance to
                # supersede this load before the next group is issued.
                await asyncio.sleep(0)
                if not self.generation.is_current(token):
                    logger.debug("Batch load superseded after %d/%d", start, total)
                    return []
            batch = ids[start : start + self.batch_size]
            results = await asyncio.gather(
                *(self.get(rid) for rid in batch), return_exceptions=True
            )
            if not self.generation.is_current(token):
                logger.debug("Batch load superseded after %d/%d", start, total)
                return []

            for rid, res in zip(batch, results):
                if isinstance(res, BaseException):
                    logger.error("Geometry %r failed: %s", rid, res)
                    continue
                if res is None:
                    continue
                out.append(res)
                features.extend(res.features)

            self._store.set_display(
                VnbDisplay(
                    features=tuple(features),
                    loaded=min(start + self.batch_size, total),
                    total=total,
                )
            )

        logger.info("Loaded %d/%d VNB geometries", len(out), total)
        return out

    def clear_display(self) -> None:
        """Supersede any running batch load and show nothing."""
        self.generation.next()
        self._batch_key = None
        self._store.set_display(VnbDisplay())
