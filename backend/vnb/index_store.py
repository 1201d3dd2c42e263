from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from errors import IndexLoadError, ResourceFetchError
from fetch.types import JsonFetcher
from geo.aoi import BBox
from geo.index import BBoxIndex
from state.store import StateStore
from vnb.types import IndexRecord, parse_voltage_types

logger = logging.getLogger(__name__)

LOADING_KEY = "vnbIndex"


@dataclass(frozen=True)
class ParsedIndex:
    records: tuple[IndexRecord, ...]
    total_count: int
    by_tag: dict[str, tuple[str, ...]] = field(default_factory=dict)


def parse_index(doc: Any) -> ParsedIndex:
    """
    Parse the index document: `{"vnbs": [...], "totalCount": n, "byVoltageType": {...}}`.

    Malformed entries are skipped (logged); a malformed envelope raises
    IndexLoadError. Later duplicates of an id are dropped.
    """
    if not isinstance(doc, dict):
        raise IndexLoadError("index", "document is not an object")
    raw = doc.get("vnbs")
    if not isinstance(raw, list):
        raise IndexLoadError("index", "`vnbs` must be a list")

    records: list[IndexRecord] = []
    seen: set[str] = set()
    for i, entry in enumerate(raw):
        rec = _parse_entry(entry)
        if rec is None:
            logger.warning("Skipping malformed index entry #%d", i)
            continue
        if rec.id in seen:
            logger.warning("Skipping duplicate index id %r", rec.id)
            continue
        seen.add(rec.id)
        records.append(rec)

    by_tag: dict[str, tuple[str, ...]] = {}
    raw_by_tag = doc.get("byVoltageType") or {}
    if not isinstance(raw_by_tag, dict):
        logger.warning("Ignoring malformed byVoltageType (%s)", type(raw_by_tag).__name__)
        raw_by_tag = {}
    for tag, ids in raw_by_tag.items():
        if isinstance(ids, list):
            by_tag[str(tag)] = tuple(str(x) for x in ids)

    try:
        total = int(doc.get("totalCount", len(records)))
    except (TypeError, ValueError, OverflowError):
        total = len(records)
    return ParsedIndex(records=tuple(records), total_count=total, by_tag=by_tag)


def _parse_entry(entry: Any) -> IndexRecord | None:
    if not isinstance(entry, dict):
        return None
    rid = entry.get("id")
    file_name = entry.get("fileName")
    if rid is None or str(rid) == "" or not file_name:
        return None

    bbox = BBox.from_list(entry.get("bbox"))
    if not bbox.is_valid:
        logger.warning("Index entry %r has inverted bbox; treating as unknown", rid)
        bbox = BBox.unknown()

    try:
        area = float(entry.get("area") or 0.0)
    except (TypeError, ValueError):
        area = 0.0

    return IndexRecord(
        id=str(rid),
        vnb_id=str(entry.get("vnbId") or ""),
        name=str(entry.get("vnbName") or "Unknown"),
        tags=parse_voltage_types(entry.get("voltageTypes")),
        bbox=bbox,
        area=area,
        file_name=str(file_name),
    )


class SpatialIndexStore:
    """
    In-memory catalogue of IndexRecords, fetched once from the index document.

    A failed load leaves the store empty for the rest of the session; every
    query then simply returns no records.
    """

    def __init__(self, fetcher: JsonFetcher, store: StateStore, *, index_path: str):
        self._fetcher = fetcher
        self._store = store
        self._index_path = index_path

        self._records: tuple[IndexRecord, ...] = ()
        self._by_id: dict[str, IndexRecord] = {}
        self._bbox_index: BBoxIndex[IndexRecord] | None = None
        self.total_count = 0
        self.by_tag: dict[str, tuple[str, ...]] = {}

        self._done = False
        self._inflight: asyncio.Task | None = None

    @property
    def records(self) -> tuple[IndexRecord, ...]:
        return self._records

    @property
    def is_loaded(self) -> bool:
        return self._done

    async def load(self) -> tuple[IndexRecord, ...]:
        if self._done:
            return self._records
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
        try:
            await asyncio.shield(self._inflight)
        finally:
            if self._inflight is not None and self._inflight.done():
                self._inflight = None
        return self._records

    async def _load(self) -> None:
        self._store.set_loading(LOADING_KEY, True)
        try:
            try:
                doc = await self._fetcher.get_json(self._index_path)
            except ResourceFetchError as e:
                raise IndexLoadError(self._index_path, e) from e
            parsed = parse_index(doc)
        except IndexLoadError as e:
            logger.error("%s", e)
            self._set_records(())
        else:
            self._set_records(parsed.records)
            self.total_count = parsed.total_count
            self.by_tag = parsed.by_tag
            logger.info(
                "Loaded VNB index: %d records (totalCount=%d)",
                len(parsed.records),
                parsed.total_count,
            )
        finally:
            self._done = True
            self._store.set_loading(LOADING_KEY, False)

    def _set_records(self, records: tuple[IndexRecord, ...]) -> None:
        self._records = records
        self._by_id = {r.id: r for r in records}
        self._bbox_index = None
        self._store.set_index(records)

    def get(self, record_id: str) -> IndexRecord | None:
        return self._by_id.get(record_id)

    def query_by_tags(self, tags: Iterable[str]) -> list[IndexRecord]:
        wanted = set(tags)
        if not wanted:
            return list(self._records)
        return [r for r in self._records if r.tags & wanted]

    def query_by_substring(self, query: str) -> list[IndexRecord]:
        q = (query or "").lower()
        if not q:
            return list(self._records)
        return [
            r for r in self._records if q in r.name.lower() or q in r.vnb_id.lower()
        ]

    def query_by_bounds(self, bounds: BBox | None) -> list[IndexRecord]:
        if bounds is None:
            return list(self._records)
        if self._bbox_index is None:
            self._bbox_index = BBoxIndex(
                items=self._records, bboxes=[r.bbox for r in self._records]
            )
        return self._bbox_index.query(bounds)

    def filter(
        self, *, voltage_types: Iterable[str] = (), search_query: str = ""
    ) -> list[IndexRecord]:
        """
        Substring search first, then voltage class; order is index order.
        """
        wanted = set(voltage_types)
        return [
            r
            for r in self.query_by_substring(search_query)
            if not wanted or r.tags & wanted
        ]
