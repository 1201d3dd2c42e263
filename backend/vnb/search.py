from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from rapidfuzz import fuzz
from rapidfuzz.utils import default_process

from vnb.types import IndexRecord

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.3
MIN_QUERY_LENGTH = 2
MAX_RESULTS = 20


@dataclass(frozen=True)
class SearchHit:
    record: IndexRecord
    # 0.0 = perfect match, 1.0 = nothing in common.
    distance: float

    def to_dict(self) -> dict:
        return {**self.record.to_dict(), "score": round(self.distance, 4)}


class FuzzySearchIndex:
    """
    Approximate name / operator-id search over the index records.

    Keys are pre-processed once (lowercased, punctuation stripped). A record's
    distance is the best partial-ratio match across its keys.
    """

    def __init__(
        self,
        records: Sequence[IndexRecord],
        *,
        threshold: float = DEFAULT_THRESHOLD,
        min_query_length: int = MIN_QUERY_LENGTH,
        max_results: int = MAX_RESULTS,
    ):
        self.records = tuple(records)
        self.threshold = float(threshold)
        self.min_query_length = int(min_query_length)
        self.max_results = int(max_results)
        self._keys = [
            (default_process(r.name), default_process(r.vnb_id)) for r in self.records
        ]

    def __len__(self) -> int:
        return len(self.records)

    def search(self, query: str, limit: int | None = None) -> list[SearchHit]:
        q = (query or "").strip()
        if len(q) < self.min_query_length or not self.records:
            return []
        cap = self.max_results if limit is None else max(0, min(int(limit), self.max_results))
        if cap == 0:
            return []

        needle = default_process(q)
        if not needle:
            return []
        cutoff = (1.0 - self.threshold) * 100.0

        scored: list[tuple[float, int, int, IndexRecord]] = []
        for pos, (record, keys) in enumerate(zip(self.records, self._keys)):
            best = 0.0
            rank = 2
            for key in keys:
                if not key:
                    continue
                ratio = fuzz.partial_ratio(needle, key, score_cutoff=cutoff)
                if ratio > best:
                    best = ratio
                if key == needle:
                    rank = 0
                elif key.startswith(needle) and rank > 1:
                    rank = 1
            if best < cutoff or best == 0.0:
                continue
            scored.append((1.0 - best / 100.0, rank, pos, record))

        scored.sort(key=lambda t: (t[0], t[1], t[2]))
        hits = [SearchHit(record=rec, distance=dist) for dist, _, _, rec in scored[:cap]]
        logger.debug("Search %r: %d hits", q, len(hits))
        return hits
