from __future__ import annotations

from typing import Any, Protocol


class JsonFetcher(Protocol):
    """
    Resource fetcher interface.

    - HttpFetcher: plain HTTP GET against the dataset base URL
    - tests: in-process fakes that count calls and control timing

    Implementations raise `errors.ResourceFetchError` for any failure; every
    call is a suspension point for the event loop.
    """

    async def get_json(self, path: str) -> Any: ...
