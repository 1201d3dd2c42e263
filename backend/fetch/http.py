from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from errors import ResourceFetchError

logger = logging.getLogger(__name__)


class HttpFetcher:
    """
    Fetch JSON resources relative to a base URL with `httpx.AsyncClient`.

    No authentication, no retries. A non-2xx status, a transport error or an
    undecodable body is a failure of that one resource only.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_s),
            transport=transport,
        )

    async def get_json(self, path: str) -> Any:
        rel = (path or "").lstrip("/")
        logger.debug("GET %s%s", self.base_url, rel)
        try:
            resp = await self._client.get(rel)
        except httpx.HTTPError as e:
            raise ResourceFetchError(rel, f"{type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise ResourceFetchError(
                rel, f"HTTP {resp.status_code}", status_code=resp.status_code
            )
        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ResourceFetchError(rel, f"invalid JSON: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
