"""
HTTP client for a discovered LocalBrowser server.

Used by the CLI and by presentation layers that browse a remote root.
"""

import logging
from urllib.parse import quote

import httpx

from browse.models import DirectoryEntry

logger = logging.getLogger(__name__)


class BrowseClient:
    """Thin async wrapper over the server's REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "BrowseClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, url: str, **params) -> httpx.Response:
        logger.debug(f"GET {self.base_url}{url} {params}")
        response = await self._client.get(url, params=params or None)
        response.raise_for_status()
        return response

    async def list_directory(self, path: str = "/") -> list[DirectoryEntry]:
        response = await self._get("/api/list", path=path)
        return [DirectoryEntry.model_validate(item) for item in response.json()]

    async def search(self, term: str) -> list[DirectoryEntry]:
        """Searches can take long on big trees; callers may cancel the task."""
        response = await self._get("/api/search", term=term)
        return [DirectoryEntry.model_validate(item) for item in response.json()]

    async def read_text(self, path: str) -> str:
        response = await self._get("/api/file-content", path=path)
        return response.text

    async def download(self, path: str) -> bytes:
        response = await self._get(f"/files/{quote(path.lstrip('/'))}")
        return response.content

    async def thumbnail(self, path: str) -> bytes:
        response = await self._get("/api/thumbnail", path=path)
        return response.content
