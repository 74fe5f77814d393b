"""Filesystem asset store for development and single-host deployments."""

import asyncio
from pathlib import Path

import httpx

from adshoot.services.exceptions import StorageNetworkError, StorageValidationError
from adshoot.services.storage.supabase_storage import raise_for_storage_status


class LocalAssetStore:
    """Stores assets under a local directory served by the app at /assets."""

    def __init__(self, root: str | Path, base_url: str, timeout: float = 30.0):
        """Initialize local store.

        Args:
            root: Directory holding the assets
            base_url: Public URL prefix mapped to root (e.g. http://localhost:8000/assets)
            timeout: Timeout for downloads of external URLs
        """
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root):
            raise StorageValidationError(f"Path escapes storage root: {path}")
        return target

    async def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        return self.public_url(path)

    async def download(self, url: str) -> bytes:
        """Read a stored asset, or fetch an external URL over HTTP."""
        prefix = f"{self.base_url}/"
        if url.startswith(prefix):
            target = self._resolve(url[len(prefix):])
            if not target.is_file():
                raise StorageValidationError(f"Asset not found: {url}")
            return await asyncio.to_thread(target.read_bytes)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise StorageValidationError(f"Invalid URL {url!r}: {str(e)}")
        except httpx.HTTPError as e:
            raise StorageNetworkError(f"Network error: {str(e)}")

        raise_for_storage_status(response)
        return response.content
