"""Asset handling — publish upstream asset files and copy local static files.

Published assets live flat in the site's assets folder under their file
name (``assets/hero.jpg``), which is the same path ``asset_src`` and the
Markdown image rewrite point at.
"""

from __future__ import annotations

import mimetypes
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from mews._errors import PublishError
from mews.export.static import ExportedFile

if TYPE_CHECKING:
    from mews.content.model import Asset, AssetFile
    from mews.export.store import ObjectStore

# Files/directories skipped during static copying
_HIDDEN_PREFIXES = (".", "_")

DOWNLOAD_TIMEOUT = 60.0


def asset_key(assets_folder: str, file_name: str) -> str:
    """Object key of a published asset file."""
    return f"{assets_folder.strip('/')}/{file_name}"


class AssetPublisher:
    """Downloads asset files and writes them to the object store.

    Args:
        store: Destination object store.
        assets_folder: Folder under which asset files are published.
        client: Shared ``httpx.AsyncClient``; one is created (and owned)
            when omitted.

    """

    def __init__(
        self,
        store: ObjectStore,
        assets_folder: str,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._store = store
        self._assets_folder = assets_folder
        self._client = client
        self._owns_client = client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def publish(self, asset: Asset) -> tuple[ExportedFile, ...]:
        """Download every file of *asset* and store it.

        Raises:
            PublishError: If a download fails or returns a non-200 status.

        """
        return tuple([await self.publish_file(f) for f in asset.files])

    async def publish_file(self, asset_file: AssetFile) -> ExportedFile:
        t0 = time.perf_counter()
        url = asset_file.download_url
        print(f"  downloading asset from {url}", file=sys.stderr)
        try:
            response = await self._http().get(url)
        except httpx.HTTPError as exc:
            msg = f"Failed to download asset {url}: {exc}"
            raise PublishError(msg) from exc
        if response.status_code != 200:
            msg = f"Failed to download asset {url} with status code {response.status_code}"
            raise PublishError(msg)

        content_type = (
            response.headers.get("content-type")
            or asset_file.content_type
            or mimetypes.guess_type(asset_file.file_name)[0]
            or "application/octet-stream"
        )
        key = asset_key(self._assets_folder, asset_file.file_name)
        data = response.content
        await self._store.put(key, data, content_type)
        return ExportedFile(
            source_path=url,
            output_path=key,
            source_type="asset",
            size_bytes=len(data),
            duration_ms=(time.perf_counter() - t0) * 1000,
        )

    async def remove(self, file_name: str) -> bool:
        """Delete a published asset file.  Returns False if it was not there."""
        key = asset_key(self._assets_folder, file_name)
        print(f"  deleting asset {key}", file=sys.stderr)
        return await self._store.delete(key)


async def copy_static(static_path: Path, store: ObjectStore) -> tuple[ExportedFile, ...]:
    """Recursively copy the site's local static files into *store*.

    Keys mirror the paths relative to *static_path*.  Skips hidden files
    (names starting with ``.`` or ``_``) and ``__pycache__`` directories.

    Args:
        static_path: Source directory (e.g., ``site_root/static/``).
        store: Destination object store.

    Returns:
        Tuple of :class:`ExportedFile` entries, one per copied file.

    """
    if not static_path.is_dir():
        return ()

    results: list[ExportedFile] = []
    for src_file in sorted(static_path.rglob("*")):
        if not src_file.is_file():
            continue
        relative = src_file.relative_to(static_path)
        if "__pycache__" in relative.parts or src_file.name.startswith(_HIDDEN_PREFIXES):
            continue

        t0 = time.perf_counter()
        data = src_file.read_bytes()
        key = relative.as_posix()
        await store.put(key, data, mimetypes.guess_type(src_file.name)[0])
        results.append(ExportedFile(
            source_path=f"/{key}",
            output_path=key,
            source_type="static",
            size_bytes=len(data),
            duration_ms=(time.perf_counter() - t0) * 1000,
        ))

    return tuple(results)
