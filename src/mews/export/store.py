"""Object storage for generated output, assets, and the reference graph.

The pipeline writes through the ``ObjectStore`` protocol only, so a site can
publish to a local directory (``FileSystemObjectStore``) or to any
key-value blob service with the same four operations.
"""

from __future__ import annotations

import hashlib
import json
import mimetypes
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from mews._errors import ConflictError, ContentError, PublishError
from mews.reactive.graph import ReferenceGraph


@dataclass(frozen=True, slots=True)
class StoredObject:
    """An object as read back from the store."""

    key: str
    data: bytes
    content_type: str | None = None


class ObjectStore(Protocol):
    """Flat key -> bytes store.  Keys use ``/`` as the folder separator."""

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None: ...

    async def get(self, key: str) -> StoredObject | None: ...

    async def delete(self, key: str) -> bool: ...

    async def exists(self, key: str) -> bool: ...


class FileSystemObjectStore:
    """Objects as files under a root directory.

    Args:
        root: Directory that holds the objects; created on first write.
        prefix: Optional folder prepended to every key.

    """

    def __init__(self, root: Path, *, prefix: str = "") -> None:
        self._root = root
        self._prefix = prefix.strip("/")

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        """Filesystem path of *key*.

        Raises:
            PublishError: If the key escapes the root directory.

        """
        full_key = f"{self._prefix}/{key}" if self._prefix else key
        parts = [p for p in full_key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            msg = f"Invalid object key: {key!r}"
            raise PublishError(msg)
        return self._root.joinpath(*parts)

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            msg = f"Failed to write {key!r}: {exc}"
            raise PublishError(msg) from exc

    async def get(self, key: str) -> StoredObject | None:
        path = self.path_for(key)
        if not path.is_file():
            return None
        content_type, _ = mimetypes.guess_type(path.name)
        return StoredObject(key=key, data=path.read_bytes(), content_type=content_type)

    async def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            msg = f"Failed to delete {key!r}: {exc}"
            raise PublishError(msg) from exc
        return True

    async def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()


# ---------------------------------------------------------------------------
# Reference graph persistence
# ---------------------------------------------------------------------------


def version_of(data: bytes) -> str:
    """Version stamp of a stored document."""
    return hashlib.sha256(data).hexdigest()[:16]


class GraphStore:
    """Loads and saves a site's reference graph with optimistic concurrency.

    ``load`` returns the graph with the version stamp of the bytes it was
    read from; ``save`` refuses to write when the stored document no longer
    has that stamp, so two concurrent invocations cannot silently drop each
    other's edges.

    Args:
        store: Object store holding the graph document.
        key: Object key (the site's ``metadata_key``).

    """

    def __init__(self, store: ObjectStore, key: str) -> None:
        self._store = store
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    async def load(self) -> tuple[ReferenceGraph, str | None]:
        """Return the stored graph and its version (empty graph, None if absent).

        Raises:
            ContentError: If the stored document is not a valid graph.

        """
        stored = await self._store.get(self._key)
        if stored is None:
            return ReferenceGraph(), None
        try:
            document = json.loads(stored.data)
        except json.JSONDecodeError as exc:
            msg = f"Reference graph at {self._key!r} is not valid JSON: {exc}"
            raise ContentError(msg) from exc
        return ReferenceGraph.from_dict(document), version_of(stored.data)

    async def save(self, graph: ReferenceGraph, expected_version: str | None) -> str:
        """Write *graph* if the stored version is still *expected_version*.

        Returns:
            The new version stamp.

        Raises:
            ConflictError: If the stored document changed since it was loaded.

        """
        current = await self._store.get(self._key)
        current_version = version_of(current.data) if current is not None else None
        if current_version != expected_version:
            msg = (
                f"Reference graph at {self._key!r} changed since it was loaded "
                f"(expected {expected_version}, found {current_version})"
            )
            raise ConflictError(msg)
        data = json.dumps(graph.to_dict(), indent=2, sort_keys=True).encode("utf-8")
        await self._store.put(self._key, data, "application/json")
        print(f"  saved reference graph at {self._key}", file=sys.stderr)
        return version_of(data)
