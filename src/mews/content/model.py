"""Content entries and assets as received from the content repository."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from mews._errors import ContentError


def _sys_of(payload: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        msg = f"{kind} payload must be an object, got {type(payload).__name__}"
        raise ContentError(msg)
    sys = payload.get("sys")
    if not isinstance(sys, Mapping) or not isinstance(sys.get("id"), str) or not sys["id"]:
        msg = f"{kind} payload has no sys.id"
        raise ContentError(msg)
    return sys


def payload_id(payload: Any) -> str:
    """Return ``sys.id`` of any entry/asset/deletion payload.

    Raises:
        ContentError: If the payload carries no id.

    """
    return str(_sys_of(payload, "Content")["id"])


@dataclass(frozen=True, slots=True)
class Entry:
    """A structured content item.

    Attributes:
        id: Opaque entry identifier.
        content_type: Content type tag (``sys.contentType.sys.id``).
        fields: Field name -> value.  For event payloads the values are
            keyed by locale.
        sys: Raw system metadata, exposed to templates.

    """

    id: str
    content_type: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    sys: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> Entry:
        """Build an entry from a raw payload.

        Raises:
            ContentError: If ``sys.id`` or the content type is missing, or
                fields is not an object.

        """
        sys = _sys_of(payload, "Entry")
        try:
            content_type = sys["contentType"]["sys"]["id"]
        except (KeyError, TypeError):
            content_type = None
        if not isinstance(content_type, str) or not content_type:
            msg = f"Entry {sys['id']} payload has no content type"
            raise ContentError(msg)
        fields = payload.get("fields") or {}
        if not isinstance(fields, Mapping):
            msg = f"Entry {sys['id']} fields must be an object"
            raise ContentError(msg)
        return cls(id=sys["id"], content_type=content_type, fields=fields, sys=sys)

    def field_value(self, name: str, *, localized: bool = False) -> Any:
        """Return a field value; for localized fields, the first locale variant."""
        value = self.fields.get(name)
        if localized and isinstance(value, Mapping):
            return next(iter(value.values()), None)
        return value


@dataclass(frozen=True, slots=True)
class AssetFile:
    """One binary file of an asset (one per locale for localized assets).

    ``file_name`` is the last path segment of ``url``.

    """

    url: str
    file_name: str
    content_type: str | None = None
    size: int | None = None

    @property
    def download_url(self) -> str:
        """Absolute URL; the repository hands out protocol-relative URLs."""
        if self.url.startswith("//"):
            return f"https:{self.url}"
        return self.url


@dataclass(frozen=True, slots=True)
class Asset:
    """A binary file tracked and published alongside pages."""

    id: str
    files: tuple[AssetFile, ...] = ()
    sys: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> Asset:
        """Build an asset from a raw payload (localized or plain ``file`` field).

        Raises:
            ContentError: If the payload has no usable ``fields.file``.

        """
        sys = _sys_of(payload, "Asset")
        fields = payload.get("fields")
        file_value = fields.get("file") if isinstance(fields, Mapping) else None
        if not isinstance(file_value, Mapping) or not file_value:
            msg = f"Asset {sys['id']} payload has no file"
            raise ContentError(msg)
        # A plain file object has a url; a localized one is keyed by locale.
        raw_files = [file_value] if "url" in file_value else list(file_value.values())
        files: list[AssetFile] = []
        seen: set[str] = set()
        for raw in raw_files:
            asset_file = _parse_file(sys["id"], raw)
            if asset_file.file_name not in seen:
                seen.add(asset_file.file_name)
                files.append(asset_file)
        return cls(id=sys["id"], files=tuple(files), sys=sys)

    @property
    def file_names(self) -> tuple[str, ...]:
        return tuple(f.file_name for f in self.files)

    @property
    def url(self) -> str:
        """URL of the primary (first) file."""
        return self.files[0].url


def _parse_file(asset_id: str, raw: Any) -> AssetFile:
    if not isinstance(raw, Mapping) or not isinstance(raw.get("url"), str) or not raw["url"]:
        msg = f"Asset {asset_id} file has no url"
        raise ContentError(msg)
    url = raw["url"]
    # Published under the URL's last segment so that markdown image
    # references, which only carry the URL, resolve to the same file.
    file_name = url.rsplit("/", 1)[-1] or raw.get("fileName") or asset_id
    details = raw.get("details")
    size = details.get("size") if isinstance(details, Mapping) else None
    return AssetFile(
        url=url,
        file_name=file_name,
        content_type=raw.get("contentType"),
        size=size if isinstance(size, int) else None,
    )
