"""Metadata index — which pages use which entries and assets.

Every published page has a record listing the entries and assets its render
read; every used entry and asset has a record listing the pages using it::

    {"Id": "page-1", "publishPath": "about.html",
     "usedEntryIds": ["hero-1"], "usedAssetIds": ["img-1"]}
    {"Id": "hero-1", "pageEntryIds": ["page-1"]}
    {"Id": "img-1",  "pageEntryIds": ["page-1"]}

The two directions are kept consistent with additive/subtractive set
updates keyed by page id, so concurrent page tasks of one site never
overwrite each other's associations.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, Protocol

from mews._errors import ContentError, PublishError

if TYPE_CHECKING:
    from mews.render.compiler import PageOutput

type SetAttribute = Literal["usedEntryIds", "usedAssetIds", "pageEntryIds", "fileNames"]

# Item key -> MetadataRecord attribute, for the set-valued attributes
_SET_ATTRIBUTES: dict[str, str] = {
    "usedEntryIds": "used_entry_ids",
    "usedAssetIds": "used_asset_ids",
    "pageEntryIds": "page_entry_ids",
    "fileNames": "file_names",
}


@dataclass(frozen=True, slots=True)
class MetadataRecord:
    """One item of the metadata index.

    Set-valued attributes are frozensets, so two records compare equal
    regardless of the order their ids were stored in.

    """

    id: str
    publish_path: str | None = None
    used_entry_ids: frozenset[str] = field(default_factory=frozenset)
    used_asset_ids: frozenset[str] = field(default_factory=frozenset)
    page_entry_ids: frozenset[str] = field(default_factory=frozenset)
    file_names: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_page(self) -> bool:
        return self.publish_path is not None

    @property
    def is_empty(self) -> bool:
        """True when the record carries nothing but its id."""
        return self.publish_path is None and not any(
            getattr(self, attr) for attr in _SET_ATTRIBUTES.values()
        )

    def to_item(self) -> dict[str, Any]:
        """Persisted form; empty sets are omitted, set values are sorted."""
        item: dict[str, Any] = {"Id": self.id}
        if self.publish_path is not None:
            item["publishPath"] = self.publish_path
        for key, attr in _SET_ATTRIBUTES.items():
            values = getattr(self, attr)
            if values:
                item[key] = sorted(values)
        return item

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> MetadataRecord:
        """Parse a persisted item.

        Raises:
            ContentError: If the item has no string ``Id``.

        """
        record_id = item.get("Id")
        if not isinstance(record_id, str) or not record_id:
            msg = f"Metadata item has no Id: {item!r}"
            raise ContentError(msg)
        publish_path = item.get("publishPath")
        sets = {
            attr: frozenset(str(v) for v in item.get(key) or ())
            for key, attr in _SET_ATTRIBUTES.items()
        }
        return cls(
            id=record_id,
            publish_path=publish_path if isinstance(publish_path, str) else None,
            **sets,
        )

    def with_set(self, attribute: SetAttribute, values: frozenset[str]) -> MetadataRecord:
        return replace(self, **{_SET_ATTRIBUTES[attribute]: values})

    def get_set(self, attribute: SetAttribute) -> frozenset[str]:
        return getattr(self, _SET_ATTRIBUTES[attribute])


type Snapshot = dict[str, MetadataRecord]


# ---------------------------------------------------------------------------
# Snapshot building
# ---------------------------------------------------------------------------


def page_record(outputs: Sequence[PageOutput]) -> MetadataRecord:
    """Page record for the outputs of one page.

    The publish path is that of the first output in extension order.

    Raises:
        ValueError: If *outputs* is empty.

    """
    if not outputs:
        msg = "A page record needs at least one output"
        raise ValueError(msg)
    ordered = sorted(outputs, key=lambda o: o.extension)
    used_entries: set[str] = set()
    used_assets: set[str] = set()
    for output in ordered:
        used_entries.update(output.involved_entry_ids)
        used_assets.update(output.involved_asset_ids)
    return MetadataRecord(
        id=ordered[0].page_entry_id,
        publish_path=ordered[0].publish_path,
        used_entry_ids=frozenset(used_entries),
        used_asset_ids=frozenset(used_assets),
    )


def build_snapshot(outputs: Iterable[PageOutput]) -> Snapshot:
    """Full index snapshot for a set of generated page outputs."""
    by_page: dict[str, list[PageOutput]] = {}
    for output in outputs:
        by_page.setdefault(output.page_entry_id, []).append(output)

    pages = {page_id: page_record(outs) for page_id, outs in by_page.items()}
    users: dict[str, set[str]] = {}
    for page in pages.values():
        for used_id in page.used_entry_ids | page.used_asset_ids:
            users.setdefault(used_id, set()).add(page.id)

    snapshot: Snapshot = dict(pages)
    for used_id, page_ids in users.items():
        existing = snapshot.get(used_id)
        if existing is None:
            snapshot[used_id] = MetadataRecord(id=used_id, page_entry_ids=frozenset(page_ids))
        else:
            # A page that is also embedded in other pages.
            snapshot[used_id] = replace(existing, page_entry_ids=frozenset(page_ids))
    return snapshot


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PutOp:
    """Replace the whole record."""

    record: MetadataRecord

    @property
    def key(self) -> str:
        return self.record.id


@dataclass(frozen=True, slots=True)
class DeleteOp:
    """Delete the record with this id."""

    id: str

    @property
    def key(self) -> str:
        return self.id


type WriteOp = PutOp | DeleteOp


class MetadataStore(Protocol):
    """Key-value table of metadata records.

    ``batch_write`` may apply only part of a batch; the operations it did not
    apply are returned and the caller retries them.

    """

    async def scan(self) -> list[MetadataRecord]: ...

    async def get(self, record_id: str) -> MetadataRecord | None: ...

    async def put(self, record: MetadataRecord) -> MetadataRecord | None: ...

    async def put_page(self, record: MetadataRecord) -> MetadataRecord | None:
        """Set only ``publishPath``/``usedEntryIds``/``usedAssetIds`` of a record."""
        ...

    async def delete(self, record_id: str) -> MetadataRecord | None: ...

    async def add_to_set(
        self, record_id: str, attribute: SetAttribute, values: Iterable[str],
    ) -> None: ...

    async def remove_from_set(
        self, record_id: str, attribute: SetAttribute, values: Iterable[str],
    ) -> None: ...

    async def batch_write(self, ops: Sequence[WriteOp]) -> list[WriteOp]: ...


class JsonMetadataStore:
    """Metadata table kept as one JSON document (a list of items).

    Loaded on first access and rewritten after every mutation.  Each method
    completes its read-modify-write without suspending, so concurrent tasks
    on one event loop never interleave inside an update.

    Records left with nothing but an id after a set removal are dropped.

    Args:
        path: JSON file; created on first write.

    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._records: Snapshot | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Snapshot:
        if self._records is None:
            records: Snapshot = {}
            if self._path.exists():
                try:
                    items = json.loads(self._path.read_text(encoding="utf-8"))
                except (OSError, json.JSONDecodeError) as exc:
                    msg = f"Cannot read metadata index {self._path}: {exc}"
                    raise ContentError(msg) from exc
                for item in items.get("Items", ()) if isinstance(items, Mapping) else items:
                    record = MetadataRecord.from_item(item)
                    records[record.id] = record
            self._records = records
        return self._records

    def _flush(self) -> None:
        records = self._load()
        document = {"Items": [records[k].to_item() for k in sorted(records)]}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            msg = f"Cannot write metadata index {self._path}: {exc}"
            raise PublishError(msg) from exc

    async def scan(self) -> list[MetadataRecord]:
        return list(self._load().values())

    async def get(self, record_id: str) -> MetadataRecord | None:
        return self._load().get(record_id)

    async def put(self, record: MetadataRecord) -> MetadataRecord | None:
        """Store *record*, returning the record it replaced."""
        records = self._load()
        previous = records.get(record.id)
        records[record.id] = record
        self._flush()
        return previous

    async def put_page(self, record: MetadataRecord) -> MetadataRecord | None:
        """Store the page attributes of *record*, keeping the reverse ones.

        ``pageEntryIds`` and ``fileNames`` of an existing record survive: a
        page can itself be embedded in other pages.

        """
        records = self._load()
        previous = records.get(record.id)
        if previous is not None:
            record = replace(
                record,
                page_entry_ids=previous.page_entry_ids,
                file_names=previous.file_names,
            )
        records[record.id] = record
        self._flush()
        return previous

    async def delete(self, record_id: str) -> MetadataRecord | None:
        """Delete a record, returning it (None if absent)."""
        previous = self._load().pop(record_id, None)
        if previous is not None:
            self._flush()
        return previous

    async def add_to_set(
        self, record_id: str, attribute: SetAttribute, values: Iterable[str],
    ) -> None:
        records = self._load()
        record = records.get(record_id) or MetadataRecord(id=record_id)
        records[record_id] = record.with_set(attribute, record.get_set(attribute) | set(values))
        self._flush()

    async def remove_from_set(
        self, record_id: str, attribute: SetAttribute, values: Iterable[str],
    ) -> None:
        records = self._load()
        record = records.get(record_id)
        if record is None:
            return
        updated = record.with_set(attribute, record.get_set(attribute) - set(values))
        if updated.is_empty:
            del records[record_id]
        else:
            records[record_id] = updated
        self._flush()

    async def batch_write(self, ops: Sequence[WriteOp]) -> list[WriteOp]:
        records = self._load()
        for op in ops:
            if isinstance(op, PutOp):
                records[op.record.id] = op.record
            else:
                records.pop(op.id, None)
        if ops:
            self._flush()
        return []


# ---------------------------------------------------------------------------
# Incremental index maintenance
# ---------------------------------------------------------------------------


class MetadataIndex:
    """Keeps page <-> used-id associations current as pages are (un)published.

    Args:
        store: Backing metadata store.
        site: Site name, for log lines.

    """

    def __init__(self, store: MetadataStore, *, site: str = "") -> None:
        self._store = store
        self._site = site

    @property
    def store(self) -> MetadataStore:
        return self._store

    async def record_page(self, outputs: Sequence[PageOutput]) -> MetadataRecord | None:
        """Record a freshly published page.

        Sets the page attributes of its record (pages embedding this one
        stay listed), adds the page to every entry and asset it used, and
        removes it from those it no longer uses.

        Returns:
            The page record as it was before this publish (None if new).

        """
        record = page_record(outputs)
        previous = await self._store.put_page(record)

        used = record.used_entry_ids | record.used_asset_ids
        old_used = (previous.used_entry_ids | previous.used_asset_ids) if previous else frozenset()

        for used_id in sorted(used):
            await self._store.add_to_set(used_id, "pageEntryIds", [record.id])
        for used_id in sorted(old_used - used):
            print(
                f"  [{self._site}] removing #{used_id} association with page #{record.id}",
                file=sys.stderr,
            )
            await self._store.remove_from_set(used_id, "pageEntryIds", [record.id])
        return previous

    async def forget_page(self, page_id: str) -> MetadataRecord | None:
        """Remove an unpublished page and its associations.

        Returns:
            The deleted page record (None if it was not indexed).

        """
        previous = await self._store.get(page_id)
        if previous is None or not previous.is_page:
            return None
        if previous.page_entry_ids:
            # Still embedded somewhere: keep the reverse half of the record.
            await self._store.put(MetadataRecord(id=page_id, page_entry_ids=previous.page_entry_ids))
        else:
            await self._store.delete(page_id)
        for used_id in sorted(previous.used_entry_ids | previous.used_asset_ids):
            await self._store.remove_from_set(used_id, "pageEntryIds", [page_id])
        return previous

    async def record_asset_files(self, asset_id: str, file_names: Iterable[str]) -> None:
        """Replace the published file names of an asset."""
        names = frozenset(file_names)
        previous = await self._store.get(asset_id)
        if names:
            await self._store.add_to_set(asset_id, "fileNames", names)
        stale = (previous.file_names if previous else frozenset()) - names
        if stale:
            await self._store.remove_from_set(asset_id, "fileNames", stale)
