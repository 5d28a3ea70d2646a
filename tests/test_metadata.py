"""Tests for mews.metadata — index records, incremental updates, reconcile."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from mews._errors import ContentError, PublishError, ReconcileError
from mews.metadata.index import (
    DeleteOp,
    JsonMetadataStore,
    MetadataIndex,
    MetadataRecord,
    PutOp,
    build_snapshot,
    page_record,
)
from mews.metadata.reconciler import chunked, diff_snapshots, reconcile
from mews.render.compiler import PageOutput

from .conftest import MemoryMetadataStore


def output(
    page_id: str,
    path: str,
    entries: set[str] = frozenset(),
    assets: set[str] = frozenset(),
) -> PageOutput:
    ext = path.rsplit(".", 1)[-1]
    return PageOutput(
        page_entry_id=page_id,
        extension=ext,
        publish_path=path,
        content_type="text/html",
        content=b"",
        involved_entry_ids=frozenset(entries),
        involved_asset_ids=frozenset(assets),
    )


def page(record_id: str, path: str, **sets: set[str]) -> MetadataRecord:
    return MetadataRecord(
        id=record_id, publish_path=path, **{k: frozenset(v) for k, v in sets.items()},
    )


def users(record_id: str, *page_ids: str) -> MetadataRecord:
    return MetadataRecord(id=record_id, page_entry_ids=frozenset(page_ids))


# ---------------------------------------------------------------------------
# Records and snapshots
# ---------------------------------------------------------------------------


class TestMetadataRecord:
    def test_to_item_sorted_and_sparse(self) -> None:
        record = page("P1", "one.html", used_entry_ids={"N", "M"})
        assert record.to_item() == {"Id": "P1", "publishPath": "one.html", "usedEntryIds": ["M", "N"]}

    def test_from_item(self) -> None:
        record = MetadataRecord.from_item({"Id": "M", "pageEntryIds": ["P2", "P1"]})
        assert record == users("M", "P1", "P2")
        assert not record.is_page

    def test_from_item_without_id(self) -> None:
        with pytest.raises(ContentError, match="no Id"):
            MetadataRecord.from_item({"publishPath": "x.html"})

    def test_set_order_irrelevant(self) -> None:
        a = MetadataRecord.from_item({"Id": "M", "pageEntryIds": ["P1", "P2"]})
        b = MetadataRecord.from_item({"Id": "M", "pageEntryIds": ["P2", "P1"]})
        assert a == b

    def test_is_empty(self) -> None:
        assert MetadataRecord(id="x").is_empty
        assert not users("x", "P").is_empty


class TestSnapshot:
    def test_page_record_uses_first_extension(self) -> None:
        record = page_record([output("P1", "one.xml", {"A"}), output("P1", "one.html", {"B"})])
        assert record.publish_path == "one.html"
        assert record.used_entry_ids == {"A", "B"}

    def test_page_record_needs_outputs(self) -> None:
        with pytest.raises(ValueError):
            page_record([])

    def test_shared_module(self) -> None:
        snapshot = build_snapshot([
            output("P1", "one.html", {"M", "N"}, {"a1"}),
            output("P2", "two.html", {"M"}),
        ])
        assert snapshot["M"] == users("M", "P1", "P2")
        assert snapshot["N"] == users("N", "P1")
        assert snapshot["a1"] == users("a1", "P1")
        assert snapshot["P1"].publish_path == "one.html"

    def test_page_embedded_in_page(self) -> None:
        snapshot = build_snapshot([output("P1", "one.html", {"P2"}), output("P2", "two.html")])
        assert snapshot["P2"].publish_path == "two.html"
        assert snapshot["P2"].page_entry_ids == {"P1"}


# ---------------------------------------------------------------------------
# JSON store
# ---------------------------------------------------------------------------


class TestJsonMetadataStore:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "meta.json"
        store = JsonMetadataStore(path)
        assert await store.put(page("P1", "one.html")) is None
        await store.add_to_set("M", "pageEntryIds", ["P1"])

        document = json.loads(path.read_text())
        assert [item["Id"] for item in document["Items"]] == ["M", "P1"]

        reopened = JsonMetadataStore(path)
        assert await reopened.get("M") == users("M", "P1")
        assert len(await reopened.scan()) == 2

    @pytest.mark.asyncio
    async def test_remove_last_value_drops_record(self, tmp_path: Path) -> None:
        store = JsonMetadataStore(tmp_path / "meta.json")
        await store.add_to_set("M", "pageEntryIds", ["P1", "P2"])
        await store.remove_from_set("M", "pageEntryIds", ["P1"])
        assert await store.get("M") == users("M", "P2")
        await store.remove_from_set("M", "pageEntryIds", ["P2"])
        assert await store.get("M") is None
        await store.remove_from_set("missing", "pageEntryIds", ["P2"])

    @pytest.mark.asyncio
    async def test_delete_returns_previous(self, tmp_path: Path) -> None:
        store = JsonMetadataStore(tmp_path / "meta.json")
        await store.put(users("M", "P1"))
        assert await store.delete("M") == users("M", "P1")
        assert await store.delete("M") is None

    @pytest.mark.asyncio
    async def test_batch_write(self, tmp_path: Path) -> None:
        store = JsonMetadataStore(tmp_path / "meta.json")
        await store.put(users("old", "P"))
        left = await store.batch_write([PutOp(users("M", "P1")), DeleteOp("old")])
        assert left == []
        assert [r.id for r in await store.scan()] == ["M"]

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "meta.json"
        path.write_text("{not json")
        with pytest.raises(ContentError, match="Cannot read metadata index"):
            await JsonMetadataStore(path).scan()

    @pytest.mark.asyncio
    async def test_unwritable(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = JsonMetadataStore(blocker / "meta.json")
        with pytest.raises(PublishError, match="Cannot write metadata index"):
            await store.put(users("M", "P1"))


# ---------------------------------------------------------------------------
# Incremental index maintenance
# ---------------------------------------------------------------------------


class TestMetadataIndex:
    @pytest.mark.asyncio
    async def test_record_new_page(self) -> None:
        store = MemoryMetadataStore()
        index = MetadataIndex(store, site="blog")
        previous = await index.record_page([output("P1", "one.html", {"M"}, {"a1"})])
        assert previous is None
        assert store.record("P1") == page("P1", "one.html", used_entry_ids={"M"}, used_asset_ids={"a1"})
        assert store.page_users("M") == {"P1"}
        assert store.page_users("a1") == {"P1"}

    @pytest.mark.asyncio
    async def test_dropped_usage_removed(self) -> None:
        store = MemoryMetadataStore()
        index = MetadataIndex(store)
        await index.record_page([output("P1", "one.html", {"M", "N"})])
        await index.record_page([output("P2", "two.html", {"M"})])

        previous = await index.record_page([output("P1", "one.html", {"N"})])
        assert previous is not None and previous.used_entry_ids == {"M", "N"}
        assert store.page_users("M") == {"P2"}
        assert store.page_users("N") == {"P1"}

    @pytest.mark.asyncio
    async def test_concurrent_pages_do_not_clobber(self) -> None:
        store = MemoryMetadataStore()
        index = MetadataIndex(store)
        await asyncio.gather(*(
            index.record_page([output(f"P{i}", f"p{i}.html", {"M"})]) for i in range(5)
        ))
        assert store.page_users("M") == {f"P{i}" for i in range(5)}

    @pytest.mark.asyncio
    async def test_republishing_embedded_page_keeps_users(self) -> None:
        store = MemoryMetadataStore()
        index = MetadataIndex(store)
        await index.record_page([output("P2", "two.html", {"P1"})])
        await index.record_page([output("P1", "one.html")])

        assert store.record("P1") == page("P1", "one.html", page_entry_ids={"P2"})
        assert store.record("P2").used_entry_ids == {"P1"}

    @pytest.mark.asyncio
    async def test_embedded_pages_recorded_concurrently(self) -> None:
        store = MemoryMetadataStore()
        index = MetadataIndex(store)
        await asyncio.gather(
            index.record_page([output("P1", "one.html", {"M"})]),
            index.record_page([output("P2", "two.html", {"P1"})]),
        )
        await index.record_page([output("P1", "one.html", {"M"})])

        # Both directions agree: P2 uses P1 and P1 lists P2 as a user.
        assert store.page_users("P1") == {"P2"}
        assert store.record("P1").used_entry_ids == {"M"}
        assert store.record("P2").used_entry_ids == {"P1"}

    @pytest.mark.asyncio
    async def test_put_page_keeps_reverse_attributes(self, tmp_path: Path) -> None:
        store = JsonMetadataStore(tmp_path / "meta.json")
        await store.put(MetadataRecord(
            id="P1", publish_path="old.html", used_entry_ids=frozenset({"M"}),
            page_entry_ids=frozenset({"P2"}), file_names=frozenset({"x.jpg"}),
        ))
        previous = await store.put_page(page("P1", "one.html", used_asset_ids={"a1"}))

        assert previous is not None and previous.publish_path == "old.html"
        assert await store.get("P1") == page(
            "P1", "one.html",
            used_asset_ids={"a1"}, page_entry_ids={"P2"}, file_names={"x.jpg"},
        )

    @pytest.mark.asyncio
    async def test_forget_page(self) -> None:
        store = MemoryMetadataStore()
        index = MetadataIndex(store)
        await index.record_page([output("P1", "one.html", {"M"})])
        await index.record_page([output("P2", "two.html", {"M"})])

        forgotten = await index.forget_page("P1")
        assert forgotten is not None and forgotten.publish_path == "one.html"
        assert store.record("P1") is None
        assert store.page_users("M") == {"P2"}

    @pytest.mark.asyncio
    async def test_forget_embedded_page_keeps_users(self) -> None:
        store = MemoryMetadataStore()
        index = MetadataIndex(store)
        await index.record_page([output("P2", "two.html")])
        await index.record_page([output("P1", "one.html", {"P2"})])

        await index.forget_page("P2")
        assert store.record("P2") == users("P2", "P1")

    @pytest.mark.asyncio
    async def test_forget_unknown(self) -> None:
        store = MemoryMetadataStore([users("M", "P1")])
        assert await MetadataIndex(store).forget_page("M") is None
        assert store.record("M") == users("M", "P1")

    @pytest.mark.asyncio
    async def test_record_asset_files(self) -> None:
        store = MemoryMetadataStore()
        index = MetadataIndex(store)
        await index.record_asset_files("a1", ["old.jpg", "keep.jpg"])
        await index.record_asset_files("a1", ["keep.jpg", "new.jpg"])
        record = store.record("a1")
        assert record is not None
        assert record.file_names == {"keep.jpg", "new.jpg"}


# ---------------------------------------------------------------------------
# Reconcile
# ---------------------------------------------------------------------------


def snapshot_of(count: int) -> dict[str, MetadataRecord]:
    return {f"r{i:02d}": users(f"r{i:02d}", "P") for i in range(count)}


class TestDiffSnapshots:
    def test_puts_then_deletes(self) -> None:
        old = {"keep": users("keep", "P"), "change": users("change", "P"), "gone": users("gone", "P")}
        new = {"keep": users("keep", "P"), "change": users("change", "P", "Q"), "add": users("add", "Q")}
        ops = diff_snapshots(old, new)
        assert ops == [PutOp(new["change"]), PutOp(new["add"]), DeleteOp("gone")]

    def test_identical(self) -> None:
        assert diff_snapshots(snapshot_of(3), snapshot_of(3)) == []


class TestChunked:
    def test_sizes(self) -> None:
        assert [len(c) for c in chunked(list(range(30)), 25)] == [25, 5]
        assert list(chunked([], 5)) == []

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestReconcile:
    @pytest.mark.asyncio
    async def test_partial_batch_retried_once(self) -> None:
        store = MemoryMetadataStore(reject=[3])
        delays: list[float] = []

        async def fake_sleep(delay: float) -> None:
            delays.append(delay)

        result = await reconcile(
            store, snapshot_of(30), batch_size=25, retry_delay=5.0, sleep=fake_sleep,
        )
        assert [len(b) for b in store.batches] == [25, 5, 3]
        assert delays == [5.0]
        assert (result.puts, result.deletes, result.retried) == (30, 0, 3)
        assert {r.id for r in await store.scan()} == set(snapshot_of(30))

    @pytest.mark.asyncio
    async def test_idempotent(self) -> None:
        store = MemoryMetadataStore()
        first = await reconcile(store, snapshot_of(4), sleep=_no_sleep)
        assert first.changed
        store.batches.clear()
        second = await reconcile(store, snapshot_of(4), sleep=_no_sleep)
        assert not second.changed
        assert store.batches == []

    @pytest.mark.asyncio
    async def test_deletes_stale_records(self) -> None:
        store = MemoryMetadataStore([users("stale", "P"), users("r00", "P")])
        result = await reconcile(store, snapshot_of(2), sleep=_no_sleep)
        assert (result.puts, result.deletes) == (1, 1)
        assert {r.id for r in await store.scan()} == {"r00", "r01"}

    @pytest.mark.asyncio
    async def test_still_unprocessed_after_retry(self) -> None:
        store = MemoryMetadataStore(reject=[3, 0, 2])
        with pytest.raises(ReconcileError, match="2 operations unprocessed") as exc_info:
            await reconcile(store, snapshot_of(30), batch_size=25, sleep=_no_sleep)
        assert len(exc_info.value.unprocessed) == 2
        assert all(isinstance(op, PutOp) for op in exc_info.value.unprocessed)


async def _no_sleep(delay: float) -> None:
    return None
