"""Metadata reconciler — bring a stored index in line with a full snapshot.

After a full site generation the freshly built snapshot is authoritative.
Reconciliation only writes what changed:

    new record, or differs from the stored one   -> put
    stored record absent from the snapshot       -> delete

Writes go out in batches.  A store may reject part of a batch under load;
the rejected operations are collected, retried once after a delay, and if
any are still rejected the reconcile fails with the leftovers attached.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass

from mews._errors import ReconcileError
from mews.metadata.index import (
    DeleteOp,
    MetadataRecord,
    MetadataStore,
    PutOp,
    WriteOp,
)

DEFAULT_BATCH_SIZE = 25
DEFAULT_RETRY_DELAY = 5.0


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Outcome of a successful reconcile.

    Attributes:
        puts: Number of records written.
        deletes: Number of records deleted.
        retried: Number of operations that needed the retry round.

    """

    puts: int = 0
    deletes: int = 0
    retried: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.puts or self.deletes)


def records_equal(a: MetadataRecord, b: MetadataRecord) -> bool:
    """Value equality; set attributes compare regardless of order."""
    return a == b


def diff_snapshots(
    old: Mapping[str, MetadataRecord],
    new: Mapping[str, MetadataRecord],
) -> list[WriteOp]:
    """Operations turning *old* into *new*: puts first, then deletes."""
    ops: list[WriteOp] = []
    for key, record in new.items():
        previous = old.get(key)
        if previous is None or not records_equal(previous, record):
            ops.append(PutOp(record))
    ops.extend(DeleteOp(key) for key in old if key not in new)
    return ops


def chunked[T](items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Consecutive slices of at most *size* items."""
    if size < 1:
        msg = f"Chunk size must be positive, got {size}"
        raise ValueError(msg)
    for start in range(0, len(items), size):
        yield items[start:start + size]


async def _apply(store: MetadataStore, ops: Sequence[WriteOp], batch_size: int) -> list[WriteOp]:
    unprocessed: list[WriteOp] = []
    for batch in chunked(ops, batch_size):
        print(f"  sending batch of {len(batch)} metadata updates", file=sys.stderr)
        unprocessed.extend(await store.batch_write(batch))
    return unprocessed


async def reconcile(
    store: MetadataStore,
    new_snapshot: Mapping[str, MetadataRecord],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> ReconcileResult:
    """Apply the difference between the stored index and *new_snapshot*.

    Args:
        store: Metadata store holding the old snapshot.
        new_snapshot: Authoritative records keyed by id.
        batch_size: Operations per ``batch_write`` call.
        retry_delay: Seconds to wait before the single retry round.
        sleep: Awaitable delay (injected by tests).

    Raises:
        ReconcileError: If operations remain unprocessed after the retry.

    """
    old = {record.id: record for record in await store.scan()}
    ops = diff_snapshots(old, new_snapshot)
    puts = sum(1 for op in ops if isinstance(op, PutOp))
    deletes = len(ops) - puts
    if not ops:
        print("  no updates needed for the site metadata", file=sys.stderr)
        return ReconcileResult()

    unprocessed = await _apply(store, ops, batch_size)
    retried = len(unprocessed)
    if unprocessed:
        print(
            f"  {retried} metadata updates were not applied, "
            f"retrying in {retry_delay:g}s",
            file=sys.stderr,
        )
        await sleep(retry_delay)
        unprocessed = await _apply(store, unprocessed, batch_size)
    if unprocessed:
        msg = f"Unable to update site metadata: {len(unprocessed)} operations unprocessed"
        raise ReconcileError(msg, unprocessed=tuple(unprocessed))
    return ReconcileResult(puts=puts, deletes=deletes, retried=retried)
