"""Metadata index — page/content associations and their reconciliation."""

from mews.metadata.index import (
    DeleteOp,
    JsonMetadataStore,
    MetadataIndex,
    MetadataRecord,
    MetadataStore,
    PutOp,
    build_snapshot,
)
from mews.metadata.reconciler import ReconcileResult, diff_snapshots, reconcile

__all__ = [
    "DeleteOp",
    "JsonMetadataStore",
    "MetadataIndex",
    "MetadataRecord",
    "MetadataStore",
    "PutOp",
    "ReconcileResult",
    "build_snapshot",
    "diff_snapshots",
    "reconcile",
]
