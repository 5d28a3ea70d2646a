"""Reactive publishing — reference graph, event classification, task fan-out."""

from mews.reactive.classifier import HANDLED_TOPICS, SiteEventContext, classify, normalize_topic
from mews.reactive.graph import ReferenceGraph
from mews.reactive.pipeline import (
    BatchReport,
    EventRecord,
    PublishPipeline,
    SiteReport,
    SiteServices,
    TaskResult,
)

__all__ = [
    "HANDLED_TOPICS",
    "BatchReport",
    "EventRecord",
    "PublishPipeline",
    "ReferenceGraph",
    "SiteEventContext",
    "SiteReport",
    "SiteServices",
    "TaskResult",
    "classify",
    "normalize_topic",
]
