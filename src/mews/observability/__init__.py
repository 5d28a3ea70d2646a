"""Pipeline observability — structured events, event log, failure reporting.

All events are frozen dataclasses with nanosecond timestamps, safe to share
across threads.

Quick Start:
    >>> from mews.observability import EventLog, PublishCollector
    >>> log = EventLog()
    >>> collector = PublishCollector(log)
    >>> collector.record_task("blog", "remove_page", "about")
    >>> log.stats()["by_type"]
    {'TaskCompleted': 1}

"""

from mews.observability.collector import PublishCollector
from mews.observability.events import (
    EventClassified,
    GraphSaved,
    PublishEvent,
    ReconcileApplied,
    TaskCompleted,
    TaskFailed,
    TaskKind,
    now_ns,
)
from mews.observability.log import EventLog
from mews.observability.notify import Notifier, WebhookNotifier

__all__ = [
    "EventClassified",
    "EventLog",
    "GraphSaved",
    "Notifier",
    "PublishCollector",
    "PublishEvent",
    "ReconcileApplied",
    "TaskCompleted",
    "TaskFailed",
    "TaskKind",
    "WebhookNotifier",
    "now_ns",
]
