"""Publish collector — records pipeline events and reports failures.

Every component of the pipeline records through one collector, which stores
events in the ``EventLog`` and, when a ``Notifier`` is configured, forwards
failures to it.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.

"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from mews._errors import PublishError
from mews.observability.events import (
    EventClassified,
    GraphSaved,
    ReconcileApplied,
    TaskCompleted,
    TaskFailed,
    TaskKind,
    now_ns,
)
from mews.observability.log import EventLog

if TYPE_CHECKING:
    from mews.observability.notify import Notifier


class PublishCollector:
    """Event collector for the publish pipeline.

    Args:
        log: The EventLog to store events in.
        notifier: Optional failure notifier.

    """

    __slots__ = ("_log", "_notifier")

    def __init__(self, log: EventLog | None = None, notifier: Notifier | None = None) -> None:
        self._log = log if log is not None else EventLog()
        self._notifier = notifier

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    # ----- Graph-update phase -----

    def record_classified(
        self,
        site: str,
        topic: str,
        entity_id: str | None = None,
        *,
        error: str | None = None,
    ) -> None:
        """Record an applied (or skipped) inbound event."""
        self._log.append(
            EventClassified(
                site=site,
                topic=topic,
                entity_id=entity_id,
                error=error,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Task-fanout phase -----

    def record_task(
        self,
        site: str,
        kind: TaskKind,
        target: str,
        *,
        duration_ms: float = 0.0,
    ) -> None:
        """Record a completed fan-out task."""
        self._log.append(
            TaskCompleted(
                site=site,
                kind=kind,
                target=target,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    def record_graph_saved(self, site: str, key: str, version: str) -> None:
        self._log.append(
            GraphSaved(site=site, key=key, version=version, timestamp_ns=now_ns())
        )

    def record_reconcile(self, site: str, *, puts: int, deletes: int, retried: int) -> None:
        self._log.append(
            ReconcileApplied(
                site=site,
                puts=puts,
                deletes=deletes,
                retried=retried,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Failures -----

    async def record_failure(
        self,
        site: str,
        kind: TaskKind,
        target: str,
        exc: BaseException,
    ) -> TaskFailed:
        """Record a failed task and forward it to the notifier.

        A notifier that cannot deliver is reported on stderr; the original
        failure is already recorded and must not be masked.

        """
        event = TaskFailed(
            site=site,
            kind=kind,
            target=target,
            error_type=type(exc).__name__,
            message=str(exc),
            timestamp_ns=now_ns(),
        )
        self._log.append(event)
        await self.notify(
            site,
            f"mews error at {site}",
            f"{kind} {target} failed: {event.error_type}: {event.message}",
        )
        return event

    async def notify(self, site: str, subject: str, message: str) -> None:
        """Forward a message to the notifier, if any."""
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(site, subject, message)
        except PublishError as exc:
            print(f"  [{site}] {exc}", file=sys.stderr)
