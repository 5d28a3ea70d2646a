"""Event log — bounded, thread-safe record of publishing activity.

Keeps the most recent ``PublishEvent`` objects across all sites so a batch
can be inspected after the fact: which events a site accepted, which tasks
ran, which failed.

Thread Safety:
    A single ``threading.Lock`` guards the buffer; queries copy under the
    lock and filter outside it.

"""

import threading
from collections import Counter, deque
from collections.abc import Iterable
from typing import Any

from mews.observability.events import PublishEvent, TaskFailed


class EventLog:
    """Ring buffer of publish events, newest last.

    Args:
        max_events: Events retained before the oldest are dropped.

    """

    __slots__ = ("_events", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._events: deque[PublishEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def append(self, event: PublishEvent) -> None:
        with self._lock:
            self._events.append(event)

    def append_many(self, events: Iterable[PublishEvent]) -> None:
        with self._lock:
            self._events.extend(events)

    def _snapshot(self) -> list[PublishEvent]:
        with self._lock:
            return list(self._events)

    def query(
        self,
        *,
        event_type: type | None = None,
        since_ns: int = 0,
        site: str | None = None,
        limit: int = 100,
    ) -> list[PublishEvent]:
        """Return matching events, most recent first.

        Args:
            event_type: Keep only instances of this event class.
            since_ns: Keep only events stamped at or after this time.
            site: Keep only events of this site.
            limit: Stop after this many matches.

        """
        matches: list[PublishEvent] = []
        for event in reversed(self._snapshot()):
            if (
                (event_type is None or isinstance(event, event_type))
                and event.timestamp_ns >= since_ns
                and (site is None or event.site == site)
            ):
                matches.append(event)
                if len(matches) == limit:
                    break
        return matches

    def failures(self, site: str | None = None) -> list[TaskFailed]:
        """Every retained task failure, oldest first."""
        return [
            event
            for event in self._snapshot()
            if isinstance(event, TaskFailed) and (site is None or event.site == site)
        ]

    def recent(self, n: int = 20) -> list[PublishEvent]:
        """The *n* newest events, oldest first."""
        return self._snapshot()[-n:]

    def clear(self) -> int:
        """Drop every event; return how many there were."""
        with self._lock:
            count = len(self._events)
            self._events.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def stats(self) -> dict[str, Any]:
        events = self._snapshot()
        return {
            "total": len(events),
            "max_events": self._max_events,
            "by_type": dict(Counter(type(e).__name__ for e in events)),
            "by_site": dict(Counter(e.site for e in events)),
        }
