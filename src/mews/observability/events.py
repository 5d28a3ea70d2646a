"""Event model for the publish pipeline.

All events are frozen dataclasses with:
- ``site``: The site the event belongs to
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal

type TaskKind = Literal[
    "generate_page", "remove_page", "publish_asset", "remove_asset", "save_graph",
]


# ---------------------------------------------------------------------------
# Graph-update phase
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EventClassified:
    """An inbound content event was applied to a site (or rejected).

    Attributes:
        site: Site identifier.
        topic: Normalized topic name.
        entity_id: Id of the entry or asset, when the payload carried one.
        error: Why the event was skipped, None when it was applied.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    site: str
    topic: str
    entity_id: str | None
    error: str | None
    timestamp_ns: int

    @property
    def accepted(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Task-fanout phase
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TaskCompleted:
    """A fan-out task finished.

    Attributes:
        site: Site identifier.
        kind: Task kind.
        target: Page id, slug, asset id, file name, or graph key.
        duration_ms: Time taken in milliseconds.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    site: str
    kind: TaskKind
    target: str
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class TaskFailed:
    """A fan-out task raised.

    Attributes:
        site: Site identifier.
        kind: Task kind.
        target: Page id, slug, asset id, file name, or graph key.
        error_type: Exception class name.
        message: Exception message.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    site: str
    kind: TaskKind
    target: str
    error_type: str
    message: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class GraphSaved:
    """A site's reference graph was written.

    Attributes:
        site: Site identifier.
        key: State-store key.
        version: New version stamp.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    site: str
    key: str
    version: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ReconcileApplied:
    """A metadata reconcile completed.

    Attributes:
        site: Site identifier.
        puts: Records written.
        deletes: Records deleted.
        retried: Operations that needed the retry round.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    site: str
    puts: int
    deletes: int
    retried: int
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type PublishEvent = (
    EventClassified
    | TaskCompleted
    | TaskFailed
    | GraphSaved
    | ReconcileApplied
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
