"""Transport interfaces shared by push and poll channels."""

import asyncio
from collections.abc import Callable, Iterable
from enum import Enum
from typing import Protocol, runtime_checkable

from .schema_events import JobEvent

EventCallback = Callable[[JobEvent], None]
FailureCallback = Callable[[], None]
TimeoutCallback = Callable[[], None]


class ChannelState(str, Enum):
    idle = "idle"
    open = "open"
    failed = "failed"
    closed = "closed"


@runtime_checkable
class PushChannel(Protocol):
    """Server-initiated event stream for one job.

    Implementations deliver every non-heartbeat frame through ``on_event`` and
    call ``on_failure`` at most once when the transport breaks.
    """

    state: ChannelState

    def open(
        self,
        job_id: str,
        on_event: EventCallback,
        on_failure: FailureCallback,
    ) -> None: ...

    def close(self) -> None:
        """Release the connection. Idempotent."""
        ...


@runtime_checkable
class PollChannel(Protocol):
    """Recurring status pull for one job, bounded by a watchdog."""

    state: ChannelState

    def open(
        self,
        job_id: str,
        on_event: EventCallback,
        *,
        interval: float | None = None,
        max_duration: float | None = None,
        seen_logs: Iterable[str] = (),
        last_progress: int = 0,
        on_timeout: TimeoutCallback | None = None,
    ) -> None: ...

    def close(self) -> None:
        """Cancel both timers. Idempotent."""
        ...


def current_task_or_none() -> asyncio.Task[object] | None:
    """The running task, or None when called outside a running loop."""
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
