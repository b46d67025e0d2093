"""JobMonitor - follows one backend job from submission to a terminal state."""

import asyncio
import itertools
from collections.abc import Callable
from functools import partial
from types import TracebackType

import httpx
from loguru import logger

from .channels.mqtt import MQTTPushChannel
from .channels.poll import HTTPPollChannel
from .channels.sse import SSEPushChannel
from .common.channel import PollChannel, PushChannel
from .common.config import MonitorConfig
from .common.log_classifier import classify
from .common.schema_events import (
    CompleteEvent,
    ErrorEvent,
    HeartbeatEvent,
    JobEvent,
    LogEvent,
    ProgressEvent,
    SystemEvent,
)
from .common.schema_job import Job, MonitorState, Stage
from .common.schema_log import LogLevel
from .common.stage_mapper import advance_stage

FAILOVER_MESSAGE = "Connection interrupted, switching to polling"

PushFactory = Callable[[], PushChannel]
PollFactory = Callable[[], PollChannel]
UpdateCallback = Callable[[Job], None]


class JobMonitor:
    """Owns one Job and exactly one live transport at a time.

    Lifecycle: ``idle -> pushing -> {terminal, polling}``, ``polling ->
    terminal``. The push to poll failover happens at most once. Channels are
    built by the factories so each use gets a fresh instance.

    Whoever starts a monitor must eventually call ``cancel()`` (or leave the
    ``with`` block); a job that never finishes otherwise keeps its channel.

    Example:
        monitor = create_monitor(MonitorConfig(base_url=url), on_update=render)
        with monitor:
            monitor.start(job_id)
            job = await monitor.wait()
    """

    def __init__(
        self,
        push_factory: PushFactory,
        poll_factory: PollFactory,
        on_update: UpdateCallback | None = None,
    ):
        self.push_factory: PushFactory = push_factory
        self.poll_factory: PollFactory = poll_factory
        self.on_update: UpdateCallback | None = on_update

        self.state: MonitorState = MonitorState.idle
        self.job: Job | None = None

        self._channel: PushChannel | PollChannel | None = None
        self._record_ids = itertools.count()
        self._surfaced: set[str] = set()
        self._done: asyncio.Event = asyncio.Event()

    @property
    def active_channel(self) -> PushChannel | PollChannel | None:
        return self._channel

    @property
    def done(self) -> bool:
        """True once nothing more will be learned about the job."""
        return self._done.is_set()

    # ---------------------------
    # Public operations
    # ---------------------------
    def start(self, job_id: str) -> None:
        """Create the Job and open the push channel.

        Must be called from a running event loop. Never raises: a push channel
        that cannot be opened goes straight to polling.
        """
        if self.state is not MonitorState.idle:
            logger.warning(f"Monitor already started ({self.state.value}); ignoring start({job_id})")
            return

        self.job = Job(id=job_id)
        self.state = MonitorState.pushing
        logger.info(f"Monitoring job {job_id}")

        try:
            channel = self.push_factory()
            self._channel = channel
            channel.open(
                job_id,
                partial(self._on_channel_event, channel),
                partial(self._on_push_failure, channel),
            )
        except Exception as e:
            logger.warning(f"Could not open push channel for job {job_id}: {e}")
            self.on_channel_failure()
            return

        self._notify()

    def cancel(self) -> None:
        """Stop monitoring and release every connection and timer.

        A cancelled job is terminal without an error. Safe to call repeatedly
        and in any state.
        """
        if self.state is MonitorState.terminal:
            return

        self._close_channel()
        job = self.job
        if job is not None and not job.terminal:
            job.cancelled = True
            job.terminal = True
        self.state = MonitorState.terminal
        self._done.set()
        logger.info(f"Monitoring cancelled for job {job.id if job else None}")
        self._notify()

    async def wait(self, timeout: float | None = None) -> Job | None:
        """Wait until the job is terminal or polling gave up.

        Raises:
            TimeoutError: if ``timeout`` seconds pass first
        """
        _ = await asyncio.wait_for(self._done.wait(), timeout)
        return self.job

    def __enter__(self) -> "JobMonitor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cancel()

    # ---------------------------
    # Transport handling
    # ---------------------------
    def on_channel_failure(self) -> None:
        """Replace the broken push channel with a poll channel.

        No-op unless the monitor is currently pushing.
        """
        job = self.job
        if self.state is not MonitorState.pushing or job is None:
            logger.debug(f"Ignoring channel failure in state {self.state.value}")
            return

        self._close_channel()
        self.state = MonitorState.polling
        logger.warning(f"Push channel lost for job {job.id}, falling back to polling")
        self._append(FAILOVER_MESSAGE, level=LogLevel.system)

        try:
            channel = self.poll_factory()
            self._channel = channel
            channel.open(
                job.id,
                partial(self._on_channel_event, channel),
                seen_logs=self._surfaced,
                last_progress=job.percentage,
                on_timeout=partial(self._on_poll_timeout, channel),
            )
        except Exception as e:
            logger.error(f"Could not open poll channel for job {job.id}: {e}")
            self._close_channel()
            self._append(f"Polling unavailable: {e}", level=LogLevel.system)
            self._done.set()

        self._notify()

    def on_event(self, event: JobEvent) -> None:
        """Apply one normalized event to the Job."""
        job = self.job
        if job is None or job.terminal:
            return

        if isinstance(event, LogEvent):
            self._surfaced.add(event.message)
            self._append(event.message)

        elif isinstance(event, ProgressEvent):
            job.percentage = max(job.percentage, event.percentage)
            job.stage = advance_stage(job.stage, event.percentage)
            if event.message:
                job.status_text = event.message

        elif isinstance(event, CompleteEvent):
            job.stage = Stage.complete
            self._finish()

        elif isinstance(event, ErrorEvent):
            job.error = event.message
            self._append(event.message, level=LogLevel.error)
            self._finish()

        elif isinstance(event, SystemEvent):
            self._append(event.message, level=LogLevel.system)

        elif isinstance(event, HeartbeatEvent):
            return

        self._notify()

    def _on_channel_event(self, channel: PushChannel | PollChannel, event: JobEvent) -> None:
        if channel is not self._channel:
            logger.debug(f"Dropping {event.type} event from inactive channel")
            return
        self.on_event(event)

    def _on_push_failure(self, channel: PushChannel) -> None:
        if channel is not self._channel:
            return
        self.on_channel_failure()

    def _on_poll_timeout(self, channel: PollChannel) -> None:
        if channel is not self._channel:
            return
        # Outcome unknown: the job stays non-terminal until the caller cancels.
        self._channel = None
        self._done.set()
        self._notify()

    # ---------------------------
    # Internals
    # ---------------------------
    def _finish(self) -> None:
        job = self.job
        if job is None:
            return
        job.terminal = True
        self.state = MonitorState.terminal
        self._close_channel()
        self._done.set()
        if job.error:
            logger.warning(f"Job {job.id} failed: {job.error}")
        else:
            logger.info(f"Job {job.id} completed")

    def _close_channel(self) -> None:
        channel = self._channel
        self._channel = None
        if channel is None:
            return
        try:
            channel.close()
        except Exception as e:
            logger.error(f"Error closing {type(channel).__name__}: {e}")

    def _append(self, message: str, level: LogLevel | None = None) -> None:
        if self.job is None:
            return
        record = classify(message, next(self._record_ids), level=level)
        self.job.logs.append(record)

    def _notify(self) -> None:
        if self.on_update is None or self.job is None:
            return
        try:
            self.on_update(self.job)
        except Exception as callback_error:
            logger.error(f"Error in on_update callback: {callback_error}")


def create_monitor(
    config: MonitorConfig,
    on_update: UpdateCallback | None = None,
    client: httpx.AsyncClient | None = None,
) -> JobMonitor:
    """Wire a JobMonitor to the real transports described by ``config``.

    Args:
        config: Backend endpoints and timings
        on_update: Called with the Job after every change
        client: Optional shared httpx client; when None each channel opens
                and closes its own

    Returns:
        An idle JobMonitor; call ``start(job_id)`` on it.
    """
    push_factory: PushFactory
    if config.mqtt_url:
        push_factory = partial(MQTTPushChannel, config)
    else:
        push_factory = partial(SSEPushChannel, config, client)

    return JobMonitor(
        push_factory=push_factory,
        poll_factory=partial(HTTPPollChannel, config, client),
        on_update=on_update,
    )
