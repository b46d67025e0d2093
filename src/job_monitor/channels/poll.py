"""Pull channel over the job status endpoint."""

import asyncio
from collections.abc import Iterable

import httpx
from loguru import logger

from ..common.channel import (
    ChannelState,
    EventCallback,
    TimeoutCallback,
    current_task_or_none,
)
from ..common.config import MonitorConfig
from ..common.deduplicator import EventDeduplicator
from ..common.schema_events import (
    CompleteEvent,
    ErrorEvent,
    JobEvent,
    JobStatus,
    JobStatusResponse,
    LogEvent,
    ProgressEvent,
    SystemEvent,
)

POLL_TIMEOUT_MESSAGE = "Polling timeout, check manually"


class HTTPPollChannel:
    """Polls ``GET {base_url}/status/{job_id}`` every ``interval`` seconds.

    Responsibilities:
    - Diffs the cumulative ``recent_logs`` tail against its own
      EventDeduplicator and emits only unseen lines
    - Emits progress only when it increased
    - Emits complete/error on a terminal status, then closes itself
    - Swallows individual request failures and retries on the next tick
    - Runs a watchdog that gives up after ``max_duration`` seconds without
      synthesizing an error, since the job's real outcome is unknown

    Example:
        channel = HTTPPollChannel(config)
        channel.open(job_id, on_event, interval=2.0, max_duration=300.0)
        ...
        channel.close()
    """

    def __init__(self, config: MonitorConfig, client: httpx.AsyncClient | None = None):
        self.config: MonitorConfig = config
        self.state: ChannelState = ChannelState.idle
        self.job_id: str | None = None
        self.interval: float = config.poll_interval
        self.max_duration: float = config.poll_max_duration
        self.timed_out: bool = False

        self._client: httpx.AsyncClient | None = client
        self._on_event: EventCallback | None = None
        self._on_timeout: TimeoutCallback | None = None
        self._dedup: EventDeduplicator = EventDeduplicator()
        self._last_progress: int = 0
        self._task: asyncio.Task[None] | None = None
        self._watchdog: asyncio.TimerHandle | None = None

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
    ) -> None:
        """Start polling.

        Args:
            job_id: Backend job identifier
            on_event: Receives every normalized event, in order
            interval: Seconds between requests (default from config)
            max_duration: Watchdog limit in seconds (default from config)
            seen_logs: Raw log lines already surfaced elsewhere; never re-emitted
            last_progress: Progress already reported; only higher values are emitted
            on_timeout: Called once after the watchdog has closed the channel
        """
        if self.state is not ChannelState.idle:
            raise RuntimeError("HTTPPollChannel can only be opened once")

        self.job_id = job_id
        self.interval = interval if interval is not None else self.interval
        self.max_duration = max_duration if max_duration is not None else self.max_duration
        self._on_event = on_event
        self._on_timeout = on_timeout
        self._dedup = EventDeduplicator(seen_logs)
        self._last_progress = last_progress
        self.state = ChannelState.open

        loop = asyncio.get_running_loop()
        url = self.config.status_url(job_id)
        logger.info(
            f"Polling {url} every {self.interval}s (gives up after {self.max_duration}s)"
        )
        self._task = loop.create_task(self._run(url), name=f"poll-{job_id}")
        self._watchdog = loop.call_later(self.max_duration, self._on_watchdog)

    def close(self) -> None:
        if self.state is ChannelState.closed:
            return
        self.state = ChannelState.closed

        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

        task = self._task
        if task is not None and not task.done() and task is not current_task_or_none():
            _ = task.cancel()

        self._on_event = None
        self._on_timeout = None
        self._dedup.clear()

    async def _run(self, url: str) -> None:
        owned = self._client is None
        client = self._client or httpx.AsyncClient(
            headers=self.config.headers, timeout=self.config.request_timeout
        )
        try:
            while self.state is ChannelState.open:
                await asyncio.sleep(self.interval)
                if self.state is not ChannelState.open:
                    break

                status = await self._fetch(client, url)
                # close() may have run while the request was in flight
                if status is None or self.state is not ChannelState.open:
                    continue
                self.apply(status)
        finally:
            if owned:
                await client.aclose()

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> JobStatusResponse | None:
        try:
            response = await client.get(url)
            _ = response.raise_for_status()
            return JobStatusResponse.model_validate_json(response.content)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Status poll for job {self.job_id} failed, retrying: {e}")
            return None
        except Exception:
            logger.exception(f"Unexpected error polling status for job {self.job_id}")
            return None

    def apply(self, status: JobStatusResponse) -> None:
        """Turn one status response into events."""
        for line in status.recent_logs:
            if self._dedup.should_emit(line):
                self._emit(LogEvent(message=line))

        if status.progress > self._last_progress:
            self._last_progress = status.progress
            self._emit(
                ProgressEvent(percentage=status.progress, message=status.progress_message)
            )

        if status.status is JobStatus.completed:
            self._emit(CompleteEvent())
            self.close()
        elif status.status is JobStatus.failed:
            self._emit(
                ErrorEvent(message=status.error or status.progress_message or "Job failed")
            )
            self.close()

    def _emit(self, event: JobEvent) -> None:
        if self.state is not ChannelState.open or self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception as callback_error:
            logger.error(f"Error in event callback for job {self.job_id}: {callback_error}")

    def _on_watchdog(self) -> None:
        self._watchdog = None
        if self.state is not ChannelState.open:
            return

        logger.warning(
            f"Polling for job {self.job_id} gave up after {self.max_duration}s"
        )
        self.timed_out = True
        on_timeout = self._on_timeout
        self._emit(SystemEvent(message=POLL_TIMEOUT_MESSAGE))
        self.close()
        if on_timeout is not None:
            on_timeout()
