"""Tests for the status polling channel.

Timing tests use short real intervals on the event loop clock; intervals
and watchdog limits are chosen with wide gaps between ticks.
"""

import asyncio

import httpx
import pytest

from helpers import mock_client, status_body, wait_until
from job_monitor import (
    ChannelState,
    CompleteEvent,
    ErrorEvent,
    HTTPPollChannel,
    JobEvent,
    JobStatusResponse,
    LogEvent,
    MonitorConfig,
    ProgressEvent,
    SystemEvent,
)
from job_monitor.channels.poll import POLL_TIMEOUT_MESSAGE


class Backend:
    """Serves a scripted sequence of status bodies, repeating the last one."""

    def __init__(self, *bodies: dict[str, object] | Exception | int):
        self.bodies = list(bodies)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.bodies)) - 1
        body = self.bodies[index]
        if isinstance(body, Exception):
            raise body
        if isinstance(body, int):
            return httpx.Response(body)
        return httpx.Response(200, json=body)


def events_of(events: list[JobEvent], kind: type) -> list[JobEvent]:
    return [e for e in events if isinstance(e, kind)]


# ============================================================================
# Response diffing
# ============================================================================


class TestApply:
    @pytest.mark.asyncio
    async def test_same_tail_twice_emits_logs_once(self, config: MonitorConfig):
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(Backend(status_body())))
        channel.open("job-1", events.append, interval=60)

        status = JobStatusResponse.model_validate(status_body(40, ["a", "b"]))
        channel.apply(status)
        channel.apply(status)
        channel.close()

        assert events == [
            LogEvent(message="a"),
            LogEvent(message="b"),
            ProgressEvent(percentage=40),
        ]

    @pytest.mark.asyncio
    async def test_growing_tail_emits_only_new_lines(self, config: MonitorConfig):
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(Backend(status_body())))
        channel.open("job-1", events.append, interval=60)

        channel.apply(JobStatusResponse.model_validate(status_body(10, ["a"])))
        channel.apply(JobStatusResponse.model_validate(status_body(10, ["a", "b", "c"])))
        channel.close()

        assert events_of(events, LogEvent) == [
            LogEvent(message="a"),
            LogEvent(message="b"),
            LogEvent(message="c"),
        ]

    @pytest.mark.asyncio
    async def test_seeded_logs_and_progress_are_not_replayed(self, config: MonitorConfig):
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(Backend(status_body())))
        channel.open("job-1", events.append, interval=60, seen_logs=["a"], last_progress=40)

        channel.apply(JobStatusResponse.model_validate(status_body(40, ["a", "b"])))
        channel.apply(JobStatusResponse.model_validate(status_body(35, ["a", "b"])))
        channel.close()

        assert events == [LogEvent(message="b")]

    @pytest.mark.asyncio
    async def test_progress_message_is_forwarded(self, config: MonitorConfig):
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(Backend(status_body())))
        channel.open("job-1", events.append, interval=60)
        channel.apply(
            JobStatusResponse.model_validate(status_body(60, progress_message="Comparing"))
        )
        channel.close()
        assert events == [ProgressEvent(percentage=60, message="Comparing")]

    @pytest.mark.asyncio
    async def test_completed_emits_complete_and_closes(self, config: MonitorConfig):
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(Backend(status_body())))
        channel.open("job-1", events.append, interval=60)
        channel.apply(JobStatusResponse.model_validate(status_body(100, ["done"], "completed")))

        assert events == [
            LogEvent(message="done"),
            ProgressEvent(percentage=100),
            CompleteEvent(),
        ]
        assert channel.state is ChannelState.closed

    @pytest.mark.asyncio
    async def test_failed_emits_error_with_best_message(self, config: MonitorConfig):
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(Backend(status_body())))
        channel.open("job-1", events.append, interval=60)
        channel.apply(
            JobStatusResponse.model_validate(
                status_body(50, status="failed", progress_message="Stopped", error="Sheet missing")
            )
        )
        assert events[-1] == ErrorEvent(message="Sheet missing")
        assert channel.state is ChannelState.closed

    @pytest.mark.asyncio
    async def test_failed_without_text_uses_default(self, config: MonitorConfig):
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(Backend(status_body())))
        channel.open("job-1", events.append, interval=60)
        channel.apply(JobStatusResponse.model_validate(status_body(status="failed")))
        assert events == [ErrorEvent(message="Job failed")]


# ============================================================================
# Polling loop
# ============================================================================


class TestPolling:
    @pytest.mark.asyncio
    async def test_polls_status_url_until_complete(self, config: MonitorConfig):
        backend = Backend(
            status_body(30, ["a"]),
            status_body(60, ["a", "b"]),
            status_body(100, ["a", "b", "c"], "completed"),
        )
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(backend))
        channel.open("job-7", events.append)
        await wait_until(lambda: channel.state is ChannelState.closed)

        assert str(backend.requests[0].url) == "http://backend.test/api/finance/status/job-7"
        assert len(backend.requests) == 3
        assert [e.message for e in events_of(events, LogEvent)] == ["a", "b", "c"]
        assert [e.percentage for e in events_of(events, ProgressEvent)] == [30, 60, 100]
        assert events[-1] == CompleteEvent()

    @pytest.mark.asyncio
    async def test_request_failures_are_retried(self, config: MonitorConfig):
        backend = Backend(
            httpx.ConnectError("down"),
            503,
            {"progress": "not-a-number"},
            status_body(100, status="completed"),
        )
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(backend))
        channel.open("job-1", events.append)
        await wait_until(lambda: channel.state is ChannelState.closed)

        assert len(backend.requests) == 4
        assert events == [ProgressEvent(percentage=100), CompleteEvent()]

    @pytest.mark.asyncio
    async def test_unexpected_request_errors_keep_polling(self, config: MonitorConfig):
        backend = Backend(
            httpx.InvalidURL("bad host"),
            RuntimeError("transport bug"),
            status_body(100, ["Report saved"], "completed"),
        )
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(backend))
        channel.open("job-1", events.append)
        await wait_until(lambda: channel.state is ChannelState.closed)

        assert len(backend.requests) == 3
        assert channel.timed_out is False
        assert events == [
            LogEvent(message="Report saved"),
            ProgressEvent(percentage=100),
            CompleteEvent(),
        ]

    @pytest.mark.asyncio
    async def test_completed_with_overshooting_progress(self, config: MonitorConfig):
        backend = Backend(status_body(101, ["Report saved"], "completed"))
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(backend))
        channel.open("job-1", events.append)
        await wait_until(lambda: channel.state is ChannelState.closed)

        assert len(backend.requests) == 1
        assert events == [
            LogEvent(message="Report saved"),
            ProgressEvent(percentage=100),
            CompleteEvent(),
        ]

    @pytest.mark.asyncio
    async def test_close_during_in_flight_request_emits_nothing(self, config: MonitorConfig):
        in_flight = asyncio.Event()
        release = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            in_flight.set()
            await release.wait()
            return httpx.Response(200, json=status_body(50, ["late"]))

        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(handler))
        channel.open("job-1", events.append)
        await asyncio.wait_for(in_flight.wait(), 2.0)

        channel.close()
        release.set()
        await asyncio.sleep(0.05)

        assert events == []
        assert channel.state is ChannelState.closed
        assert channel._task is not None and channel._task.done()
        assert channel._watchdog is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, config: MonitorConfig):
        channel = HTTPPollChannel(config, mock_client(Backend(status_body())))
        channel.open("job-1", lambda event: None)
        channel.close()
        channel.close()
        await asyncio.sleep(0.02)
        assert channel.state is ChannelState.closed

    @pytest.mark.asyncio
    async def test_close_before_open(self, config: MonitorConfig):
        channel = HTTPPollChannel(config)
        channel.close()
        assert channel.state is ChannelState.closed


# ============================================================================
# Watchdog
# ============================================================================


class TestWatchdog:
    @pytest.mark.asyncio
    async def test_fires_between_second_and_third_tick(self, config: MonitorConfig):
        """interval 0.1s, limit 0.25s: ticks at 0.1 and 0.2, watchdog at 0.25."""
        backend = Backend(status_body(30))
        events: list[JobEvent] = []
        timeouts: list[bool] = []
        channel = HTTPPollChannel(config, mock_client(backend))
        channel.open(
            "job-1",
            events.append,
            interval=0.1,
            max_duration=0.25,
            on_timeout=lambda: timeouts.append(True),
        )

        await asyncio.sleep(0.2)
        assert events_of(events, SystemEvent) == []
        assert channel.state is ChannelState.open

        await asyncio.sleep(0.25)
        assert len(backend.requests) == 2
        assert events_of(events, SystemEvent) == [SystemEvent(message=POLL_TIMEOUT_MESSAGE)]
        assert not events_of(events, ErrorEvent)
        assert timeouts == [True]
        assert channel.timed_out is True
        assert channel.state is ChannelState.closed

    @pytest.mark.asyncio
    async def test_request_failures_do_not_shorten_the_watchdog(self, config: MonitorConfig):
        backend = Backend(httpx.ConnectError("down"))
        events: list[JobEvent] = []
        channel = HTTPPollChannel(config, mock_client(backend))
        channel.open("job-1", events.append, interval=0.01, max_duration=0.15)

        await asyncio.sleep(0.1)
        assert len(backend.requests) >= 3
        assert events == []

        await wait_until(lambda: channel.state is ChannelState.closed)
        assert events == [SystemEvent(message=POLL_TIMEOUT_MESSAGE)]

    @pytest.mark.asyncio
    async def test_terminal_event_cancels_watchdog(self, config: MonitorConfig):
        backend = Backend(status_body(100, status="completed"))
        events: list[JobEvent] = []
        timeouts: list[bool] = []
        channel = HTTPPollChannel(config, mock_client(backend))
        channel.open(
            "job-1",
            events.append,
            interval=0.01,
            max_duration=0.1,
            on_timeout=lambda: timeouts.append(True),
        )
        await wait_until(lambda: channel.state is ChannelState.closed)
        await asyncio.sleep(0.15)

        assert events[-1] == CompleteEvent()
        assert events_of(events, SystemEvent) == []
        assert timeouts == []
