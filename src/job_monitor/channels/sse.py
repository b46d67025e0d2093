"""Push channel over a server-sent event stream."""

import asyncio
from collections.abc import AsyncIterator
from typing_extensions import override

import httpx
from loguru import logger

from ..common.channel import (
    ChannelState,
    EventCallback,
    FailureCallback,
    current_task_or_none,
)
from ..common.config import MonitorConfig
from .base import PushChannelBase


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the data payload of each event in an SSE line stream.

    Multiple ``data:`` lines of one event are joined with newlines. Comment
    lines and other fields (``event:``, ``id:``, ``retry:``) are ignored.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if field != "data":
            continue
        data_lines.append(value[1:] if value.startswith(" ") else value)

    if data_lines:
        yield "\n".join(data_lines)


class SSEPushChannel(PushChannelBase):
    """Reads ``GET {base_url}/logs/{job_id}`` as a text/event-stream.

    A stream that ends after a terminal frame is a normal end; one that ends
    before it, or raises a transport error, is reported as a failure.
    """

    def __init__(self, config: MonitorConfig, client: httpx.AsyncClient | None = None):
        super().__init__()
        self.config: MonitorConfig = config
        self._client: httpx.AsyncClient | None = client
        self._task: asyncio.Task[None] | None = None

    def open(
        self,
        job_id: str,
        on_event: EventCallback,
        on_failure: FailureCallback,
    ) -> None:
        self._begin(job_id, on_event, on_failure)
        url = self.config.stream_url(job_id)
        logger.info(f"Opening event stream for job {job_id}: {url}")
        self._task = asyncio.get_running_loop().create_task(
            self._run(url), name=f"sse-push-{job_id}"
        )

    async def _run(self, url: str) -> None:
        owned = self._client is None
        client = self._client or httpx.AsyncClient(
            headers=self.config.headers,
            timeout=httpx.Timeout(
                self.config.request_timeout, read=self.config.stream_read_timeout
            ),
        )
        try:
            async with client.stream(
                "GET", url, headers={"Accept": "text/event-stream"}
            ) as response:
                _ = response.raise_for_status()
                async for payload in iter_sse_data(response.aiter_lines()):
                    self.handle_payload(payload)
                    if self.state is not ChannelState.open:
                        return

            if self.finished:
                logger.info(f"Event stream for job {self.job_id} ended")
                self.close()
            else:
                self.fail("stream ended before the job finished")
        except httpx.HTTPError as e:
            self.fail(f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error reading event stream for job {self.job_id}")
            self.fail(str(e))
        finally:
            if owned:
                await client.aclose()

    @override
    def release(self) -> None:
        task = self._task
        if task is not None and not task.done() and task is not current_task_or_none():
            _ = task.cancel()
