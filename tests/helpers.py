"""Shared helpers for building backend responses in tests."""

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest

BASE_URL = "http://backend.test/api/finance"


def sse_body(*frames: dict[str, object] | str) -> bytes:
    """Encode frames as a text/event-stream body. Strings are sent verbatim."""
    chunks = []
    for frame in frames:
        data = frame if isinstance(frame, str) else json.dumps(frame)
        chunks.append(f"data: {data}\n\n")
    return "".join(chunks).encode("utf-8")


def status_body(
    progress: int = 0,
    recent_logs: list[str] | None = None,
    status: str = "processing",
    **extra: object,
) -> dict[str, object]:
    return {
        "progress": progress,
        "recent_logs": recent_logs or [],
        "file_ready": status == "completed",
        "status": status,
        **extra,
    }


def mock_client(handler: Callable[[httpx.Request], object]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate`` holds or fail after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail(f"condition not met within {timeout}s")
        await asyncio.sleep(0.005)
