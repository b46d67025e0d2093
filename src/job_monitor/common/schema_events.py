"""Normalized job events and the backend wire shapes they are parsed from."""

import json
from enum import Enum
from typing import Annotated, ClassVar, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter


def clamp_percentage(value: int) -> int:
    """Pin a reported progress value into 0..100; backends overshoot."""
    return min(max(value, 0), 100)


Percentage = Annotated[int, AfterValidator(clamp_percentage)]


class LogEvent(BaseModel):
    type: Literal["log"] = "log"
    message: str


class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    percentage: Percentage
    message: str | None = None


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


class HeartbeatEvent(BaseModel):
    type: Literal["heartbeat"] = "heartbeat"


class SystemEvent(BaseModel):
    """Notice raised by a channel itself, never sent by the backend."""

    type: Literal["system"] = "system"
    message: str


JobEvent = Annotated[
    LogEvent | ProgressEvent | CompleteEvent | ErrorEvent | HeartbeatEvent | SystemEvent,
    Field(discriminator="type"),
]

TERMINAL_EVENTS = (CompleteEvent, ErrorEvent)

# Frame types the push endpoint uses for keep-alive and handshake only
IGNORED_FRAME_TYPES = frozenset({"heartbeat", "waiting", "connected"})

_event_adapter: TypeAdapter[JobEvent] = TypeAdapter(JobEvent)


def parse_frame(payload: str | bytes) -> JobEvent | None:
    """Parse one JSON push frame into a normalized event.

    Returns None for keep-alive and handshake frames, which are never
    delivered to the monitor.

    Raises:
        ValueError: if the frame is not a JSON object with a ``type`` key.
        pydantic.ValidationError: if the frame does not match any event shape.
    """
    data = json.loads(payload)
    if not isinstance(data, dict) or "type" not in data:
        raise ValueError(f"Frame has no type discriminator: {payload!r}")
    if data["type"] in IGNORED_FRAME_TYPES:
        return None
    return _event_adapter.validate_python(data)


class JobStatus(str, Enum):
    processing = "processing"
    completed = "completed"
    failed = "failed"


class JobStatusResponse(BaseModel):
    """Body of ``GET status/{job_id}``.

    ``recent_logs`` is a cumulative tail, not a delta.
    """

    progress: Percentage = 0
    progress_message: str | None = None
    recent_logs: list[str] = Field(default_factory=list)
    file_ready: bool = False
    status: JobStatus = JobStatus.processing
    error: str | None = None

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore")
