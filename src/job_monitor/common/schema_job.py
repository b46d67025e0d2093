from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from .schema_log import LogRecord


class Stage(str, Enum):
    upload = "upload"
    analyze = "analyze"
    generate = "generate"
    complete = "complete"

    @property
    def rank(self) -> int:
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = [Stage.upload, Stage.analyze, Stage.generate, Stage.complete]


class MonitorState(str, Enum):
    idle = "idle"
    pushing = "pushing"
    polling = "polling"
    terminal = "terminal"


class Job(BaseModel):
    """Client-side view of one backend analysis job.

    Only JobMonitor writes to a Job. Once ``terminal`` is set no further
    field changes are applied.
    """

    id: str

    stage: Stage = Stage.upload
    percentage: int = Field(0, ge=0, le=100)
    status_text: str | None = None

    terminal: bool = False
    cancelled: bool = False
    error: str | None = None

    logs: list[LogRecord] = Field(default_factory=list)

    model_config: ClassVar[ConfigDict] = ConfigDict(validate_assignment=True)

    @property
    def succeeded(self) -> bool:
        return self.terminal and self.stage == Stage.complete and self.error is None
