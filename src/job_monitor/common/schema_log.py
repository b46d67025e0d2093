from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from ..utils.timestamp import toTimeStamp


class LogLevel(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"
    processing = "processing"
    system = "system"


class LogRecord(BaseModel):
    """One classified log line of a monitored job."""

    id: int = Field(ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    raw_message: str
    cleaned_message: str

    level: LogLevel = LogLevel.info
    color: str = "gray"

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    @property
    def timestamp_ms(self) -> int:
        return toTimeStamp(self.timestamp)
