"""job_monitor - client-side progress monitor for long-running backend jobs."""

from .channels import HTTPPollChannel, MQTTPushChannel, SSEPushChannel
from .common.channel import ChannelState, PollChannel, PushChannel
from .common.config import MonitorConfig
from .common.deduplicator import EventDeduplicator
from .common.errors import InvalidMQTTURLException, UnsupportedMQTTURLException
from .common.log_classifier import classify
from .common.schema_events import (
    CompleteEvent,
    ErrorEvent,
    HeartbeatEvent,
    JobEvent,
    JobStatus,
    JobStatusResponse,
    LogEvent,
    ProgressEvent,
    SystemEvent,
)
from .common.schema_job import Job, MonitorState, Stage
from .common.schema_log import LogLevel, LogRecord
from .common.stage_mapper import advance_stage, percentage_to_stage
from .monitor import JobMonitor, create_monitor

__version__ = "0.1.0"

__all__ = [
    "Job",
    "JobMonitor",
    "create_monitor",
    "MonitorConfig",
    "MonitorState",
    "Stage",
    "LogLevel",
    "LogRecord",
    "JobEvent",
    "LogEvent",
    "ProgressEvent",
    "CompleteEvent",
    "ErrorEvent",
    "HeartbeatEvent",
    "SystemEvent",
    "JobStatus",
    "JobStatusResponse",
    "ChannelState",
    "PushChannel",
    "PollChannel",
    "SSEPushChannel",
    "MQTTPushChannel",
    "HTTPPollChannel",
    "EventDeduplicator",
    "InvalidMQTTURLException",
    "UnsupportedMQTTURLException",
    "advance_stage",
    "classify",
    "percentage_to_stage",
    "__version__",
]
