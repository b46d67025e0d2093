"""Common module for job monitoring - models, protocols and pure helpers."""

from .channel import ChannelState, PollChannel, PushChannel
from .config import MonitorConfig
from .deduplicator import EventDeduplicator
from .log_classifier import classify
from .schema_job import Job, MonitorState, Stage
from .schema_log import LogLevel, LogRecord
from .stage_mapper import advance_stage, percentage_to_stage

__all__ = [
    "ChannelState",
    "EventDeduplicator",
    "Job",
    "LogLevel",
    "LogRecord",
    "MonitorConfig",
    "MonitorState",
    "PollChannel",
    "PushChannel",
    "Stage",
    "advance_stage",
    "classify",
    "percentage_to_stage",
]
