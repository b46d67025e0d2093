"""Keyword based classification of raw job log lines."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from .schema_log import LogLevel, LogRecord

_EMOJI_RANGES = (
    (0x1F000, 0x1FAFF),  # pictographs, emoticons, transport, symbols
    (0x2600, 0x27BF),  # misc symbols and dingbats
    (0x2B00, 0x2BFF),  # arrows and stars
    (0x2190, 0x21FF),  # arrows
    (0x2300, 0x23FF),  # technical (hourglass, stopwatch)
)
_EMOJI_MARKS = (0xFE0E, 0xFE0F, 0x200D, 0x20E3)  # variation selectors, joiner, keycap

_EMOJI_RE = re.compile(
    "["
    + "".join(f"{chr(lo)}-{chr(hi)}" for lo, hi in _EMOJI_RANGES)
    + "".join(chr(mark) for mark in _EMOJI_MARKS)
    + "]+"
)
_BULLET_RE = re.compile(r"^[\s\-\*•>|:]+")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class _Rule:
    level: LogLevel
    color: str
    keywords: tuple[str, ...]


# First matching rule wins. Order matters.
RULES: tuple[_Rule, ...] = (
    _Rule(
        LogLevel.success,
        "green",
        ("success", "completed", "complete", "finished", "done", "saved", "ready"),
    ),
    _Rule(
        LogLevel.warning,
        "yellow",
        ("warning", "warn", "failed", "failure", "retry", "skipped", "skipping", "timeout"),
    ),
    _Rule(
        LogLevel.error,
        "red",
        ("error", "exception", "traceback", "fatal", "critical"),
    ),
    _Rule(
        LogLevel.processing,
        "blue",
        (
            "processing",
            "analyzing",
            "analysing",
            "generating",
            "calculating",
            "loading",
            "reading",
            "writing",
            "uploading",
        ),
    ),
    _Rule(
        LogLevel.info,
        "cyan",
        ("starting", "started", "start", "initializing", "initialising", "begin"),
    ),
    _Rule(
        LogLevel.system,
        "purple",
        ("polling", "poll", "switching", "connection", "reconnect"),
    ),
)

DEFAULT_LEVEL = LogLevel.info
DEFAULT_COLOR = "gray"

LEVEL_COLORS: dict[LogLevel, str] = {
    LogLevel.info: DEFAULT_COLOR,
    LogLevel.success: "green",
    LogLevel.warning: "yellow",
    LogLevel.error: "red",
    LogLevel.processing: "blue",
    LogLevel.system: "purple",
}


def clean_message(raw_message: str) -> str:
    """Strip emoji, leading bullets and redundant whitespace."""
    text = _EMOJI_RE.sub(" ", raw_message)
    text = _BULLET_RE.sub("", text)
    return _SPACE_RE.sub(" ", text).strip()


def match_level(cleaned_message: str) -> tuple[LogLevel, str]:
    lowered = cleaned_message.lower()
    for rule in RULES:
        if any(keyword in lowered for keyword in rule.keywords):
            return rule.level, rule.color
    return DEFAULT_LEVEL, DEFAULT_COLOR


def classify(
    raw_message: str,
    record_id: int = 0,
    timestamp: datetime | None = None,
    *,
    level: LogLevel | None = None,
) -> LogRecord:
    """Turn a raw log line into a leveled, colored, timestamped record.

    Total over all strings: anything without a known keyword is ``info``.
    Passing ``level`` skips the keyword heuristics, for lines whose level is
    already known (monitor notices, job failures).
    """
    cleaned = clean_message(raw_message)
    if level is None:
        level, color = match_level(cleaned)
    else:
        color = LEVEL_COLORS[level]

    return LogRecord(
        id=record_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        raw_message=raw_message,
        cleaned_message=cleaned,
        level=level,
        color=color,
    )
