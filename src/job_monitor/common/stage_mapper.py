"""Percentage to stage mapping."""

from .schema_job import Stage

# Thresholds match the backend's reporting; they are not configurable per job type.
ANALYZE_THRESHOLD = 25
GENERATE_THRESHOLD = 85
COMPLETE_THRESHOLD = 100


def percentage_to_stage(pct: int) -> Stage:
    if pct >= COMPLETE_THRESHOLD:
        return Stage.complete
    if pct >= GENERATE_THRESHOLD:
        return Stage.generate
    if pct >= ANALYZE_THRESHOLD:
        return Stage.analyze
    return Stage.upload


def advance_stage(current: Stage, pct: int) -> Stage:
    """Return the stage for ``pct`` without ever moving back from ``current``."""
    mapped = percentage_to_stage(pct)
    return mapped if mapped.rank > current.rank else current
