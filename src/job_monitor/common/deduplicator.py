from collections.abc import Iterable


class EventDeduplicator:
    """Set of raw log messages already surfaced for one job.

    Each PollChannel owns one instance for its lifetime; it is never shared
    between channels or jobs.
    """

    def __init__(self, seen: Iterable[str] = ()):
        self._seen: set[str] = set(seen)

    def should_emit(self, raw_message: str) -> bool:
        """Return True and remember the message on first sight, False after."""
        if raw_message in self._seen:
            return False
        self._seen.add(raw_message)
        return True

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, raw_message: object) -> bool:
        return raw_message in self._seen
