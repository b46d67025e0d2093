from .timestamp import toTimeStamp

__all__ = ["toTimeStamp"]
