from datetime import datetime, timezone


def toTimeStamp(localTime: datetime) -> int:
    """UTC epoch milliseconds for a log record time.

    Naive datetimes are taken as system local time.
    """
    if localTime.tzinfo is None or localTime.tzinfo.utcoffset(localTime) is None:
        localTime = localTime.astimezone()

    return int(localTime.astimezone(timezone.utc).timestamp() * 1000)
