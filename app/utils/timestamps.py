from datetime import datetime, timezone


def to_iso8601(value: datetime | float) -> str:
    """Format a datetime or UNIX timestamp as ISO-8601 UTC with milliseconds.

    Args:
        value: Aware datetime or UNIX epoch seconds.

    Returns:
        str: Timestamp such as ``2026-01-01T00:01:00.000Z``.
    """
    if not isinstance(value, datetime):
        value = datetime.fromtimestamp(value, tz=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
