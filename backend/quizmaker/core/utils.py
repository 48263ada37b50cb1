from datetime import datetime, timezone
from typing import Any


def sanitize_null_bytes(data: Any) -> Any:
    """
    Recursively remove null bytes (x00) from strings, lists, and dictionaries.
    Postgres TEXT and JSONB columns do not allow null bytes, and model output
    occasionally contains them.
    """
    if isinstance(data, str):
        return data.replace("\x00", "")
    elif isinstance(data, list):
        return [sanitize_null_bytes(item) for item in data]
    elif isinstance(data, dict):
        return {key: sanitize_null_bytes(value) for key, value in data.items()}
    else:
        return data


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes coming back from the database as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
