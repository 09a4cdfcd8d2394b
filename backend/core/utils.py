"""
Utility functions for the Autoflow engine.

Includes:
- UTC datetime helpers
- JSON-safe serialization of step results
- Webhook identifier generation
"""

import secrets
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def utcnow_naive() -> datetime:
    """Return the current UTC time as a **naive** datetime.

    Scheduled job times are stored in ``TIMESTAMP WITHOUT TIME ZONE``
    columns, so every comparison against them must also be naive-UTC.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value: datetime | None = None) -> str:
    """ISO-8601 timestamp with a trailing ``Z`` as written into execution logs."""
    value = value or utc_now()
    return to_naive_utc(value).isoformat(timespec="milliseconds") + "Z"


def safe_serialize(obj: Any, depth: int = 0) -> Any:
    """Recursively ensure all values are JSON-serializable."""
    if depth > 20:
        return str(obj)
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, dict):
        return {str(k): safe_serialize(v, depth + 1) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [safe_serialize(v, depth + 1) for v in obj]
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    return str(obj)


def generate_webhook_id() -> str:
    """Generate an unguessable, URL-safe webhook identifier."""
    return secrets.token_urlsafe(16)
