"""Cron expression helpers for schedule triggers.

All returned datetimes are **naive UTC**, matching the
``TIMESTAMP WITHOUT TIME ZONE`` columns of the job queue.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from core.exceptions import SchedulingError
from core.utils import to_naive_utc, utcnow_naive

logger = logging.getLogger(__name__)


def validate_cron(expression: str) -> tuple[bool, Optional[str]]:
    """Check a 5- or 6-field cron expression.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not expression or not expression.strip():
        return False, "Missing cron expression"
    parts = expression.strip().split()
    if len(parts) not in (5, 6):
        return False, f"Invalid cron expression (expected 5-6 fields, got {len(parts)})"
    if not croniter.is_valid(expression):
        return False, f"Invalid cron expression: {expression}"
    return True, None


def next_fire_time(
    expression: str,
    now: Optional[datetime] = None,
    tz: str = "UTC",
    workflow_id: str = "",
) -> datetime:
    """Next occurrence of ``expression`` strictly after ``now``.

    Args:
        expression: Cron expression, evaluated in ``tz``
        now: Reference instant (naive values are UTC); defaults to now
        tz: IANA timezone name
        workflow_id: Only used to label the error

    Raises:
        SchedulingError: If the expression or timezone cannot be used
    """
    is_valid, error = validate_cron(expression)
    if not is_valid:
        raise SchedulingError(error, workflow_id)

    try:
        tz_obj = ZoneInfo(tz or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise SchedulingError(f"Unknown timezone: {tz}", workflow_id)

    reference = now if now is not None else utcnow_naive()
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)

    try:
        # croniter returns the next match strictly after the start time
        nxt = croniter(expression, reference.astimezone(tz_obj)).get_next(datetime)
    except (ValueError, KeyError) as exc:
        raise SchedulingError(f"Invalid cron expression: {exc}", workflow_id)

    return to_naive_utc(nxt)
