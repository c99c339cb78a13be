"""Timezone helpers for familycal."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo

logger = logging.getLogger(__name__)

# Household timezone used when nothing else is configured
DEFAULT_TIMEZONE = "Asia/Seoul"

TEST_TIME_ENV = "FAMILYCAL_TEST_TIME"


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the FAMILYCAL_TEST_TIME environment variable.
    Format: ISO 8601 datetime string (e.g., "2025-01-06T08:50:00+09:00")

    Returns:
        Current time in UTC with timezone info
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            from dateutil import parser as date_parser

            dt = date_parser.isoparse(test_time)
            if dt.tzinfo is not None:
                return dt.astimezone(datetime.UTC)
            # Assume naive datetime is already UTC
            return dt.replace(tzinfo=datetime.UTC)
        except Exception as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

    return datetime.datetime.now(datetime.UTC)


def ensure_aware(dt: datetime.datetime, tz: datetime.tzinfo | None = None) -> datetime.datetime:
    """Attach ``tz`` (UTC by default) to a naive datetime; aware values pass through."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz or datetime.UTC)
    return dt


def get_default_timezone(fallback: str = DEFAULT_TIMEZONE) -> str:
    """Get default timezone from environment with validation.

    Args:
        fallback: Timezone used when the variable is unset or invalid

    Returns:
        Valid IANA timezone string
    """
    timezone = os.environ.get("FAMILYCAL_DEFAULT_TIMEZONE", fallback)
    try:
        zoneinfo.ZoneInfo(timezone)
        return timezone
    except Exception:
        logger.warning("Invalid timezone %r, falling back to %r", timezone, fallback, exc_info=True)
        return fallback


def resolve_timezone(tz_name: str | None) -> datetime.tzinfo:
    """Return a ZoneInfo for ``tz_name``, or UTC when it is empty or unknown."""
    if not tz_name:
        return datetime.UTC
    try:
        return zoneinfo.ZoneInfo(tz_name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r; using UTC", tz_name)
        return datetime.UTC
