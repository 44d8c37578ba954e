from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from ..config import settings


def app_tz() -> ZoneInfo:
    return ZoneInfo(settings.app_timezone)


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def app_today() -> date:
    """
    Calendar day used as the DailyStat key and for the daily quota.
    Both the pre-check and the post-answer report go through here.
    """
    return datetime.now(tz=app_tz()).date()
