from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from .config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def challenge_today(now: datetime | None = None) -> date:
    """Calendar day of the challenge catalog that is live at ``now``."""
    moment = now or utc_now()
    return moment.astimezone(ZoneInfo(settings.challenge_timezone)).date()


def day_key(value: date) -> str:
    return value.isoformat()
