from __future__ import annotations

from datetime import date, datetime, tzinfo


def local_now(tz: tzinfo, now: datetime | None = None) -> datetime:
    """Return ``now`` (or the current time) expressed in ``tz``."""
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def day_key(moment: datetime | date) -> str:
    if isinstance(moment, datetime):
        moment = moment.date()
    return moment.isoformat()
