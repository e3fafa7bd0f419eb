"""
The clinic's operating day.

Every day scoped rule asks this module for "now" and "today".  Today is
the civil date in ``settings.OPD_TIME_ZONE`` regardless of the server's
local zone, so a doctor who picked a room at 00:30 IST is still in that
room on the same IST day even though UTC says it is yesterday.
"""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from django.conf import settings
from django.utils import timezone

# Test hook only; scoped to the current context so it cannot leak into other threads or tasks.
_frozen_at: ContextVar[Optional[datetime]] = ContextVar('opd_clock_frozen_at', default=None)


def zone() -> ZoneInfo:
    return ZoneInfo(settings.OPD_TIME_ZONE)


def now() -> datetime:
    """Current aware timestamp (the frozen one inside :func:`frozen`)."""
    return _frozen_at.get() or timezone.now()


def civil_date(moment: datetime) -> date:
    """The operating-day date a stored timestamp falls on."""
    return timezone.localdate(moment, timezone=zone())


def today() -> date:
    return civil_date(now())


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Half-open ``[start, end)`` interval covering ``day`` in the clinic zone."""
    start = datetime.combine(day, time.min, tzinfo=zone())
    return start, datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone())


@contextmanager
def frozen(moment: Union[date, datetime]) -> Iterator[datetime]:
    """Pin :func:`now` to ``moment`` (noon in the clinic zone for a bare date).

    Meant for tests and one-off operator scripts; the override is visible
    only in the calling thread or task.
    """
    if not isinstance(moment, datetime):
        moment = datetime.combine(moment, time(12, 0), tzinfo=zone())
    elif timezone.is_naive(moment):
        moment = timezone.make_aware(moment, zone())
    token = _frozen_at.set(moment)
    try:
        yield moment
    finally:
        _frozen_at.reset(token)
