"""
Daily cutoff engine.

Pure functions with deterministic behavior. No I/O.

Each company has a daily cutoff time ("HH:mm").  Same-day mutations
(freeze, unfreeze, cancel) are accepted only before
``cutoff_time + cutoff_offset_hours`` on that day, and daily settlement
runs only after it.  ``now`` is always supplied by the caller so that a
whole batch is judged against one reading of the clock.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from meal_config.schema import BusinessConfig, parse_cutoff_time
from meal_kernel.exceptions import CutoffPassedError


def cutoff_instant(
    day: date,
    now: datetime,
    cutoff_time: time | str | None = None,
    config: BusinessConfig | None = None,
) -> datetime:
    """Cutoff moment for ``day`` in the zone of ``now``."""
    cfg = config or BusinessConfig()
    at = parse_cutoff_time(cutoff_time) if cutoff_time is not None else cfg.default_cutoff_time
    return datetime.combine(day, at, tzinfo=now.tzinfo) + timedelta(hours=cfg.cutoff_offset_hours)


def is_past_cutoff(
    day: date,
    now: datetime,
    cutoff_time: time | str | None = None,
    config: BusinessConfig | None = None,
) -> bool:
    return now >= cutoff_instant(day, now, cutoff_time, config)


def ensure_before_cutoff(
    day: date,
    now: datetime,
    cutoff_time: time | str | None = None,
    config: BusinessConfig | None = None,
) -> None:
    """
    Raises:
        CutoffPassedError: if ``now`` is at or after the cutoff for ``day``.
    """
    at = cutoff_instant(day, now, cutoff_time, config)
    if now >= at:
        raise CutoffPassedError(order_date=day, cutoff_at=at, now=now)
