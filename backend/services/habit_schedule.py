"""Per-habit day schedule: building, completion recording and streaks.

Every date handled here is an aware UTC-midnight ``datetime`` (see
``utils.datetime_utils.normalize_date``). Day records are duck-typed: anything
with ``date``, ``completed`` and ``day_title`` attributes works, so the same
functions operate on freshly built ``DayRecord`` values and on persisted
``HabitDay`` rows.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from services.errors import DateNotScheduled, DateOutOfRange, InvalidDuration, ScheduleMismatch
from utils.datetime_utils import add_days, normalize_date, to_utc_midnight

MIN_DURATION = 1
MAX_DURATION = 365


class DayLike(Protocol):
    day_title: str
    date: datetime
    completed: bool


@dataclass
class DayRecord:
    day_title: str
    date: datetime
    completed: bool = False


def validate_duration(duration, *, min_days: int = MIN_DURATION, max_days: int = MAX_DURATION) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise InvalidDuration(f"Duration must be between {min_days} and {max_days} days")
    if duration < min_days or duration > max_days:
        raise InvalidDuration(f"Duration must be between {min_days} and {max_days} days")
    return duration


def habit_end_date(start_date: datetime, duration: int) -> datetime:
    return add_days(to_utc_midnight(start_date), duration - 1)


def build_schedule(
    start_date: datetime,
    duration: int,
    titles: str | Sequence[str] | None = None,
    *,
    min_days: int = MIN_DURATION,
    max_days: int = MAX_DURATION,
) -> list[DayRecord]:
    """Return ``duration`` incomplete records dated start, start+1, ... start+duration-1.

    ``titles`` is either one title repeated for every day, a list with exactly
    one title per day, or None for blank titles filled in later.
    """
    validate_duration(duration, min_days=min_days, max_days=max_days)
    start = to_utc_midnight(start_date)

    if titles is None:
        day_titles = [""] * duration
    elif isinstance(titles, str):
        day_titles = [titles.strip()] * duration
    else:
        day_titles = [str(t or "").strip() for t in titles]
        if len(day_titles) != duration:
            raise ScheduleMismatch(
                f"Expected {duration} day titles, got {len(day_titles)}"
            )

    return [
        DayRecord(day_title=day_titles[offset], date=add_days(start, offset), completed=False)
        for offset in range(duration)
    ]


def find_day(
    days: Sequence[DayLike],
    start_date: datetime,
    duration: int,
    target,
) -> DayLike:
    """Locate the record for ``target`` after the habit-window check.

    Dates before the start or after the end date raise ``DateOutOfRange``.
    Inside the window only an exact day match counts; a missing record
    raises ``DateNotScheduled``.
    """
    target_day = normalize_date(target)
    start = to_utc_midnight(start_date)
    if target_day < start or target_day > habit_end_date(start, duration):
        raise DateOutOfRange()

    day = day_for(days, target_day)
    if day is None:
        raise DateNotScheduled()
    return day


def record_completion(
    days: Sequence[DayLike],
    start_date: datetime,
    duration: int,
    target,
    completed: bool,
) -> DayLike:
    day = find_day(days, start_date, duration, target)
    day.completed = bool(completed)
    return day


def set_day_title(
    days: Sequence[DayLike],
    start_date: datetime,
    duration: int,
    target,
    title: str,
) -> DayLike:
    day = find_day(days, start_date, duration, target)
    day.day_title = (title or "").strip()
    return day


def completed_dates(days: Iterable[DayLike]) -> list[datetime]:
    return sorted(to_utc_midnight(d.date) for d in days if d.completed)


def count_completed(days: Iterable[DayLike]) -> int:
    return sum(1 for d in days if d.completed)


def compute_streak(days: Iterable[DayLike], today: datetime) -> int:
    """Consecutive completed days ending exactly at ``today``.

    The walk starts at today and steps back one day at a time; the first
    missing day ends it, so an incomplete today always gives 0.
    """
    done = set(completed_dates(days))
    anchor = to_utc_midnight(today)
    streak = 0
    while add_days(anchor, -streak) in done:
        streak += 1
    return streak


def in_habit_window(start_date: datetime, duration: int, day: datetime) -> bool:
    offset = (to_utc_midnight(day) - to_utc_midnight(start_date)).days
    return 0 <= offset < duration


def is_scheduled_on(start_date: datetime, duration: int, completed: bool, day: datetime) -> bool:
    """True when ``day`` falls inside the habit window and the habit is still open."""
    return in_habit_window(start_date, duration, day) and not completed


def day_for(days: Iterable[DayLike], day: datetime) -> DayLike | None:
    target = to_utc_midnight(day)
    return next((d for d in days if to_utc_midnight(d.date) == target), None)
