from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ai.habit_planner import HabitPlanner
from config import settings
from db.models import Habit, HabitDay
from services.errors import NotFound, ValidationError
from services.habit_schedule import (
    DayRecord,
    build_schedule,
    compute_streak,
    count_completed,
    day_for,
    habit_end_date,
    is_scheduled_on,
    record_completion,
    set_day_title,
    validate_duration,
)
from utils.datetime_utils import days_between, isoformat_utc, normalize_date, today_utc_midnight, utcnow

logger = logging.getLogger(__name__)

VALID_HABIT_TYPES = {"build", "quit"}


def day_to_dict(day) -> dict:
    return {
        "dayTitle": day.day_title,
        "date": isoformat_utc(day.date),
        "completed": bool(day.completed),
    }


def habit_to_dict(habit: Habit) -> dict:
    return {
        "id": habit.id,
        "title": habit.title,
        "startDate": isoformat_utc(habit.start_date),
        "endDate": isoformat_utc(habit_end_date(habit.start_date, habit.duration)),
        "duration": habit.duration,
        "type": habit.type,
        "color": habit.color,
        "icon": habit.icon,
        "currentStreak": int(habit.current_streak or 0),
        "isCompleted": bool(habit.is_completed),
        "dailyCompletions": [day_to_dict(d) for d in habit.days],
        "createdAt": isoformat_utc(habit.created_at),
        "updatedAt": isoformat_utc(habit.updated_at),
    }


def _duration_bounds() -> dict[str, int]:
    return {"min_days": settings.HABIT_MIN_DURATION, "max_days": settings.HABIT_MAX_DURATION}


def _validate_type(habit_type: str) -> str:
    if habit_type not in VALID_HABIT_TYPES:
        raise ValidationError('Type must be either "build" or "quit"')
    return habit_type


def _validate_start_date(raw, today: datetime) -> datetime:
    start = normalize_date(raw)
    if days_between(start, today) > 0:
        raise ValidationError("Start date cannot be in the past")
    return start


def get_owned_habit(db: Session, user_id: int, habit_id: int) -> Habit:
    """Fetch a habit only if ``user_id`` owns it; anything else is reported as missing."""
    habit = db.query(Habit).filter(Habit.id == habit_id, Habit.user_id == user_id).first()
    if not habit:
        raise NotFound("Habit not found")
    return habit


def _persist_habit(
    db: Session,
    user_id: int,
    *,
    title: str,
    start_date: datetime,
    duration: int,
    habit_type: str,
    color: str | None,
    icon: str | None,
    schedule: list[DayRecord],
) -> Habit:
    now = utcnow()
    habit = Habit(
        user_id=user_id,
        title=title,
        start_date=start_date,
        duration=duration,
        type=habit_type,
        color=color,
        icon=icon,
        current_streak=0,
        is_completed=False,
        created_at=now,
        updated_at=now,
        days=[
            HabitDay(position=idx, day_title=rec.day_title, date=rec.date, completed=rec.completed)
            for idx, rec in enumerate(schedule)
        ],
    )
    db.add(habit)
    db.commit()
    db.refresh(habit)
    logger.info("Created habit id=%s for user id=%s (%s days)", habit.id, user_id, duration)
    return habit


def create_habit(
    db: Session,
    user_id: int,
    *,
    title: str | None,
    start_date,
    duration: int | None,
    habit_type: str | None,
    color: str | None = None,
    icon: str | None = None,
    prefill_titles: bool = True,
    today: datetime | None = None,
) -> Habit:
    """Create a habit with a full schedule.

    With ``prefill_titles`` every day is titled after the habit; otherwise day
    titles stay blank until set through ``update_day_title``.
    """
    clean_title = (title or "").strip()
    if not clean_title or not start_date or not duration or not habit_type:
        raise ValidationError("All fields are required")
    _validate_type(habit_type)
    validate_duration(duration, **_duration_bounds())
    start = _validate_start_date(start_date, today or today_utc_midnight())

    schedule = build_schedule(
        start,
        duration,
        clean_title if prefill_titles else None,
        **_duration_bounds(),
    )
    return _persist_habit(
        db,
        user_id,
        title=clean_title,
        start_date=start,
        duration=duration,
        habit_type=habit_type,
        color=color,
        icon=icon,
        schedule=schedule,
    )


async def create_ai_habit(
    db: Session,
    user_id: int,
    planner: HabitPlanner,
    *,
    title: str | None,
    start_date,
    habit_type: str | None,
    duration: int | None = None,
    color: str | None = None,
    icon: str | None = None,
    today: datetime | None = None,
) -> Habit:
    """Create a habit whose day titles come from an AI-generated plan.

    A missing or zero duration lets the planner pick one.
    """
    clean_title = (title or "").strip()
    if not clean_title or not start_date or not habit_type:
        raise ValidationError("Title, startDate and type are required")
    _validate_type(habit_type)
    requested = duration or None
    if requested is not None:
        validate_duration(requested, **_duration_bounds())
    start = _validate_start_date(start_date, today or today_utc_midnight())

    logger.info("Requesting AI habit plan for %r (type=%s, duration=%s)", clean_title, habit_type, requested or "auto")
    plan = await planner.generate_plan(clean_title, habit_type, requested)

    schedule = build_schedule(start, plan.duration, plan.day_titles, **_duration_bounds())
    return _persist_habit(
        db,
        user_id,
        title=clean_title,
        start_date=start,
        duration=plan.duration,
        habit_type=habit_type,
        color=color,
        icon=icon,
        schedule=schedule,
    )


def list_habits(db: Session, user_id: int) -> list[Habit]:
    return (
        db.query(Habit)
        .filter(Habit.user_id == user_id)
        .order_by(Habit.created_at.desc(), Habit.id.desc())
        .all()
    )


def list_habits_for_date(db: Session, user_id: int, day=None, today: datetime | None = None) -> tuple[datetime, list[tuple[Habit, HabitDay | None]]]:
    """Habits still due on ``day``: inside their window and not yet completed."""
    target = normalize_date(day) if day else (today or today_utc_midnight())
    rows = []
    for habit in list_habits(db, user_id):
        if is_scheduled_on(habit.start_date, habit.duration, habit.is_completed, target):
            rows.append((habit, day_for(habit.days, target)))
    return target, rows


def update_habit(
    db: Session,
    user_id: int,
    habit_id: int,
    *,
    title: str | None = None,
    start_date=None,
    duration: int | None = None,
    habit_type: str | None = None,
    color: str | None = None,
    icon: str | None = None,
) -> Habit:
    """Partial update of habit fields.

    Changing ``duration`` or ``start_date`` does not rebuild the schedule;
    existing day records are left as they are. A blank title or a zero
    duration counts as not supplied.
    """
    habit = get_owned_habit(db, user_id, habit_id)

    if habit_type is not None:
        _validate_type(habit_type)
    if duration:
        validate_duration(duration, **_duration_bounds())
    new_start = normalize_date(start_date) if start_date else None
    clean_title = (title or "").strip()

    if clean_title:
        habit.title = clean_title
    if new_start is not None:
        habit.start_date = new_start
    if duration:
        habit.duration = duration
    if habit_type is not None:
        habit.type = habit_type
    if color is not None:
        habit.color = color
    if icon is not None:
        habit.icon = icon

    habit.updated_at = utcnow()
    db.commit()
    db.refresh(habit)
    return habit


def update_day_title(db: Session, user_id: int, habit_id: int, *, date, day_title: str | None) -> Habit:
    if not date or not (day_title or "").strip():
        raise ValidationError("Date and dayTitle are required")
    habit = get_owned_habit(db, user_id, habit_id)
    set_day_title(habit.days, habit.start_date, habit.duration, date, day_title)
    habit.updated_at = utcnow()
    db.commit()
    db.refresh(habit)
    return habit


def mark_completion(
    db: Session,
    user_id: int,
    habit_id: int,
    *,
    completed: bool | None,
    date=None,
    today: datetime | None = None,
) -> Habit:
    """Set one day's completion, then recompute the streak and completion flag.

    ``is_completed`` only ever moves from False to True.
    """
    if completed is None:
        raise ValidationError("Completed status is required")
    habit = get_owned_habit(db, user_id, habit_id)
    anchor = today or today_utc_midnight()

    record_completion(habit.days, habit.start_date, habit.duration, date or anchor, completed)

    habit.current_streak = compute_streak(habit.days, anchor)
    if count_completed(habit.days) >= habit.duration:
        habit.is_completed = True
    habit.updated_at = utcnow()
    db.commit()
    db.refresh(habit)
    return habit


def delete_habit(db: Session, user_id: int, habit_id: int) -> int:
    habit = get_owned_habit(db, user_id, habit_id)
    db.delete(habit)
    db.commit()
    logger.info("Deleted habit id=%s for user id=%s", habit_id, user_id)
    return habit_id
