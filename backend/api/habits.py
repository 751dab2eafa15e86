from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from ai.habit_planner import HabitPlanner, get_plan_generator
from auth.utils import get_active_user_id
from db.database import get_db
from services.errors import ValidationError
from services.habit_service import (
    create_ai_habit,
    create_habit,
    day_to_dict,
    delete_habit,
    get_owned_habit,
    habit_to_dict,
    list_habits,
    list_habits_for_date,
    mark_completion,
    update_day_title,
    update_habit,
)
from utils.datetime_utils import isoformat_utc

router = APIRouter(prefix="/habits", tags=["habits"])

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class HabitCreateRequest(BaseModel):
    title: Optional[str] = None
    start_date: Optional[str] = None
    duration: Optional[int] = None
    type: Optional[str] = None  # build | quit
    color: Optional[str] = None
    icon: Optional[str] = None
    prefill_titles: bool = True

    model_config = _CAMEL


class AIHabitCreateRequest(BaseModel):
    title: Optional[str] = None
    start_date: Optional[str] = None
    duration: Optional[int] = None  # 0 or absent: AI picks the duration
    type: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None

    model_config = _CAMEL


class HabitUpdateRequest(BaseModel):
    title: Optional[str] = None
    start_date: Optional[str] = None
    duration: Optional[int] = None
    type: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None

    model_config = _CAMEL


class DayTitleUpdate(BaseModel):
    date: Optional[str] = None
    day_title: Optional[str] = None

    model_config = _CAMEL


class CompletionUpdate(BaseModel):
    date: Optional[str] = None  # defaults to today (UTC)
    completed: Optional[bool] = None

    model_config = _CAMEL


def _habit_id(raw: str) -> int:
    try:
        habit_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("Invalid habit ID") from None
    if habit_id <= 0:
        raise ValidationError("Invalid habit ID")
    return habit_id


@router.post("", status_code=status.HTTP_201_CREATED)
def create(
    req: HabitCreateRequest,
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
):
    habit = create_habit(
        db,
        user_id,
        title=req.title,
        start_date=req.start_date,
        duration=req.duration,
        habit_type=req.type,
        color=req.color,
        icon=req.icon,
        prefill_titles=req.prefill_titles,
    )
    return {"message": "Habit created successfully", "habit": habit_to_dict(habit)}


@router.post("/ai", status_code=status.HTTP_201_CREATED)
async def create_with_ai(
    req: AIHabitCreateRequest,
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
    planner: HabitPlanner = Depends(get_plan_generator),
):
    habit = await create_ai_habit(
        db,
        user_id,
        planner,
        title=req.title,
        start_date=req.start_date,
        habit_type=req.type,
        duration=req.duration,
        color=req.color,
        icon=req.icon,
    )
    return {
        "message": "AI-powered habit created successfully",
        "habit": habit_to_dict(habit),
        "aiGenerated": True,
    }


@router.get("")
def list_all(
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
):
    habits = list_habits(db, user_id)
    return {"message": "Habits retrieved successfully", "habits": [habit_to_dict(h) for h in habits]}


@router.get("/daily")
def list_for_date(
    date: Optional[str] = None,
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
):
    target, rows = list_habits_for_date(db, user_id, date)
    return {
        "message": "Habits retrieved successfully",
        "date": isoformat_utc(target),
        "habits": [
            {**habit_to_dict(habit), "day": day_to_dict(day) if day is not None else None}
            for habit, day in rows
        ],
    }


@router.get("/{habit_id}")
def get_one(
    habit_id: str,
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
):
    habit = get_owned_habit(db, user_id, _habit_id(habit_id))
    return {"message": "Habit retrieved successfully", "habit": habit_to_dict(habit)}


@router.put("/{habit_id}")
def update(
    habit_id: str,
    req: HabitUpdateRequest,
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
):
    habit = update_habit(
        db,
        user_id,
        _habit_id(habit_id),
        title=req.title,
        start_date=req.start_date,
        duration=req.duration,
        habit_type=req.type,
        color=req.color,
        icon=req.icon,
    )
    return {"message": "Habit updated successfully", "habit": habit_to_dict(habit)}


@router.delete("/{habit_id}")
def delete(
    habit_id: str,
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
):
    deleted_id = delete_habit(db, user_id, _habit_id(habit_id))
    return {"message": "Habit deleted successfully", "habitId": deleted_id}


@router.patch("/{habit_id}/day")
def patch_day_title(
    habit_id: str,
    req: DayTitleUpdate,
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
):
    habit = update_day_title(db, user_id, _habit_id(habit_id), date=req.date, day_title=req.day_title)
    return {"message": "Day title updated successfully", "habit": habit_to_dict(habit)}


@router.patch("/{habit_id}/complete")
def patch_completion(
    habit_id: str,
    req: CompletionUpdate,
    user_id: int = Depends(get_active_user_id),
    db: Session = Depends(get_db),
):
    habit = mark_completion(db, user_id, _habit_id(habit_id), completed=req.completed, date=req.date)
    return {"message": "Habit completion marked successfully", "habit": habit_to_dict(habit)}
