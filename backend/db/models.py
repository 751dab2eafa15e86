from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, Text, Boolean, ForeignKey, Index, UniqueConstraint,
    Date, DateTime,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator
from db.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    surname = Column(Text, nullable=False)
    birthday = Column(Date, nullable=False)
    gender = Column(Text, nullable=False)  # male | female
    email = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, default=_utcnow)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow)

    habits = relationship("Habit", back_populates="user", cascade="all, delete-orphan")


class Habit(Base):
    __tablename__ = "habits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    start_date = Column(UTCDateTime, nullable=False)  # UTC midnight
    duration = Column(Integer, nullable=False)
    type = Column(Text, nullable=False)  # build | quit
    color = Column(Text)
    icon = Column(Text)
    current_streak = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, default=_utcnow)
    updated_at = Column(UTCDateTime, default=_utcnow)

    user = relationship("User", back_populates="habits")
    days = relationship(
        "HabitDay",
        back_populates="habit",
        cascade="all, delete-orphan",
        order_by="HabitDay.position",
    )

    __table_args__ = (
        Index("ix_habits_user_start", "user_id", "start_date"),
        Index("ix_habits_user_completed", "user_id", "is_completed"),
    )


class HabitDay(Base):
    __tablename__ = "habit_days"

    id = Column(Integer, primary_key=True, autoincrement=True)
    habit_id = Column(Integer, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)  # days since habit start
    day_title = Column(Text, nullable=False, default="")
    date = Column(UTCDateTime, nullable=False)  # UTC midnight
    completed = Column(Boolean, nullable=False, default=False)

    habit = relationship("Habit", back_populates="days")

    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_habit_days_habit_date"),
        Index("ix_habit_days_habit_position", "habit_id", "position"),
    )
