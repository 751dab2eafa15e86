from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy.orm import Session

from auth.utils import hash_password, normalize_email, verify_password
from db.models import User
from services.errors import InvalidDateFormat, NotFound, ValidationError
from utils.datetime_utils import isoformat_utc, parse_date

logger = logging.getLogger(__name__)

VALID_GENDERS = {"male", "female"}
MIN_PASSWORD_LENGTH = 8


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "surname": user.surname,
        "birthday": user.birthday.isoformat() if user.birthday else None,
        "gender": user.gender,
        "email": user.email,
        "createdAt": isoformat_utc(user.created_at),
        "updatedAt": isoformat_utc(user.updated_at),
    }


def _parse_birthday(raw: str) -> date:
    parsed = parse_date(raw)
    if isinstance(parsed, datetime):
        return parsed.date()
    return parsed


def register_user(
    db: Session,
    *,
    name: str | None,
    surname: str | None,
    birthday: str | None,
    gender: str | None,
    email: str | None,
    password: str | None,
) -> User:
    if not all([name, surname, birthday, gender, email, password]):
        raise ValidationError("All fields are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    errors: dict[str, str] = {}
    norm_gender = gender.strip().lower()
    if norm_gender not in VALID_GENDERS:
        errors["gender"] = f"gender must be one of {sorted(VALID_GENDERS)}"
    birthday_value: date | None = None
    try:
        birthday_value = _parse_birthday(birthday)
    except InvalidDateFormat:
        errors["birthday"] = "Invalid birthday format"
    if errors:
        raise ValidationError("Validation error", errors=errors)

    norm_email = normalize_email(email)
    if db.query(User).filter(User.email == norm_email).first():
        raise ValidationError("User already exists")

    user = User(
        name=name.strip(),
        surname=surname.strip(),
        birthday=birthday_value,
        gender=norm_gender,
        email=norm_email,
        password_hash=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user id=%s", user.id)
    return user


def authenticate_user(db: Session, *, email: str | None, password: str | None) -> User:
    if not email or not password:
        raise ValidationError("Email and password are required")
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user:
        raise NotFound("User not found")
    if not verify_password(password, user.password_hash):
        logger.warning("Rejected login for user id=%s: invalid credentials", user.id)
        raise ValidationError("Invalid credentials")
    return user
