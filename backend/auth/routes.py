from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from auth.models import LoginRequest, RegisterRequest
from auth.utils import TokenCodec, get_current_user, get_token_codec, normalize_email
from config import settings
from db.database import get_db
from db.models import User
from services.rate_limit_service import RateLimitRule, enforce_rate_limit
from services.user_service import authenticate_user, register_user, user_to_dict

router = APIRouter(prefix="/auth", tags=["auth"])


def _client_ip(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    req: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
):
    enforce_rate_limit(
        rule=RateLimitRule(
            endpoint="/auth/register",
            limit=settings.RATE_LIMIT_AUTH_REGISTER_ATTEMPTS,
            window_seconds=settings.RATE_LIMIT_AUTH_REGISTER_WINDOW_SECONDS,
        ),
        scope_key=f"{_client_ip(request)}:{normalize_email(req.email or '')}",
        message="Too many registration attempts. Please try again later.",
    )
    user = register_user(
        db,
        name=req.name,
        surname=req.surname,
        birthday=req.birthday,
        gender=req.gender,
        email=req.email,
        password=req.password,
    )
    return {
        "message": "User registered successfully",
        "token": codec.create_token(user.id),
        "user": user_to_dict(user),
    }


@router.post("/login")
def login(
    req: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
):
    enforce_rate_limit(
        rule=RateLimitRule(
            endpoint="/auth/login",
            limit=settings.RATE_LIMIT_AUTH_LOGIN_ATTEMPTS,
            window_seconds=settings.RATE_LIMIT_AUTH_LOGIN_WINDOW_SECONDS,
        ),
        scope_key=f"{_client_ip(request)}:{normalize_email(req.email or '')}",
        message="Too many login attempts. Please try again later.",
    )
    user = authenticate_user(db, email=req.email, password=req.password)
    return {
        "message": "Login successful",
        "token": codec.create_token(user.id),
        "user": user_to_dict(user),
    }


@router.get("/verify-token")
def verify_token(user: User = Depends(get_current_user)):
    return {"message": "Token is valid", "user": user_to_dict(user)}
