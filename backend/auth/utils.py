from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from config import settings
from db.database import get_db
from db.models import User
from services.errors import InvalidToken, NotFound, Unauthorized

security = HTTPBearer(auto_error=False)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


@dataclass(frozen=True)
class TokenCodec:
    """Issues and verifies bearer tokens with an explicit signing key."""

    secret_key: str
    algorithm: str = "HS256"
    expiry_hours: int = 168

    def create_token(self, user_id: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "exp": now + timedelta(hours=self.expiry_hours),
            "iat": now,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> dict:
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise InvalidToken("Token expired")
        except jwt.InvalidTokenError:
            raise InvalidToken()

    def user_id_from_token(self, token: str) -> int:
        payload = self.decode_token(token)
        try:
            return int(payload.get("sub", 0))
        except (TypeError, ValueError):
            raise InvalidToken()


def get_token_codec() -> TokenCodec:
    return TokenCodec(
        secret_key=settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
        expiry_hours=settings.JWT_EXPIRY_HOURS,
    )


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    codec: TokenCodec = Depends(get_token_codec),
) -> int:
    if not credentials or not credentials.credentials:
        raise Unauthorized("No token provided")
    return codec.user_id_from_token(credentials.credentials)


def get_active_user_id(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> int:
    """Token owner id, only if that account still exists."""
    if db.query(User.id).filter(User.id == user_id).first() is None:
        raise NotFound("User not found")
    return user_id


def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user
