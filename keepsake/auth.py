"""
Bearer credentials, password hashing and account management.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from keepsake.config import Settings
from keepsake.db import DbClient, UserRecord, new_id
from keepsake.errors import AuthenticationFailed, NotFound, ValidationFailed
from keepsake.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
)

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return generate_password_hash(password, method="pbkdf2:sha256")


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


class TokenIssuer:
    def __init__(self, secret: str, algorithm: str = "HS256", expires_minutes: int = 60 * 24 * 7):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_minutes = expires_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_minutes=settings.jwt_expires_minutes,
        )

    def issue(self, user_id: str) -> str:
        expire = datetime.now(timezone.utc) + timedelta(minutes=self.expires_minutes)
        return jwt.encode({"sub": user_id, "exp": expire}, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> str:
        """Return the user id carried by ``token``; raise if it is invalid or expired."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise AuthenticationFailed("invalid or expired token") from e
        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationFailed("invalid or expired token")
        return str(user_id)


def _conflict_message(existing: UserRecord, email: str, verb: str) -> str:
    if existing.email == email:
        return f"email already {verb}"
    return "username already taken"


class UserService:
    def __init__(self, db: DbClient, tokens: TokenIssuer):
        self.db = db
        self.tokens = tokens

    def register(self, payload: RegisterRequest) -> dict:
        existing = self.db.find_user_conflict(payload.username, payload.email)
        if existing:
            raise ValidationFailed(_conflict_message(existing, payload.email, "registered"))
        user = self.db.create_user(
            UserRecord(
                id=new_id(),
                username=payload.username,
                email=payload.email,
                password_hash=hash_password(payload.password),
            )
        )
        logger.info("Registered user %s", user.id)
        return {"user": user.as_dict(), "token": self.tokens.issue(user.id)}

    def login(self, payload: LoginRequest) -> dict:
        user = self.db.get_user_by_email(payload.email)
        if user is None or not verify_password(user.password_hash, payload.password):
            raise AuthenticationFailed("invalid email or password")
        return {"user": user.as_dict(), "token": self.tokens.issue(user.id)}

    def profile(self, user_id: str) -> dict:
        user = self.db.get_user(user_id)
        if user is None:
            raise NotFound("user not found")
        return user.as_dict()

    def update_profile(self, user_id: str, payload: ProfileUpdate) -> dict:
        current = self.db.get_user(user_id)
        if current is None:
            raise NotFound("user not found")
        changes = payload.to_changes()
        username = changes.get("username", current.username)
        email = changes.get("email", current.email)
        existing = self.db.find_user_conflict(username, email, exclude_id=user_id)
        if existing:
            raise ValidationFailed(_conflict_message(existing, email, "in use"))
        user = self.db.update_user(user_id, changes)
        if user is None:
            raise NotFound("user not found")
        return user.as_dict()

    def change_password(self, user_id: str, payload: ChangePasswordRequest) -> None:
        user = self.db.get_user(user_id)
        if user is None:
            raise NotFound("user not found")
        if not verify_password(user.password_hash, payload.current_password):
            raise ValidationFailed("current password is incorrect")
        self.db.update_user(user_id, {"password_hash": hash_password(payload.new_password)})
        logger.info("Password changed for user %s", user_id)
