# auth.py
from __future__ import annotations

import logging
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from werkzeug.security import check_password_hash, generate_password_hash

from config import TOKEN_TTL_DAYS
from storage import SCHEMA_VERSION, atomic_write_json, file_lock, read_json, records_from

logger = logging.getLogger(__name__)

PASSWORD_RULE = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*(),.?":{}|<>]).{8,}$')
PASSWORD_RULE_MESSAGE = (
    "Password must be at least 8 characters and contain uppercase, lowercase, number, and special character"
)


class AuthError(ValueError):
    """Rejected auth request; the message is shown to the user as is."""


def _normalize_answer(answer: str) -> str:
    return (answer or "").strip().lower()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _token_alive(expiry: str, now: datetime) -> bool:
    """Unreadable expiries count as expired; naive ones are taken as UTC."""
    try:
        exp = datetime.fromisoformat(str(expiry))
    except (TypeError, ValueError):
        return False
    if exp.tzinfo is None:
        exp = exp.replace(tzinfo=timezone.utc)
    return exp > now


@dataclass
class User:
    id: str
    username: str
    password_hash: str
    security_question: str
    security_answer_hash: str
    created_at: str = ""
    # token -> expiry (ISO, UTC)
    tokens: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "password_hash": self.password_hash,
            "security_question": self.security_question,
            "security_answer_hash": self.security_answer_hash,
            "created_at": self.created_at,
            "tokens": dict(self.tokens or {}),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "User":
        tokens = d.get("tokens") or {}
        if not isinstance(tokens, dict):
            tokens = {}
        return User(
            id=str(d.get("id") or ""),
            username=str(d.get("username") or ""),
            password_hash=str(d.get("password_hash") or ""),
            security_question=str(d.get("security_question") or ""),
            security_answer_hash=str(d.get("security_answer_hash") or ""),
            created_at=str(d.get("created_at") or ""),
            tokens={str(k): str(v) for k, v in tokens.items()},
        )


@dataclass
class Session:
    user_id: str
    username: str
    token: str


class AuthService:
    """Users, bearer tokens and the security-question password reset."""

    def __init__(self, path: Union[str, Path], token_ttl_days: int = TOKEN_TTL_DAYS) -> None:
        self.path = Path(path)
        self.token_ttl = timedelta(days=token_ttl_days)

    # -------------------------
    # persistence
    # -------------------------
    def _load(self) -> List[User]:
        out: List[User] = []
        for d in records_from(read_json(self.path), "users"):
            u = User.from_dict(d)
            if u.id and u.username:
                out.append(u)
        return out

    def _save(self, users: List[User]) -> None:
        # caller holds file_lock(self.path)
        atomic_write_json(
            self.path,
            {"schema_version": SCHEMA_VERSION, "users": [u.to_dict() for u in users]},
            locked=True,
        )

    def _find(self, users: List[User], username: str) -> Optional[User]:
        name = (username or "").strip()
        return next((u for u in users if u.username == name), None)

    def _issue_token(self, user: User) -> str:
        token = secrets.token_urlsafe(32)
        now = _now()
        # drop expired tokens while we are here
        user.tokens = {t: exp for t, exp in (user.tokens or {}).items() if _token_alive(exp, now)}
        user.tokens[token] = (now + self.token_ttl).isoformat(timespec="seconds")
        return token

    # -------------------------
    # register / login
    # -------------------------
    def register(self, username: str, password: str, security_question: str, security_answer: str) -> Session:
        username = (username or "").strip()
        if not username or not password or not (security_question or "").strip() or not _normalize_answer(security_answer):
            raise AuthError("Please add all fields")
        if not PASSWORD_RULE.match(password):
            raise AuthError(PASSWORD_RULE_MESSAGE)

        with file_lock(self.path):
            users = self._load()
            if self._find(users, username):
                raise AuthError("User already exists")

            user = User(
                id=str(uuid.uuid4()),
                username=username,
                password_hash=generate_password_hash(password),
                security_question=security_question.strip(),
                security_answer_hash=generate_password_hash(_normalize_answer(security_answer)),
                created_at=_now().isoformat(timespec="seconds"),
            )
            token = self._issue_token(user)
            users.append(user)
            self._save(users)
        logger.info("Registered user %s", username)
        return Session(user.id, user.username, token)

    def login(self, username: str, password: str) -> Session:
        with file_lock(self.path):
            users = self._load()
            user = self._find(users, username)
            if user is None:
                raise AuthError("User not found")
            if not check_password_hash(user.password_hash, password or ""):
                logger.info("Failed login for %s", user.username)
                raise AuthError("Invalid password")
            token = self._issue_token(user)
            self._save(users)
        return Session(user.id, user.username, token)

    def verify_token(self, token: str) -> Optional[Session]:
        if not token:
            return None
        now = _now()
        for user in self._load():
            exp = (user.tokens or {}).get(token)
            if exp and _token_alive(exp, now):
                return Session(user.id, user.username, token)
        return None

    def logout(self, token: str) -> None:
        with file_lock(self.path):
            users = self._load()
            for user in users:
                if token in (user.tokens or {}):
                    user.tokens.pop(token)
                    self._save(users)
                    return

    # -------------------------
    # password reset
    # -------------------------
    def security_question(self, username: str) -> str:
        user = self._find(self._load(), username)
        if user is None:
            raise AuthError("User not found")
        return user.security_question

    def verify_answer(self, username: str, answer: str) -> bool:
        user = self._find(self._load(), username)
        if user is None:
            raise AuthError("User not found")
        if not check_password_hash(user.security_answer_hash, _normalize_answer(answer)):
            raise AuthError("Incorrect answer")
        return True

    def reset_password(self, username: str, answer: str, new_password: str) -> None:
        with file_lock(self.path):
            users = self._load()
            user = self._find(users, username)
            if user is None:
                raise AuthError("User not found")
            if not check_password_hash(user.security_answer_hash, _normalize_answer(answer)):
                raise AuthError("Invalid security answer")
            if not PASSWORD_RULE.match(new_password or ""):
                raise AuthError(PASSWORD_RULE_MESSAGE)
            user.password_hash = generate_password_hash(new_password)
            # a reset signs out every open session
            user.tokens = {}
            self._save(users)
        logger.info("Password reset for %s", user.username)
