"""Credential store and server-side session manager.

Session tokens are random opaque strings handed to the client in the
``user-session`` cookie. Only their SHA-256 digest is stored, so a leaked
``user_sessions`` table cannot be replayed as cookies.
"""

import hashlib
import logging
import secrets
from datetime import timedelta

import bcrypt
from fastapi import Depends, Request, Response
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bible_quiz.config import settings
from bible_quiz.database import get_db
from bible_quiz.errors import AppError
from bible_quiz.models import User, UserSession, utcnow

logger = logging.getLogger(__name__)

SESSION_COOKIE = "user-session"

# compared against when the e-mail is unknown so both failure paths cost one bcrypt check
_DUMMY_HASH = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode("utf-8")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == normalize_email(email)))


def get_user_by_id(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def create_user(db: Session, name: str, email: str, password: str) -> User:
    email = normalize_email(email)
    if get_user_by_email(db, email):
        raise AppError.conflict("A user with this email already exists")

    user = User(name=name.strip(), email=email, password_hash=hash_password(password))
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        raise AppError.conflict("A user with this email already exists") from exc
    return user


def validate_password(db: Session, email: str, password: str) -> bool:
    return authenticate(db, email, password) is not None


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = get_user_by_email(db, email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def is_admin(user: User) -> bool:
    return settings.is_admin_email(user.email)


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(db: Session, user: User) -> str:
    pruned = db.execute(
        delete(UserSession).where(UserSession.user_id == user.id, UserSession.expires_at <= utcnow())
    ).rowcount
    if pruned:
        logger.debug("Pruned %s expired sessions for user=%s", pruned, user.id)

    token = secrets.token_urlsafe(32)
    db.add(
        UserSession(
            user_id=user.id,
            token_hash=_token_digest(token),
            expires_at=utcnow() + timedelta(days=settings.session_ttl_days),
        )
    )
    db.flush()
    return token


def resolve_session(db: Session, token: str | None) -> User | None:
    if not token:
        return None
    record = db.scalar(select(UserSession).where(UserSession.token_hash == _token_digest(token)))
    if record is None:
        return None
    if record.expires_at <= utcnow():
        logger.debug("Session %s for user=%s has expired", record.id, record.user_id)
        return None
    return record.user


def destroy_session(db: Session, token: str | None) -> None:
    if not token:
        return
    db.execute(delete(UserSession).where(UserSession.token_hash == _token_digest(token)))


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        token,
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        SESSION_COOKIE,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def get_current_user_optional(request: Request, db: Session = Depends(get_db)) -> User | None:
    return resolve_session(db, request.cookies.get(SESSION_COOKIE))


def get_current_user(user: User | None = Depends(get_current_user_optional)) -> User:
    if user is None:
        raise AppError.authentication()
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not is_admin(user):
        raise AppError.authorization("Admin access required")
    return user
