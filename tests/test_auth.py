from datetime import timedelta

import pytest

from bible_quiz.auth import (
    _token_digest,
    create_session,
    create_user,
    destroy_session,
    get_user_by_email,
    get_user_by_id,
    hash_password,
    resolve_session,
    validate_password,
    verify_password,
)
from bible_quiz.errors import AppError, ErrorType
from bible_quiz.models import UserSession, utcnow


def test_password_hash_round_trip_and_mismatch():
    hashed = hash_password("correct horse")
    assert hashed.startswith("$2")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_verify_password_with_malformed_hash_is_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_create_user_normalizes_email_and_rejects_duplicates(db):
    user = create_user(db, "  Ruth  ", "Ruth@Example.com", "secret123")
    db.commit()
    assert user.name == "Ruth"
    assert user.email == "ruth@example.com"
    assert user.password_hash != "secret123"

    with pytest.raises(AppError) as exc_info:
        create_user(db, "Ruth Again", "RUTH@example.com", "other-secret")
    assert exc_info.value.type is ErrorType.CONFLICT
    assert exc_info.value.status_code == 409


def test_validate_password_never_reveals_which_part_failed(db):
    create_user(db, "Boaz", "boaz@example.com", "secret123")
    db.commit()

    assert validate_password(db, "boaz@example.com", "secret123") is True
    assert validate_password(db, "BOAZ@example.com", "secret123") is True
    assert validate_password(db, "boaz@example.com", "wrong") is False
    assert validate_password(db, "nobody@example.com", "secret123") is False


def test_session_token_is_opaque_and_stored_hashed(db):
    user = create_user(db, "Naomi", "naomi@example.com", "secret123")
    token = create_session(db, user)
    db.commit()

    assert not token.startswith("session_")
    assert len(token) >= 32
    stored = db.query(UserSession).filter_by(user_id=user.id).one()
    assert stored.token_hash != token
    assert resolve_session(db, token).id == user.id


def test_unknown_or_missing_tokens_resolve_to_no_session(db):
    assert resolve_session(db, None) is None
    assert resolve_session(db, "") is None
    assert resolve_session(db, "session_1_1700000000000") is None


def test_expired_session_resolves_to_no_session(db):
    user = create_user(db, "Orpah", "orpah@example.com", "secret123")
    token = create_session(db, user)
    stored = db.query(UserSession).filter_by(user_id=user.id).one()
    stored.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    assert resolve_session(db, token) is None


def test_new_session_prunes_expired_ones(db):
    user = create_user(db, "Boaz", "boaz@example.com", "secret123")
    old = create_session(db, user)
    live = create_session(db, user)
    db.query(UserSession).filter_by(user_id=user.id).update({"expires_at": utcnow() - timedelta(seconds=1)})
    db.query(UserSession).filter_by(token_hash=_token_digest(live)).update(
        {"expires_at": utcnow() + timedelta(days=1)}
    )
    db.commit()

    fresh = create_session(db, user)
    db.commit()

    remaining = {s.token_hash for s in db.query(UserSession).filter_by(user_id=user.id)}
    assert remaining == {_token_digest(live), _token_digest(fresh)}
    assert resolve_session(db, old) is None


def test_destroy_session_revokes_token(db):
    user = create_user(db, "Jesse", "jesse@example.com", "secret123")
    token = create_session(db, user)
    other = create_session(db, user)
    db.commit()

    destroy_session(db, token)
    db.commit()

    assert resolve_session(db, token) is None
    assert resolve_session(db, other).id == user.id
    destroy_session(db, token)


def test_get_user_by_id_and_email(db):
    user = create_user(db, "Miriam", "miriam@example.com", "secret123")
    db.commit()

    assert get_user_by_id(db, user.id).email == "miriam@example.com"
    assert get_user_by_email(db, " MIRIAM@example.com ").id == user.id
    assert get_user_by_id(db, user.id + 1000) is None
    assert get_user_by_email(db, "nobody@example.com") is None
