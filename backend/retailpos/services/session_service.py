# Overview: Service-layer operations for bearer sessions issued at login.

"""
Bearer sessions for the back-office and till clients.

The client holds a random 64-hex-char token; only its SHA-256 digest is
stored. A session dies when any of these happen:
- SESSION_ABSOLUTE_TIMEOUT_HOURS have passed since login
- it sat unused longer than SESSION_IDLE_TIMEOUT_HOURS
- the user logged out or was deactivated
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..errors import AuthError
from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


def _hours(key: str, default: int) -> timedelta:
    return timedelta(hours=current_app.config.get(key, default))


def generate_token() -> str:
    """32 random bytes as hex; handed to the client once and never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens carry full entropy, a fast digest is enough
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_live(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """Open a session for an active user; returns (row, raw token)."""
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthError("User not found or inactive")

    token = generate_token()
    issued_at = utcnow()
    record = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=issued_at,
        last_used_at=issued_at,
        expires_at=issued_at + _hours("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24),
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(record)
    db.session.commit()
    return record, token


def _revoke(record: SessionToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its user, or None.

    Idle sessions and sessions of deactivated users are revoked on the way
    out; a valid hit refreshes last_used_at.
    """
    record = _find_live(token)
    if record is None:
        return None

    now = utcnow()
    if record.expires_at < now:
        return None
    if now - record.last_used_at > _hours("SESSION_IDLE_TIMEOUT_HOURS", 2):
        _revoke(record, "Idle timeout")
        return None

    user = record.user
    if user is None or not user.is_active:
        _revoke(record, "User account deactivated")
        return None

    record.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when the token is unknown or already revoked."""
    record = _find_live(token)
    if record is None:
        return False
    _revoke(record, reason)
    return True
