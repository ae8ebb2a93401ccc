# Overview: Bearer session tokens carrying the caller's branch context.

"""
Session Token Management

Sessions capture user_id and branch_id at login. The branch context is
immutable for the session lifetime and becomes CallerContext.branch_id
for every authenticated request.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_ABSOLUTE_HOURS) and idle timeout (SESSION_IDLE_HOURS)
- Revocable on logout
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Branch, SessionToken, User
from ..time_utils import utcnow


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    branch_id: int | None  # None for owner-level users


def generate_token() -> str:
    """64-character hex string; the plaintext is never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _timeouts() -> tuple[timedelta, timedelta]:
    return (
        timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_HOURS", 24)),
        timedelta(hours=current_app.config.get("SESSION_IDLE_HOURS", 8)),
    )


def create_session(
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session for an authenticated user.

    Returns (session_record, plaintext_token).
    """
    absolute_timeout, _ = _timeouts()
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        branch_id=user.branch_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + absolute_timeout,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Return the SessionContext for a live token, None otherwise.

    Idle sessions and sessions of deactivated users/branches are revoked
    on the spot. Updates last_used_at on success.
    """
    _, idle_timeout = _timeouts()
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > idle_timeout:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    if session.branch_id is not None:
        branch = db.session.get(Branch, session.branch_id)
        if branch is None or not branch.is_active:
            _revoke(session, "Branch deactivated")
            return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, branch_id=session.branch_id)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False

    _revoke(session, reason)
    return True
