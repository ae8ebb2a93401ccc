# Overview: Staff account creation and bcrypt password authentication.

"""
Authentication Service

Users belong to exactly one branch, except owners (branch_id NULL) who may
act across branches.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with upper, lower and digit
- Session tokens managed separately (see session_service.py)
- Inactive users and users of inactive branches cannot log in
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Branch, User
from ..permissions import VALID_ROLES
from ..time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def find_user(username: str) -> User | None:
    return db.session.query(User).filter_by(username=username).first()


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    role: str = "cashier",
    branch_id: int | None = None,
    can_void: bool = False,
    bcrypt_rounds: int | None = None,
) -> User:
    """
    Create a staff user.

    owner accounts have no branch; every other role requires one.
    """
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be one of: {', '.join(VALID_ROLES)}")

    if role == "owner":
        branch_id = None
    elif branch_id is None:
        raise ValidationError(f"branch_id is required for role '{role}'")
    elif db.session.get(Branch, branch_id) is None:
        raise ValidationError(f"Branch {branch_id} does not exist")

    if find_user(username) is not None:
        raise ValidationError(f"Username '{username}' already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password, rounds=bcrypt_rounds or current_app.config.get("BCRYPT_ROUNDS", 12)),
        role=role,
        branch_id=branch_id,
        can_void=can_void,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Return the user for valid credentials, None otherwise.

    The same None is returned for unknown users, wrong passwords and
    inactive accounts so callers cannot tell them apart.
    """
    user = find_user(username)
    if user is None or not user.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    if user.branch_id is not None:
        branch = db.session.get(Branch, user.branch_id)
        if branch is None or not branch.is_active:
            return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
