# Overview: Service-layer operations for staff accounts and password login.

"""
Staff accounts.

Every stock movement, sale and return is written under a user id, so each
owner, manager and cashier gets their own login. Passwords are bcrypt
hashed with BCRYPT_ROUNDS (lowered under test); bearer sessions live in
session_service.
"""

import re

import bcrypt
from flask import current_app

from ..errors import PasswordValidationError, ValidationError
from ..extensions import db
from ..models import Location, User
from ..models.auth import ROLE_STAFF, ROLES
from ..time_utils import utcnow


MIN_PASSWORD_LENGTH = 8

# (pattern, what is missing)
PASSWORD_RULES = (
    (r"[A-Z]", "an uppercase letter"),
    (r"[a-z]", "a lowercase letter"),
    (r"\d", "a digit"),
    (r"[!@#$%^&*(),.'\":{}|<>]", "a special character"),
)


def validate_password_strength(password: str) -> None:
    """At least 8 characters with upper, lower, digit and special; raises PasswordValidationError."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    for pattern, label in PASSWORD_RULES:
        if not re.search(pattern, password):
            raise PasswordValidationError(f"Password must contain at least {label}")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    # checkpw is constant-time; a corrupt stored hash just fails to match
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str = ROLE_STAFF,
    location_id: int | None = None,
) -> User:
    """
    Register a staff account. Emails are stored lower-cased and must be unique.

    Raises ValidationError for missing names, unknown role or location and
    duplicate email; PasswordValidationError for a weak password.
    """
    email = (email or "").strip().lower()
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not (email and first_name and last_name):
        raise ValidationError("email, first_name and last_name are required")

    if role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(ROLES)}", details={"role": role})

    if db.session.query(User.id).filter_by(email=email).first() is not None:
        raise ValidationError("A user with this email already exists", details={"email": email})

    if location_id is not None and db.session.get(Location, location_id) is None:
        raise ValidationError("Location not found", details={"location_id": location_id})

    account = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
        role=role,
        location_id=location_id,
    )
    db.session.add(account)
    db.session.commit()
    current_app.logger.info("Created %s user %s (%s)", role, account.id, email)
    return account


def authenticate(email: str, password: str) -> User | None:
    """The active user matching these credentials (stamping last_login_at), else None."""
    account = (
        db.session.query(User)
        .filter(User.email == (email or "").strip().lower(), User.is_active.is_(True))
        .first()
    )
    if account is None:
        return None

    if not verify_password(password or "", account.password_hash):
        current_app.logger.warning("Failed login for user %s", account.id)
        return None

    account.last_login_at = utcnow()
    db.session.commit()
    return account
