# Overview: Service-layer operations for auth; signup, sign-in and password hashing.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Unknown email and wrong password fail with the same message
- Session tokens are issued separately (see session_service.py)
"""

import re
from functools import lru_cache

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InvalidCredentials, ValidationError
from ..extensions import db
from ..models import User, UserPermission
from ..permissions import DEFAULT_USER_PERMISSIONS
from ..validation import normalize_email
from . import permission_service


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password is required")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash never verifies.
    """
    if not isinstance(password, str) or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


@lru_cache(maxsize=None)
def _dummy_hash(rounds: int) -> str:
    """Hash compared against for unknown emails, at the same cost as real ones."""
    return bcrypt.hashpw(b"unknown-account", bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def signup(email: str, name: str, password: str) -> User:
    """
    Create a customer account with the default permission set.

    Email is lower-cased before the uniqueness check. Raises ConflictError
    for a duplicate email, PasswordValidationError for a weak password.
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("An account with that email already exists")

    user = User(email=email, name=name, password_hash=hash_password(password))
    user.permission_rows = [UserPermission(code=code) for code in sorted(DEFAULT_USER_PERMISSIONS)]

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent signup with the same email won the race
        db.session.rollback()
        raise ConflictError("An account with that email already exists")

    current_app.logger.info("User %s signed up", user.id)
    return user


def sign_in(email: str, password: str, *, ip_address: str | None = None, user_agent: str | None = None) -> User:
    """
    Authenticate by email and password.

    Raises InvalidCredentials for an unknown email or a wrong password; both
    cases share one message and are recorded as LOGIN_FAILED events.
    """
    try:
        email = normalize_email(email)
    except ValidationError:
        raise InvalidCredentials()

    user = db.session.query(User).filter_by(email=email).first()
    if user is None:
        # Same bcrypt cost whether or not the account exists
        verify_password(password, _dummy_hash(current_app.config["BCRYPT_ROUNDS"]))
    if user is None or not verify_password(password, user.password_hash):
        permission_service.log_security_event(
            user_id=user.id if user else None,
            event_type="LOGIN_FAILED",
            success=False,
            resource="/api/auth/signin",
            action="SIGNIN",
            reason="Unknown email" if user is None else "Bad password",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise InvalidCredentials()

    return user


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)
