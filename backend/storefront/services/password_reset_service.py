# Overview: Service-layer operations for password resets; single-use, time-limited reset tokens.

"""
Password Reset Flow

WHY: A user who lost their password proves control of their mailbox instead.

SECURITY NOTES:
- Tokens are 20 random bytes, hex encoded, mailed as a link and never returned
  by the API
- Only the SHA-256 hash of a token is stored
- A token is valid while now <= issued_at + RESET_TOKEN_TTL
- Consuming a token is a conditional update on its hash, so two concurrent
  resets with the same token cannot both succeed
- Unknown emails get the same response as known ones unless
  REVEAL_NONEXISTENT_ACCOUNTS is set
"""

from __future__ import annotations

import hashlib
import secrets

from flask import current_app
from sqlalchemy import update

from ..errors import ExpiredOrInvalidToken, NotFound, ValidationError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from ..validation import normalize_email
from . import auth_service, permission_service, session_service
from .mail_service import MailError, get_mailer, reset_email_body

RESET_REQUESTED_MESSAGE = "Thanks! If that account exists, a reset link is on its way."


def generate_reset_token() -> str:
    return secrets.token_hex(20)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def request_reset(email: str) -> str:
    """Issue a reset token for the account and mail the link. Returns a confirmation message."""
    email = normalize_email(email)
    user = db.session.query(User).filter_by(email=email).first()

    if user is None:
        if current_app.config["REVEAL_NONEXISTENT_ACCOUNTS"]:
            raise NotFound(f"No such user found for {email}")
        current_app.logger.info("Password reset requested for unknown email")
        return RESET_REQUESTED_MESSAGE

    token = generate_reset_token()
    user.reset_token_hash = hash_token(token)
    user.reset_token_expires_at = utcnow() + current_app.config["RESET_TOKEN_TTL"]
    db.session.commit()

    reset_url = f"{current_app.config['FRONTEND_URL']}/reset?resetToken={token}"
    try:
        get_mailer().send(user.email, "Your Password Reset Token", reset_email_body(reset_url))
    except MailError:
        current_app.logger.exception("Could not send password reset email to user %s", user.id)
        raise

    permission_service.log_security_event(
        user_id=user.id,
        event_type="PASSWORD_RESET_REQUESTED",
        success=True,
        action="REQUEST_RESET",
    )
    return RESET_REQUESTED_MESSAGE


def reset_password(token: str, password: str, confirm_password: str) -> tuple[User, str]:
    """
    Set a new password using a reset token.

    Returns the user and a fresh session token. Raises ValidationError when the
    passwords differ (checked first) and ExpiredOrInvalidToken for an unknown,
    used or expired token.
    """
    if password != confirm_password:
        raise ValidationError("Your passwords don't match!")
    if not token or not isinstance(token, str):
        raise ExpiredOrInvalidToken()

    token_hash = hash_token(token)
    user = (
        db.session.query(User)
        .filter(
            User.reset_token_hash == token_hash,
            User.reset_token_expires_at >= utcnow(),
        )
        .first()
    )
    if user is None:
        raise ExpiredOrInvalidToken()

    password_hash = auth_service.hash_password(password)

    result = db.session.execute(
        update(User)
        .where(User.id == user.id, User.reset_token_hash == token_hash)
        .values(password_hash=password_hash, reset_token_hash=None, reset_token_expires_at=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Another request consumed the token first
        db.session.rollback()
        raise ExpiredOrInvalidToken()
    db.session.commit()
    db.session.refresh(user)

    permission_service.log_security_event(
        user_id=user.id,
        event_type="PASSWORD_RESET_COMPLETED",
        success=True,
        action="RESET_PASSWORD",
    )
    current_app.logger.info("User %s reset their password", user.id)
    return user, session_service.issue_token(user.id)
