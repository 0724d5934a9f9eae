# Overview: Service-layer operations for sessions; issues and verifies signed identity tokens.

"""
Session Token Service

WHY: Every request must be attributable to a user without a server-side
session table. Tokens are HS256-signed JWTs carrying the user id and an
expiry; the signing key is APP_SECRET.

SECURITY NOTES:
- Tokens are verified for signature, expiry and required claims
- A token for a deleted user is rejected
- Sign-out clears the cookie only. There is no revocation list, so a copied
  token stays valid until it expires.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import jwt
from flask import current_app, request

from ..errors import InvalidSession
from ..extensions import db
from ..models import User
from ..time_utils import utcnow

TOKEN_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Identity:
    """
    Authenticated caller, resolved once per request.

    Frozen so that nothing downstream can widen a permission set mid-request.
    """
    user_id: int
    email: str
    permissions: frozenset[str]

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(user_id=user.id, email=user.email, permissions=frozenset(user.permissions))

    def has(self, code: str) -> bool:
        return code in self.permissions


def issue_token(user_id: int, lifetime: timedelta | None = None) -> str:
    """Sign a token for user_id that expires after lifetime (default SESSION_TOKEN_LIFETIME)."""
    lifetime = lifetime if lifetime is not None else current_app.config["SESSION_TOKEN_LIFETIME"]
    now = utcnow()
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, current_app.config["APP_SECRET"], algorithm=TOKEN_ALGORITHM)


def verify_token(token: str | None) -> int:
    """
    Return the user id carried by a valid token.

    Raises InvalidSession for a missing, malformed, tampered or expired token.
    """
    if not token:
        raise InvalidSession()
    try:
        payload = jwt.decode(
            token,
            current_app.config["APP_SECRET"],
            algorithms=[TOKEN_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidSession("Session expired")
    except jwt.InvalidTokenError:
        raise InvalidSession()

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise InvalidSession()


def resolve_identity(token: str | None) -> Identity:
    user_id = verify_token(token)
    user = db.session.get(User, user_id)
    if user is None:
        raise InvalidSession()
    return Identity.from_user(user)


def extract_token() -> str | None:
    """Bearer header first, then the auth cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])


def set_session_cookie(response, token: str):
    lifetime: timedelta = current_app.config["SESSION_TOKEN_LIFETIME"]
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        secure=current_app.config["COOKIE_SECURE"],
        samesite="Lax",
        path="/",
    )
    return response


def clear_session_cookie(response):
    """Revoke on the client side: the browser drops the credential."""
    response.delete_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        path="/",
        secure=current_app.config["COOKIE_SECURE"],
        httponly=True,
        samesite="Lax",
    )
    return response
