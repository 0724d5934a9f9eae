# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on signup and reset
- Session token in an HTTP-only cookie, also returned for bearer clients
- Uniform responses for unknown accounts (sign-in, reset requests)
"""

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, load_identity
from ..services import auth_service, password_reset_service, session_service
from ..validation import require_fields

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_response(user, token, status=200):
    response = jsonify({"user": user.to_dict(), "token": token})
    response.status_code = status
    return session_service.set_session_cookie(response, token)


@auth_bp.post("/signup")
def signup_route():
    data = require_fields(request.get_json(silent=True), "email", "name", "password")
    user = auth_service.signup(data["email"], data["name"], data["password"])
    return _session_response(user, session_service.issue_token(user.id), status=201)


@auth_bp.post("/signin")
def signin_route():
    data = require_fields(request.get_json(silent=True), "email", "password")
    user = auth_service.sign_in(
        data["email"],
        data["password"],
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return _session_response(user, session_service.issue_token(user.id))


@auth_bp.post("/signout")
def signout_route():
    """Clears the cookie. The token itself stays valid until it expires."""
    response = jsonify({"message": "Goodbye!"})
    return session_service.clear_session_cookie(response)


@auth_bp.get("/me")
@load_identity
def me_route():
    identity = current_identity()
    if identity is None:
        return jsonify({"user": None})
    user = auth_service.get_user(identity.user_id)
    return jsonify({"user": user.to_dict() if user else None})


@auth_bp.post("/request-reset")
def request_reset_route():
    data = require_fields(request.get_json(silent=True), "email")
    message = password_reset_service.request_reset(data["email"])
    return jsonify({"message": message})


@auth_bp.post("/reset-password")
def reset_password_route():
    data = require_fields(request.get_json(silent=True), "reset_token", "password", "confirm_password")
    user, token = password_reset_service.reset_password(
        data["reset_token"], data["password"], data["confirm_password"]
    )
    return _session_response(user, token)
