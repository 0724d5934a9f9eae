# Overview: Service-layer operations for permissions; encapsulates access checks and the security audit trail.

"""
Permission Checking and Security Event Logging

WHY: Enforce role-based access control and create an audit trail.
Every denial is logged for security monitoring.

DESIGN PRINCIPLES:
- Fail closed: deny by default, require an explicit permission grant
- ANY-of: a requirement is a set of codes, holding any one of them suffices
- Ownership is a separate grant, combined with permissions by OR
- Log denials and permission changes; successful checks are not logged
- Checks run before any side effect of the guarded operation
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app, has_request_context, request

from ..errors import AuthenticationRequired, NotFound, OwnershipViolation, PermissionDenied, ValidationError
from ..extensions import db
from ..models import SecurityEvent, User, UserPermission
from ..permissions import MANAGE_USERS, validate_permission_code
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .session_service import Identity


def _request_context() -> dict:
    if not has_request_context():
        return {"resource": None, "ip_address": None, "user_agent": None}
    return {
        "resource": request.path,
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    WHY: Immutable audit log for compliance and security monitoring.

    event_type examples:
    - PERMISSION_DENIED
    - OWNERSHIP_VIOLATION
    - LOGIN_FAILED
    - PERMISSIONS_UPDATED
    - PASSWORD_RESET_REQUESTED
    - PASSWORD_RESET_COMPLETED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def has_any(identity: Identity | None, required: Iterable[str]) -> bool:
    if identity is None:
        return False
    return not identity.permissions.isdisjoint(required)


def require_authenticated(identity: Identity | None) -> Identity:
    if identity is None:
        raise AuthenticationRequired()
    return identity


def require_any(identity: Identity | None, required: Iterable[str], *, action: str | None = None) -> Identity:
    """
    Require at least one permission of `required`.

    Raises AuthenticationRequired when there is no identity, PermissionDenied
    (logged as PERMISSION_DENIED) when none of the codes are held.
    """
    identity = require_authenticated(identity)
    required = frozenset(required)
    if has_any(identity, required):
        return identity

    codes = ",".join(sorted(required))
    log_security_event(
        user_id=identity.user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        action=action or f"ANY_OF:{codes}",
        reason=f"Missing any of: {codes}",
        **_request_context(),
    )
    raise PermissionDenied(f"Requires any of: {', '.join(sorted(required))}", required=required)


def is_owner(owner_id: int | None, identity: Identity | None) -> bool:
    return identity is not None and owner_id is not None and owner_id == identity.user_id


def require_owner_or_any(
    identity: Identity | None,
    owner_id: int | None,
    required: Iterable[str],
    *,
    action: str | None = None,
) -> Identity:
    """
    Allow the resource owner, or anyone holding one of `required`.

        owner | has permission | result
        ------+----------------+-------
        yes   | yes            | allow
        yes   | no             | allow
        no    | yes            | allow
        no    | no             | deny (PermissionDenied)
    """
    identity = require_authenticated(identity)
    required = frozenset(required)
    if is_owner(owner_id, identity) or has_any(identity, required):
        return identity

    codes = ",".join(sorted(required))
    log_security_event(
        user_id=identity.user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        action=action or f"OWNER_OR_ANY_OF:{codes}",
        reason=f"Not the owner and missing any of: {codes}",
        **_request_context(),
    )
    raise PermissionDenied("You don't have permission to do that!", required=required)


def deny_ownership(identity: Identity, resource_desc: str) -> None:
    """Log and raise for an attempt to touch another user's row."""
    log_security_event(
        user_id=identity.user_id,
        event_type="OWNERSHIP_VIOLATION",
        success=False,
        action=resource_desc,
        reason="Resource belongs to another user",
        **_request_context(),
    )
    raise OwnershipViolation()


def list_users(identity: Identity | None) -> list[User]:
    require_any(identity, MANAGE_USERS)
    return db.session.query(User).order_by(User.id.asc()).all()


def update_permissions(identity: Identity | None, target_user_id: int, codes: Iterable[str]) -> User:
    """
    Replace a user's permission set.

    Requires ANY of {ADMIN, PERMISSIONUPDATE}. Unknown codes are rejected
    before anything is written. The target row is locked so concurrent
    updates apply one after the other; the last one wins as a whole set.
    """
    require_any(identity, MANAGE_USERS)

    if isinstance(codes, str) or codes is None:
        raise ValidationError("permissions must be a list of permission codes")
    new_codes = set()
    for code in codes:
        if not isinstance(code, str) or not validate_permission_code(code):
            raise ValidationError(f"Unknown permission: {code}")
        new_codes.add(code)

    def _op():
        user = lock_for_update(db.session.query(User).filter_by(id=target_user_id)).first()
        if user is None:
            raise NotFound("User not found")

        current = {row.code: row for row in user.permission_rows}
        for code, row in current.items():
            if code not in new_codes:
                user.permission_rows.remove(row)
        for code in sorted(new_codes - set(current)):
            user.permission_rows.append(UserPermission(code=code))

        db.session.commit()
        return user

    user = run_with_retry(_op)

    log_security_event(
        user_id=identity.user_id,
        event_type="PERMISSIONS_UPDATED",
        success=True,
        action=f"USER:{target_user_id}",
        reason=",".join(sorted(new_codes)),
        **_request_context(),
    )
    current_app.logger.info(
        "User %s set permissions of user %s to %s", identity.user_id, target_user_id, sorted(new_codes)
    )
    return user
