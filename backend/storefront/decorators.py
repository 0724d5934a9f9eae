# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import g

from .errors import AuthenticationRequired, InvalidSession
from .services import permission_service, session_service


def current_identity():
    return getattr(g, "identity", None)


def load_identity(f):
    """
    Resolve the caller if a credential is present; anonymous otherwise.

    Sets g.identity to an Identity or None. An invalid or expired token is
    treated as no token at all.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = session_service.extract_token()
        identity = None
        if token:
            try:
                identity = session_service.resolve_identity(token)
            except InvalidSession:
                identity = None
        g.identity = identity
        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """
    Require a valid session token.

    Sets g.identity (immutable for the rest of the request).

    SECURITY: Responds 401 if:
    - No Authorization header and no auth cookie
    - Invalid, tampered or expired token
    - Token for a user that no longer exists
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = session_service.extract_token()
        if not token:
            raise AuthenticationRequired()

        g.identity = session_service.resolve_identity(token)
        return f(*args, **kwargs)

    return decorated_function


def require_permission(*permission_codes):
    """
    Require any of the specified permissions.

    Must be stacked under @require_auth. Denials are logged as
    PERMISSION_DENIED security events.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_identity() is None:
                raise AuthenticationRequired()
            permission_service.require_any(current_identity(), permission_codes)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
