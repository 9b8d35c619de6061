# Overview: Request decorators for API routes (authentication and admin gate).

from functools import wraps

from flask import g, request

from .responses import fail
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "org_id")


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (tenant context)
    - g.session_context: The full SessionContext object

    Returns the 401 failure envelope if the Authorization header is
    missing, or the token is invalid, expired, idle too long or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return fail("Authentication required", 401)

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token) if token else None

        if not context:
            return fail("Invalid or expired token", 401)

        g.current_user = context.user
        g.org_id = context.org_id
        g.session_context = context
        g.token = token

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated user to hold the admin role (use after @require_auth)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return fail("Authentication required", 401)
        if not g.current_user.is_admin:
            return fail("Admin access required", 403)
        return f(*args, **kwargs)
    return decorated_function
