# Overview: Flask API routes for auth operations; login, logout and current user.

"""
Authentication API routes

Users are created by an administrator through the CLI
(`flask users create`); there is no self-registration endpoint.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import fail, internal_error, json_body, ok, service_error
from ..services import auth_service, session_service
from ..validation import ValidationError

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Body: {"username" (or "email"), "password"}.
    The returned token goes in the Authorization header as "Bearer <token>".
    """
    try:
        data = json_body()
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not username or not password:
            return fail("username and password are required", 400)

        user = auth_service.authenticate(username, password)
        if not user:
            return fail("Invalid credentials", 401)

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return ok({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "org_id": session.org_id,
        }, message="Login successful")

    except ValidationError as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to login user")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.token)
        return ok(None, message="Logged out")
    except Exception:
        return internal_error("Failed to logout user")


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok({
        "user": g.current_user.to_dict(),
        "org_id": g.org_id,
        "session": g.session_context.session.to_dict(),
    })
