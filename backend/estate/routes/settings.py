# Overview: Flask API routes for organization settings and the screen lock.

from flask import Blueprint, g

from ..decorators import require_auth
from ..extensions import db
from ..responses import (
    audit_context_from_request,
    fail,
    internal_error,
    json_body,
    ok,
    service_error,
)
from ..services import settings_service
from ..validation import NotFoundError, ValidationError

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
def get_settings_route():
    try:
        settings = settings_service.get_settings(g.org_id)
        # First read creates the default row.
        db.session.commit()
        return ok(settings.to_dict())
    except Exception:
        return internal_error("Failed to load settings")


@settings_bp.put("")
@require_auth
def update_settings_route():
    """
    Request body (all optional):
    {"theme": "light"|"dark", "font_size": 10-24, "currency": "EGP",
     "lock_password": str | null}
    """
    try:
        settings = settings_service.update_settings(audit_context_from_request(), json_body())
        return ok(settings.to_dict(), message="Settings saved")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to save settings")


@settings_bp.post("/unlock")
@require_auth
def unlock_route():
    """Request body: {"password": str}. 200 when it matches (or no lock is set)."""
    try:
        password = json_body().get("password") or ""
        if not isinstance(password, str):
            return fail("password must be a string", 400)
        matched = settings_service.verify_lock_password(g.org_id, password)
        db.session.commit()
        if not matched:
            return fail("Incorrect lock password", 401)
        return ok({"unlocked": True})
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to verify lock password")
