# Overview: JSON response envelopes and request helpers shared by all blueprints.

"""
Every endpoint answers with one of two envelopes:

    {"success": true, "data": ..., "message"?: str, "pagination"?: {...}}
    {"success": false, "error": str}

Routes catch the typed service errors and hand them to service_error(),
which rolls back the session and maps the error to its status code.
Anything unexpected goes through internal_error(), which logs the
traceback and hides the details from the client.
"""

from flask import current_app, g, jsonify, request

from .extensions import db
from .services.audit_service import AuditContext
from .validation import NotFoundError, ValidationError


def ok(data=None, message: str | None = None, status: int = 200, pagination: dict | None = None):
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return jsonify(body), status


def fail(error: str, status: int = 400):
    return jsonify({"success": False, "error": error}), status


def service_error(exc: Exception):
    """Roll back and map a typed service error (ValidationError family, NotFoundError)."""
    db.session.rollback()
    status = 404 if isinstance(exc, NotFoundError) else 400
    current_app.logger.warning("%s %s rejected: %s", request.method, request.path, exc)
    return fail(str(exc), status)


def internal_error(log_message: str):
    db.session.rollback()
    current_app.logger.exception(log_message)
    return fail("Internal server error", 500)


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def page_args() -> dict:
    return {
        "page": request.args.get("page", type=int),
        "limit": request.args.get("limit", type=int),
    }


def audit_context_from_request() -> AuditContext:
    """AuditContext for the authenticated request (use after @require_auth)."""
    return AuditContext(
        org_id=g.org_id,
        user_id=g.current_user.id,
        ip_address=request.remote_addr,
        user_agent=(request.headers.get("User-Agent") or "")[:255] or None,
    )
