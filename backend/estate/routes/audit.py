# Overview: Flask API route for reading the audit trail.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import internal_error, ok, page_args, service_error
from ..services import audit_service
from ..validation import NotFoundError, ValidationError

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_auth
def list_audit_route():
    """
    Query params: action, entity_type, entity_id, user_id,
    date_from / date_to (YYYY-MM-DD, inclusive), page, limit.
    """
    try:
        rows, pagination = audit_service.list_audit_entries(
            g.org_id,
            action=request.args.get("action"),
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id", type=int),
            user_id=request.args.get("user_id", type=int),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            **page_args(),
        )
        return ok([row.to_dict() for row in rows], pagination=pagination)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to list audit entries")
