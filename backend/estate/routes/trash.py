# Overview: Flask API routes for the trash (soft-deleted rows) and restore.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import (
    audit_context_from_request,
    fail,
    internal_error,
    json_body,
    ok,
    page_args,
    service_error,
)
from ..services import soft_delete_service
from ..validation import NotFoundError, ValidationError

trash_bp = Blueprint("trash", __name__, url_prefix="/api/trash")


@trash_bp.get("")
@require_auth
def list_trash_route():
    """Query params: entity_type (optional), page, limit. Newest deletions first."""
    try:
        items, pagination = soft_delete_service.list_trash(
            g.org_id, request.args.get("entity_type"), **page_args()
        )
        return ok(items, pagination=pagination)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to list trash")


@trash_bp.post("/restore")
@require_auth
def restore_route():
    """Request body: {"entity_type": str, "id": int}"""
    try:
        data = json_body()
        entity_type = data.get("entity_type")
        entity_id = data.get("id")
        if not entity_type or entity_id is None:
            return fail("entity_type and id are required", 400)
        row = soft_delete_service.restore_entity(audit_context_from_request(), entity_type, entity_id)
        return ok(row.to_dict(), message="Restored")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to restore entity")
