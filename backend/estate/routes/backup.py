# Overview: Flask API routes for JSON snapshot backup and restore (admin only).

from flask import Blueprint, g, request

from ..decorators import require_admin, require_auth
from ..responses import (
    audit_context_from_request,
    internal_error,
    json_body,
    ok,
    service_error,
)
from ..services import backup_service
from ..validation import NotFoundError, ValidationError

backup_bp = Blueprint("backup", __name__, url_prefix="/api/backup")


@backup_bp.get("/export")
@require_auth
@require_admin
def export_backup_route():
    try:
        return ok(backup_service.export_snapshot(g.org_id))
    except Exception:
        return internal_error("Failed to export snapshot")


@backup_bp.post("/import")
@require_auth
@require_admin
def import_backup_route():
    """
    Replace the organization's data with a snapshot.

    Body: the snapshot produced by GET /api/backup/export.
    Query params: apply=true to commit; anything else is a dry run that
    only reports what would be imported.
    """
    try:
        apply = request.args.get("apply", "false").strip().lower() in {"1", "true", "yes"}
        stats = backup_service.import_snapshot(audit_context_from_request(), json_body(), apply=apply)
        return ok(stats, message="Snapshot imported" if apply else "Dry run: nothing was changed")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to import snapshot")
