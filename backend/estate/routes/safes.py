# Overview: Flask API routes for safes (cash boxes) and balance reconciliation.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..models import Safe
from ..repository import get_active
from ..responses import (
    audit_context_from_request,
    fail,
    internal_error,
    json_body,
    ok,
    page_args,
    service_error,
)
from ..services import ledger_service, soft_delete_service
from ..validation import NotFoundError, ValidationError

safes_bp = Blueprint("safes", __name__, url_prefix="/api/safes")


@safes_bp.get("")
@require_auth
def list_safes_route():
    try:
        rows, pagination = ledger_service.list_safes(
            g.org_id, search=request.args.get("search"), **page_args()
        )
        return ok([row.to_dict() for row in rows], pagination=pagination)
    except Exception:
        return internal_error("Failed to list safes")


@safes_bp.post("")
@require_auth
def create_safe_route():
    try:
        safe = ledger_service.create_safe(audit_context_from_request(), **json_body())
        return ok(safe.to_dict(), message="Safe created", status=201)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to create safe")


@safes_bp.get("/<int:safe_id>")
@require_auth
def get_safe_route(safe_id: int):
    try:
        return ok(get_active(Safe, safe_id, g.org_id, label="Safe").to_dict())
    except NotFoundError as e:
        return service_error(e)


@safes_bp.put("/<int:safe_id>")
@require_auth
def update_safe_route(safe_id: int):
    """Name and notes only; balances move through vouchers and transfers."""
    try:
        safe = ledger_service.update_safe(audit_context_from_request(), safe_id, **json_body())
        return ok(safe.to_dict(), message="Safe updated")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to update safe")


@safes_bp.delete("/<int:safe_id>")
@require_auth
def delete_safe_route(safe_id: int):
    try:
        soft_delete_service.soft_delete(audit_context_from_request(), "safe", safe_id)
        return ok(None, message="Safe deleted")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to delete safe")


@safes_bp.get("/reconcile")
@require_auth
def reconcile_all_route():
    """Report every safe whose stored balance differs from its movements."""
    try:
        results = ledger_service.reconcile_all(g.org_id)
        return ok({
            "safes": [r.to_dict() for r in results],
            "ok": all(r.ok for r in results),
        })
    except Exception:
        return internal_error("Failed to reconcile safes")


@safes_bp.route("/<int:safe_id>/reconcile", methods=["GET", "POST"])
@require_auth
def reconcile_safe_route(safe_id: int):
    """
    GET reports drift; POST with {"repair": true} overwrites a drifting
    balance with the recomputed one (admin only).
    """
    try:
        repair = request.method == "POST" and bool(json_body().get("repair"))
        if repair and not g.current_user.is_admin:
            return fail("Admin access required", 403)
        result = ledger_service.reconcile_safe(
            g.org_id, safe_id, repair=repair, ctx=audit_context_from_request()
        )
        return ok(result.to_dict(), message="Safe balance repaired" if repair and not result.ok else None)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to reconcile safe")
