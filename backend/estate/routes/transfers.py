# Overview: Flask API routes for transfers between safes.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..models import Transfer
from ..repository import get_active
from ..responses import (
    audit_context_from_request,
    internal_error,
    json_body,
    ok,
    page_args,
    service_error,
)
from ..services import ledger_service
from ..validation import NotFoundError, ValidationError

transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.get("")
@require_auth
def list_transfers_route():
    try:
        rows, pagination = ledger_service.list_transfers(
            g.org_id,
            safe_id=request.args.get("safe_id", type=int),
            search=request.args.get("search"),
            **page_args(),
        )
        return ok([row.to_dict() for row in rows], pagination=pagination)
    except Exception:
        return internal_error("Failed to list transfers")


@transfers_bp.post("")
@require_auth
def create_transfer_route():
    """
    Request body:
    {
        "from_safe_id": int,
        "to_safe_id": int,
        "amount": number,
        "description": str (optional)
    }

    Returns:
        201: Transfer recorded, both safe balances moved
        400: Same safe, non-positive amount or insufficient balance
        404: Safe not found
    """
    try:
        transfer = ledger_service.record_transfer(
            audit_context_from_request(),
            allow_negative=current_app.config.get("ALLOW_NEGATIVE_TRANSFER", False),
            **json_body(),
        )
        return ok(transfer.to_dict(), message="Transfer recorded", status=201)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to record transfer")


@transfers_bp.get("/<int:transfer_id>")
@require_auth
def get_transfer_route(transfer_id: int):
    try:
        return ok(get_active(Transfer, transfer_id, g.org_id, label="Transfer").to_dict())
    except NotFoundError as e:
        return service_error(e)


@transfers_bp.delete("/<int:transfer_id>")
@require_auth
def delete_transfer_route(transfer_id: int):
    try:
        ledger_service.delete_transfer(audit_context_from_request(), transfer_id)
        return ok(None, message="Transfer deleted")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to delete transfer")
