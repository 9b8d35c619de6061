# Overview: Flask API routes for receipt and payment vouchers.

"""
Voucher API routes

Every write goes through ledger_service, which moves the safe balance in
the same transaction as the voucher row.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..models import Voucher
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

vouchers_bp = Blueprint("vouchers", __name__, url_prefix="/api/vouchers")


@vouchers_bp.get("")
@require_auth
def list_vouchers_route():
    """
    Query params: type (receipt|payment), safe_id, unit_id, search, page, limit.
    """
    try:
        rows, pagination = ledger_service.list_vouchers(
            g.org_id,
            voucher_type=request.args.get("type"),
            safe_id=request.args.get("safe_id", type=int),
            unit_id=request.args.get("unit_id", type=int),
            search=request.args.get("search"),
            **page_args(),
        )
        return ok([row.to_dict() for row in rows], pagination=pagination)
    except Exception:
        return internal_error("Failed to list vouchers")


@vouchers_bp.post("")
@require_auth
def create_voucher_route():
    """
    Request body:
    {
        "type": "receipt" | "payment",
        "amount": number,
        "safe_id": int,
        "date": "YYYY-MM-DD",
        "description": str,
        "payer" / "beneficiary": str (optional),
        "unit_id" / "contract_id": int (optional)
    }
    """
    try:
        voucher = ledger_service.record_voucher(audit_context_from_request(), **json_body())
        return ok(voucher.to_dict(), message="Voucher created", status=201)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to create voucher")


@vouchers_bp.get("/<int:voucher_id>")
@require_auth
def get_voucher_route(voucher_id: int):
    try:
        return ok(get_active(Voucher, voucher_id, g.org_id, label="Voucher").to_dict())
    except NotFoundError as e:
        return service_error(e)


@vouchers_bp.put("/<int:voucher_id>")
@require_auth
def update_voucher_route(voucher_id: int):
    try:
        voucher = ledger_service.update_voucher(audit_context_from_request(), voucher_id, **json_body())
        return ok(voucher.to_dict(), message="Voucher updated")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to update voucher")


@vouchers_bp.delete("/<int:voucher_id>")
@require_auth
def delete_voucher_route(voucher_id: int):
    try:
        ledger_service.delete_voucher(audit_context_from_request(), voucher_id)
        return ok(None, message="Voucher deleted")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to delete voucher")
