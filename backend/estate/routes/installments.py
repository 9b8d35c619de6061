# Overview: Flask API routes for installments and installment collection.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import (
    audit_context_from_request,
    internal_error,
    json_body,
    ok,
    page_args,
    service_error,
)
from ..services import installment_service
from ..validation import NotFoundError, ValidationError

installments_bp = Blueprint("installments", __name__, url_prefix="/api/installments")


@installments_bp.get("")
@require_auth
def list_installments_route():
    """
    Query params: unit_id, contract_id, status (effective status), search, page, limit.
    """
    try:
        rows, pagination = installment_service.list_installments(
            g.org_id,
            unit_id=request.args.get("unit_id", type=int),
            contract_id=request.args.get("contract_id", type=int),
            status=request.args.get("status"),
            search=request.args.get("search"),
            **page_args(),
        )
        return ok(rows, pagination=pagination)
    except Exception:
        return internal_error("Failed to list installments")


@installments_bp.post("")
@require_auth
def create_installment_route():
    try:
        installment = installment_service.create_installment(audit_context_from_request(), **json_body())
        return ok(installment.to_dict(), message="Installment created", status=201)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to create installment")


@installments_bp.put("/<int:installment_id>")
@require_auth
def update_installment_route(installment_id: int):
    try:
        installment = installment_service.update_installment(
            audit_context_from_request(), installment_id, **json_body()
        )
        return ok(installment.to_dict(), message="Installment updated")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to update installment")


@installments_bp.post("/<int:installment_id>/pay")
@require_auth
def pay_installment_route(installment_id: int):
    """
    Request body: {"safe_id": int, "date": "YYYY-MM-DD" (optional), "description": str (optional)}

    Records a receipt voucher for the installment amount and marks it paid.
    """
    try:
        data = json_body()
        installment, voucher = installment_service.pay_installment(
            audit_context_from_request(),
            installment_id,
            safe_id=data.get("safe_id"),
            payment_date=data.get("date"),
            description=data.get("description"),
        )
        return ok({"installment": installment.to_dict(), "voucher": voucher.to_dict()},
                  message="Installment paid")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to pay installment")


@installments_bp.delete("/<int:installment_id>")
@require_auth
def delete_installment_route(installment_id: int):
    try:
        installment_service.delete_installment(audit_context_from_request(), installment_id)
        return ok(None, message="Installment deleted")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to delete installment")
