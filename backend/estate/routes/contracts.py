# Overview: Flask API routes for contracts (unit sales) and their installments.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..models import Contract
from ..repository import get_active
from ..responses import (
    audit_context_from_request,
    internal_error,
    json_body,
    ok,
    page_args,
    service_error,
)
from ..services import contract_service, installment_service, soft_delete_service
from ..validation import NotFoundError, ValidationError

contracts_bp = Blueprint("contracts", __name__, url_prefix="/api/contracts")


@contracts_bp.get("")
@require_auth
def list_contracts_route():
    try:
        rows, pagination = contract_service.list_contracts(
            g.org_id, search=request.args.get("search"), **page_args()
        )
        return ok([row.to_dict() for row in rows], pagination=pagination)
    except Exception:
        return internal_error("Failed to list contracts")


@contracts_bp.post("")
@require_auth
def create_contract_route():
    """
    Sell a unit.

    Request body:
    {
        "unit_id": int, "customer_id": int, "start_date": "YYYY-MM-DD",
        "total_price": number, "discount_amount": number (optional),
        "down_payment": number, "down_payment_safe_id": int (optional),
        "broker_name": str, "broker_amount": number, "commission_safe_id": int (optional),
        "maintenance_deposit": number,
        "payment_type": "cash" | "installment",
        "installment_frequency": "monthly" | "quarterly" | "semiannual" | "annual",
        "installment_count": int, "extra_annual_count": int, "annual_payment": number
    }

    Returns:
        201: Contract created, unit sold, schedule generated
        400: Unit unavailable, partner shares not 100%, invalid terms
        404: Unit, customer or safe not found
    """
    try:
        contract = contract_service.create_contract(audit_context_from_request(), **json_body())
        return ok(contract.to_dict(), message="Contract created", status=201)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to create contract")


@contracts_bp.get("/<int:contract_id>")
@require_auth
def get_contract_route(contract_id: int):
    try:
        contract = get_active(Contract, contract_id, g.org_id, label="Contract")
        installments, _ = installment_service.list_installments(
            g.org_id, contract_id=contract.id, limit=500
        )
        return ok({**contract.to_dict(), "installments": installments})
    except NotFoundError as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to load contract")


@contracts_bp.put("/<int:contract_id>")
@require_auth
def update_contract_route(contract_id: int):
    try:
        contract = contract_service.update_contract(audit_context_from_request(), contract_id, **json_body())
        return ok(contract.to_dict(), message="Contract updated")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to update contract")


@contracts_bp.get("/<int:contract_id>/can-delete")
@require_auth
def can_delete_contract_route(contract_id: int):
    try:
        return ok(soft_delete_service.can_delete(g.org_id, "contract", contract_id).to_dict())
    except (ValidationError, NotFoundError) as e:
        return service_error(e)


@contracts_bp.delete("/<int:contract_id>")
@require_auth
def delete_contract_route(contract_id: int):
    """
    Returns:
        200: Contract deleted, unpaid installments deleted, unit available again
        400: Unit has paid installments
        404: Contract not found (or already deleted)
    """
    try:
        contract_service.delete_contract(audit_context_from_request(), contract_id)
        return ok(None, message="Contract deleted")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to delete contract")
