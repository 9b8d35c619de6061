# Overview: Generic Flask API routes for catalog entities (/api/customers, /api/units, ...).

"""
Catalog API routes

One blueprint serves every CRUD-only entity. The first path segment picks
the entity from CATALOG_SLUGS; unknown segments fall through to 404.

    GET    /api/<entity>                 list (search, page, limit, column filters)
    POST   /api/<entity>                 create
    GET    /api/<entity>/<id>            fetch
    PUT    /api/<entity>/<id>            update
    DELETE /api/<entity>/<id>            soft delete (blocked by can-delete rules)
    GET    /api/<entity>/<id>/can-delete evaluate the delete rule
    POST   /api/broker-dues/<id>/pay     pay a broker due from a safe
    POST   /api/partner-debts/<id>/pay   settle a partner debt
"""

from flask import Blueprint, abort, current_app, g, request

from ..decorators import require_auth
from ..responses import (
    audit_context_from_request,
    internal_error,
    json_body,
    ok,
    page_args,
    service_error,
)
from ..services import catalog_service, soft_delete_service
from ..validation import NotFoundError, ValidationError

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

CATALOG_SLUGS = {
    "customers": "customer",
    "units": "unit",
    "partners": "partner",
    "unit-partners": "unit_partner",
    "partner-groups": "partner_group",
    "partner-group-members": "partner_group_member",
    "brokers": "broker",
    "broker-dues": "broker_due",
    "partner-debts": "partner_debt",
}

RESERVED_ARGS = {"page", "limit", "search"}


def _entity(slug: str) -> str:
    entity = CATALOG_SLUGS.get(slug)
    if entity is None:
        abort(404)
    return entity


def _filters() -> dict:
    filters = {}
    for key, value in request.args.items():
        if key in RESERVED_ARGS or value == "":
            continue
        if key.endswith("_id"):
            try:
                value = int(value)
            except ValueError:
                raise ValidationError(f"{key} must be an integer")
        filters[key] = value
    return filters


@catalog_bp.get("/<slug>")
@require_auth
def list_entities_route(slug: str):
    entity = _entity(slug)
    try:
        rows, pagination = catalog_service.list_entities(
            g.org_id, entity,
            search=request.args.get("search"),
            filters=_filters(),
            **page_args(),
        )
        return ok([row.to_dict() for row in rows], pagination=pagination)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error(f"Failed to list {slug}")


@catalog_bp.post("/<slug>")
@require_auth
def create_entity_route(slug: str):
    entity = _entity(slug)
    try:
        row = catalog_service.create_entity(audit_context_from_request(), entity, **json_body())
        return ok(row.to_dict(), message="Created", status=201)
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error(f"Failed to create {entity}")


@catalog_bp.get("/<slug>/<int:entity_id>")
@require_auth
def get_entity_route(slug: str, entity_id: int):
    entity = _entity(slug)
    try:
        return ok(catalog_service.get_entity(g.org_id, entity, entity_id).to_dict())
    except (ValidationError, NotFoundError) as e:
        return service_error(e)


@catalog_bp.put("/<slug>/<int:entity_id>")
@require_auth
def update_entity_route(slug: str, entity_id: int):
    entity = _entity(slug)
    try:
        row = catalog_service.update_entity(audit_context_from_request(), entity, entity_id, **json_body())
        return ok(row.to_dict(), message="Updated")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error(f"Failed to update {entity}")


@catalog_bp.get("/<slug>/<int:entity_id>/can-delete")
@require_auth
def can_delete_entity_route(slug: str, entity_id: int):
    entity = _entity(slug)
    try:
        return ok(soft_delete_service.can_delete(g.org_id, entity, entity_id).to_dict())
    except (ValidationError, NotFoundError) as e:
        return service_error(e)


@catalog_bp.delete("/<slug>/<int:entity_id>")
@require_auth
def delete_entity_route(slug: str, entity_id: int):
    entity = _entity(slug)
    try:
        soft_delete_service.soft_delete(audit_context_from_request(), entity, entity_id)
        return ok(None, message="Deleted")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error(f"Failed to delete {entity}")


@catalog_bp.post("/broker-dues/<int:due_id>/pay")
@require_auth
def pay_broker_due_route(due_id: int):
    """Request body: {"safe_id": int, "date": "YYYY-MM-DD" (optional), "notes": str (optional)}"""
    try:
        data = json_body()
        due, voucher = catalog_service.pay_broker_due(
            audit_context_from_request(),
            due_id,
            safe_id=data.get("safe_id"),
            payment_date=data.get("date"),
            notes=data.get("notes"),
            allow_negative=current_app.config.get("ALLOW_NEGATIVE_TRANSFER", False),
        )
        return ok({"broker_due": due.to_dict(), "voucher": voucher.to_dict()}, message="Broker due paid")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to pay broker due")


@catalog_bp.post("/partner-debts/<int:debt_id>/pay")
@require_auth
def pay_partner_debt_route(debt_id: int):
    try:
        debt = catalog_service.pay_partner_debt(audit_context_from_request(), debt_id)
        return ok(debt.to_dict(), message="Partner debt paid")
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to pay partner debt")
