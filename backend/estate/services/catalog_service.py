# Overview: Generic CRUD for catalog entities (customers, units, partners, brokers and their obligations).

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import or_

from ..extensions import db
from ..models import (
    Broker,
    BrokerDue,
    Contract,
    Customer,
    Partner,
    PartnerDebt,
    PartnerGroup,
    PartnerGroupMember,
    Safe,
    Unit,
    UnitPartner,
)
from ..models.parties import OBLIGATION_STATUS_PAID
from ..models.property import UNIT_STATUS_SOLD
from ..models.treasury import VOUCHER_TYPE_PAYMENT
from ..money import cents_to_decimal, from_cents
from ..repository import active_query, get_active, lock_active, paginate
from ..time_utils import parse_iso_date, today
from ..validation import (
    InsufficientBalanceError,
    LedgerError,
    ModelValidationPolicy,
    ValidationError,
    enforce_field_rules,
    validate_payload,
)
from . import ledger_service
from .audit_service import AuditContext, append_audit_entry
from .unit_of_work import run_in_unit_of_work

FULL_SHARE_BPS = 10_000

Checker = Callable[[int, dict, Any], None]


@dataclass(frozen=True)
class CatalogEntity:
    """
    Registry entry for a CRUD-only entity.

    check(org_id, patch, existing) runs inside the unit of work, after
    payload validation and FIELD_RULES; existing is None on create.
    """
    name: str
    model: Any
    policy: ModelValidationPolicy
    update_policy: ModelValidationPolicy | None = None
    search_columns: tuple[str, ...] = ()
    order_by: tuple[str, ...] = ("id",)
    check: Checker | None = None


# ---------------------------------------------------------------------------
# Entity specific checks
# ---------------------------------------------------------------------------

def _check_customer(org_id: int, patch: dict, existing) -> None:
    phone = patch.get("phone")
    if phone:
        query = active_query(Customer, org_id).filter(Customer.phone == phone)
        if existing is not None:
            query = query.filter(Customer.id != existing.id)
        if query.first() is not None:
            raise ValidationError(f"A customer with phone {phone} already exists")


def _check_unit(org_id: int, patch: dict, existing) -> None:
    code = patch.get("code")
    if code:
        query = active_query(Unit, org_id).filter(Unit.code == code)
        if existing is not None:
            query = query.filter(Unit.id != existing.id)
        if query.first() is not None:
            raise ValidationError(f"A unit with code {code} already exists")

    status = patch.get("status")
    if status is None or (existing is not None and status == existing.status):
        return
    if status == UNIT_STATUS_SOLD:
        raise ValidationError("Units are marked sold by creating a contract")
    if existing is not None:
        contract = active_query(Contract, org_id).filter(Contract.unit_id == existing.id).first()
        if contract is not None:
            raise ValidationError(f"Unit {existing.code} status follows contract {contract.code}")


def _check_unit_partner(org_id: int, patch: dict, existing) -> None:
    unit_id = patch.get("unit_id", existing.unit_id if existing is not None else None)
    partner_id = patch.get("partner_id", existing.partner_id if existing is not None else None)
    unit = get_active(Unit, unit_id, org_id, label="Unit")
    get_active(Partner, partner_id, org_id, label="Partner")

    others = active_query(UnitPartner, org_id).filter(UnitPartner.unit_id == unit.id)
    if existing is not None:
        others = others.filter(UnitPartner.id != existing.id)
    if others.filter(UnitPartner.partner_id == partner_id).first() is not None:
        raise ValidationError("This partner already holds a share of the unit")

    share = patch.get("share_bps", existing.share_bps if existing is not None else 0)
    allocated = sum(row.share_bps for row in others.all())
    if allocated + share > FULL_SHARE_BPS:
        raise ValidationError(
            f"Partner shares of unit {unit.code} would total {(allocated + share) / 100:g}%; the maximum is 100%"
        )


def _check_group_member(org_id: int, patch: dict, existing) -> None:
    group_id = patch.get("group_id", existing.group_id if existing is not None else None)
    partner_id = patch.get("partner_id", existing.partner_id if existing is not None else None)
    get_active(PartnerGroup, group_id, org_id, label="Partner group")
    get_active(Partner, partner_id, org_id, label="Partner")

    members = active_query(PartnerGroupMember, org_id).filter(PartnerGroupMember.group_id == group_id)
    if existing is not None:
        members = members.filter(PartnerGroupMember.id != existing.id)
    if members.filter(PartnerGroupMember.partner_id == partner_id).first() is not None:
        raise ValidationError("Partner is already a member of this group")
    share = patch.get("share_bps", existing.share_bps if existing is not None else 0)
    if sum(m.share_bps for m in members.all()) + share > FULL_SHARE_BPS:
        raise ValidationError("Member shares of a group cannot exceed 100%")


def _check_broker_due(org_id: int, patch: dict, existing) -> None:
    if "broker_id" in patch:
        get_active(Broker, patch["broker_id"], org_id, label="Broker")


def _check_partner_debt(org_id: int, patch: dict, existing) -> None:
    if "partner_id" in patch:
        get_active(Partner, patch["partner_id"], org_id, label="Partner")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

CATALOG: dict[str, CatalogEntity] = {
    "customer": CatalogEntity(
        name="customer",
        model=Customer,
        policy=ModelValidationPolicy(
            writable_fields={"name", "phone", "national_id", "address", "status", "notes"},
            required_on_create={"name", "phone"},
        ),
        search_columns=("name", "phone", "national_id"),
        order_by=("name", "id"),
        check=_check_customer,
    ),
    "unit": CatalogEntity(
        name="unit",
        model=Unit,
        policy=ModelValidationPolicy(
            writable_fields={"code", "name", "unit_type", "area", "floor", "building",
                             "total_price", "status", "notes"},
            required_on_create={"code"},
            money_fields={"total_price": "total_price_cents"},
        ),
        search_columns=("code", "name", "building"),
        order_by=("code", "id"),
        check=_check_unit,
    ),
    "partner": CatalogEntity(
        name="partner",
        model=Partner,
        policy=ModelValidationPolicy(
            writable_fields={"name", "phone", "notes"},
            required_on_create={"name"},
        ),
        search_columns=("name", "phone"),
        order_by=("name", "id"),
    ),
    "unit_partner": CatalogEntity(
        name="unit_partner",
        model=UnitPartner,
        policy=ModelValidationPolicy(
            writable_fields={"unit_id", "partner_id", "percentage"},
            required_on_create={"unit_id", "partner_id", "percentage"},
            share_fields={"percentage": "share_bps"},
        ),
        update_policy=ModelValidationPolicy(
            writable_fields={"percentage"},
            share_fields={"percentage": "share_bps"},
        ),
        check=_check_unit_partner,
    ),
    "partner_group": CatalogEntity(
        name="partner_group",
        model=PartnerGroup,
        policy=ModelValidationPolicy(
            writable_fields={"name", "notes"},
            required_on_create={"name"},
        ),
        search_columns=("name",),
        order_by=("name", "id"),
    ),
    "partner_group_member": CatalogEntity(
        name="partner_group_member",
        model=PartnerGroupMember,
        policy=ModelValidationPolicy(
            writable_fields={"group_id", "partner_id", "percentage"},
            required_on_create={"group_id", "partner_id"},
            share_fields={"percentage": "share_bps"},
        ),
        update_policy=ModelValidationPolicy(
            writable_fields={"percentage"},
            share_fields={"percentage": "share_bps"},
        ),
        check=_check_group_member,
    ),
    "broker": CatalogEntity(
        name="broker",
        model=Broker,
        policy=ModelValidationPolicy(
            writable_fields={"name", "phone", "notes"},
            required_on_create={"name"},
        ),
        search_columns=("name", "phone"),
        order_by=("name", "id"),
    ),
    "broker_due": CatalogEntity(
        name="broker_due",
        model=BrokerDue,
        policy=ModelValidationPolicy(
            writable_fields={"broker_id", "amount", "due_date", "notes"},
            required_on_create={"broker_id", "amount", "due_date"},
            money_fields={"amount": "amount_cents"},
        ),
        update_policy=ModelValidationPolicy(
            writable_fields={"amount", "due_date", "notes"},
            money_fields={"amount": "amount_cents"},
        ),
        search_columns=("notes",),
        order_by=("due_date", "id"),
        check=_check_broker_due,
    ),
    "partner_debt": CatalogEntity(
        name="partner_debt",
        model=PartnerDebt,
        policy=ModelValidationPolicy(
            writable_fields={"partner_id", "amount", "due_date", "notes"},
            required_on_create={"partner_id", "amount", "due_date"},
            money_fields={"amount": "amount_cents"},
        ),
        update_policy=ModelValidationPolicy(
            writable_fields={"amount", "due_date", "notes"},
            money_fields={"amount": "amount_cents"},
        ),
        search_columns=("notes",),
        order_by=("due_date", "id"),
        check=_check_partner_debt,
    ),
}


def resolve_catalog_entity(name: str) -> CatalogEntity:
    key = (name or "").strip().lower().replace("-", "_")
    if key not in CATALOG and key.endswith("s"):
        key = key[:-1]
    entity = CATALOG.get(key)
    if entity is None:
        raise ValidationError(f"Unsupported entity type: {name}")
    return entity


def _clean_patch(entity: CatalogEntity, payload: dict, *, partial: bool) -> dict:
    policy = entity.policy if not partial else (entity.update_policy or entity.policy)
    patch = validate_payload(model=entity.model, payload=payload, policy=policy, partial=partial)
    for column in ("amount_cents",):
        if column in patch and (patch[column] is None or patch[column] <= 0):
            raise ValidationError("amount must be greater than 0")
    enforce_field_rules(entity.name, patch)
    return patch


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def create_entity(ctx: AuditContext, entity_name: str, **fields):
    entity = resolve_catalog_entity(entity_name)
    patch = _clean_patch(entity, fields, partial=False)

    def _op():
        if entity.check is not None:
            entity.check(ctx.org_id, patch, None)
        row = entity.model(org_id=ctx.org_id, **patch)
        db.session.add(row)
        db.session.flush()
        append_audit_entry(ctx, action=f"{entity.name}.created", entity_type=entity.name,
                           entity_id=row.id, new_values=row.to_dict())
        return row

    return run_in_unit_of_work(_op)


def update_entity(ctx: AuditContext, entity_name: str, entity_id: int, **changes):
    entity = resolve_catalog_entity(entity_name)
    patch = _clean_patch(entity, changes, partial=True)

    def _op():
        row = get_active(entity.model, entity_id, ctx.org_id, label=entity.name, for_update=True)
        if entity.check is not None:
            entity.check(ctx.org_id, patch, row)
        old = row.to_dict()
        for key, value in patch.items():
            setattr(row, key, value)
        db.session.flush()
        append_audit_entry(ctx, action=f"{entity.name}.updated", entity_type=entity.name,
                           entity_id=row.id, old_values=old, new_values=row.to_dict())
        return row

    return run_in_unit_of_work(_op)


def get_entity(org_id: int, entity_name: str, entity_id: int):
    entity = resolve_catalog_entity(entity_name)
    return get_active(entity.model, entity_id, org_id, label=entity.name)


def list_entities(org_id: int, entity_name: str, *, search: str | None = None,
                  filters: dict | None = None, page=None, limit=None):
    entity = resolve_catalog_entity(entity_name)
    model = entity.model
    query = active_query(model, org_id)

    for key, value in (filters or {}).items():
        if value in (None, ""):
            continue
        column = getattr(model, key, None)
        if column is None or key not in model.__mapper__.columns:
            raise ValidationError(f"Unknown filter: {key}")
        query = query.filter(column == value)

    if search and entity.search_columns:
        term = f"%{search}%"
        query = query.filter(or_(*[getattr(model, col).ilike(term) for col in entity.search_columns]))

    query = query.order_by(*[getattr(model, col).asc() for col in entity.order_by])
    return paginate(query, page, limit)


# ---------------------------------------------------------------------------
# Obligations
# ---------------------------------------------------------------------------

def pay_broker_due(ctx: AuditContext, due_id: int, *, safe_id, payment_date=None,
                   notes: str | None = None, allow_negative: bool = False):
    """
    Pay a broker commission from a safe: records a payment voucher through
    the ledger and marks the due paid, in one unit of work. The safe must
    hold enough cash unless allow_negative is set.
    """
    if safe_id in (None, ""):
        raise ValidationError("safe_id is required")
    try:
        safe_id = int(safe_id)
    except (TypeError, ValueError):
        raise ValidationError("safe_id must be an integer")
    try:
        when = parse_iso_date(payment_date) if payment_date else today()
    except ValueError:
        raise ValidationError("payment_date must be a YYYY-MM-DD date")

    def _op():
        due = get_active(BrokerDue, due_id, ctx.org_id, label="Broker due", for_update=True)
        if due.status == OBLIGATION_STATUS_PAID:
            raise LedgerError("Broker due is already paid")
        safe = lock_active(Safe, [safe_id], ctx.org_id, label="Safe")[safe_id]
        if not allow_negative and safe.balance_cents < due.amount_cents:
            raise InsufficientBalanceError(
                f"Insufficient balance in safe '{safe.name}': "
                f"available {from_cents(safe.balance_cents):.2f}, requested {from_cents(due.amount_cents):.2f}"
            )
        old = due.to_dict()
        broker_name = due.broker.name if due.broker else None

        voucher = ledger_service.record_voucher(
            ctx,
            type=VOUCHER_TYPE_PAYMENT,
            amount=cents_to_decimal(due.amount_cents),
            safe_id=safe.id,
            date=when,
            description=f"Broker commission payment {broker_name or ''}".strip(),
            beneficiary=broker_name,
        )
        due.status = OBLIGATION_STATUS_PAID
        due.voucher_id = voucher.id
        if notes:
            due.notes = f"{due.notes}\n{notes}" if due.notes else notes
        db.session.flush()
        append_audit_entry(ctx, action="broker_due.paid", entity_type="broker_due",
                           entity_id=due.id, old_values=old, new_values=due.to_dict())
        return due, voucher

    return run_in_unit_of_work(_op)


def pay_partner_debt(ctx: AuditContext, debt_id: int):
    """Mark a partner debt settled. No cash moves through a safe."""
    def _op():
        debt = get_active(PartnerDebt, debt_id, ctx.org_id, label="Partner debt", for_update=True)
        if debt.status == OBLIGATION_STATUS_PAID:
            raise LedgerError("Partner debt is already paid")
        old = debt.to_dict()
        debt.status = OBLIGATION_STATUS_PAID
        db.session.flush()
        append_audit_entry(ctx, action="partner_debt.paid", entity_type="partner_debt",
                           entity_id=debt.id, old_values=old, new_values=debt.to_dict())
        return debt

    return run_in_unit_of_work(_op)

