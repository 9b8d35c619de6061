# Overview: Service-layer operations for installments; schedule generation, payment and status.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy import or_

from ..extensions import db
from ..models import Contract, Installment, Unit, Voucher
from ..models.property import (
    INSTALLMENT_FREQUENCIES,
    INSTALLMENT_STATUS_PAID,
    INSTALLMENT_STATUS_PENDING,
)
from ..models.treasury import VOUCHER_TYPE_RECEIPT
from ..money import cents_to_decimal
from ..repository import active_query, get_active, paginate_list
from ..time_utils import add_months, parse_iso_date, today
from ..validation import (
    LedgerError,
    ModelValidationPolicy,
    ValidationError,
    enforce_field_rules,
    validate_payload,
)
from . import ledger_service
from .audit_service import AuditContext, append_audit_entry
from .kpi_service import effective_installment_statuses
from .unit_of_work import run_in_unit_of_work

INSTALLMENT_POLICY = ModelValidationPolicy(
    writable_fields={"unit_id", "contract_id", "amount", "due_date", "status", "notes"},
    required_on_create={"unit_id", "amount", "due_date"},
    money_fields={"amount": "amount_cents"},
)

INSTALLMENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"amount", "due_date", "status", "notes"},
    money_fields={"amount": "amount_cents"},
)


@dataclass(frozen=True)
class ScheduledInstallment:
    amount_cents: int
    due_date: date
    notes: str


def build_schedule(
    *,
    start_date: date,
    total_price_cents: int,
    discount_cents: int = 0,
    down_payment_cents: int = 0,
    maintenance_deposit_cents: int = 0,
    frequency: str = "monthly",
    installment_count: int = 0,
    extra_annual_count: int = 0,
    annual_payment_cents: int = 0,
) -> list[ScheduledInstallment]:
    """
    Installment plan for a contract.

    base = price - maintenance - discount - down payment - annual payments.
    The base is split into installment_count regular installments every
    1/3/6/12 months from the start date; each is floor(base / count) and
    the last one absorbs the remainder, so the regular installments sum to
    exactly base. Extra annual payments follow (12, 24, ... months from the
    start), then the maintenance deposit one period after the latest due
    date.
    """
    if frequency not in INSTALLMENT_FREQUENCIES:
        raise ValidationError(f"installment_frequency must be one of: {', '.join(INSTALLMENT_FREQUENCIES)}")
    months = INSTALLMENT_FREQUENCIES[frequency]

    annual_total = extra_annual_count * annual_payment_cents
    base = (
        total_price_cents
        - maintenance_deposit_cents
        - discount_cents
        - down_payment_cents
        - annual_total
    )
    if base < 0:
        raise ValidationError(
            "Down payment, discount and annual payments exceed the amount available for installments"
        )

    schedule: list[ScheduledInstallment] = []

    if installment_count > 0:
        each = base // installment_count
        for i in range(installment_count):
            if i == installment_count - 1:
                amount = base - each * (installment_count - 1)
            else:
                amount = each
            schedule.append(ScheduledInstallment(
                amount_cents=amount,
                due_date=add_months(start_date, months * (i + 1)),
                notes=f"{frequency} installment {i + 1}",
            ))

    for j in range(extra_annual_count):
        schedule.append(ScheduledInstallment(
            amount_cents=annual_payment_cents,
            due_date=add_months(start_date, 12 * (j + 1)),
            notes="extra annual payment",
        ))

    if maintenance_deposit_cents > 0:
        last = max((s.due_date for s in schedule), default=start_date)
        schedule.append(ScheduledInstallment(
            amount_cents=maintenance_deposit_cents,
            due_date=add_months(last, months),
            notes="maintenance deposit",
        ))

    return [s for s in schedule if s.amount_cents > 0]


def add_schedule_rows(ctx: AuditContext, contract: Contract, schedule: list[ScheduledInstallment]) -> list[Installment]:
    """Insert generated installments; caller owns the unit of work."""
    rows = []
    for item in schedule:
        row = Installment(
            org_id=ctx.org_id,
            unit_id=contract.unit_id,
            contract_id=contract.id,
            amount_cents=item.amount_cents,
            due_date=item.due_date,
            status=INSTALLMENT_STATUS_PENDING,
            notes=item.notes,
        )
        db.session.add(row)
        rows.append(row)
    db.session.flush()
    return rows


def create_installment(ctx: AuditContext, **fields) -> Installment:
    patch = validate_payload(model=Installment, payload=fields, policy=INSTALLMENT_POLICY, partial=False)
    if patch.get("amount_cents") is not None and patch["amount_cents"] <= 0:
        raise ValidationError("amount must be greater than 0")
    enforce_field_rules("installment", patch)

    def _op():
        get_active(Unit, patch["unit_id"], ctx.org_id, label="Unit")
        if patch.get("contract_id") is not None:
            contract = get_active(Contract, patch["contract_id"], ctx.org_id, label="Contract")
            if contract.unit_id != patch["unit_id"]:
                raise ValidationError("Contract does not belong to this unit")
        installment = Installment(org_id=ctx.org_id, **patch)
        db.session.add(installment)
        db.session.flush()
        append_audit_entry(ctx, action="installment.created", entity_type="installment",
                           entity_id=installment.id, new_values=installment.to_dict())
        return installment

    return run_in_unit_of_work(_op)


def update_installment(ctx: AuditContext, installment_id: int, **changes) -> Installment:
    patch = validate_payload(model=Installment, payload=changes, policy=INSTALLMENT_UPDATE_POLICY, partial=True)
    if "amount_cents" in patch and (patch["amount_cents"] is None or patch["amount_cents"] <= 0):
        raise ValidationError("amount must be greater than 0")
    for required in ("due_date", "status"):
        if required in patch and patch[required] is None:
            raise ValidationError(f"{required} cannot be null")
    enforce_field_rules("installment", patch)

    def _op():
        installment = get_active(Installment, installment_id, ctx.org_id, label="Installment", for_update=True)
        old = installment.to_dict()
        for key, value in patch.items():
            setattr(installment, key, value)
        db.session.flush()
        append_audit_entry(ctx, action="installment.updated", entity_type="installment",
                           entity_id=installment.id, old_values=old, new_values=installment.to_dict())
        return installment

    return run_in_unit_of_work(_op)


def pay_installment(ctx: AuditContext, installment_id: int, *, safe_id, payment_date=None,
                    description: str | None = None) -> tuple[Installment, Voucher]:
    """
    Collect an installment into a safe.

    Records a receipt voucher for the installment amount (linked to the
    unit and contract) through the ledger and marks the installment paid,
    both in one unit of work.
    """
    if safe_id in (None, ""):
        raise ValidationError("safe_id is required")
    try:
        when = parse_iso_date(payment_date) if payment_date else today()
    except ValueError:
        raise ValidationError("date must be a YYYY-MM-DD date")

    def _op():
        installment = get_active(Installment, installment_id, ctx.org_id, label="Installment", for_update=True)
        if installment.status == INSTALLMENT_STATUS_PAID:
            raise LedgerError("Installment is already paid")

        unit = get_active(Unit, installment.unit_id, ctx.org_id, label="Unit")
        old = installment.to_dict()
        fields = {
            "type": VOUCHER_TYPE_RECEIPT,
            "amount": cents_to_decimal(installment.amount_cents),
            "safe_id": safe_id,
            "date": when,
            "description": description or f"Installment payment for unit {unit.code}",
            "unit_id": unit.id,
        }
        if installment.contract_id is not None:
            contract = active_query(Contract, ctx.org_id).filter(Contract.id == installment.contract_id).first()
            if contract is not None:
                fields["contract_id"] = contract.id
                fields["payer"] = contract.customer.name if contract.customer else None
        voucher = ledger_service.record_voucher(ctx, **fields)

        installment.status = INSTALLMENT_STATUS_PAID
        db.session.flush()
        append_audit_entry(ctx, action="installment.paid", entity_type="installment",
                           entity_id=installment.id, old_values=old,
                           new_values={**installment.to_dict(), "voucher_id": voucher.id})
        return installment, voucher

    return run_in_unit_of_work(_op)


def delete_installment(ctx: AuditContext, installment_id: int) -> Installment:
    from .soft_delete_service import soft_delete
    return soft_delete(ctx, "installment", installment_id)


def list_installments(
    org_id: int,
    *,
    unit_id: int | None = None,
    contract_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    page=None,
    limit=None,
) -> tuple[list[dict], dict]:
    """Installments with their effective status (stored status or inferred from receipts)."""
    query = active_query(Installment, org_id)
    if unit_id is not None:
        query = query.filter(Installment.unit_id == unit_id)
    if contract_id is not None:
        query = query.filter(Installment.contract_id == contract_id)
    if search:
        term = f"%{search}%"
        query = query.join(Unit, Unit.id == Installment.unit_id).filter(
            or_(Unit.code.ilike(term), Installment.notes.ilike(term))
        )
    query = query.order_by(Installment.due_date.asc(), Installment.id.asc())

    rows = query.all()
    unit_ids = {row.unit_id for row in rows}
    vouchers = []
    siblings = rows
    if unit_ids:
        vouchers = active_query(Voucher, org_id).filter(Voucher.unit_id.in_(unit_ids)).all()
        siblings = active_query(Installment, org_id).filter(Installment.unit_id.in_(unit_ids)).all()
    statuses = effective_installment_statuses(siblings, vouchers)

    items = []
    for row in rows:
        data = row.to_dict()
        data["effective_status"] = statuses.get(row.id, row.status)
        if status and data["effective_status"] != status:
            continue
        items.append(data)

    return paginate_list(items, page, limit)
