# Overview: Service-layer operations for contracts; sale of a unit, schedule generation and deletion.

"""
Contract lifecycle.

create_contract sells a unit: in one unit of work it inserts the contract,
marks the unit sold, records the down-payment receipt and broker
commission payment through ledger_service (so safe balances move with
them) and generates the installment schedule.

delete_contract reverses the sale: it is gated by the contract can-delete
rule (no paid installments on the unit), soft-deletes the contract and its
unpaid installments, and returns the unit to available. Vouchers recorded
at creation are kept; they are separate ledger entries with their own
delete path.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Contract, Customer, Installment, Safe, Unit, UnitPartner
from ..models.property import (
    INSTALLMENT_STATUS_PAID,
    PAYMENT_TYPE_INSTALLMENT,
    UNIT_STATUS_AVAILABLE,
    UNIT_STATUS_SOLD,
)
from ..models.treasury import VOUCHER_TYPE_PAYMENT, VOUCHER_TYPE_RECEIPT
from ..money import cents_to_decimal
from ..repository import active_query, any_query, get_active, paginate
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_field_rules,
    validate_payload,
)
from . import installment_service, ledger_service
from .audit_service import AuditContext, append_audit_entry
from .unit_of_work import run_in_unit_of_work

CONTRACT_POLICY = ModelValidationPolicy(
    writable_fields={
        "unit_id", "customer_id", "start_date",
        "total_price", "discount_amount",
        "broker_name", "broker_amount", "commission_safe_id",
        "down_payment", "down_payment_safe_id", "maintenance_deposit",
        "payment_type", "installment_frequency", "installment_count",
        "extra_annual_count", "annual_payment",
    },
    required_on_create={"unit_id", "customer_id", "start_date", "total_price"},
    money_fields={
        "total_price": "total_price_cents",
        "discount_amount": "discount_cents",
        "broker_amount": "broker_amount_cents",
        "down_payment": "down_payment_cents",
        "maintenance_deposit": "maintenance_deposit_cents",
        "annual_payment": "annual_payment_cents",
    },
)

# Financial terms are fixed once the schedule exists; edits cover the paperwork.
CONTRACT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "start_date", "broker_name"},
)

CONTRACT_CODE_PREFIX = "CTR-"
FULL_SHARE_BPS = 10_000


def next_contract_code(org_id: int) -> str:
    """CTR-00001, CTR-00002, ... per organization; deleted contracts keep their codes."""
    number = any_query(Contract, org_id).count() + 1
    while True:
        code = f"{CONTRACT_CODE_PREFIX}{number:05d}"
        if any_query(Contract, org_id).filter(Contract.code == code).first() is None:
            return code
        number += 1


def _check_partner_shares(org_id: int, unit: Unit) -> None:
    shares = active_query(UnitPartner, org_id).filter(UnitPartner.unit_id == unit.id).all()
    if not shares:
        raise ValidationError(f"Unit {unit.code} has no partners; assign ownership before selling it")
    total = sum(s.share_bps for s in shares)
    if total != FULL_SHARE_BPS:
        raise ValidationError(
            f"Partner shares of unit {unit.code} total {total / 100:g}%; they must total exactly 100%"
        )


def create_contract(ctx: AuditContext, **fields) -> Contract:
    patch = validate_payload(model=Contract, payload=fields, policy=CONTRACT_POLICY, partial=False)
    enforce_field_rules("contract", patch)

    for key in ("discount_cents", "broker_amount_cents", "down_payment_cents",
                "maintenance_deposit_cents", "annual_payment_cents",
                "installment_count", "extra_annual_count"):
        if patch.get(key) is None:
            patch[key] = 0
    patch.setdefault("payment_type", PAYMENT_TYPE_INSTALLMENT)
    patch.setdefault("installment_frequency", "monthly")
    if patch["discount_cents"] > patch["total_price_cents"]:
        raise ValidationError("discount_amount cannot exceed total_price")

    schedule = []
    if patch["payment_type"] == PAYMENT_TYPE_INSTALLMENT:
        schedule = installment_service.build_schedule(
            start_date=patch["start_date"],
            total_price_cents=patch["total_price_cents"],
            discount_cents=patch["discount_cents"],
            down_payment_cents=patch["down_payment_cents"],
            maintenance_deposit_cents=patch["maintenance_deposit_cents"],
            frequency=patch["installment_frequency"],
            installment_count=patch["installment_count"],
            extra_annual_count=patch["extra_annual_count"],
            annual_payment_cents=patch["annual_payment_cents"],
        )

    def _op():
        unit = get_active(Unit, patch["unit_id"], ctx.org_id, label="Unit", for_update=True)
        if unit.status != UNIT_STATUS_AVAILABLE:
            raise ValidationError(f"Unit {unit.code} is not available for sale")
        customer = get_active(Customer, patch["customer_id"], ctx.org_id, label="Customer")
        if active_query(Contract, ctx.org_id).filter(Contract.unit_id == unit.id).first() is not None:
            raise ValidationError(f"Unit {unit.code} already has an active contract")
        _check_partner_shares(ctx.org_id, unit)
        for safe_key in ("down_payment_safe_id", "commission_safe_id"):
            if patch.get(safe_key) is not None:
                get_active(Safe, patch[safe_key], ctx.org_id, label="Safe")

        contract = Contract(org_id=ctx.org_id, code=next_contract_code(ctx.org_id), **patch)
        db.session.add(contract)
        unit.status = UNIT_STATUS_SOLD
        db.session.flush()

        if contract.down_payment_cents > 0 and contract.down_payment_safe_id:
            ledger_service.record_voucher(
                ctx,
                type=VOUCHER_TYPE_RECEIPT,
                amount=cents_to_decimal(contract.down_payment_cents),
                safe_id=contract.down_payment_safe_id,
                date=contract.start_date,
                description=f"Down payment for unit {unit.code}",
                payer=customer.name,
                contract_id=contract.id,
            )

        if contract.broker_amount_cents > 0 and contract.commission_safe_id:
            ledger_service.record_voucher(
                ctx,
                type=VOUCHER_TYPE_PAYMENT,
                amount=cents_to_decimal(contract.broker_amount_cents),
                safe_id=contract.commission_safe_id,
                date=contract.start_date,
                description=f"Broker commission for unit {unit.code}",
                beneficiary=contract.broker_name,
                contract_id=contract.id,
            )

        installment_service.add_schedule_rows(ctx, contract, schedule)

        append_audit_entry(ctx, action="contract.created", entity_type="contract",
                           entity_id=contract.id,
                           new_values={**contract.to_dict(), "installments_generated": len(schedule)})
        return contract

    return run_in_unit_of_work(_op)


def update_contract(ctx: AuditContext, contract_id: int, **changes) -> Contract:
    patch = validate_payload(model=Contract, payload=changes, policy=CONTRACT_UPDATE_POLICY, partial=True)
    for required in ("customer_id", "start_date"):
        if required in patch and patch[required] is None:
            raise ValidationError(f"{required} cannot be null")

    def _op():
        contract = get_active(Contract, contract_id, ctx.org_id, label="Contract", for_update=True)
        if "customer_id" in patch:
            get_active(Customer, patch["customer_id"], ctx.org_id, label="Customer")
        old = contract.to_dict()
        for key, value in patch.items():
            setattr(contract, key, value)
        db.session.flush()
        db.session.refresh(contract)
        append_audit_entry(ctx, action="contract.updated", entity_type="contract",
                           entity_id=contract.id, old_values=old, new_values=contract.to_dict())
        return contract

    return run_in_unit_of_work(_op)


def delete_contract(ctx: AuditContext, contract_id: int) -> Contract:
    """
    Soft-delete a contract and release its unit.

    Raises DeleteBlockedError when the unit has paid installments and
    NotFoundError when the contract is missing or already deleted.
    """
    from .soft_delete_service import check_can_delete

    def _op():
        contract = get_active(Contract, contract_id, ctx.org_id, label="Contract", for_update=True)
        check_can_delete(ctx.org_id, "contract", contract.id)
        old = contract.to_dict()

        contract.mark_deleted()
        cascaded = (
            active_query(Installment, ctx.org_id)
            .filter(
                or_(Installment.contract_id == contract.id, Installment.unit_id == contract.unit_id),
                Installment.status != INSTALLMENT_STATUS_PAID,
            )
            .all()
        )
        for installment in cascaded:
            installment.mark_deleted(contract.deleted_at)

        unit = active_query(Unit, ctx.org_id).filter(Unit.id == contract.unit_id).first()
        if unit is not None:
            unit.status = UNIT_STATUS_AVAILABLE
        db.session.flush()

        append_audit_entry(ctx, action="contract.deleted", entity_type="contract",
                           entity_id=contract.id, old_values=old,
                           new_values={"installments_deleted": len(cascaded),
                                       "unit_status": UNIT_STATUS_AVAILABLE if unit is not None else None})
        return contract

    return run_in_unit_of_work(_op)


def list_contracts(org_id: int, *, search: str | None = None, page=None, limit=None):
    query = active_query(Contract, org_id)
    if search:
        term = f"%{search}%"
        query = (
            query.join(Unit, Unit.id == Contract.unit_id)
            .join(Customer, Customer.id == Contract.customer_id)
            .filter(or_(Contract.code.ilike(term), Unit.code.ilike(term), Customer.name.ilike(term)))
        )
    return paginate(query.order_by(Contract.start_date.desc(), Contract.id.desc()), page, limit)
