# Overview: Service-layer operations for safes, vouchers and transfers; owns every safe balance mutation.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Contract, Safe, Transfer, Unit, Voucher
from ..models.treasury import VOUCHER_TYPE_PAYMENT, VOUCHER_TYPE_RECEIPT
from ..money import from_cents
from ..repository import active_query, get_active, lock_active, paginate
from ..validation import (
    InsufficientBalanceError,
    LedgerError,
    ModelValidationPolicy,
    ValidationError,
    enforce_field_rules,
    validate_payload,
)
from .audit_service import AuditContext, append_audit_entry
from .unit_of_work import run_in_unit_of_work

"""
Ledger invariants (authoritative)

- A safe's balance_cents equals opening_balance_cents plus the signed
  effect of every ACTIVE voucher on it (receipt +amount, payment -amount)
  plus active transfers in, minus active transfers out.
- balance_cents is written here and nowhere else.
- Each operation is one unit of work: every safe it touches is locked in
  ascending id order, balances and rows change together, and the audit
  entry is appended in the same transaction.
- Deleted vouchers and transfers are terminal: a second delete or an
  update raises NotFoundError.
"""

SAFE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "opening_balance", "notes"},
    required_on_create={"name"},
    money_fields={"opening_balance": "opening_balance_cents"},
)

SAFE_UPDATE_POLICY = ModelValidationPolicy(writable_fields={"name", "notes"})

VOUCHER_POLICY = ModelValidationPolicy(
    writable_fields={
        "type", "amount", "safe_id", "date", "description",
        "payer", "beneficiary", "unit_id", "contract_id",
    },
    required_on_create={"type", "amount", "safe_id", "date", "description"},
    money_fields={"amount": "amount_cents"},
)

TRANSFER_POLICY = ModelValidationPolicy(
    writable_fields={"from_safe_id", "to_safe_id", "amount", "description"},
    required_on_create={"from_safe_id", "to_safe_id", "amount"},
    money_fields={"amount": "amount_cents"},
)


def voucher_delta_cents(voucher_type: str, amount_cents: int) -> int:
    if voucher_type == VOUCHER_TYPE_RECEIPT:
        return amount_cents
    if voucher_type == VOUCHER_TYPE_PAYMENT:
        return -amount_cents
    raise ValidationError(f"Invalid voucher type: {voucher_type}")


def _apply_delta(safe: Safe, delta_cents: int) -> None:
    safe.balance_cents = (safe.balance_cents or 0) + delta_cents


def _require_positive_amount(patch: dict) -> None:
    if "amount_cents" in patch and (patch["amount_cents"] is None or patch["amount_cents"] <= 0):
        raise ValidationError("amount must be greater than 0")


def _ensure_unique_safe_name(org_id: int, name: str, exclude_id: int | None = None) -> None:
    query = active_query(Safe, org_id).filter(func.lower(Safe.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Safe.id != exclude_id)
    if query.first() is not None:
        raise ValidationError(f"A safe named '{name}' already exists")


# ---------------------------------------------------------------------------
# Safes
# ---------------------------------------------------------------------------

def create_safe(ctx: AuditContext, **fields) -> Safe:
    """Create a safe; its running balance starts at the opening balance."""
    patch = validate_payload(model=Safe, payload=fields, policy=SAFE_POLICY, partial=False)
    patch.setdefault("opening_balance_cents", 0)
    enforce_field_rules("safe", patch)

    def _op():
        _ensure_unique_safe_name(ctx.org_id, patch["name"])
        safe = Safe(org_id=ctx.org_id, balance_cents=patch["opening_balance_cents"], **patch)
        db.session.add(safe)
        db.session.flush()
        append_audit_entry(ctx, action="safe.created", entity_type="safe",
                           entity_id=safe.id, new_values=safe.to_dict())
        return safe

    return run_in_unit_of_work(_op)


def update_safe(ctx: AuditContext, safe_id: int, **changes) -> Safe:
    """Rename or annotate a safe. Balances only move through vouchers and transfers."""
    patch = validate_payload(model=Safe, payload=changes, policy=SAFE_UPDATE_POLICY, partial=True)

    def _op():
        safe = get_active(Safe, safe_id, ctx.org_id, label="Safe", for_update=True)
        old = safe.to_dict()
        if "name" in patch:
            _ensure_unique_safe_name(ctx.org_id, patch["name"], exclude_id=safe.id)
        for key, value in patch.items():
            setattr(safe, key, value)
        db.session.flush()
        append_audit_entry(ctx, action="safe.updated", entity_type="safe",
                           entity_id=safe.id, old_values=old, new_values=safe.to_dict())
        return safe

    return run_in_unit_of_work(_op)


def list_safes(org_id: int, *, search: str | None = None, page=None, limit=None):
    query = active_query(Safe, org_id)
    if search:
        query = query.filter(Safe.name.ilike(f"%{search}%"))
    return paginate(query.order_by(Safe.name.asc(), Safe.id.asc()), page, limit)


# ---------------------------------------------------------------------------
# Vouchers
# ---------------------------------------------------------------------------

def _check_voucher_links(org_id: int, patch: dict) -> None:
    if patch.get("unit_id") is not None:
        get_active(Unit, patch["unit_id"], org_id, label="Unit")
    if patch.get("contract_id") is not None:
        get_active(Contract, patch["contract_id"], org_id, label="Contract")


def record_voucher(ctx: AuditContext, **fields) -> Voucher:
    """
    Insert a receipt or payment voucher and move its safe's balance by
    the voucher's delta in the same transaction.

    Raises ValidationError for a non-positive amount, unknown type or
    missing required field; NotFoundError when the safe (or a linked
    unit/contract) is missing, deleted, or belongs to another tenant.
    """
    patch = validate_payload(model=Voucher, payload=fields, policy=VOUCHER_POLICY, partial=False)
    _require_positive_amount(patch)
    enforce_field_rules("voucher", patch)

    def _op():
        _check_voucher_links(ctx.org_id, patch)
        safes = lock_active(Safe, [patch["safe_id"]], ctx.org_id, label="Safe")
        safe = safes[patch["safe_id"]]

        voucher = Voucher(org_id=ctx.org_id, **patch)
        _apply_delta(safe, voucher_delta_cents(voucher.type, voucher.amount_cents))
        db.session.add(voucher)
        db.session.flush()

        append_audit_entry(ctx, action="voucher.created", entity_type="voucher",
                           entity_id=voucher.id, new_values=voucher.to_dict())
        return voucher

    return run_in_unit_of_work(_op)


def update_voucher(ctx: AuditContext, voucher_id: int, **changes) -> Voucher:
    """
    Edit an active voucher.

    Inside one transaction: (a) the old delta is reversed on the old safe,
    (b) the new delta is applied on the new safe (the same row when
    safe_id is unchanged), (c) the new field values are persisted. When
    the voucher moves between safes both rows are locked and commit
    together or not at all.
    """
    patch = validate_payload(model=Voucher, payload=changes, policy=VOUCHER_POLICY, partial=True)
    _require_positive_amount(patch)
    enforce_field_rules("voucher", patch)
    for required in ("type", "safe_id", "date", "description"):
        if required in patch and patch[required] is None:
            raise ValidationError(f"{required} cannot be null")

    def _op():
        voucher = get_active(Voucher, voucher_id, ctx.org_id, label="Voucher", for_update=True)
        _check_voucher_links(ctx.org_id, patch)
        old = voucher.to_dict()

        old_safe_id = voucher.safe_id
        new_safe_id = patch.get("safe_id", old_safe_id)
        safes = lock_active(Safe, [old_safe_id, new_safe_id], ctx.org_id, label="Safe")

        old_delta = voucher_delta_cents(voucher.type, voucher.amount_cents)
        new_delta = voucher_delta_cents(
            patch.get("type", voucher.type),
            patch.get("amount_cents", voucher.amount_cents),
        )

        _apply_delta(safes[old_safe_id], -old_delta)
        _apply_delta(safes[new_safe_id], new_delta)

        for key, value in patch.items():
            setattr(voucher, key, value)
        db.session.flush()
        db.session.refresh(voucher)

        append_audit_entry(ctx, action="voucher.updated", entity_type="voucher",
                           entity_id=voucher.id, old_values=old, new_values=voucher.to_dict())
        return voucher

    return run_in_unit_of_work(_op)


def delete_voucher(ctx: AuditContext, voucher_id: int) -> Voucher:
    """Soft-delete a voucher after reversing its delta exactly once."""
    def _op():
        voucher = get_active(Voucher, voucher_id, ctx.org_id, label="Voucher", for_update=True)
        old = voucher.to_dict()
        safes = lock_active(Safe, [voucher.safe_id], ctx.org_id, label="Safe")

        _apply_delta(safes[voucher.safe_id], -voucher_delta_cents(voucher.type, voucher.amount_cents))
        voucher.mark_deleted()
        db.session.flush()

        append_audit_entry(ctx, action="voucher.deleted", entity_type="voucher",
                           entity_id=voucher.id, old_values=old)
        return voucher

    return run_in_unit_of_work(_op)


def list_vouchers(
    org_id: int,
    *,
    voucher_type: str | None = None,
    safe_id: int | None = None,
    unit_id: int | None = None,
    search: str | None = None,
    page=None,
    limit=None,
):
    query = active_query(Voucher, org_id)
    if voucher_type:
        query = query.filter(Voucher.type == voucher_type)
    if safe_id is not None:
        query = query.filter(Voucher.safe_id == safe_id)
    if unit_id is not None:
        query = query.filter(Voucher.unit_id == unit_id)
    if search:
        term = f"%{search}%"
        query = query.filter(or_(
            Voucher.description.ilike(term),
            Voucher.payer.ilike(term),
            Voucher.beneficiary.ilike(term),
        ))
    return paginate(query.order_by(Voucher.date.desc(), Voucher.id.desc()), page, limit)


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

def record_transfer(ctx: AuditContext, *, allow_negative: bool = False, **fields) -> Transfer:
    """
    Move cash between two safes of the organization.

    Rejects a transfer to the same safe and non-positive amounts. The
    source safe may not go below zero unless allow_negative is set
    (ALLOW_NEGATIVE_TRANSFER).
    """
    patch = validate_payload(model=Transfer, payload=fields, policy=TRANSFER_POLICY, partial=False)
    _require_positive_amount(patch)
    enforce_field_rules("transfer", patch)
    if patch["from_safe_id"] == patch["to_safe_id"]:
        raise LedgerError("Cannot transfer to the same safe")

    def _op():
        safes = lock_active(Safe, [patch["from_safe_id"], patch["to_safe_id"]], ctx.org_id, label="Safe")
        source = safes[patch["from_safe_id"]]
        target = safes[patch["to_safe_id"]]

        amount = patch["amount_cents"]
        if not allow_negative and source.balance_cents < amount:
            raise InsufficientBalanceError(
                f"Insufficient balance in safe '{source.name}': "
                f"available {from_cents(source.balance_cents):.2f}, requested {from_cents(amount):.2f}"
            )

        transfer = Transfer(org_id=ctx.org_id, **patch)
        _apply_delta(source, -amount)
        _apply_delta(target, amount)
        db.session.add(transfer)
        db.session.flush()

        append_audit_entry(ctx, action="transfer.created", entity_type="transfer",
                           entity_id=transfer.id, new_values=transfer.to_dict())
        return transfer

    return run_in_unit_of_work(_op)


def delete_transfer(ctx: AuditContext, transfer_id: int) -> Transfer:
    """Reverse both legs of a transfer and soft-delete it."""
    def _op():
        transfer = get_active(Transfer, transfer_id, ctx.org_id, label="Transfer", for_update=True)
        old = transfer.to_dict()
        safes = lock_active(Safe, [transfer.from_safe_id, transfer.to_safe_id], ctx.org_id, label="Safe")

        _apply_delta(safes[transfer.from_safe_id], transfer.amount_cents)
        _apply_delta(safes[transfer.to_safe_id], -transfer.amount_cents)
        transfer.mark_deleted()
        db.session.flush()

        append_audit_entry(ctx, action="transfer.deleted", entity_type="transfer",
                           entity_id=transfer.id, old_values=old)
        return transfer

    return run_in_unit_of_work(_op)


def list_transfers(org_id: int, *, safe_id: int | None = None, search: str | None = None, page=None, limit=None):
    query = active_query(Transfer, org_id)
    if safe_id is not None:
        query = query.filter(or_(Transfer.from_safe_id == safe_id, Transfer.to_safe_id == safe_id))
    if search:
        query = query.filter(Transfer.description.ilike(f"%{search}%"))
    return paginate(query.order_by(Transfer.created_at.desc(), Transfer.id.desc()), page, limit)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SafeReconciliation:
    safe_id: int
    name: str
    stored_cents: int
    expected_cents: int

    @property
    def drift_cents(self) -> int:
        return self.stored_cents - self.expected_cents

    @property
    def ok(self) -> bool:
        return self.drift_cents == 0

    def to_dict(self) -> dict:
        return {
            "safe_id": self.safe_id,
            "name": self.name,
            "stored_balance": from_cents(self.stored_cents),
            "expected_balance": from_cents(self.expected_cents),
            "drift": from_cents(self.drift_cents),
            "ok": self.ok,
        }


def _sum_cents(query, column) -> int:
    return int(query.with_entities(func.coalesce(func.sum(column), 0)).scalar() or 0)


def expected_balance_cents(org_id: int, safe: Safe) -> int:
    """Opening balance plus the effects of the safe's active vouchers and transfers."""
    vouchers = active_query(Voucher, org_id).filter(Voucher.safe_id == safe.id)
    receipts = _sum_cents(vouchers.filter(Voucher.type == VOUCHER_TYPE_RECEIPT), Voucher.amount_cents)
    payments = _sum_cents(vouchers.filter(Voucher.type == VOUCHER_TYPE_PAYMENT), Voucher.amount_cents)

    transfers = active_query(Transfer, org_id)
    incoming = _sum_cents(transfers.filter(Transfer.to_safe_id == safe.id), Transfer.amount_cents)
    outgoing = _sum_cents(transfers.filter(Transfer.from_safe_id == safe.id), Transfer.amount_cents)

    return (safe.opening_balance_cents or 0) + receipts - payments + incoming - outgoing


def reconcile_safe(org_id: int, safe_id: int, *, repair: bool = False,
                   ctx: AuditContext | None = None) -> SafeReconciliation:
    """
    Compare a safe's stored balance with the balance implied by its active
    movements. With repair=True a drifting balance is overwritten with the
    expected value (audited as safe.reconciled).
    """
    def _op():
        safe = get_active(Safe, safe_id, org_id, label="Safe", for_update=repair)
        result = SafeReconciliation(
            safe_id=safe.id,
            name=safe.name,
            stored_cents=safe.balance_cents or 0,
            expected_cents=expected_balance_cents(org_id, safe),
        )
        if repair and not result.ok:
            old = safe.to_dict()
            safe.balance_cents = result.expected_cents
            db.session.flush()
            append_audit_entry(ctx or AuditContext(org_id=org_id), action="safe.reconciled",
                               entity_type="safe", entity_id=safe.id,
                               old_values=old, new_values=safe.to_dict())
        return result

    if not repair:
        return _op()
    return run_in_unit_of_work(_op)


def reconcile_all(org_id: int, *, repair: bool = False, ctx: AuditContext | None = None) -> list[SafeReconciliation]:
    safe_ids = [row.id for row in active_query(Safe, org_id).order_by(Safe.id.asc()).all()]
    return [reconcile_safe(org_id, safe_id, repair=repair, ctx=ctx) for safe_id in safe_ids]
