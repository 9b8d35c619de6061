# Overview: Soft delete, restore and trash listing across all tenant entities.

"""
Soft delete rules.

Deleting never removes a row: it stamps deleted_at, after which
repository.active_query no longer returns it. Deletes that move money
(vouchers, transfers) or release a unit (contracts) are routed to the
service that owns that invariant.

Restore is offered for catalog rows only, within RESTORE_WINDOW_DAYS and
only when no active row has taken over the restored row's unique value.
Vouchers, transfers, contracts and installments stay deleted.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import func, or_

from ..extensions import db
from ..models import (
    Broker,
    BrokerDue,
    Contract,
    Customer,
    Installment,
    Partner,
    PartnerDebt,
    PartnerGroup,
    PartnerGroupMember,
    Safe,
    Transfer,
    Unit,
    UnitPartner,
    Voucher,
)
from ..models.property import INSTALLMENT_STATUS_PAID
from ..repository import active_query, get_active, paginate, paginate_list, trashed_query
from ..time_utils import to_utc_z, utcnow
from ..validation import DeleteBlockedError, NotFoundError, ValidationError
from .audit_service import AuditContext, append_audit_entry
from .unit_of_work import run_in_unit_of_work

RESTORE_WINDOW_DAYS = 30

ENTITY_MODELS = {
    "customer": Customer,
    "unit": Unit,
    "partner": Partner,
    "unit_partner": UnitPartner,
    "partner_group": PartnerGroup,
    "partner_group_member": PartnerGroupMember,
    "broker": Broker,
    "broker_due": BrokerDue,
    "partner_debt": PartnerDebt,
    "safe": Safe,
    "contract": Contract,
    "installment": Installment,
    "voucher": Voucher,
    "transfer": Transfer,
}

RESTORABLE = frozenset({
    "customer", "unit", "partner", "unit_partner", "partner_group",
    "partner_group_member", "broker", "broker_due", "partner_debt", "safe",
})


def resolve_entity_type(name: str) -> str:
    """Accept 'voucher', 'vouchers', 'broker-dues', 'broker_dues'..."""
    key = (name or "").strip().lower().replace("-", "_")
    if key in ENTITY_MODELS:
        return key
    if key.endswith("s") and key[:-1] in ENTITY_MODELS:
        return key[:-1]
    raise ValidationError(f"Unsupported entity type: {name}")


@dataclass(frozen=True)
class DeleteCheck:
    allowed: bool
    reason: str | None = None

    def to_dict(self) -> dict:
        return {"allowed": self.allowed, "reason": self.reason}


def _blocked(reason: str) -> DeleteCheck:
    return DeleteCheck(False, reason)


def _exists(query) -> bool:
    return query.first() is not None


def can_delete(org_id: int, entity_type: str, entity_id: int) -> DeleteCheck:
    """Evaluate the deletion rule for an active row."""
    entity_type = resolve_entity_type(entity_type)
    row = get_active(ENTITY_MODELS[entity_type], entity_id, org_id, label=entity_type)

    if entity_type == "customer":
        if _exists(active_query(Contract, org_id).filter(Contract.customer_id == row.id)):
            return _blocked("Customer has active contracts")

    elif entity_type == "unit":
        if _exists(active_query(Contract, org_id).filter(Contract.unit_id == row.id)):
            return _blocked("Unit is linked to an active contract")

    elif entity_type == "contract":
        paid = active_query(Installment, org_id).filter(
            Installment.unit_id == row.unit_id,
            Installment.status == INSTALLMENT_STATUS_PAID,
        )
        if _exists(paid):
            return _blocked("Contract has paid installments")

    elif entity_type == "installment":
        if row.status == INSTALLMENT_STATUS_PAID:
            return _blocked("Paid installments cannot be deleted")

    elif entity_type == "safe":
        if row.balance_cents:
            return _blocked("Safe balance must be zero before it can be deleted")
        if _exists(active_query(Voucher, org_id).filter(Voucher.safe_id == row.id)):
            return _blocked("Safe has active vouchers")
        moves = active_query(Transfer, org_id).filter(
            or_(Transfer.from_safe_id == row.id, Transfer.to_safe_id == row.id)
        )
        if _exists(moves):
            return _blocked("Safe has active transfers")

    elif entity_type == "partner":
        if _exists(active_query(UnitPartner, org_id).filter(UnitPartner.partner_id == row.id)):
            return _blocked("Partner holds unit shares")
        if _exists(active_query(PartnerDebt, org_id).filter(PartnerDebt.partner_id == row.id)):
            return _blocked("Partner has debts")

    elif entity_type == "partner_group":
        if _exists(active_query(PartnerGroupMember, org_id).filter(PartnerGroupMember.group_id == row.id)):
            return _blocked("Partner group still has members")

    elif entity_type == "broker":
        if _exists(active_query(BrokerDue, org_id).filter(BrokerDue.broker_id == row.id)):
            return _blocked("Broker has dues")

    return DeleteCheck(True)


def check_can_delete(org_id: int, entity_type: str, entity_id: int) -> None:
    check = can_delete(org_id, entity_type, entity_id)
    if not check.allowed:
        raise DeleteBlockedError(check.reason)


def soft_delete(ctx: AuditContext, entity_type: str, entity_id: int):
    """Soft-delete any entity, delegating ledger-affecting deletes to their owners."""
    entity_type = resolve_entity_type(entity_type)

    if entity_type == "voucher":
        from .ledger_service import delete_voucher
        return delete_voucher(ctx, entity_id)
    if entity_type == "transfer":
        from .ledger_service import delete_transfer
        return delete_transfer(ctx, entity_id)
    if entity_type == "contract":
        from .contract_service import delete_contract
        return delete_contract(ctx, entity_id)

    model = ENTITY_MODELS[entity_type]

    def _op():
        row = get_active(model, entity_id, ctx.org_id, label=entity_type, for_update=True)
        check_can_delete(ctx.org_id, entity_type, row.id)
        old = row.to_dict()
        row.mark_deleted()
        db.session.flush()
        append_audit_entry(ctx, action=f"{entity_type}.deleted", entity_type=entity_type,
                           entity_id=row.id, old_values=old)
        return row

    return run_in_unit_of_work(_op)


def _restore_conflict(org_id: int, entity_type: str, row) -> str | None:
    if entity_type == "unit":
        clash = active_query(Unit, org_id).filter(Unit.code == row.code)
        if _exists(clash):
            return f"An active unit with code {row.code} already exists"
    elif entity_type == "customer" and row.phone:
        if _exists(active_query(Customer, org_id).filter(Customer.phone == row.phone)):
            return f"An active customer with phone {row.phone} already exists"
    elif entity_type == "safe":
        if _exists(active_query(Safe, org_id).filter(func.lower(Safe.name) == row.name.lower())):
            return f"An active safe named '{row.name}' already exists"
    elif entity_type == "unit_partner":
        if not _exists(active_query(Unit, org_id).filter(Unit.id == row.unit_id)):
            return "The unit of this share is deleted"
        if not _exists(active_query(Partner, org_id).filter(Partner.id == row.partner_id)):
            return "The partner of this share is deleted"
    return None


def restore_entity(ctx: AuditContext, entity_type: str, entity_id: int):
    entity_type = resolve_entity_type(entity_type)
    if entity_type not in RESTORABLE:
        raise ValidationError(f"Deleted {entity_type} records cannot be restored")
    model = ENTITY_MODELS[entity_type]

    try:
        entity_id = int(entity_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"Deleted {entity_type} {entity_id} not found")

    def _op():
        row = trashed_query(model, ctx.org_id).filter(model.id == entity_id).first()
        if row is None:
            raise NotFoundError(f"Deleted {entity_type} {entity_id} not found")
        if row.deleted_at < utcnow() - timedelta(days=RESTORE_WINDOW_DAYS):
            raise ValidationError(f"Restore window of {RESTORE_WINDOW_DAYS} days has passed")
        conflict = _restore_conflict(ctx.org_id, entity_type, row)
        if conflict:
            raise ValidationError(conflict)

        old = row.to_dict()
        row.restore()
        db.session.flush()
        append_audit_entry(ctx, action=f"{entity_type}.restored", entity_type=entity_type,
                           entity_id=row.id, old_values=old, new_values=row.to_dict())
        return row

    return run_in_unit_of_work(_op)


def _trash_label(row) -> str:
    for attr in ("code", "name", "description"):
        value = getattr(row, attr, None)
        if value:
            return str(value)
    return f"#{row.id}"


def _trash_item(entity_type: str, row) -> dict:
    return {
        "entity_type": entity_type,
        "id": row.id,
        "label": _trash_label(row),
        "deleted_at": to_utc_z(row.deleted_at),
        "restorable": entity_type in RESTORABLE,
        "data": row.to_dict(),
    }


def list_trash(org_id: int, entity_type: str | None = None, *, page=None, limit=None):
    if entity_type:
        entity_type = resolve_entity_type(entity_type)
        model = ENTITY_MODELS[entity_type]
        query = trashed_query(model, org_id).order_by(model.deleted_at.desc(), model.id.desc())
        rows, pagination = paginate(query, page, limit)
        return [_trash_item(entity_type, row) for row in rows], pagination

    items = []
    for name, model in ENTITY_MODELS.items():
        items.extend(_trash_item(name, row) for row in trashed_query(model, org_id).all())
    items.sort(key=lambda item: (item["deleted_at"] or "", item["id"]), reverse=True)

    return paginate_list(items, page, limit)
