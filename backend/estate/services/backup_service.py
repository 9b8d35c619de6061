# Overview: JSON snapshot export and import (full replace of an organization's data).

"""
Backup snapshots

export_snapshot returns one list per table holding the organization's
active rows in their API shape (decimal amounts, ids), plus settings.

import_snapshot replaces the organization's data with a snapshot inside a
single unit of work:
  1. validate the snapshot shape
  2. soft-delete every active row of the organization
  3. insert the snapshot rows in dependency order, remapping ids
  4. recompute every imported safe's balance from its opening balance and
     the imported movements (a differing snapshot balance is reported as a
     warning, the recomputed value wins)
apply=False runs the same steps and rolls back, returning the stats.
"""
from __future__ import annotations

from dataclasses import dataclass

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
from ..money import from_cents
from ..repository import active_query
from ..time_utils import parse_iso_date, to_utc_z, utcnow
from ..validation import ValidationError, coerce_money, enforce_field_rules
from .audit_service import AuditContext, append_audit_entry
from .ledger_service import expected_balance_cents
from .settings_service import get_settings
from .unit_of_work import UnitOfWork

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class TableSpec:
    """
    fields: (snapshot key, column, kind). kind is one of text, int, money,
    share, date, or ref:<table> for a foreign key remapped on import.
    """
    table: str
    entity: str
    model: type
    fields: tuple[tuple[str, str, str], ...]


# Insertion order: referenced tables first.
TABLES: tuple[TableSpec, ...] = (
    TableSpec("safes", "safe", Safe, (
        ("name", "name", "text"),
        ("opening_balance", "opening_balance_cents", "money"),
        ("notes", "notes", "text"),
    )),
    TableSpec("customers", "customer", Customer, (
        ("name", "name", "text"),
        ("phone", "phone", "text"),
        ("national_id", "national_id", "text"),
        ("address", "address", "text"),
        ("status", "status", "text"),
        ("notes", "notes", "text"),
    )),
    TableSpec("partners", "partner", Partner, (
        ("name", "name", "text"),
        ("phone", "phone", "text"),
        ("notes", "notes", "text"),
    )),
    TableSpec("brokers", "broker", Broker, (
        ("name", "name", "text"),
        ("phone", "phone", "text"),
        ("notes", "notes", "text"),
    )),
    TableSpec("partner_groups", "partner_group", PartnerGroup, (
        ("name", "name", "text"),
        ("notes", "notes", "text"),
    )),
    TableSpec("units", "unit", Unit, (
        ("code", "code", "text"),
        ("name", "name", "text"),
        ("unit_type", "unit_type", "text"),
        ("area", "area", "text"),
        ("floor", "floor", "text"),
        ("building", "building", "text"),
        ("total_price", "total_price_cents", "money"),
        ("status", "status", "text"),
        ("notes", "notes", "text"),
    )),
    TableSpec("unit_partners", "unit_partner", UnitPartner, (
        ("unit_id", "unit_id", "ref:units"),
        ("partner_id", "partner_id", "ref:partners"),
        ("percentage", "share_bps", "share"),
    )),
    TableSpec("partner_group_members", "partner_group_member", PartnerGroupMember, (
        ("group_id", "group_id", "ref:partner_groups"),
        ("partner_id", "partner_id", "ref:partners"),
        ("percentage", "share_bps", "share"),
    )),
    TableSpec("contracts", "contract", Contract, (
        ("code", "code", "text"),
        ("unit_id", "unit_id", "ref:units"),
        ("customer_id", "customer_id", "ref:customers"),
        ("start_date", "start_date", "date"),
        ("total_price", "total_price_cents", "money"),
        ("discount_amount", "discount_cents", "money"),
        ("broker_name", "broker_name", "text"),
        ("broker_amount", "broker_amount_cents", "money"),
        ("commission_safe_id", "commission_safe_id", "ref:safes"),
        ("down_payment", "down_payment_cents", "money"),
        ("down_payment_safe_id", "down_payment_safe_id", "ref:safes"),
        ("maintenance_deposit", "maintenance_deposit_cents", "money"),
        ("payment_type", "payment_type", "text"),
        ("installment_frequency", "installment_frequency", "text"),
        ("installment_count", "installment_count", "int"),
        ("extra_annual_count", "extra_annual_count", "int"),
        ("annual_payment", "annual_payment_cents", "money"),
    )),
    TableSpec("installments", "installment", Installment, (
        ("unit_id", "unit_id", "ref:units"),
        ("contract_id", "contract_id", "ref:contracts"),
        ("amount", "amount_cents", "money"),
        ("due_date", "due_date", "date"),
        ("status", "status", "text"),
        ("notes", "notes", "text"),
    )),
    TableSpec("vouchers", "voucher", Voucher, (
        ("type", "type", "text"),
        ("date", "date", "date"),
        ("amount", "amount_cents", "money"),
        ("safe_id", "safe_id", "ref:safes"),
        ("description", "description", "text"),
        ("payer", "payer", "text"),
        ("beneficiary", "beneficiary", "text"),
        ("unit_id", "unit_id", "ref:units"),
        ("contract_id", "contract_id", "ref:contracts"),
    )),
    TableSpec("transfers", "transfer", Transfer, (
        ("from_safe_id", "from_safe_id", "ref:safes"),
        ("to_safe_id", "to_safe_id", "ref:safes"),
        ("amount", "amount_cents", "money"),
        ("description", "description", "text"),
    )),
    TableSpec("broker_dues", "broker_due", BrokerDue, (
        ("broker_id", "broker_id", "ref:brokers"),
        ("amount", "amount_cents", "money"),
        ("due_date", "due_date", "date"),
        ("status", "status", "text"),
        ("voucher_id", "voucher_id", "ref:vouchers"),
        ("notes", "notes", "text"),
    )),
    TableSpec("partner_debts", "partner_debt", PartnerDebt, (
        ("partner_id", "partner_id", "ref:partners"),
        ("amount", "amount_cents", "money"),
        ("due_date", "due_date", "date"),
        ("status", "status", "text"),
        ("notes", "notes", "text"),
    )),
)

SETTINGS_KEYS = ("theme", "font_size", "currency")


def export_snapshot(org_id: int) -> dict:
    snapshot = {
        "version": SNAPSHOT_VERSION,
        "exported_at": to_utc_z(utcnow()),
    }
    for spec in TABLES:
        rows = active_query(spec.model, org_id).order_by(spec.model.id.asc()).all()
        snapshot[spec.table] = [row.to_dict() for row in rows]
    snapshot["settings"] = get_settings(org_id).to_dict()
    return snapshot


def validate_snapshot(snapshot) -> None:
    if not isinstance(snapshot, dict):
        raise ValidationError("Snapshot must be a JSON object")
    version = snapshot.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise ValidationError(f"Unsupported snapshot version: {version}")
    known = {spec.table for spec in TABLES}
    if not any(table in snapshot for table in known):
        raise ValidationError("Snapshot contains no known tables")
    for spec in TABLES:
        rows = snapshot.get(spec.table, [])
        if not isinstance(rows, list):
            raise ValidationError(f"{spec.table} must be a list")
        for index, row in enumerate(rows):
            if not isinstance(row, dict):
                raise ValidationError(f"{spec.table}[{index}] must be an object")
            if row.get("id") is None:
                raise ValidationError(f"{spec.table}[{index}] is missing id")
    settings = snapshot.get("settings")
    if settings is not None and not isinstance(settings, dict):
        raise ValidationError("settings must be an object")


def _convert(spec: TableSpec, index: int, row: dict, id_maps: dict[str, dict]) -> dict:
    values = {}
    where = f"{spec.table}[{index}]"
    for key, column, kind in spec.fields:
        raw = row.get(key)
        if raw is None or raw == "":
            continue
        if kind == "text":
            values[column] = str(raw).strip()
        elif kind == "int":
            if isinstance(raw, bool) or not isinstance(raw, (int, str)) or not str(raw).strip().lstrip("-").isdigit():
                raise ValidationError(f"{where}.{key} must be an integer")
            values[column] = int(raw)
        elif kind in ("money", "share"):
            values[column] = coerce_money(f"{where}.{key}", raw)
        elif kind == "date":
            try:
                values[column] = parse_iso_date(raw)
            except ValueError:
                raise ValidationError(f"{where}.{key} must be a YYYY-MM-DD date")
        elif kind.startswith("ref:"):
            target = kind[4:]
            mapped = id_maps.get(target, {}).get(str(raw))
            if mapped is None:
                raise ValidationError(f"{where}.{key} references unknown {target} id {raw}")
            values[column] = mapped

    for key, column, _ in spec.fields:
        if column in _required_columns(spec.model) and column not in values:
            raise ValidationError(f"{where}.{key} is required")
    if spec.model is Transfer and values["from_safe_id"] == values["to_safe_id"]:
        raise ValidationError(f"{where}: source and destination safe must be different")

    enforce_field_rules(spec.entity, values)
    return values


def _required_columns(model) -> set[str]:
    """NOT NULL columns the snapshot must provide (no default, not the key or tenant)."""
    return {
        col.key for col in model.__mapper__.columns
        if not col.nullable and not col.primary_key
        and col.default is None and col.server_default is None
        and col.key != "org_id"
    }


def _soft_delete_all(org_id: int) -> dict[str, int]:
    now = utcnow()
    counts = {}
    for spec in TABLES:
        rows = active_query(spec.model, org_id).all()
        for row in rows:
            row.mark_deleted(now)
        counts[spec.table] = len(rows)
    db.session.flush()
    return counts


def import_snapshot(ctx: AuditContext, snapshot: dict, *, apply: bool = False) -> dict:
    """
    Replace the organization's data with a snapshot.

    Returns {"applied", "replaced", "imported", "warnings"}. With
    apply=False nothing is committed.
    """
    validate_snapshot(snapshot)

    with UnitOfWork(dry_run=not apply):
        replaced = _soft_delete_all(ctx.org_id)
        id_maps: dict[str, dict] = {}
        imported: dict[str, int] = {}
        warnings: list[str] = []
        snapshot_balances: dict[int, object] = {}

        for spec in TABLES:
            id_maps[spec.table] = {}
            for index, row in enumerate(snapshot.get(spec.table, [])):
                values = _convert(spec, index, row, id_maps)
                if spec.model is Safe:
                    values.setdefault("opening_balance_cents", 0)
                    values["balance_cents"] = values["opening_balance_cents"]
                record = spec.model(org_id=ctx.org_id, **values)
                db.session.add(record)
                db.session.flush()
                id_maps[spec.table][str(row["id"])] = record.id
                if spec.model is Safe:
                    snapshot_balances[record.id] = row.get("balance")
            imported[spec.table] = len(id_maps[spec.table])

        for safe in active_query(Safe, ctx.org_id).all():
            expected = expected_balance_cents(ctx.org_id, safe)
            claimed = snapshot_balances.get(safe.id)
            if claimed is not None and coerce_money("balance", claimed) != expected:
                warnings.append(
                    f"Safe '{safe.name}': snapshot balance {claimed} differs from "
                    f"recomputed balance {from_cents(expected):.2f}; using the recomputed value"
                )
            safe.balance_cents = expected

        settings_data = snapshot.get("settings") or {}
        settings_patch = {k: settings_data[k] for k in SETTINGS_KEYS if settings_data.get(k) is not None}
        if settings_patch:
            enforce_field_rules("settings", settings_patch)
            settings = get_settings(ctx.org_id)
            for key, value in settings_patch.items():
                setattr(settings, key, value)

        db.session.flush()
        append_audit_entry(ctx, action="backup.imported", entity_type="backup", entity_id=None,
                           new_values={"imported": imported, "replaced": replaced,
                                       "warnings": warnings, "applied": apply})

    return {
        "applied": apply,
        "replaced": replaced,
        "imported": imported,
        "warnings": warnings,
    }
