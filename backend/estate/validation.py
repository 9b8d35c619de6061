from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy import BigInteger, Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .money import to_cents
from .time_utils import parse_iso_date, parse_iso_datetime
from .models.parties import CUSTOMER_STATUSES, OBLIGATION_STATUSES
from .models.property import (
    INSTALLMENT_FREQUENCIES,
    INSTALLMENT_STATUSES,
    PAYMENT_TYPES,
    UNIT_STATUSES,
)
from .models.settings import FONT_SIZE_MAX, FONT_SIZE_MIN, THEMES
from .models.treasury import VOUCHER_TYPES


# Maximum single amount: 9,999,999,999.99
MAX_AMOUNT_CENTS = 999_999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level: referenced entity does not exist, is soft-deleted, or belongs to another tenant."""


class DeleteBlockedError(ValidationError):
    """400-level: a can-delete rule refuses the soft delete."""


class LedgerError(ValidationError):
    """400-level: a balance movement the ledger refuses (same safe, overdraw, deleted row)."""


class InsufficientBalanceError(LedgerError):
    pass


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - money_fields: client decimal field -> integer cents column
    - share_fields: client percentage field -> basis-point column
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    money_fields: dict[str, str] | None = None
    share_fields: dict[str, str] | None = None


# ---------------------------------------------------------------------------
# Declarative field rules, keyed by (entity, column)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldRule:
    check: Callable[[Any], bool]
    message: str


def _regex(pattern: str, message: str) -> FieldRule:
    compiled = re.compile(pattern)
    return FieldRule(lambda v: isinstance(v, str) and bool(compiled.fullmatch(v)), message)


def _one_of(values) -> FieldRule:
    allowed = tuple(values)
    return FieldRule(lambda v: v in allowed, f"must be one of: {', '.join(allowed)}")


def _int_range(low: int, high: int) -> FieldRule:
    return FieldRule(
        lambda v: isinstance(v, int) and not isinstance(v, bool) and low <= v <= high,
        f"must be between {low} and {high}",
    )


PHONE = _regex(r"01[0-9]{9}", "must be an 11-digit mobile number starting with 01")
NATIONAL_ID = _regex(r"[0-9]{14}", "must be exactly 14 digits")
UNIT_CODE = _regex(r"[A-Z]-[0-9]+", "must look like A-101")
CURRENCY = _regex(r"[A-Z]{3}", "must be a 3-letter currency code")
NON_NEGATIVE = _int_range(0, MAX_AMOUNT_CENTS)
POSITIVE = _int_range(1, MAX_AMOUNT_CENTS)
SHARE = _int_range(0, 10_000)
COUNT = _int_range(0, 600)

FIELD_RULES: dict[tuple[str, str], tuple[FieldRule, ...]] = {
    ("customer", "phone"): (PHONE,),
    ("customer", "national_id"): (NATIONAL_ID,),
    ("customer", "status"): (_one_of(CUSTOMER_STATUSES),),
    ("partner", "phone"): (PHONE,),
    ("broker", "phone"): (PHONE,),
    ("unit", "code"): (UNIT_CODE,),
    ("unit", "status"): (_one_of(UNIT_STATUSES),),
    ("unit", "total_price_cents"): (NON_NEGATIVE,),
    ("unit_partner", "share_bps"): (SHARE,),
    ("partner_group_member", "share_bps"): (SHARE,),
    ("safe", "opening_balance_cents"): (NON_NEGATIVE,),
    ("voucher", "type"): (_one_of(VOUCHER_TYPES),),
    ("voucher", "amount_cents"): (POSITIVE,),
    ("transfer", "amount_cents"): (POSITIVE,),
    ("contract", "total_price_cents"): (NON_NEGATIVE,),
    ("contract", "discount_cents"): (NON_NEGATIVE,),
    ("contract", "broker_amount_cents"): (NON_NEGATIVE,),
    ("contract", "down_payment_cents"): (NON_NEGATIVE,),
    ("contract", "maintenance_deposit_cents"): (NON_NEGATIVE,),
    ("contract", "annual_payment_cents"): (NON_NEGATIVE,),
    ("contract", "installment_count"): (COUNT,),
    ("contract", "extra_annual_count"): (COUNT,),
    ("contract", "payment_type"): (_one_of(PAYMENT_TYPES),),
    ("contract", "installment_frequency"): (_one_of(INSTALLMENT_FREQUENCIES),),
    ("installment", "amount_cents"): (POSITIVE,),
    ("installment", "status"): (_one_of(INSTALLMENT_STATUSES),),
    ("broker_due", "amount_cents"): (POSITIVE,),
    ("broker_due", "status"): (_one_of(OBLIGATION_STATUSES),),
    ("partner_debt", "amount_cents"): (POSITIVE,),
    ("partner_debt", "status"): (_one_of(OBLIGATION_STATUSES),),
    ("settings", "theme"): (_one_of(THEMES),),
    ("settings", "font_size"): (_int_range(FONT_SIZE_MIN, FONT_SIZE_MAX),),
    ("settings", "currency"): (CURRENCY,),
}


def enforce_field_rules(entity: str, patch: dict) -> None:
    """Apply FIELD_RULES for every provided, non-null field of an entity patch."""
    for field, value in patch.items():
        if value is None:
            continue
        for rule in FIELD_RULES.get((entity, field), ()):
            if not rule.check(value):
                raise ValidationError(f"{field} {rule.message}")


# ---------------------------------------------------------------------------
# Column-metadata driven payload validation
# ---------------------------------------------------------------------------

def coerce_money(field: str, value: Any) -> int:
    """Client decimal amount -> integer cents."""
    try:
        return to_cents(value)
    except ValueError as exc:
        raise ValidationError(f"{field} {exc}")


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, (Integer, BigInteger)):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Business dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be a YYYY-MM-DD date")
            if d is None:
                raise ValidationError(f"{col.key} must be a YYYY-MM-DD date")
            return d
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def _translate_fields(payload: dict, policy: ModelValidationPolicy) -> dict:
    """Rename client decimal/percentage fields to their integer columns."""
    translated = dict(payload)
    for client_key, column in (policy.money_fields or {}).items():
        if client_key in translated:
            raw = translated.pop(client_key)
            translated[column] = None if raw is None else coerce_money(client_key, raw)
    for client_key, column in (policy.share_fields or {}).items():
        if client_key in translated:
            raw = translated.pop(client_key)
            translated[column] = None if raw is None else coerce_money(client_key, raw)
    return translated


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields, client-facing names)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column name.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    translated = _translate_fields(payload, policy)
    cols = _columns_by_key(model)

    patch: dict = {}

    for k, raw in translated.items():
        col = cols.get(k)
        if col is None:
            raise ValidationError(f"Unknown field: {k}")

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Nullable text: blank means "clear"
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch
