"""
Per-organization settings, loaded and saved as one typed record.

OrganizationSettings has named columns (theme, font_size, currency,
lock_password_hash) instead of free-form key/value rows; FIELD_RULES
enforce their ranges. The lock password is stored as a bcrypt hash and
only its presence is ever serialized.
"""
from __future__ import annotations

from ..extensions import db
from ..models import OrganizationSettings
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_field_rules,
    validate_payload,
)
from .audit_service import AuditContext, append_audit_entry
from .auth_service import hash_secret, verify_password
from .unit_of_work import run_in_unit_of_work

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={"theme", "font_size", "currency", "lock_password"},
)

MIN_LOCK_PASSWORD_LENGTH = 4


def get_settings(org_id: int) -> OrganizationSettings:
    """Return the organization's settings, creating the default record on first use."""
    settings = db.session.query(OrganizationSettings).filter_by(org_id=org_id).first()
    if settings is None:
        settings = OrganizationSettings(org_id=org_id)
        db.session.add(settings)
        db.session.flush()
    return settings


def update_settings(ctx: AuditContext, payload: dict) -> OrganizationSettings:
    """
    Apply a settings patch as a unit.

    lock_password: a string sets a new lock password, null or "" clears it.
    """
    if payload is None or not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    has_lock = "lock_password" in payload
    lock_password = payload.pop("lock_password", None)
    for key in payload:
        if key not in SETTINGS_POLICY.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")

    patch = validate_payload(model=OrganizationSettings, payload=payload,
                             policy=SETTINGS_POLICY, partial=True)
    if "currency" in patch and patch["currency"]:
        patch["currency"] = patch["currency"].upper()
    for key in ("theme", "font_size", "currency"):
        if key in patch and patch[key] is None:
            raise ValidationError(f"{key} cannot be null")
    enforce_field_rules("settings", patch)

    if has_lock and lock_password not in (None, ""):
        if not isinstance(lock_password, str) or len(lock_password) < MIN_LOCK_PASSWORD_LENGTH:
            raise ValidationError(f"lock_password must be at least {MIN_LOCK_PASSWORD_LENGTH} characters")

    def _op():
        settings = get_settings(ctx.org_id)
        old = settings.to_dict()
        for key, value in patch.items():
            setattr(settings, key, value)
        if has_lock:
            settings.lock_password_hash = hash_secret(lock_password) if lock_password else None
        db.session.flush()
        append_audit_entry(ctx, action="settings.updated", entity_type="settings",
                           entity_id=settings.id, old_values=old, new_values=settings.to_dict())
        return settings

    return run_in_unit_of_work(_op)


def verify_lock_password(org_id: int, password: str) -> bool:
    """True when no lock password is set or the password matches."""
    settings = get_settings(org_id)
    if settings.lock_password_hash is None:
        return True
    return verify_password(password or "", settings.lock_password_hash)
