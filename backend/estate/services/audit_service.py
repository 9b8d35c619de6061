# Overview: Append-only audit trail written alongside every mutating operation.

"""
Audit invariants

- Entries are appended inside the same DB transaction as the change they
  record: they commit with it or roll back with it.
- No update or delete path exists for AuditLog rows.
- old_values/new_values are JSON snapshots of the entity's to_dict().
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime

from ..extensions import db
from ..models import AuditLog
from ..repository import paginate
from ..time_utils import parse_iso_date, parse_iso_datetime
from ..validation import ValidationError

AUDIT_PAGE_SIZE = 50


@dataclass(frozen=True)
class AuditContext:
    """Who is acting; built once per request by the route layer."""
    org_id: int
    user_id: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def _dump(values: dict | None) -> str | None:
    if values is None:
        return None
    return json.dumps(values, default=str, ensure_ascii=False)


def append_audit_entry(
    ctx: AuditContext,
    *,
    action: str,
    entity_type: str,
    entity_id: int | None,
    old_values: dict | None = None,
    new_values: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        org_id=ctx.org_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=_dump(old_values),
        new_values=_dump(new_values),
        user_id=ctx.user_id,
        ip_address=ctx.ip_address,
        user_agent=(ctx.user_agent or "")[:255] or None,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def _day_bound(value, *, end: bool) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        if isinstance(value, str) and len(value.strip()) > 10:
            return parse_iso_datetime(value)
        d = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"Invalid date: {value}")
    if d is None:
        return None
    if end:
        return datetime.combine(d, datetime.max.time())
    return datetime.combine(d, datetime.min.time())


def list_audit_entries(
    org_id: int,
    *,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    user_id: int | None = None,
    date_from: str | date | None = None,
    date_to: str | date | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> tuple[list[AuditLog], dict]:
    """Newest first. Date bounds are inclusive whole days unless a time is given."""
    query = db.session.query(AuditLog).filter(AuditLog.org_id == org_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == entity_id)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)

    start = _day_bound(date_from, end=False)
    if start is not None:
        query = query.filter(AuditLog.created_at >= start)
    finish = _day_bound(date_to, end=True)
    if finish is not None:
        query = query.filter(AuditLog.created_at <= finish)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return paginate(query, page, limit or AUDIT_PAGE_SIZE)
