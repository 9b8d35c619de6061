"""
Read boundary for tenant data.

Soft-deleted rows are excluded here and nowhere else: services ask for
active rows through active_query/get_active and never write the
deleted_at predicate themselves. Trash screens use trashed_query.
"""
from __future__ import annotations

import math
from typing import Any

from .extensions import db
from .services.unit_of_work import lock_for_update
from .validation import NotFoundError

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 500


def active_query(model, org_id: int):
    return db.session.query(model).filter(
        model.org_id == org_id,
        model.deleted_at.is_(None),
    )


def trashed_query(model, org_id: int):
    return db.session.query(model).filter(
        model.org_id == org_id,
        model.deleted_at.isnot(None),
    )


def any_query(model, org_id: int):
    """Tenant-scoped query including deleted rows; internal bookkeeping only."""
    return db.session.query(model).filter(model.org_id == org_id)


def get_active(model, entity_id: Any, org_id: int, *, label: str | None = None, for_update: bool = False):
    """Fetch an active row of this tenant or raise NotFoundError."""
    name = label or model.__name__
    try:
        entity_id = int(entity_id)
    except (TypeError, ValueError):
        raise NotFoundError(f"{name} {entity_id} not found")
    query = active_query(model, org_id).filter(model.id == entity_id)
    if for_update:
        query = lock_for_update(query)
    row = query.first()
    if row is None:
        raise NotFoundError(f"{name} {entity_id} not found")
    return row


def get_any(model, entity_id: int, org_id: int, *, label: str | None = None):
    row = any_query(model, org_id).filter(model.id == entity_id).first()
    if row is None:
        raise NotFoundError(f"{label or model.__name__} {entity_id} not found")
    return row


def lock_active(model, ids, org_id: int, *, label: str | None = None) -> dict[int, Any]:
    """
    Lock several active rows in ascending id order.

    Fixed lock order keeps two requests touching the same pair of safes
    from deadlocking each other.
    """
    found = {}
    for entity_id in sorted(set(ids)):
        found[entity_id] = get_active(model, entity_id, org_id, label=label, for_update=True)
    return found


def _page_window(page: int | None, limit: int | None) -> tuple[int, int]:
    return max(1, page or 1), max(1, min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))


def _pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def paginate(query, page: int | None, limit: int | None) -> tuple[list, dict]:
    page, limit = _page_window(page, limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, _pagination(page, limit, total)


def paginate_list(items: list, page: int | None, limit: int | None) -> tuple[list, dict]:
    """Same envelope as paginate() for rows already filtered in Python."""
    page, limit = _page_window(page, limit)
    return items[(page - 1) * limit: page * limit], _pagination(page, limit, len(items))
