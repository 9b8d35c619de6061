"""
Shared model building blocks.

Every tenant row belongs to exactly one organization (org_id) and can be
soft-deleted. A row's lifecycle is exposed as a tagged value, Active or
Deleted, instead of callers checking deleted_at themselves. Reads that must
exclude deleted rows go through estate.repository.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from sqlalchemy.orm import declared_attr

from ..extensions import db
from estate.time_utils import to_utc_z, utcnow


@dataclass(frozen=True)
class Active:
    record: Any


@dataclass(frozen=True)
class Deleted:
    record: Any
    deleted_at: datetime


Lifecycle = Union[Active, Deleted]


class TenantMixin:
    @declared_attr
    def org_id(cls):
        return db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)


class SoftDeleteMixin:
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    @property
    def lifecycle(self) -> Lifecycle:
        if self.deleted_at is None:
            return Active(self)
        return Deleted(self, self.deleted_at)

    @property
    def is_deleted(self) -> bool:
        return isinstance(self.lifecycle, Deleted)

    def mark_deleted(self, when: datetime | None = None) -> None:
        """Active -> Deleted. Raises NotFoundError for a row that is already deleted."""
        from ..validation import NotFoundError

        if self.is_deleted:
            raise NotFoundError(f"{type(self).__name__} {self.id} is already deleted")
        self.deleted_at = when or utcnow()

    def restore(self) -> None:
        """Deleted -> Active. Raises NotFoundError for a row that is not deleted."""
        from ..validation import NotFoundError

        if not self.is_deleted:
            raise NotFoundError(f"{type(self).__name__} {self.id} is not deleted")
        self.deleted_at = None


class TimestampMixin:
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def _timestamps(self) -> dict:
        return {
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(getattr(self, "deleted_at", None)),
        }
