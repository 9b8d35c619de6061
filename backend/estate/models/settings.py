from __future__ import annotations

from ..extensions import db
from estate.time_utils import to_utc_z, utcnow

THEMES = ("light", "dark")
FONT_SIZE_MIN = 10
FONT_SIZE_MAX = 24


class OrganizationSettings(db.Model):
    """
    Typed per-organization preferences, loaded and saved as one record.

    lock_password_hash protects the UI lock screen; it is a bcrypt hash and
    is never serialized.
    """
    __tablename__ = "organization_settings"
    __table_args__ = (
        db.UniqueConstraint("org_id", name="uq_organization_settings_org"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    theme = db.Column(db.String(16), nullable=False, default="light")
    font_size = db.Column(db.Integer, nullable=False, default=16)
    currency = db.Column(db.String(3), nullable=False, default="EGP")
    lock_password_hash = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "theme": self.theme,
            "font_size": self.font_size,
            "currency": self.currency,
            "lock_enabled": self.lock_password_hash is not None,
            "updated_at": to_utc_z(self.updated_at),
        }
