from __future__ import annotations

from ..extensions import db
from estate.money import from_cents
from estate.time_utils import to_iso_date
from .base import SoftDeleteMixin, TenantMixin, TimestampMixin

CUSTOMER_STATUSES = ("active", "inactive")


class Customer(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Unit buyer. Phone and national ID formats are enforced by validation.FIELD_RULES."""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    national_id = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "phone": self.phone,
            "national_id": self.national_id,
            "address": self.address,
            "status": self.status,
            "notes": self.notes,
            **self._timestamps(),
        }


class Partner(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Investor holding percentage shares of units."""
    __tablename__ = "partners"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "phone": self.phone,
            "notes": self.notes,
            **self._timestamps(),
        }


class PartnerGroup(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    __tablename__ = "partner_groups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "notes": self.notes,
            **self._timestamps(),
        }


class PartnerGroupMember(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Partner membership in a group, with the partner's share of the group (bps)."""
    __tablename__ = "partner_group_members"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("partner_groups.id"), nullable=False, index=True)
    partner_id = db.Column(db.Integer, db.ForeignKey("partners.id"), nullable=False, index=True)
    share_bps = db.Column(db.Integer, nullable=False, default=0)

    group = db.relationship("PartnerGroup")
    partner = db.relationship("Partner")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "partner_id": self.partner_id,
            "partner_name": self.partner.name if self.partner else None,
            "percentage": self.share_bps / 100,
            **self._timestamps(),
        }


class Broker(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    __tablename__ = "brokers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "phone": self.phone,
            "notes": self.notes,
            **self._timestamps(),
        }


OBLIGATION_STATUS_PENDING = "pending"
OBLIGATION_STATUS_PAID = "paid"
OBLIGATION_STATUSES = (OBLIGATION_STATUS_PENDING, OBLIGATION_STATUS_PAID)


class BrokerDue(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Commission owed to a broker; paid through a payment voucher."""
    __tablename__ = "broker_dues"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    broker_id = db.Column(db.Integer, db.ForeignKey("brokers.id"), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=OBLIGATION_STATUS_PENDING)
    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    broker = db.relationship("Broker")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "broker_id": self.broker_id,
            "broker_name": self.broker.name if self.broker else None,
            "amount": from_cents(self.amount_cents),
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "voucher_id": self.voucher_id,
            "notes": self.notes,
            **self._timestamps(),
        }


class PartnerDebt(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    __tablename__ = "partner_debts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    partner_id = db.Column(db.Integer, db.ForeignKey("partners.id"), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=OBLIGATION_STATUS_PENDING)
    notes = db.Column(db.Text, nullable=True)

    partner = db.relationship("Partner")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "partner_id": self.partner_id,
            "partner_name": self.partner.name if self.partner else None,
            "amount": from_cents(self.amount_cents),
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "notes": self.notes,
            **self._timestamps(),
        }
