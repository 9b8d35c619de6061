from __future__ import annotations

from ..extensions import db
from estate.money import from_cents
from estate.time_utils import to_iso_date
from .base import SoftDeleteMixin, TenantMixin, TimestampMixin

UNIT_STATUS_AVAILABLE = "available"
UNIT_STATUS_RESERVED = "reserved"
UNIT_STATUS_SOLD = "sold"
UNIT_STATUSES = (UNIT_STATUS_AVAILABLE, UNIT_STATUS_RESERVED, UNIT_STATUS_SOLD)

PAYMENT_TYPE_CASH = "cash"
PAYMENT_TYPE_INSTALLMENT = "installment"
PAYMENT_TYPES = (PAYMENT_TYPE_CASH, PAYMENT_TYPE_INSTALLMENT)

# Months between regular installments
INSTALLMENT_FREQUENCIES = {
    "monthly": 1,
    "quarterly": 3,
    "semiannual": 6,
    "annual": 12,
}

INSTALLMENT_STATUS_PENDING = "pending"
INSTALLMENT_STATUS_PARTIAL = "partial"
INSTALLMENT_STATUS_PAID = "paid"
INSTALLMENT_STATUSES = (INSTALLMENT_STATUS_PENDING, INSTALLMENT_STATUS_PARTIAL, INSTALLMENT_STATUS_PAID)


class Unit(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """
    Sellable real-estate unit.

    Status moves available -> sold when a contract is created and back to
    available when that contract is deleted. Codes are unique among the
    organization's active units (checked in catalog_service).
    """
    __tablename__ = "units"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=True)
    unit_type = db.Column(db.String(64), nullable=False, default="apartment")
    area = db.Column(db.String(64), nullable=True)
    floor = db.Column(db.String(32), nullable=True)
    building = db.Column(db.String(64), nullable=True)
    total_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=UNIT_STATUS_AVAILABLE, index=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "unit_type": self.unit_type,
            "area": self.area,
            "floor": self.floor,
            "building": self.building,
            "total_price": from_cents(self.total_price_cents),
            "status": self.status,
            "notes": self.notes,
            **self._timestamps(),
        }


class UnitPartner(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Ownership share of a unit in basis points (10000 = 100%)."""
    __tablename__ = "unit_partners"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    partner_id = db.Column(db.Integer, db.ForeignKey("partners.id"), nullable=False, index=True)
    share_bps = db.Column(db.Integer, nullable=False)

    unit = db.relationship("Unit")
    partner = db.relationship("Partner")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "unit_code": self.unit.code if self.unit else None,
            "partner_id": self.partner_id,
            "partner_name": self.partner.name if self.partner else None,
            "percentage": self.share_bps / 100,
            **self._timestamps(),
        }


class Contract(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Sale agreement linking a customer to a unit."""
    __tablename__ = "contracts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, index=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)

    total_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    discount_cents = db.Column(db.BigInteger, nullable=False, default=0)

    broker_name = db.Column(db.String(255), nullable=True)
    broker_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    commission_safe_id = db.Column(db.Integer, db.ForeignKey("safes.id"), nullable=True)

    down_payment_cents = db.Column(db.BigInteger, nullable=False, default=0)
    down_payment_safe_id = db.Column(db.Integer, db.ForeignKey("safes.id"), nullable=True)
    maintenance_deposit_cents = db.Column(db.BigInteger, nullable=False, default=0)

    payment_type = db.Column(db.String(16), nullable=False, default=PAYMENT_TYPE_INSTALLMENT)
    installment_frequency = db.Column(db.String(16), nullable=False, default="monthly")
    installment_count = db.Column(db.Integer, nullable=False, default=0)
    extra_annual_count = db.Column(db.Integer, nullable=False, default=0)
    annual_payment_cents = db.Column(db.BigInteger, nullable=False, default=0)

    unit = db.relationship("Unit")
    customer = db.relationship("Customer")

    @property
    def net_price_cents(self) -> int:
        return (self.total_price_cents or 0) - (self.discount_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "unit_id": self.unit_id,
            "unit_code": self.unit.code if self.unit else None,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "start_date": to_iso_date(self.start_date),
            "total_price": from_cents(self.total_price_cents),
            "discount_amount": from_cents(self.discount_cents),
            "broker_name": self.broker_name,
            "broker_amount": from_cents(self.broker_amount_cents),
            "commission_safe_id": self.commission_safe_id,
            "down_payment": from_cents(self.down_payment_cents),
            "down_payment_safe_id": self.down_payment_safe_id,
            "maintenance_deposit": from_cents(self.maintenance_deposit_cents),
            "payment_type": self.payment_type,
            "installment_frequency": self.installment_frequency,
            "installment_count": self.installment_count,
            "extra_annual_count": self.extra_annual_count,
            "annual_payment": from_cents(self.annual_payment_cents),
            **self._timestamps(),
        }


class Installment(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Scheduled payment obligation on a unit."""
    __tablename__ = "installments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=False, index=True)
    contract_id = db.Column(db.Integer, db.ForeignKey("contracts.id"), nullable=True, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=INSTALLMENT_STATUS_PENDING)
    notes = db.Column(db.String(255), nullable=True)

    unit = db.relationship("Unit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "unit_code": self.unit.code if self.unit else None,
            "contract_id": self.contract_id,
            "amount": from_cents(self.amount_cents),
            "due_date": to_iso_date(self.due_date),
            "status": self.status,
            "notes": self.notes,
            **self._timestamps(),
        }
