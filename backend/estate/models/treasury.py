from __future__ import annotations

from ..extensions import db
from estate.money import from_cents
from estate.time_utils import to_iso_date
from .base import SoftDeleteMixin, TenantMixin, TimestampMixin

VOUCHER_TYPE_RECEIPT = "receipt"
VOUCHER_TYPE_PAYMENT = "payment"
VOUCHER_TYPES = (VOUCHER_TYPE_RECEIPT, VOUCHER_TYPE_PAYMENT)


class Safe(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """
    Named cash account.

    balance_cents is mutated only by ledger_service. It always equals
    opening_balance_cents plus the signed effects of the active vouchers and
    transfers that reference this safe (see ledger_service.reconcile_safe).
    """
    __tablename__ = "safes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    opening_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Safe id={self.id} name={self.name!r} balance_cents={self.balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "opening_balance": from_cents(self.opening_balance_cents),
            "balance": from_cents(self.balance_cents),
            "notes": self.notes,
            "version_id": self.version_id,
            **self._timestamps(),
        }


class Voucher(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Receipt (money in) or payment (money out) against exactly one safe."""
    __tablename__ = "vouchers"
    __table_args__ = (
        db.Index("ix_vouchers_org_type", "org_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False)
    date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    safe_id = db.Column(db.Integer, db.ForeignKey("safes.id"), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=False)
    payer = db.Column(db.String(255), nullable=True)
    beneficiary = db.Column(db.String(255), nullable=True)
    unit_id = db.Column(db.Integer, db.ForeignKey("units.id"), nullable=True, index=True)
    contract_id = db.Column(db.Integer, db.ForeignKey("contracts.id"), nullable=True, index=True)

    safe = db.relationship("Safe")
    unit = db.relationship("Unit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "date": to_iso_date(self.date),
            "amount": from_cents(self.amount_cents),
            "safe_id": self.safe_id,
            "safe_name": self.safe.name if self.safe else None,
            "description": self.description,
            "payer": self.payer,
            "beneficiary": self.beneficiary,
            "unit_id": self.unit_id,
            "unit_code": self.unit.code if self.unit else None,
            "contract_id": self.contract_id,
            **self._timestamps(),
        }


class Transfer(TenantMixin, SoftDeleteMixin, TimestampMixin, db.Model):
    """Movement of cash between two safes of the same organization."""
    __tablename__ = "transfers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    from_safe_id = db.Column(db.Integer, db.ForeignKey("safes.id"), nullable=False, index=True)
    to_safe_id = db.Column(db.Integer, db.ForeignKey("safes.id"), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    description = db.Column(db.String(500), nullable=True)

    from_safe = db.relationship("Safe", foreign_keys=[from_safe_id])
    to_safe = db.relationship("Safe", foreign_keys=[to_safe_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_safe_id": self.from_safe_id,
            "from_safe_name": self.from_safe.name if self.from_safe else None,
            "to_safe_id": self.to_safe_id,
            "to_safe_name": self.to_safe.name if self.to_safe else None,
            "amount": from_cents(self.amount_cents),
            "description": self.description,
            **self._timestamps(),
        }
