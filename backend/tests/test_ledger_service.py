# Overview: Pytest coverage for safe balances, vouchers, transfers and reconciliation.

"""
Ledger Tests

Every voucher and transfer moves safe balances in the same transaction as
the row itself. These tests walk balances through create, update and
delete and check that reconcile agrees with the stored value afterwards.
"""

import pytest

from estate.extensions import db
from estate.models import AuditLog, Safe, Voucher
from estate.services import ledger_service
from estate.validation import (
    InsufficientBalanceError,
    LedgerError,
    NotFoundError,
    ValidationError,
)


def _balance(safe_id):
    db.session.expire_all()
    return db.session.get(Safe, safe_id).balance_cents


class TestSafes:

    def test_opening_balance_is_running_balance(self, db_session, safe):
        assert safe.opening_balance_cents == 100000
        assert safe.balance_cents == 100000

    def test_safe_names_are_unique_per_org(self, db_session, ctx, ctx_b, safe):
        with pytest.raises(ValidationError):
            ledger_service.create_safe(ctx, name="main safe")
        other = ledger_service.create_safe(ctx_b, name="Main Safe")
        assert other.org_id == ctx_b.org_id

    def test_update_cannot_touch_balance(self, db_session, ctx, safe):
        with pytest.raises(ValidationError, match="Field not allowed"):
            ledger_service.update_safe(ctx, safe.id, opening_balance=5)

    def test_negative_opening_balance_rejected(self, db_session, ctx):
        with pytest.raises(ValidationError):
            ledger_service.create_safe(ctx, name="Petty", opening_balance=-1)


class TestVouchers:
    """Receipts add to a safe, payments subtract, deletes reverse exactly once."""

    @pytest.mark.parametrize("kind,delta", [("receipt", 700), ("payment", -700)])
    def test_voucher_delta(self, kind, delta):
        assert ledger_service.voucher_delta_cents(kind, 700) == delta

    def test_deleted_voucher_stays_deleted(self, db_session, ctx, safe):
        voucher = ledger_service.record_voucher(
            ctx, type="receipt", amount=5, safe_id=safe.id,
            date="2026-01-05", description="Key deposit",
        )
        ledger_service.delete_voucher(ctx, voucher.id)
        assert voucher.is_deleted
        with pytest.raises(NotFoundError):
            voucher.mark_deleted()
        assert _balance(safe.id) == 100000

    def test_balance_follows_voucher_lifecycle(self, db_session, ctx, safe):
        receipt = ledger_service.record_voucher(
            ctx, type="receipt", amount=500, safe_id=safe.id,
            date="2026-01-05", description="Rent",
        )
        assert _balance(safe.id) == 150000

        payment = ledger_service.record_voucher(
            ctx, type="payment", amount="700.00", safe_id=safe.id,
            date="2026-01-06", description="Maintenance",
        )
        assert _balance(safe.id) == 80000

        ledger_service.delete_voucher(ctx, payment.id)
        assert _balance(safe.id) == 150000

        ledger_service.delete_voucher(ctx, receipt.id)
        assert _balance(safe.id) == 100000

    def test_second_delete_is_not_found(self, db_session, ctx, safe):
        voucher = ledger_service.record_voucher(
            ctx, type="receipt", amount=10, safe_id=safe.id,
            date="2026-01-05", description="Deposit",
        )
        ledger_service.delete_voucher(ctx, voucher.id)

        with pytest.raises(NotFoundError):
            ledger_service.delete_voucher(ctx, voucher.id)
        with pytest.raises(NotFoundError):
            ledger_service.update_voucher(ctx, voucher.id, amount=20)
        assert _balance(safe.id) == 100000

    def test_update_amount_applies_difference(self, db_session, ctx, safe):
        voucher = ledger_service.record_voucher(
            ctx, type="payment", amount=200, safe_id=safe.id,
            date="2026-01-05", description="Cleaning",
        )
        assert _balance(safe.id) == 80000

        ledger_service.update_voucher(ctx, voucher.id, amount=50)
        assert _balance(safe.id) == 95000

        ledger_service.update_voucher(ctx, voucher.id, type="receipt")
        assert _balance(safe.id) == 105000

    def test_update_moves_voucher_between_safes(self, db_session, ctx, safe, bank_safe):
        voucher = ledger_service.record_voucher(
            ctx, type="receipt", amount=300, safe_id=safe.id,
            date="2026-01-05", description="Installment",
        )
        ledger_service.update_voucher(ctx, voucher.id, safe_id=bank_safe.id, amount=250)

        assert _balance(safe.id) == 100000
        assert _balance(bank_safe.id) == 25000
        assert ledger_service.reconcile_safe(ctx.org_id, safe.id).ok
        assert ledger_service.reconcile_safe(ctx.org_id, bank_safe.id).ok

    @pytest.mark.parametrize("amount", [0, -5, "abc"])
    def test_invalid_amount_rejected(self, db_session, ctx, safe, amount):
        with pytest.raises(ValidationError):
            ledger_service.record_voucher(
                ctx, type="receipt", amount=amount, safe_id=safe.id,
                date="2026-01-05", description="Bad",
            )
        assert _balance(safe.id) == 100000

    def test_unknown_type_rejected(self, db_session, ctx, safe):
        with pytest.raises(ValidationError):
            ledger_service.record_voucher(
                ctx, type="refund", amount=5, safe_id=safe.id,
                date="2026-01-05", description="Bad",
            )

    def test_missing_safe_is_not_found(self, db_session, ctx):
        with pytest.raises(NotFoundError):
            ledger_service.record_voucher(
                ctx, type="receipt", amount=5, safe_id=9999,
                date="2026-01-05", description="Nowhere",
            )
        assert db_session.query(Voucher).count() == 0

    def test_failed_update_leaves_balances(self, db_session, ctx, safe):
        voucher = ledger_service.record_voucher(
            ctx, type="receipt", amount=100, safe_id=safe.id,
            date="2026-01-05", description="Deposit",
        )
        with pytest.raises(NotFoundError):
            ledger_service.update_voucher(ctx, voucher.id, safe_id=9999)
        assert _balance(safe.id) == 110000

    def test_voucher_changes_are_audited(self, db_session, ctx, safe):
        voucher = ledger_service.record_voucher(
            ctx, type="receipt", amount=100, safe_id=safe.id,
            date="2026-01-05", description="Deposit",
        )
        ledger_service.delete_voucher(ctx, voucher.id)
        actions = [
            row.action for row in db_session.query(AuditLog)
            .filter_by(entity_type="voucher", entity_id=voucher.id)
            .order_by(AuditLog.id.asc())
        ]
        assert actions == ["voucher.created", "voucher.deleted"]

    def test_list_filters_and_search(self, db_session, ctx, safe):
        ledger_service.record_voucher(ctx, type="receipt", amount=1, safe_id=safe.id,
                                      date="2026-01-05", description="Rent January", payer="Mona")
        ledger_service.record_voucher(ctx, type="payment", amount=1, safe_id=safe.id,
                                      date="2026-01-06", description="Electricity")

        receipts, pagination = ledger_service.list_vouchers(ctx.org_id, voucher_type="receipt")
        assert [v.description for v in receipts] == ["Rent January"]
        assert pagination["total"] == 1

        found, _ = ledger_service.list_vouchers(ctx.org_id, search="mona")
        assert len(found) == 1


class TestTransfers:

    def test_transfer_moves_both_legs(self, db_session, ctx, safe, bank_safe):
        transfer = ledger_service.record_transfer(
            ctx, from_safe_id=safe.id, to_safe_id=bank_safe.id, amount=400,
        )
        assert _balance(safe.id) == 60000
        assert _balance(bank_safe.id) == 40000

        ledger_service.delete_transfer(ctx, transfer.id)
        assert _balance(safe.id) == 100000
        assert _balance(bank_safe.id) == 0

    def test_same_safe_rejected(self, db_session, ctx, safe):
        with pytest.raises(LedgerError):
            ledger_service.record_transfer(ctx, from_safe_id=safe.id, to_safe_id=safe.id, amount=1)

    def test_insufficient_balance_rejected(self, db_session, ctx, safe, bank_safe):
        with pytest.raises(InsufficientBalanceError):
            ledger_service.record_transfer(
                ctx, from_safe_id=bank_safe.id, to_safe_id=safe.id, amount=1,
            )
        assert _balance(safe.id) == 100000
        assert _balance(bank_safe.id) == 0

    def test_allow_negative_overdraws(self, db_session, ctx, safe, bank_safe):
        ledger_service.record_transfer(
            ctx, allow_negative=True, from_safe_id=bank_safe.id, to_safe_id=safe.id, amount=10,
        )
        assert _balance(bank_safe.id) == -1000

    def test_cross_tenant_safe_is_not_found(self, db_session, ctx, ctx_b, safe):
        foreign = ledger_service.create_safe(ctx_b, name="Foreign", opening_balance=50)
        with pytest.raises(NotFoundError):
            ledger_service.record_transfer(ctx, from_safe_id=safe.id, to_safe_id=foreign.id, amount=1)
        assert _balance(foreign.id) == 5000


class TestReconciliation:

    def test_clean_ledger_has_no_drift(self, db_session, ctx, safe, bank_safe):
        ledger_service.record_voucher(ctx, type="receipt", amount=25, safe_id=safe.id,
                                      date="2026-01-05", description="Rent")
        ledger_service.record_transfer(ctx, from_safe_id=safe.id, to_safe_id=bank_safe.id, amount=5)

        results = ledger_service.reconcile_all(ctx.org_id)
        assert [r.ok for r in results] == [True, True]

    def test_repair_overwrites_drifting_balance(self, db_session, ctx, safe):
        row = db_session.get(Safe, safe.id)
        row.balance_cents = 1
        db_session.commit()

        result = ledger_service.reconcile_safe(ctx.org_id, safe.id)
        assert not result.ok
        assert result.drift_cents == 1 - 100000
        assert _balance(safe.id) == 1

        repaired = ledger_service.reconcile_safe(ctx.org_id, safe.id, repair=True, ctx=ctx)
        assert repaired.expected_cents == 100000
        assert _balance(safe.id) == 100000
        assert db_session.query(AuditLog).filter_by(action="safe.reconciled").count() == 1
