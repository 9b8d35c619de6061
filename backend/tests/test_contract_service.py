# Overview: Pytest coverage for contracts, installment schedules and installment payment.

from datetime import date

import pytest

from estate.extensions import db
from estate.models import Contract, Installment, Safe, Unit, Voucher
from estate.services import catalog_service, contract_service, installment_service, ledger_service
from estate.validation import DeleteBlockedError, LedgerError, NotFoundError, ValidationError

from conftest import sale_terms


def _refresh():
    db.session.expire_all()


class TestBuildSchedule:
    """Schedule generation is pure arithmetic on cents."""

    def test_regular_installments_sum_to_base(self):
        schedule = installment_service.build_schedule(
            start_date=date(2026, 1, 31),
            total_price_cents=10_000_000,
            down_payment_cents=1_000_000,
            installment_count=7,
        )
        amounts = [s.amount_cents for s in schedule]
        assert sum(amounts) == 9_000_000
        assert amounts[:6] == [1_285_714] * 6
        assert amounts[-1] == 1_285_716

    def test_due_dates_clamp_to_month_end(self):
        schedule = installment_service.build_schedule(
            start_date=date(2026, 1, 31),
            total_price_cents=300,
            installment_count=3,
        )
        assert [s.due_date for s in schedule] == [
            date(2026, 2, 28), date(2026, 3, 31), date(2026, 4, 30),
        ]

    def test_quarterly_annual_and_maintenance(self):
        schedule = installment_service.build_schedule(
            start_date=date(2026, 1, 1),
            total_price_cents=130_000,
            maintenance_deposit_cents=10_000,
            frequency="quarterly",
            installment_count=4,
            extra_annual_count=2,
            annual_payment_cents=20_000,
        )
        regular, annual, maintenance = schedule[:4], schedule[4:6], schedule[6]
        assert [s.amount_cents for s in regular] == [20_000] * 4
        assert [s.due_date for s in regular] == [
            date(2026, 4, 1), date(2026, 7, 1), date(2026, 10, 1), date(2027, 1, 1),
        ]
        assert [s.due_date for s in annual] == [date(2027, 1, 1), date(2028, 1, 1)]
        assert maintenance.amount_cents == 10_000
        assert maintenance.due_date == date(2028, 4, 1)
        assert sum(s.amount_cents for s in schedule) == 130_000

    def test_overcommitted_terms_rejected(self):
        with pytest.raises(ValidationError):
            installment_service.build_schedule(
                start_date=date(2026, 1, 1),
                total_price_cents=100,
                down_payment_cents=200,
                installment_count=1,
            )

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValidationError):
            installment_service.build_schedule(
                start_date=date(2026, 1, 1), total_price_cents=100,
                frequency="weekly", installment_count=1,
            )


class TestCreateContract:

    def test_sale_marks_unit_sold_and_schedules(self, db_session, ctx, owned_unit, customer):
        contract = contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        _refresh()

        assert contract.code == "CTR-00001"
        assert db_session.get(Unit, owned_unit.id).status == "sold"
        rows = db_session.query(Installment).filter_by(contract_id=contract.id).all()
        assert len(rows) == 12
        assert sum(r.amount_cents for r in rows) == 9_000_000

    def test_down_payment_and_commission_move_safes(self, db_session, ctx, owned_unit, customer, safe):
        contract = contract_service.create_contract(ctx, **sale_terms(
            owned_unit, customer,
            down_payment_safe_id=safe.id,
            broker_name="Samir", broker_amount=500, commission_safe_id=safe.id,
        ))
        _refresh()

        assert db_session.get(Safe, safe.id).balance_cents == 100_000 + 1_000_000 - 50_000
        vouchers = db_session.query(Voucher).filter_by(contract_id=contract.id).order_by(Voucher.id).all()
        assert [(v.type, v.amount_cents) for v in vouchers] == [("receipt", 1_000_000), ("payment", 50_000)]
        assert vouchers[0].payer == "Mona Adel"

    def test_unit_must_be_available(self, db_session, ctx, owned_unit, customer):
        contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        with pytest.raises(ValidationError, match="not available"):
            contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))

    def test_partner_shares_must_total_100(self, db_session, ctx, customer):
        unit = catalog_service.create_entity(ctx, "unit", code="B-7")
        partner = catalog_service.create_entity(ctx, "partner", name="Omar")
        catalog_service.create_entity(ctx, "unit_partner", unit_id=unit.id, partner_id=partner.id, percentage=50)

        with pytest.raises(ValidationError, match="100%"):
            contract_service.create_contract(ctx, **sale_terms(unit, customer))
        _refresh()
        assert db_session.get(Unit, unit.id).status == "available"
        assert db_session.query(Contract).count() == 0

    def test_failed_sale_rolls_back_voucher(self, db_session, ctx, owned_unit, customer, safe):
        with pytest.raises(NotFoundError):
            contract_service.create_contract(ctx, **sale_terms(
                owned_unit, customer, down_payment_safe_id=safe.id, commission_safe_id=9999,
                broker_amount=10,
            ))
        _refresh()
        assert db_session.get(Safe, safe.id).balance_cents == 100_000
        assert db_session.query(Voucher).count() == 0

    def test_cash_sale_has_no_schedule(self, db_session, ctx, owned_unit, customer):
        contract = contract_service.create_contract(ctx, **sale_terms(
            owned_unit, customer, payment_type="cash", installment_count=0,
        ))
        assert db_session.query(Installment).filter_by(contract_id=contract.id).count() == 0

    def test_codes_increase(self, db_session, ctx, owned_unit, customer):
        first = contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        contract_service.delete_contract(ctx, first.id)
        second = contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        assert second.code == "CTR-00002"


class TestDeleteContract:

    def test_delete_releases_unit_and_unpaid_installments(self, db_session, ctx, owned_unit, customer):
        contract = contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        contract_service.delete_contract(ctx, contract.id)
        _refresh()

        assert db_session.get(Unit, owned_unit.id).status == "available"
        live = db_session.query(Installment).filter(Installment.deleted_at.is_(None)).count()
        assert live == 0
        with pytest.raises(NotFoundError):
            contract_service.delete_contract(ctx, contract.id)

    def test_paid_installment_blocks_delete(self, db_session, ctx, owned_unit, customer, safe):
        contract = contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        first = (
            db_session.query(Installment)
            .filter_by(contract_id=contract.id)
            .order_by(Installment.due_date)
            .first()
        )
        installment_service.pay_installment(ctx, first.id, safe_id=safe.id, payment_date="2026-02-01")

        with pytest.raises(DeleteBlockedError):
            contract_service.delete_contract(ctx, contract.id)
        _refresh()
        assert db_session.get(Unit, owned_unit.id).status == "sold"


class TestInstallments:

    def test_pay_records_receipt(self, db_session, ctx, owned_unit, customer, safe):
        contract = contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        first = db_session.query(Installment).filter_by(contract_id=contract.id).order_by(Installment.id).first()

        installment, voucher = installment_service.pay_installment(ctx, first.id, safe_id=safe.id)
        _refresh()

        assert db_session.get(Installment, installment.id).status == "paid"
        stored = db_session.get(Voucher, voucher.id)
        assert stored.type == "receipt"
        assert stored.amount_cents == 750_000
        assert stored.unit_id == owned_unit.id
        assert stored.contract_id == contract.id
        assert db_session.get(Safe, safe.id).balance_cents == 100_000 + 750_000

        with pytest.raises(LedgerError):
            installment_service.pay_installment(ctx, first.id, safe_id=safe.id)

    def test_paid_installment_cannot_be_deleted(self, db_session, ctx, owned_unit, safe):
        row = installment_service.create_installment(ctx, unit_id=owned_unit.id, amount=100, due_date="2026-03-01")
        installment_service.pay_installment(ctx, row.id, safe_id=safe.id)
        with pytest.raises(DeleteBlockedError):
            installment_service.delete_installment(ctx, row.id)

    def test_contract_must_match_unit(self, db_session, ctx, owned_unit, customer):
        contract = contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        other = catalog_service.create_entity(ctx, "unit", code="C-1")
        with pytest.raises(ValidationError):
            installment_service.create_installment(
                ctx, unit_id=other.id, contract_id=contract.id, amount=10, due_date="2026-03-01",
            )

    def test_list_reports_effective_status(self, db_session, ctx, owned_unit, safe):
        installment_service.create_installment(ctx, unit_id=owned_unit.id, amount=100, due_date="2026-03-01")
        installment_service.create_installment(ctx, unit_id=owned_unit.id, amount=100, due_date="2026-04-01")
        ledger_service.record_voucher(ctx, type="receipt", amount=150, safe_id=safe.id,
                                      date="2026-03-02", description="Cash", unit_id=owned_unit.id)

        items, pagination = installment_service.list_installments(ctx.org_id, unit_id=owned_unit.id)
        assert [i["effective_status"] for i in items] == ["paid", "partial"]
        assert pagination["total"] == 2

        partial, _ = installment_service.list_installments(ctx.org_id, status="partial")
        assert len(partial) == 1
