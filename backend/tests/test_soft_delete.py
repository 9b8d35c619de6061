# Overview: Pytest coverage for can-delete rules, soft delete, restore and the trash listing.

from datetime import timedelta

import pytest

from estate.extensions import db
from estate.models import Active, Customer, Deleted, Safe
from estate.services import catalog_service, contract_service, ledger_service, soft_delete_service
from estate.time_utils import utcnow
from estate.validation import DeleteBlockedError, NotFoundError, ValidationError

from conftest import sale_terms


class TestCanDelete:

    def test_customer_with_contract_is_blocked(self, db_session, ctx, owned_unit, customer):
        contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))

        check = soft_delete_service.can_delete(ctx.org_id, "customer", customer.id)
        assert check.to_dict() == {"allowed": False, "reason": "Customer has active contracts"}
        unit_check = soft_delete_service.can_delete(ctx.org_id, "units", owned_unit.id)
        assert not unit_check.allowed

        with pytest.raises(DeleteBlockedError):
            soft_delete_service.soft_delete(ctx, "customer", customer.id)

    def test_partner_with_shares_is_blocked(self, db_session, ctx, owned_unit):
        shares, _ = catalog_service.list_entities(ctx.org_id, "unit_partner", filters={"unit_id": owned_unit.id})
        partner_id = shares[0].partner_id
        assert soft_delete_service.can_delete(ctx.org_id, "partner", partner_id).reason == "Partner holds unit shares"

    def test_safe_with_balance_is_blocked(self, db_session, ctx, safe):
        assert not soft_delete_service.can_delete(ctx.org_id, "safe", safe.id).allowed

    def test_empty_safe_can_be_deleted(self, db_session, ctx, bank_safe):
        soft_delete_service.soft_delete(ctx, "safes", bank_safe.id)
        with pytest.raises(NotFoundError):
            ledger_service.update_safe(ctx, bank_safe.id, notes="gone")

    def test_unknown_entity_type(self, db_session, ctx):
        with pytest.raises(ValidationError):
            soft_delete_service.can_delete(ctx.org_id, "spaceship", 1)

    def test_voucher_delete_goes_through_ledger(self, db_session, ctx, safe):
        voucher = ledger_service.record_voucher(ctx, type="receipt", amount=40, safe_id=safe.id,
                                                date="2026-01-05", description="Rent")
        soft_delete_service.soft_delete(ctx, "voucher", voucher.id)
        db.session.expire_all()
        assert db_session.get(Safe, safe.id).balance_cents == 100_000


class TestLifecycle:

    def test_tagged_lifecycle(self, db_session, customer):
        assert customer.lifecycle == Active(customer)
        assert not customer.is_deleted

        customer.mark_deleted()
        assert isinstance(customer.lifecycle, Deleted)
        assert customer.lifecycle.deleted_at == customer.deleted_at
        assert customer.is_deleted

    def test_deleted_is_terminal_for_mark_deleted(self, db_session, customer):
        customer.mark_deleted()
        first = customer.deleted_at
        with pytest.raises(NotFoundError, match="already deleted"):
            customer.mark_deleted()
        assert customer.deleted_at == first

    def test_restore_requires_deleted_row(self, db_session, customer):
        with pytest.raises(NotFoundError, match="not deleted"):
            customer.restore()
        customer.mark_deleted()
        customer.restore()
        assert customer.lifecycle == Active(customer)


class TestRestore:

    def test_restore_customer(self, db_session, ctx, customer):
        soft_delete_service.soft_delete(ctx, "customer", customer.id)
        with pytest.raises(NotFoundError):
            catalog_service.get_entity(ctx.org_id, "customer", customer.id)

        restored = soft_delete_service.restore_entity(ctx, "customers", customer.id)
        assert restored.deleted_at is None
        assert catalog_service.get_entity(ctx.org_id, "customer", customer.id).name == "Mona Adel"

    def test_restore_conflict_on_reused_phone(self, db_session, ctx, customer):
        soft_delete_service.soft_delete(ctx, "customer", customer.id)
        catalog_service.create_entity(ctx, "customer", name="Someone Else", phone="01012345678")

        with pytest.raises(ValidationError, match="already exists"):
            soft_delete_service.restore_entity(ctx, "customer", customer.id)

    def test_restore_window_expired(self, db_session, ctx, customer):
        soft_delete_service.soft_delete(ctx, "customer", customer.id)
        row = db_session.get(Customer, customer.id)
        row.deleted_at = utcnow() - timedelta(days=31)
        db_session.commit()

        with pytest.raises(ValidationError, match="Restore window"):
            soft_delete_service.restore_entity(ctx, "customer", customer.id)

    def test_ledger_rows_are_not_restorable(self, db_session, ctx, safe):
        voucher = ledger_service.record_voucher(ctx, type="receipt", amount=40, safe_id=safe.id,
                                                date="2026-01-05", description="Rent")
        ledger_service.delete_voucher(ctx, voucher.id)
        with pytest.raises(ValidationError):
            soft_delete_service.restore_entity(ctx, "voucher", voucher.id)

    def test_restore_active_row_is_not_found(self, db_session, ctx, customer):
        with pytest.raises(NotFoundError):
            soft_delete_service.restore_entity(ctx, "customer", customer.id)


class TestTrash:

    def test_trash_lists_deleted_rows_only(self, db_session, ctx, customer, bank_safe):
        catalog_service.create_entity(ctx, "customer", name="Kept", phone="01099999999")
        soft_delete_service.soft_delete(ctx, "customer", customer.id)
        soft_delete_service.soft_delete(ctx, "safe", bank_safe.id)

        items, pagination = soft_delete_service.list_trash(ctx.org_id)
        assert {(i["entity_type"], i["label"]) for i in items} == {("customer", "Mona Adel"), ("safe", "Bank")}
        assert pagination["total"] == 2
        assert all(i["restorable"] for i in items)

        customers, _ = soft_delete_service.list_trash(ctx.org_id, "customer")
        assert [i["id"] for i in customers] == [customer.id]

    def test_trash_is_per_tenant(self, db_session, ctx, ctx_b, customer):
        soft_delete_service.soft_delete(ctx, "customer", customer.id)
        items, _ = soft_delete_service.list_trash(ctx_b.org_id)
        assert items == []
