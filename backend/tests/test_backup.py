# Overview: Pytest coverage for JSON snapshot export and import.

"""
Backup Tests

A snapshot import replaces the organization's data in one transaction.
Dry runs report the same stats and change nothing; applied imports remap
ids and recompute safe balances from the imported movements.
"""

import copy

import pytest

from estate.extensions import db
from estate.models import Contract, Customer, Safe, Unit, UnitPartner, Voucher
from estate.repository import active_query
from estate.services import backup_service, contract_service, ledger_service
from estate.validation import ValidationError

from conftest import sale_terms


@pytest.fixture
def populated(ctx, owned_unit, customer, safe):
    contract = contract_service.create_contract(ctx, **sale_terms(
        owned_unit, customer, down_payment_safe_id=safe.id,
    ))
    ledger_service.record_voucher(ctx, type="payment", amount=100, safe_id=safe.id,
                                  date="2026-01-03", description="Stamps")
    return contract


class TestExport:

    def test_snapshot_holds_active_rows(self, db_session, ctx, populated, safe):
        snapshot = backup_service.export_snapshot(ctx.org_id)

        assert snapshot["version"] == backup_service.SNAPSHOT_VERSION
        assert len(snapshot["units"]) == 1
        assert len(snapshot["unit_partners"]) == 2
        assert len(snapshot["installments"]) == 12
        assert [v["amount"] for v in snapshot["vouchers"]] == [10000.0, 100.0]
        assert snapshot["safes"][0]["balance"] == 1000 + 10000 - 100
        assert snapshot["settings"]["currency"] == "EGP"

    def test_deleted_rows_are_left_out(self, db_session, ctx, safe):
        voucher = ledger_service.record_voucher(ctx, type="receipt", amount=5, safe_id=safe.id,
                                                date="2026-01-03", description="Gone")
        ledger_service.delete_voucher(ctx, voucher.id)
        assert backup_service.export_snapshot(ctx.org_id)["vouchers"] == []


class TestValidateSnapshot:

    @pytest.mark.parametrize("snapshot", [
        [],
        {"version": 99, "safes": []},
        {"settings": {}},
        {"safes": {}},
        {"safes": [{"name": "No id"}]},
        {"safes": [], "settings": []},
    ])
    def test_rejects_malformed(self, snapshot):
        with pytest.raises(ValidationError):
            backup_service.validate_snapshot(snapshot)


class TestImport:

    def test_dry_run_changes_nothing(self, db_session, ctx, populated):
        snapshot = backup_service.export_snapshot(ctx.org_id)
        before = {
            model.__name__: active_query(model, ctx.org_id).count()
            for model in (Contract, Customer, Safe, Unit, Voucher)
        }

        stats = backup_service.import_snapshot(ctx, snapshot, apply=False)
        db.session.expire_all()

        assert stats["applied"] is False
        assert stats["imported"]["installments"] == 12
        assert stats["replaced"]["vouchers"] == 2
        after = {
            model.__name__: active_query(model, ctx.org_id).count()
            for model in (Contract, Customer, Safe, Unit, Voucher)
        }
        assert after == before
        ids_now = {row.id for row in active_query(Unit, ctx.org_id)}
        assert ids_now == {row["id"] for row in snapshot["units"]}

    def test_apply_replaces_and_remaps(self, db_session, ctx, populated):
        snapshot = backup_service.export_snapshot(ctx.org_id)
        old_unit_id = snapshot["units"][0]["id"]

        stats = backup_service.import_snapshot(ctx, snapshot, apply=True)
        db.session.expire_all()

        assert stats["applied"] is True
        assert stats["warnings"] == []
        unit = active_query(Unit, ctx.org_id).one()
        assert unit.id != old_unit_id
        assert unit.status == "sold"
        shares = active_query(UnitPartner, ctx.org_id).all()
        assert {s.unit_id for s in shares} == {unit.id}
        contract = active_query(Contract, ctx.org_id).one()
        assert contract.unit_id == unit.id
        safe = active_query(Safe, ctx.org_id).one()
        assert safe.balance_cents == 100_000 + 1_000_000 - 10_000
        assert ledger_service.reconcile_safe(ctx.org_id, safe.id).ok

    def test_balance_is_recomputed_with_warning(self, db_session, ctx, populated):
        snapshot = copy.deepcopy(backup_service.export_snapshot(ctx.org_id))
        snapshot["safes"][0]["balance"] = 1.0

        stats = backup_service.import_snapshot(ctx, snapshot, apply=True)
        db.session.expire_all()

        assert len(stats["warnings"]) == 1
        assert "Main Safe" in stats["warnings"][0]
        assert active_query(Safe, ctx.org_id).one().balance_cents == 1_090_000

    def test_unknown_reference_rolls_back(self, db_session, ctx, populated):
        snapshot = backup_service.export_snapshot(ctx.org_id)
        snapshot["vouchers"][0]["safe_id"] = 424242

        with pytest.raises(ValidationError, match="unknown safes"):
            backup_service.import_snapshot(ctx, snapshot, apply=True)
        db.session.expire_all()
        assert active_query(Contract, ctx.org_id).one().id == populated.id

    @pytest.mark.parametrize("table,key,message", [
        ("vouchers", "type", r"vouchers\[0\]\.type is required"),
        ("safes", "name", r"safes\[0\]\.name is required"),
        ("contracts", "code", r"contracts\[0\]\.code is required"),
    ])
    def test_missing_required_field_rolls_back(self, db_session, ctx, populated, table, key, message):
        snapshot = copy.deepcopy(backup_service.export_snapshot(ctx.org_id))
        snapshot[table][0].pop(key)

        with pytest.raises(ValidationError, match=message):
            backup_service.import_snapshot(ctx, snapshot, apply=True)
        db.session.expire_all()
        assert active_query(Contract, ctx.org_id).one().id == populated.id

    def test_same_safe_transfer_is_rejected(self, db_session, ctx, safe):
        snapshot = backup_service.export_snapshot(ctx.org_id)
        safe_id = snapshot["safes"][0]["id"]
        snapshot["transfers"] = [
            {"id": 1, "from_safe_id": safe_id, "to_safe_id": safe_id, "amount": 10},
        ]

        with pytest.raises(ValidationError, match="must be different"):
            backup_service.import_snapshot(ctx, snapshot, apply=True)
        db.session.expire_all()
        assert active_query(Safe, ctx.org_id).one().id == safe.id

    def test_import_restores_settings(self, db_session, ctx, safe):
        snapshot = backup_service.export_snapshot(ctx.org_id)
        snapshot["settings"]["theme"] = "dark"

        backup_service.import_snapshot(ctx, snapshot, apply=True)
        assert backup_service.export_snapshot(ctx.org_id)["settings"]["theme"] == "dark"


class TestBackupApi:

    def test_admin_round_trip(self, client, headers_a, populated):
        exported = client.get("/api/backup/export", headers=headers_a).get_json()["data"]

        dry = client.post("/api/backup/import", headers=headers_a, json=exported)
        assert dry.status_code == 200
        assert dry.get_json()["message"] == "Dry run: nothing was changed"

        applied = client.post("/api/backup/import?apply=true", headers=headers_a, json=exported)
        assert applied.get_json()["data"]["applied"] is True

    def test_invalid_snapshot_is_400(self, client, headers_a):
        resp = client.post("/api/backup/import", headers=headers_a, json={"version": 7})
        assert resp.status_code == 400

    def test_row_missing_required_field_is_400(self, client, headers_a, populated):
        exported = client.get("/api/backup/export", headers=headers_a).get_json()["data"]
        del exported["vouchers"][0]["type"]

        resp = client.post("/api/backup/import?apply=true", headers=headers_a, json=exported)
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
        assert "vouchers[0].type is required" in resp.get_json()["error"]
