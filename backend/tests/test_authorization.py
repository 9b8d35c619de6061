"""
Authorization tests for the estate ledger API.

Verifies:
- Unauthenticated requests return 401
- Accountant role denied backup and balance repair (403)
- Admin role can perform privileged operations
"""

import pytest


# =============================================================================
# UNAUTHENTICATED ACCESS — 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/safes"),
            ("POST", "/api/safes"),
            ("GET", "/api/safes/reconcile"),
            ("GET", "/api/vouchers"),
            ("POST", "/api/vouchers"),
            ("GET", "/api/transfers"),
            ("POST", "/api/transfers"),
            ("GET", "/api/contracts"),
            ("POST", "/api/contracts"),
            ("GET", "/api/installments"),
            ("GET", "/api/customers"),
            ("GET", "/api/units"),
            ("GET", "/api/dashboard"),
            ("GET", "/api/backup/export"),
            ("POST", "/api/backup/import"),
            ("GET", "/api/audit"),
            ("GET", "/api/trash"),
            ("GET", "/api/settings"),
            ("GET", "/api/export/excel"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_no_token_returns_401(self, client, db_session, method, path):
        resp = client.open(path, method=method, json={})
        assert resp.status_code == 401
        assert resp.get_json()["success"] is False


# =============================================================================
# ACCOUNTANT ROLE — 403 ON ADMIN OPERATIONS
# =============================================================================


class TestAccountantDenied:
    """Accountants keep the books but cannot replace them or rewrite balances."""

    def test_backup_export_denied(self, client, accountant_token):
        resp = client.get("/api/backup/export", headers={"Authorization": f"Bearer {accountant_token}"})
        assert resp.status_code == 403
        assert resp.get_json() == {"success": False, "error": "Admin access required"}

    def test_backup_import_denied(self, client, accountant_token):
        resp = client.post("/api/backup/import", headers={"Authorization": f"Bearer {accountant_token}"},
                           json={"version": 1, "safes": []})
        assert resp.status_code == 403

    def test_balance_repair_denied(self, client, accountant_token, safe):
        resp = client.post(f"/api/safes/{safe.id}/reconcile",
                           headers={"Authorization": f"Bearer {accountant_token}"},
                           json={"repair": True})
        assert resp.status_code == 403

    def test_reconcile_report_allowed(self, client, accountant_token, safe):
        resp = client.get(f"/api/safes/{safe.id}/reconcile",
                          headers={"Authorization": f"Bearer {accountant_token}"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["ok"] is True

    def test_day_to_day_work_allowed(self, client, accountant_token, safe):
        resp = client.post("/api/vouchers", headers={"Authorization": f"Bearer {accountant_token}"}, json={
            "type": "receipt", "amount": 10, "safe_id": safe.id,
            "date": "2026-01-10", "description": "Key deposit",
        })
        assert resp.status_code == 201


# =============================================================================
# ADMIN ROLE — ALLOWED
# =============================================================================


class TestAdminAllowed:
    """Admins can run the privileged operations."""

    def test_backup_export_allowed(self, client, headers_a, safe):
        resp = client.get("/api/backup/export", headers=headers_a)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["safes"][0]["name"] == "Main Safe"

    def test_balance_repair_allowed(self, client, headers_a, safe):
        resp = client.post(f"/api/safes/{safe.id}/reconcile", headers=headers_a, json={"repair": True})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["ok"] is True
