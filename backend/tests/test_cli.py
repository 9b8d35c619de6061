# Overview: Pytest coverage for the flask CLI commands.

from estate.extensions import db
from estate.models import Organization, Safe, User


class TestSystemInit:

    def test_init_creates_org_and_admin(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "init", "--org", "Nile Homes", "--org-code", "NILE"])

        assert result.exit_code == 0, result.output
        assert "DONE System initialized" in result.output
        org = db.session.query(Organization).one()
        assert org.code == "NILE"
        assert db.session.query(User).filter_by(org_id=org.id, role="admin").count() == 1

    def test_init_is_idempotent(self, app, admin_a):
        result = app.test_cli_runner().invoke(args=["system", "init"])

        assert result.exit_code == 0, result.output
        assert "Users already exist" in result.output
        assert db.session.query(Organization).count() == 1


class TestLedgerReconcile:

    def test_clean_ledger_passes(self, app, safe):
        result = app.test_cli_runner().invoke(args=["ledger", "reconcile"])

        assert result.exit_code == 0, result.output
        assert "PASS [NILE] Main Safe: 1000.00" in result.output

    def test_drift_fails_then_fix_repairs(self, app, safe):
        safe.balance_cents = 123
        db.session.commit()
        runner = app.test_cli_runner()

        failed = runner.invoke(args=["ledger", "reconcile"])
        assert failed.exit_code == 1
        assert "FAIL [NILE] Main Safe" in failed.output

        fixed = runner.invoke(args=["ledger", "reconcile", "--fix"])
        assert fixed.exit_code == 0, fixed.output
        db.session.expire_all()
        assert db.session.get(Safe, safe.id).balance_cents == 100_000
