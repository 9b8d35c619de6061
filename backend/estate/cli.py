# Overview: Flask CLI command groups for bootstrap, inspection, ledger checks and backups.

# backend/estate/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"] [--org-code DEFAULT]
#   Idempotent bootstrap: creates the default organization, its settings and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Nile Towers" --code "NILE"
#
# Users:
# - python -m flask users list [--org-id 1]
# - python -m flask users create --org-id 1 --username admin --email admin@estate.local --password "Password123!" --role admin
#
# Ledger:
# - python -m flask ledger reconcile [--org-id 1] [--fix]
#   Compare every safe's stored balance with its opening balance plus active movements.
#
# Backups (files live in BACKUP_DIR):
# - python -m flask backup export [--org-id 1] [--output snapshot.json]
# - python -m flask backup import snapshot.json [--org-id 1] [--apply]
#   Without --apply the import is a dry run and nothing is changed.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired or revoked sessions older than 30 days.

import json
import os

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, User
from .models.auth import USER_ROLES
from .services import backup_service, ledger_service, session_service
from .services.audit_service import AuditContext
from .services.auth_service import PasswordValidationError, create_user
from .services.settings_service import get_settings
from .time_utils import utcnow
from .validation import NotFoundError, ValidationError

DEFAULT_ADMIN_PASSWORD = "Password123!"


def _resolve_org(org_id):
    """Organization by id, or the first one when org_id is None."""
    if org_id:
        org = db.session.query(Organization).filter_by(id=org_id).first()
        if not org:
            click.echo(f"FAIL Organization ID {org_id} not found")
        return org
    org = db.session.query(Organization).order_by(Organization.id.asc()).first()
    if not org:
        click.echo("FAIL No organization found. Run 'python -m flask system init' first.")
    return org


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@with_appcontext
def init_system(org_name, org_code):
    """
    Initialize the system: default organization, its settings and an admin user.

    Creates the admin user admin/admin@estate.local with password
    "Password123!" when the organization has no users yet.

    SECURITY: Change the password immediately in production!
    """
    click.echo("START Initializing estate ledger...")

    db.create_all()

    org = db.session.query(Organization).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created default organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    get_settings(org.id)
    db.session.commit()
    click.echo("PASS Organization settings ready")

    if db.session.query(User).filter_by(org_id=org.id).first() is None:
        create_user(
            username="admin",
            email="admin@estate.local",
            password=DEFAULT_ADMIN_PASSWORD,
            org_id=org.id,
            role="admin",
        )
        click.echo(f"PASS Created admin user: admin / {DEFAULT_ADMIN_PASSWORD}")
        click.echo("SECURITY Change the default password immediately")
    else:
        click.echo("PASS Users already exist; skipped default admin")

    click.echo("DONE System initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Users'}")
    click.echo("="*70)

    for org in orgs:
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {user_count}")

    click.echo("="*70 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.flush()
    get_settings(org.id)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, help='Organization ID (uses default if not specified)')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='accountant', show_default=True, help='Role')
@with_appcontext
def create_user_cli(org_id, username, email, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    org = _resolve_org(org_id)
    if not org:
        return

    try:
        create_user(username=username, email=email, password=password, org_id=org.id, role=role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        click.echo(f"     Organization: {org.name} (ID: {org.id})")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List all users with their roles."""
    query = db.session.query(User)
    if org_id:
        query = query.filter_by(org_id=org_id)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Org':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.org_id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {user.role}")

    click.echo("="*90 + "\n")


@click.group('ledger')
def ledger_group():
    """Safe balance consistency checks."""


@ledger_group.command('reconcile')
@click.option('--org-id', type=int, help='Organization ID (all organizations if omitted)')
@click.option('--fix', is_flag=True, help='Overwrite drifting balances with the recomputed value')
@with_appcontext
def reconcile_cli(org_id, fix):
    """
    Compare every safe's stored balance with opening balance plus the
    effects of its active vouchers and transfers.

    Exits with status 1 when drift is found and --fix was not given.
    """
    query = db.session.query(Organization)
    if org_id:
        query = query.filter_by(id=org_id)
    orgs = query.order_by(Organization.id.asc()).all()
    if not orgs:
        click.echo("No organizations found.")
        return

    drifting = 0
    for org in orgs:
        results = ledger_service.reconcile_all(org.id, repair=fix, ctx=AuditContext(org_id=org.id))
        for result in results:
            if result.ok:
                click.echo(f"PASS [{org.code or org.id}] {result.name}: {result.stored_cents / 100:.2f}")
                continue
            drifting += 1
            status = "FIXED" if fix else "FAIL"
            click.echo(
                f"{status} [{org.code or org.id}] {result.name}: stored {result.stored_cents / 100:.2f}, "
                f"expected {result.expected_cents / 100:.2f} (drift {result.drift_cents / 100:.2f})"
            )

    if drifting and not fix:
        click.echo(f"\n{drifting} safe(s) out of balance. Re-run with --fix to repair.")
        raise SystemExit(1)
    click.echo("\nDONE Reconciliation complete")


@click.group('backup')
def backup_group():
    """JSON snapshot backups (files in BACKUP_DIR)."""


def _backup_path(filename: str) -> str:
    if os.path.isabs(filename) or os.path.exists(filename):
        return filename
    return os.path.join(current_app.config["BACKUP_DIR"], filename)


@backup_group.command('export')
@click.option('--org-id', type=int, help='Organization ID (uses default if not specified)')
@click.option('--output', help='File name (defaults to <org code>-<timestamp>.json)')
@with_appcontext
def backup_export_cli(org_id, output):
    """Write the organization's active data to a JSON snapshot."""
    org = _resolve_org(org_id)
    if not org:
        return

    snapshot = backup_service.export_snapshot(org.id)
    db.session.commit()

    backup_dir = current_app.config["BACKUP_DIR"]
    os.makedirs(backup_dir, exist_ok=True)
    filename = output or f"{org.code or org.id}-{utcnow().strftime('%Y%m%d-%H%M%S')}.json"
    path = filename if os.path.isabs(filename) else os.path.join(backup_dir, filename)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(snapshot, fh, ensure_ascii=False, indent=2)

    rows = sum(len(snapshot[spec.table]) for spec in backup_service.TABLES)
    click.echo(f"PASS Wrote {rows} rows to {path}")


@backup_group.command('import')
@click.argument('filename')
@click.option('--org-id', type=int, help='Organization ID (uses default if not specified)')
@click.option('--apply', is_flag=True, help='Commit the import (default is a dry run)')
@with_appcontext
def backup_import_cli(filename, org_id, apply):
    """Replace the organization's data with a JSON snapshot."""
    org = _resolve_org(org_id)
    if not org:
        return

    path = _backup_path(filename)
    try:
        with open(path, encoding="utf-8") as fh:
            snapshot = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        click.echo(f"FAIL Could not read {path}: {e}")
        raise SystemExit(1)

    try:
        stats = backup_service.import_snapshot(AuditContext(org_id=org.id), snapshot, apply=apply)
    except (ValidationError, NotFoundError) as e:
        click.echo(f"FAIL Snapshot rejected: {e}")
        raise SystemExit(1)

    for table, count in stats["imported"].items():
        click.echo(f"  {table:<24} {count:>6} imported, {stats['replaced'].get(table, 0):>6} replaced")
    for warning in stats["warnings"]:
        click.echo(f"WARN {warning}")
    if apply:
        click.echo("PASS Snapshot imported")
    else:
        click.echo("DRY RUN Nothing was changed. Re-run with --apply to import.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired or revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(backup_group)
    app.cli.add_command(maintenance_group)
