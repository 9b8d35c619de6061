"""
Pytest fixtures for estate ledger backend tests.

Provides test database setup, two tenants with users, audit contexts for
calling services directly, and helpers for the HTTP test client.
"""

from datetime import date

import pytest

from estate import create_app
from estate.extensions import db
from estate.models import Organization, User
from estate.services import catalog_service, ledger_service, session_service
from estate.services.audit_service import AuditContext
from estate.services.auth_service import hash_secret

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALLOW_NEGATIVE_TRANSFER': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        db.session.rollback()
        db.session.info.pop("estate.uow_depth", None)
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


def _user(db_session, org, username, role):
    user = User(
        org_id=org.id,
        username=username,
        email=f"{username}@{org.code.lower()}.test",
        password_hash=hash_secret(TEST_PASSWORD, rounds=4),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Nile Towers", code="NILE", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Delta Homes", code="DELTA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def admin_a(db_session, org_a):
    return _user(db_session, org_a, "admin_a", "admin")


@pytest.fixture(scope='function')
def accountant_a(db_session, org_a):
    return _user(db_session, org_a, "accountant_a", "accountant")


@pytest.fixture(scope='function')
def admin_b(db_session, org_b):
    return _user(db_session, org_b, "admin_b", "admin")


@pytest.fixture(scope='function')
def ctx(org_a, admin_a):
    """Audit context for services called as admin_a."""
    return AuditContext(org_id=org_a.id, user_id=admin_a.id)


@pytest.fixture(scope='function')
def ctx_b(org_b, admin_b):
    return AuditContext(org_id=org_b.id, user_id=admin_b.id)


@pytest.fixture(scope='function')
def token_a(admin_a):
    _, token = session_service.create_session(admin_a.id)
    return token


@pytest.fixture(scope='function')
def accountant_token(accountant_a):
    _, token = session_service.create_session(accountant_a.id)
    return token


@pytest.fixture(scope='function')
def token_b(admin_b):
    _, token = session_service.create_session(admin_b.id)
    return token


@pytest.fixture(scope='function')
def headers_a(token_a):
    return auth_headers(token_a)


@pytest.fixture(scope='function')
def headers_b(token_b):
    return auth_headers(token_b)


@pytest.fixture(scope='function')
def safe(ctx):
    """Main cash safe with a 1000.00 opening balance."""
    return ledger_service.create_safe(ctx, name="Main Safe", opening_balance=1000)


@pytest.fixture(scope='function')
def bank_safe(ctx):
    return ledger_service.create_safe(ctx, name="Bank", opening_balance=0)


@pytest.fixture(scope='function')
def customer(ctx):
    return catalog_service.create_entity(ctx, "customer", name="Mona Adel", phone="01012345678")


@pytest.fixture(scope='function')
def owned_unit(ctx):
    """Available unit A-101 fully owned by two partners (60/40)."""
    unit = catalog_service.create_entity(ctx, "unit", code="A-101", name="Apartment 101", total_price=100000)
    first = catalog_service.create_entity(ctx, "partner", name="Karim")
    second = catalog_service.create_entity(ctx, "partner", name="Hala")
    catalog_service.create_entity(ctx, "unit_partner", unit_id=unit.id, partner_id=first.id, percentage=60)
    catalog_service.create_entity(ctx, "unit_partner", unit_id=unit.id, partner_id=second.id, percentage=40)
    return unit


def sale_terms(unit, customer, **overrides) -> dict:
    """Contract payload for a 12-month plan on unit/customer."""
    terms = {
        "unit_id": unit.id,
        "customer_id": customer.id,
        "start_date": date(2026, 1, 1).isoformat(),
        "total_price": 100000,
        "down_payment": 10000,
        "installment_frequency": "monthly",
        "installment_count": 12,
    }
    terms.update(overrides)
    return terms


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
