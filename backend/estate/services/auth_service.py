# Overview: Service-layer operations for auth; password hashing and user management.

"""
Authentication service

Every voucher, transfer and contract is attributable to the user who
recorded it (AuditLog.user_id), so every request runs as a real user.

MULTI-TENANT: Users belong to exactly one organization (org_id).
Username/email uniqueness is tenant-scoped.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import Organization, User
from ..models.auth import USER_ROLE_ACCOUNTANT, USER_ROLES
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_secret(secret: str, *, rounds: int = 12) -> str:
    """bcrypt hash without strength checks (lock-screen passwords reuse this)."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(secret.encode('utf-8'), salt).decode('utf-8')


def hash_password(password: str) -> str:
    """Hash a login password; validated for strength before hashing."""
    validate_password_strength(password)
    return hash_secret(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never verify."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    org_id: int,
    role: str = USER_ROLE_ACCOUNTANT,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: If org doesn't exist, is inactive, the role is unknown
            or the username/email is taken within the organization
        PasswordValidationError: If password doesn't meet requirements
    """
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        raise ValueError("Organization not found")
    if not org.is_active:
        raise ValueError("Organization is not active")
    if role not in USER_ROLES:
        raise ValueError(f"Unknown role: {role}")

    existing = db.session.query(User).filter(
        User.org_id == org_id,
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists in this organization")

    user = User(
        org_id=org_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, org_id: int | None = None) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns the User and stamps last_login_at when the credentials are
    valid and the user's organization is active; None otherwise.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    )
    if org_id is not None:
        query = query.filter(User.org_id == org_id)

    user = query.first()
    if not user:
        return None

    org = db.session.query(Organization).filter_by(id=user.org_id).first()
    if not org or not org.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def create_organization(name: str, code: str | None = None) -> Organization:
    if not name or not name.strip():
        raise ValueError("Organization name is required")
    if code and db.session.query(Organization).filter_by(code=code).first():
        raise ValueError(f"Organization code {code} already exists")
    org = Organization(name=name.strip(), code=code)
    db.session.add(org)
    db.session.commit()
    return org
