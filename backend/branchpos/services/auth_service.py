# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

The credential store (head office database) is the only source consulted
for login. The branch mirror is never read here, not even as a fallback:
it may be stale and could admit a deactivated user. If the credential store
cannot be reached, login fails with ServiceUnavailable.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Unknown branch, unknown user, inactive user and wrong password all raise
  the same InvalidCredentials error (no username enumeration)
- Usernames compare case-insensitively within a branch
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import DBAPIError

from ..errors import InvalidCredentials, PasswordValidationError, ServiceUnavailable, ValidationError
from ..extensions import db
from ..models import Branch, BranchUser, HeadOfficeUser
from branchpos.time_utils import utcnow
from . import mirror_service, session_service
from .permission_service import ROLE_ADMIN


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def normalize_branch_code(code: str) -> str:
    return (code or "").strip().upper()


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

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

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. Malformed hashes verify as
    False rather than raising.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _find_credential(branch_code: str, username: str) -> BranchUser | None:
    branch = db.session.query(Branch).filter_by(
        code=normalize_branch_code(branch_code),
        is_active=True,
    ).first()
    if not branch:
        return None

    return db.session.query(BranchUser).filter_by(
        branch_id=branch.id,
        username_normalized=normalize_username(username),
    ).first()


def login(
    branch_code: str,
    username: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
):
    """
    Authenticate a branch user against the credential store.

    Returns (token, user, session).

    last_login_at is committed to the credential store before the token is
    issued. The mirror copy is updated afterwards on a best-effort basis.

    Raises:
        InvalidCredentials: unknown branch/user, inactive user, bad password
        ServiceUnavailable: credential store unreachable
    """
    if not all([branch_code, username, password]):
        raise InvalidCredentials()

    try:
        user = _find_credential(branch_code, username)

        if not user or not user.is_active:
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            raise InvalidCredentials()

        now = utcnow()
        user.last_login_at = now
        user.last_activity_at = now
        db.session.commit()

        session, token = session_service.create_session(
            principal_type=session_service.PRINCIPAL_BRANCH_USER,
            principal_id=user.id,
            role=user.role,
            branch_id=user.branch_id,
            user_agent=user_agent,
            ip_address=ip_address,
        )
    except DBAPIError as exc:
        db.session.rollback()
        current_app.logger.error("Credential store unavailable during login: %s", exc)
        raise ServiceUnavailable("Authentication service unavailable") from exc

    mirror_service.propagate_last_login(user.id, user.last_login_at, user.last_activity_at)

    return token, user, session


def login_head_office(
    username: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
):
    """
    Authenticate a head office administrator.

    Returns (token, user, session). The session has no branch scope and the
    Admin role.
    """
    if not all([username, password]):
        raise InvalidCredentials()

    try:
        user = db.session.query(HeadOfficeUser).filter(
            db.func.lower(HeadOfficeUser.username) == normalize_username(username),
        ).first()

        if not user or not user.is_active:
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            raise InvalidCredentials()

        user.last_login_at = utcnow()
        db.session.commit()

        session, token = session_service.create_session(
            principal_type=session_service.PRINCIPAL_HEAD_OFFICE,
            principal_id=str(user.id),
            role=ROLE_ADMIN,
            user_agent=user_agent,
            ip_address=ip_address,
        )
    except DBAPIError as exc:
        db.session.rollback()
        current_app.logger.error("Credential store unavailable during login: %s", exc)
        raise ServiceUnavailable("Authentication service unavailable") from exc

    return token, user, session


def create_head_office_user(username: str, email: str, password: str) -> HeadOfficeUser:
    """Create a head office administrator (CLI bootstrap)."""
    if not username or not email:
        raise ValidationError("username and email are required")

    existing = db.session.query(HeadOfficeUser).filter(
        db.func.lower(HeadOfficeUser.username) == normalize_username(username),
    ).first()
    if existing:
        raise ValidationError("Username already exists")

    user = HeadOfficeUser(
        username=username.strip(),
        email=email.strip(),
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.commit()
    return user
