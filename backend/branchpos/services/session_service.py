# Overview: Bearer sessions for branch users and head office admins, stored in the head office database.

"""
Sessions

A login mints a random bearer token. Only its SHA-256 digest is stored, next
to the (principal, branch_id, role) scope captured at login; a role change
takes effect on the next login.

A token stops working when it:
- passes the absolute or idle timeout from config
- is revoked (logout, password change, deactivation)
- belongs to a principal or branch that is no longer active in the
  credential store, checked on every request
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, BranchUser, HeadOfficeUser, Branch
from branchpos.time_utils import utcnow


PRINCIPAL_BRANCH_USER = "branch_user"
PRINCIPAL_HEAD_OFFICE = "head_office"

# Revoked or expired rows are kept this long for auditing before cleanup deletes them
SESSION_RETENTION = timedelta(days=30)


@dataclass
class SessionContext:
    """What a validated token resolves to. ``user`` is a BranchUser or HeadOfficeUser."""
    user: object
    session: SessionToken
    principal_type: str
    principal_id: str
    branch_id: int | None
    role: str

    @property
    def is_head_office(self) -> bool:
        return self.principal_type == PRINCIPAL_HEAD_OFFICE


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


def generate_token() -> str:
    """64 hex characters; returned to the client once and never persisted."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_active(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()


def create_session(
    principal_type: str,
    principal_id: str,
    role: str,
    branch_id: int | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """Persist a session for the principal and return it with the plaintext token."""
    token = generate_token()
    now = utcnow()

    session = SessionToken(
        principal_type=principal_type,
        principal_id=str(principal_id),
        branch_id=branch_id,
        role=role,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent[:255] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, token


def _load_principal(session: SessionToken):
    if session.principal_type == PRINCIPAL_HEAD_OFFICE:
        return db.session.get(HeadOfficeUser, int(session.principal_id))
    return db.session.get(BranchUser, session.principal_id)


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext, or None when it is unusable.

    Idle sessions, sessions whose user or branch was deactivated, and
    sessions opened under a role the user no longer holds are revoked on
    the spot, so they show up as revoked in the audit trail.
    A successful call bumps last_used_at.
    """
    now = utcnow()
    session = _find_active(token)

    if not session or session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    user = _load_principal(session)
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    if session.principal_type == PRINCIPAL_BRANCH_USER and user.role != session.role:
        _revoke(session, "Role changed")
        return None

    if session.branch_id is not None:
        branch = db.session.get(Branch, session.branch_id)
        if not branch or not branch.is_active:
            _revoke(session, "Branch deactivated")
            return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        principal_type=session.principal_type,
        principal_id=session.principal_id,
        branch_id=session.branch_id,
        role=session.role,
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Logout. False when the token is unknown or already revoked."""
    session = _find_active(token)
    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_principal_sessions(
    principal_id: str,
    reason: str = "Revoke all sessions",
    principal_type: str = PRINCIPAL_BRANCH_USER,
) -> int:
    """
    Mark every open session of a principal revoked and return how many.

    Leaves the commit to the caller, so deactivating a branch user or
    changing its password revokes in the same transaction.
    """
    now = utcnow()
    open_sessions = db.session.query(SessionToken).filter_by(
        principal_type=principal_type,
        principal_id=str(principal_id),
        is_revoked=False,
    ).all()

    for session in open_sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason

    return len(open_sessions)


def cleanup_expired_sessions() -> int:
    """Purge expired or revoked sessions created before the retention window."""
    now = utcnow()
    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
        SessionToken.created_at < now - SESSION_RETENTION,
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
