# Overview: Writes to the branch mirror store and the queue of failed mirror writes.

"""
Branch Mirror Store writes.

The mirror is a projection of the credential store. Every write here copies
the credential record as-is (same id, same field values); nothing is ever
copied back.

A mirror write only happens after its credential write has committed. If it
fails, the failure is logged and queued as a MirrorSyncIssue for
reconciliation; it is never reported to the caller as an operation failure.
"""

from __future__ import annotations

import threading

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import BranchUser, BranchUserMirror, MirrorSyncIssue
from branchpos.time_utils import utcnow


# Fields copied from the credential record to the mirror and compared by
# reconciliation. synced_at is bookkeeping and excluded.
SYNCED_FIELDS = (
    "branch_id",
    "username",
    "password_hash",
    "email",
    "full_name_en",
    "full_name_ar",
    "phone",
    "preferred_language",
    "role",
    "is_active",
    "last_login_at",
    "last_activity_at",
    "created_at",
    "updated_at",
    "created_by",
)

OP_CREATE = "create"
OP_UPDATE = "update"
OP_DELETE = "delete"
OP_LAST_LOGIN = "last_login"


def _normalize(value):
    # SQLite drops tzinfo on read; compare datetimes naive
    if hasattr(value, "tzinfo") and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


def differing_fields(user: BranchUser, mirror: BranchUserMirror | None) -> list[str]:
    """Synced fields whose values differ between credential and mirror."""
    if mirror is None:
        return list(SYNCED_FIELDS)
    return [
        field for field in SYNCED_FIELDS
        if _normalize(getattr(user, field)) != _normalize(getattr(mirror, field))
    ]


def apply_to_mirror(user: BranchUser) -> BranchUserMirror:
    """
    Upsert the mirror row for ``user`` and commit the branch tier.

    Raises SQLAlchemyError on failure; callers decide whether to queue.
    """
    mirror = db.session.get(BranchUserMirror, user.id)
    if mirror is None:
        mirror = BranchUserMirror(id=user.id)
        db.session.add(mirror)

    for field in SYNCED_FIELDS:
        setattr(mirror, field, getattr(user, field))

    now = utcnow()
    mirror.synced_at = now
    db.session.commit()

    user.synced_at = now
    db.session.commit()
    return mirror


def write_mirror(user: BranchUser, operation: str) -> bool:
    """
    Second half of a dual write. Returns True when the mirror is current.

    The credential write must already be committed.
    """
    user_id = user.id
    branch_id = user.branch_id
    try:
        apply_to_mirror(user)
        return True
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Mirror %s failed for branch user %s (branch %s); queued for reconciliation: %s",
            operation, user_id, branch_id, exc,
        )
        queue_issue(user_id, branch_id, operation, str(exc))
        return False


def delete_mirror(user_id: str, branch_id: int) -> bool:
    """Physically remove a mirror row (hard delete path)."""
    try:
        mirror = db.session.get(BranchUserMirror, user_id)
        if mirror is not None:
            db.session.delete(mirror)
            db.session.commit()
        return True
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Mirror delete failed for branch user %s (branch %s): %s", user_id, branch_id, exc,
        )
        queue_issue(user_id, branch_id, OP_DELETE, str(exc))
        return False


def queue_issue(user_id: str, branch_id: int, operation: str, error: str | None) -> MirrorSyncIssue | None:
    """
    Record a failed mirror write. One open issue per user; repeats bump
    ``attempts``.
    """
    try:
        issue = db.session.query(MirrorSyncIssue).filter_by(
            branch_user_id=user_id,
            resolved_at=None,
        ).first()
        if issue:
            issue.attempts += 1
            issue.operation = operation
            issue.error = error
        else:
            issue = MirrorSyncIssue(
                branch_user_id=user_id,
                branch_id=branch_id,
                operation=operation,
                error=error,
            )
            db.session.add(issue)
        db.session.commit()
        return issue
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to queue mirror sync issue for branch user %s", user_id)
        return None


def resolve_issues(user_ids: list[str]) -> int:
    """Mark open issues for ``user_ids`` resolved. Does not commit."""
    if not user_ids:
        return 0
    now = utcnow()
    issues = db.session.query(MirrorSyncIssue).filter(
        MirrorSyncIssue.branch_user_id.in_(user_ids),
        MirrorSyncIssue.resolved_at.is_(None),
    ).all()
    for issue in issues:
        issue.resolved_at = now
    return len(issues)


def list_open_issues(branch_id: int | None = None) -> list[MirrorSyncIssue]:
    query = db.session.query(MirrorSyncIssue).filter(MirrorSyncIssue.resolved_at.is_(None))
    if branch_id is not None:
        query = query.filter(MirrorSyncIssue.branch_id == branch_id)
    return query.order_by(MirrorSyncIssue.created_at.asc()).all()


def _write_last_login(user_id: str, branch_id: int, last_login_at, last_activity_at) -> None:
    try:
        mirror = db.session.get(BranchUserMirror, user_id)
        if mirror is None:
            queue_issue(user_id, branch_id, OP_LAST_LOGIN, "Mirror row missing")
            return
        mirror.last_login_at = last_login_at
        mirror.last_activity_at = last_activity_at
        mirror.synced_at = utcnow()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Mirror last-login update failed for %s: %s", user_id, exc)
        queue_issue(user_id, branch_id, OP_LAST_LOGIN, str(exc))


def _run_in_app_context(app, func, *args) -> None:
    with app.app_context():
        try:
            func(*args)
        except Exception:
            app.logger.exception("Background mirror write failed")


def propagate_last_login(user_id: str, last_login_at, last_activity_at=None) -> None:
    """
    Best-effort copy of login timestamps to the mirror.

    Runs on a daemon thread when MIRROR_ASYNC_WRITES is set so login never
    waits on the branch tier; runs inline otherwise.
    """
    user = db.session.get(BranchUser, user_id)
    branch_id = user.branch_id if user else None
    args = (user_id, branch_id, last_login_at, last_activity_at)

    if current_app.config.get("MIRROR_ASYNC_WRITES", True):
        app = current_app._get_current_object()
        thread = threading.Thread(
            target=_run_in_app_context,
            args=(app, _write_last_login, *args),
            name=f"mirror-last-login-{user_id}",
            daemon=True,
        )
        thread.start()
    else:
        _write_last_login(*args)
