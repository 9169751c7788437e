# Overview: Sync coordinator for branch users; dual-writes credential store then mirror.

"""
Branch User Sync Coordinator

Every mutation of a branch user is a dual write:

1. Credential store (head office) write, committed. This is the durability
   boundary: once it commits the operation has succeeded, and login sees
   the new state immediately.
2. Mirror store (branch tier) write of the same record, same id. If it
   fails, the failure is queued for reconciliation and the caller still
   gets a success.

Nothing here reads the mirror to make a decision. Username uniqueness is
checked against the credential store (case-insensitive, per branch) and
enforced again by its unique constraint, so two concurrent creates of the
same username cannot both commit.
"""

from __future__ import annotations

import uuid

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateUsername, NotFound, ValidationError
from ..extensions import db
from ..models import Branch, BranchUser, Sale
from branchpos.time_utils import utcnow
from . import mirror_service, session_service
from .auth_service import hash_password, normalize_username
from .concurrency import lock_for_update, run_with_retry
from .permission_service import BRANCH_USER_ROLES, ROLE_MANAGER


DEFAULT_ADMIN_USERNAME = "admin"

UPDATABLE_FIELDS = (
    "username",
    "email",
    "full_name_en",
    "full_name_ar",
    "phone",
    "preferred_language",
    "role",
    "is_active",
)

DELETE_SOFT = "soft"
DELETE_HARD = "hard"


def _validate_role(role: str) -> None:
    if role not in BRANCH_USER_ROLES:
        raise ValidationError(
            f"Invalid role: {role}. Must be one of {list(BRANCH_USER_ROLES)}",
            details={"field": "role"},
        )


def _username_taken(branch_id: int, username: str, exclude_user_id: str | None = None) -> bool:
    query = db.session.query(BranchUser.id).filter(
        BranchUser.branch_id == branch_id,
        BranchUser.username_normalized == normalize_username(username),
    )
    if exclude_user_id is not None:
        query = query.filter(BranchUser.id != exclude_user_id)
    return query.first() is not None


def _duplicate(username: str) -> DuplicateUsername:
    return DuplicateUsername(
        f"Username '{username}' is already taken in this branch",
        details={"username": username},
    )


def get_branch_user(user_id: str) -> BranchUser:
    user = db.session.get(BranchUser, user_id)
    if not user:
        raise NotFound("Branch user not found")
    return user


def list_branch_users(branch_id: int | None = None, include_inactive: bool = False) -> list[BranchUser]:
    query = db.session.query(BranchUser)
    if branch_id is not None:
        query = query.filter(BranchUser.branch_id == branch_id)
    if not include_inactive:
        query = query.filter(BranchUser.is_active.is_(True))
    return query.order_by(BranchUser.branch_id.asc(), BranchUser.username_normalized.asc()).all()


def create_branch_user(branch_id: int, attrs: dict, created_by: str | None = None) -> BranchUser:
    """
    Create a branch user in the credential store, then mirror it.

    attrs: username, password (required); email, full_name_en, full_name_ar,
    phone, preferred_language, role (default Cashier), is_active.

    Raises:
        NotFound: branch does not exist
        ValidationError / PasswordValidationError: bad input
        DuplicateUsername: username already used in this branch
    """
    username = (attrs.get("username") or "").strip()
    password = attrs.get("password")
    role = attrs.get("role") or "Cashier"

    if not username:
        raise ValidationError("username is required", details={"field": "username"})
    if not password:
        raise ValidationError("password is required", details={"field": "password"})
    _validate_role(role)

    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise NotFound("Branch not found")

    if _username_taken(branch_id, username):
        raise _duplicate(username)

    password_hash = hash_password(password)
    now = utcnow()

    def _op():
        user = BranchUser(
            id=str(uuid.uuid4()),
            branch_id=branch_id,
            username=username,
            username_normalized=normalize_username(username),
            password_hash=password_hash,
            email=attrs.get("email"),
            full_name_en=attrs.get("full_name_en") or username,
            full_name_ar=attrs.get("full_name_ar"),
            phone=attrs.get("phone"),
            preferred_language=attrs.get("preferred_language") or "en",
            role=role,
            is_active=attrs.get("is_active") is not False,
            created_at=now,
            updated_at=now,
            created_by=created_by,
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise _duplicate(username)
        return user

    user = run_with_retry(_op)
    current_app.logger.info("Branch user %s created in branch %s", user.id, branch_id)

    mirror_service.write_mirror(user, mirror_service.OP_CREATE)
    return user


def update_branch_user(user_id: str, patch: dict) -> BranchUser:
    """
    Update a branch user: credential store first, then mirror.

    A changed username is re-checked for uniqueness within the branch,
    excluding the user itself. ``new_password`` replaces the password hash.
    Deactivation, a role change or a password change revokes the user's
    open sessions, since sessions carry the role they were opened with.
    """
    new_password = patch.get("new_password")
    password_hash = hash_password(new_password) if new_password else None

    if "role" in patch and patch["role"] is not None:
        _validate_role(patch["role"])

    def _op():
        user = lock_for_update(db.session.query(BranchUser).filter_by(id=user_id)).first()
        if not user:
            raise NotFound("Branch user not found")

        new_username = patch.get("username")
        if new_username is not None:
            new_username = new_username.strip()
            if not new_username:
                raise ValidationError("username cannot be empty", details={"field": "username"})
            if normalize_username(new_username) != user.username_normalized:
                if _username_taken(user.branch_id, new_username, exclude_user_id=user.id):
                    raise _duplicate(new_username)
            user.username = new_username
            user.username_normalized = normalize_username(new_username)

        previous_role = user.role
        for field in UPDATABLE_FIELDS:
            if field == "username" or field not in patch or patch[field] is None:
                continue
            value = patch[field]
            if field == "is_active":
                value = bool(value)
            setattr(user, field, value)

        revoke_reason = None
        if password_hash:
            user.password_hash = password_hash
            revoke_reason = "Password changed"
        if user.role != previous_role:
            revoke_reason = "Role changed"
        if not user.is_active:
            revoke_reason = "User deactivated"
        if revoke_reason:
            session_service.revoke_all_principal_sessions(user.id, reason=revoke_reason)

        user.updated_at = utcnow()
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise _duplicate(new_username or "")
        return user

    user = run_with_retry(_op)
    current_app.logger.info("Branch user %s updated", user.id)

    mirror_service.write_mirror(user, mirror_service.OP_UPDATE)
    return user


def _has_references(user_id: str) -> bool:
    return db.session.query(Sale.id).filter(Sale.created_by == user_id).first() is not None


def delete_branch_user(user_id: str, hard: bool = False) -> str:
    """
    Delete a branch user in both stores.

    Default is a soft delete (is_active=False). ``hard=True`` removes both
    rows, but only when no sale references the user; otherwise it falls back
    to a soft delete. Returns DELETE_SOFT or DELETE_HARD.
    """
    user = get_branch_user(user_id)
    branch_id = user.branch_id

    if hard and not _has_references(user_id):
        def _hard_op():
            target = lock_for_update(db.session.query(BranchUser).filter_by(id=user_id)).first()
            if not target:
                raise NotFound("Branch user not found")
            session_service.revoke_all_principal_sessions(user_id, reason="User deleted")
            db.session.delete(target)
            db.session.commit()

        run_with_retry(_hard_op)
        mirror_service.delete_mirror(user_id, branch_id)
        current_app.logger.info("Branch user %s hard-deleted", user_id)
        return DELETE_HARD

    def _soft_op():
        target = lock_for_update(db.session.query(BranchUser).filter_by(id=user_id)).first()
        if not target:
            raise NotFound("Branch user not found")
        target.is_active = False
        target.updated_at = utcnow()
        session_service.revoke_all_principal_sessions(user_id, reason="User deactivated")
        db.session.commit()
        return target

    target = run_with_retry(_soft_op)
    mirror_service.write_mirror(target, mirror_service.OP_DELETE)
    current_app.logger.info("Branch user %s deactivated", user_id)
    return DELETE_SOFT


def provision_default_admin(branch_id: int) -> BranchUser:
    """
    Seed the default 'admin' (Manager) for a new branch in both stores.

    Idempotent: an existing 'admin' in the branch is returned unchanged.
    """
    existing = db.session.query(BranchUser).filter_by(
        branch_id=branch_id,
        username_normalized=DEFAULT_ADMIN_USERNAME,
    ).first()
    if existing:
        return existing

    return create_branch_user(branch_id, {
        "username": DEFAULT_ADMIN_USERNAME,
        "password": current_app.config["DEFAULT_BRANCH_ADMIN_PASSWORD"],
        "role": ROLE_MANAGER,
        "full_name_en": "Branch Administrator",
    })
