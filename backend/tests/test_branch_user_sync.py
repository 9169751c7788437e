"""
Branch user dual-write tests.

Verifies:
- Usernames are unique per branch, case-insensitively, and may repeat across branches
- Credential and mirror rows share one id
- A failed mirror write never fails the operation and is queued
- Soft and hard delete reach both stores
- Default admin provisioning is idempotent
"""

import pytest
from sqlalchemy.exc import OperationalError

from branchpos.errors import DuplicateUsername, PasswordValidationError, ValidationError
from branchpos.extensions import db
from branchpos.models import BranchUser, BranchUserMirror, MirrorSyncIssue
from branchpos.services import branch_user_service, mirror_service, sales_service


PASSWORD = "Password123!"


def _create(branch_id, username, role="Cashier"):
    return branch_user_service.create_branch_user(branch_id, {
        "username": username,
        "password": PASSWORD,
        "role": role,
    })


# =============================================================================
# UNIQUENESS
# =============================================================================


class TestUsernameUniqueness:

    def test_duplicate_in_same_branch_rejected(self, branch_a):
        _create(branch_a.id, "bob")
        with pytest.raises(DuplicateUsername):
            _create(branch_a.id, "bob")

    def test_duplicate_is_case_insensitive(self, branch_a):
        _create(branch_a.id, "Bob")
        with pytest.raises(DuplicateUsername):
            _create(branch_a.id, "  bOB ")

    def test_same_username_allowed_in_other_branch(self, branch_a, branch_b):
        user_a = _create(branch_a.id, "bob")
        user_b = _create(branch_b.id, "bob")
        assert user_a.id != user_b.id

    def test_storage_constraint_catches_race(self, branch_a, monkeypatch):
        """Two creates that both pass the pre-check: only one commits."""
        _create(branch_a.id, "alice")
        monkeypatch.setattr(branch_user_service, "_username_taken", lambda *args, **kwargs: False)

        with pytest.raises(DuplicateUsername):
            _create(branch_a.id, "ALICE")

        count = db.session.query(BranchUser).filter_by(
            branch_id=branch_a.id, username_normalized="alice"
        ).count()
        assert count == 1
        assert db.session.query(BranchUserMirror).filter_by(
            branch_id=branch_a.id, username="ALICE"
        ).count() == 0

    def test_rename_checks_uniqueness_excluding_self(self, branch_a):
        bob = _create(branch_a.id, "bob")
        carol = _create(branch_a.id, "carol")

        with pytest.raises(DuplicateUsername):
            branch_user_service.update_branch_user(carol.id, {"username": "BOB"})

        renamed = branch_user_service.update_branch_user(bob.id, {"username": "Bob"})
        assert renamed.username == "Bob"
        assert db.session.get(BranchUserMirror, bob.id).username == "Bob"

    def test_soft_deleted_username_stays_reserved(self, branch_a):
        bob = _create(branch_a.id, "bob")
        branch_user_service.delete_branch_user(bob.id)
        with pytest.raises(DuplicateUsername):
            _create(branch_a.id, "bob")


# =============================================================================
# DUAL WRITE
# =============================================================================


class TestDualWrite:

    def test_create_writes_both_stores_with_same_id(self, branch_a):
        user = _create(branch_a.id, "dana", role="Manager")

        mirror = db.session.get(BranchUserMirror, user.id)
        assert mirror is not None
        assert mirror.branch_id == branch_a.id
        assert mirror.username == "dana"
        assert mirror.role == "Manager"
        assert mirror.password_hash == user.password_hash
        assert mirror_service.differing_fields(user, mirror) == []
        assert user.synced_at is not None

    def test_mirror_failure_keeps_credential_and_queues_issue(self, branch_a, monkeypatch):
        def broken_mirror(user):
            raise OperationalError("INSERT INTO users", {}, Exception("branch database offline"))

        monkeypatch.setattr(mirror_service, "apply_to_mirror", broken_mirror)

        user = _create(branch_a.id, "erin")

        assert db.session.get(BranchUser, user.id) is not None
        assert db.session.get(BranchUserMirror, user.id) is None

        issues = mirror_service.list_open_issues(branch_a.id)
        assert [issue.branch_user_id for issue in issues] == [user.id]
        assert issues[0].operation == mirror_service.OP_CREATE
        assert "offline" in issues[0].error

    def test_repeated_failures_bump_attempts(self, branch_a, monkeypatch):
        user = _create(branch_a.id, "frank")

        def broken_mirror(user):
            raise OperationalError("UPDATE users", {}, Exception("timeout"))

        monkeypatch.setattr(mirror_service, "apply_to_mirror", broken_mirror)
        branch_user_service.update_branch_user(user.id, {"full_name_en": "Frank One"})
        branch_user_service.update_branch_user(user.id, {"full_name_en": "Frank Two"})

        issues = db.session.query(MirrorSyncIssue).filter_by(branch_user_id=user.id).all()
        assert len(issues) == 1
        assert issues[0].attempts == 2
        assert db.session.get(BranchUser, user.id).full_name_en == "Frank Two"

    def test_update_reaches_mirror(self, branch_a):
        user = _create(branch_a.id, "gina")
        branch_user_service.update_branch_user(user.id, {
            "full_name_ar": "جينا",
            "role": "Manager",
            "new_password": "NewPassword1!",
        })

        mirror = db.session.get(BranchUserMirror, user.id)
        assert mirror.full_name_ar == "جينا"
        assert mirror.role == "Manager"
        assert mirror.password_hash == db.session.get(BranchUser, user.id).password_hash

    def test_invalid_role_rejected(self, branch_a):
        with pytest.raises(ValidationError):
            _create(branch_a.id, "hank", role="Admin")

    def test_weak_password_rejected(self, branch_a):
        with pytest.raises(PasswordValidationError):
            branch_user_service.create_branch_user(branch_a.id, {"username": "ivy", "password": "short"})


# =============================================================================
# DELETE
# =============================================================================


class TestDelete:

    def test_soft_delete_deactivates_both(self, branch_a):
        user = _create(branch_a.id, "jack")
        assert branch_user_service.delete_branch_user(user.id) == branch_user_service.DELETE_SOFT

        assert db.session.get(BranchUser, user.id).is_active is False
        assert db.session.get(BranchUserMirror, user.id).is_active is False

    def test_hard_delete_removes_both(self, branch_a):
        user = _create(branch_a.id, "kate")
        user_id = user.id
        assert branch_user_service.delete_branch_user(user_id, hard=True) == branch_user_service.DELETE_HARD

        assert db.session.get(BranchUser, user_id) is None
        assert db.session.get(BranchUserMirror, user_id) is None

    def test_hard_delete_falls_back_to_soft_when_referenced(self, branch_a):
        user = _create(branch_a.id, "liam")
        sales_service.create_sale(
            branch_a.id,
            user.id,
            items=[{"product_name": "Coffee", "quantity": 1, "unit_price_cents": 1200}],
        )

        assert branch_user_service.delete_branch_user(user.id, hard=True) == branch_user_service.DELETE_SOFT
        assert db.session.get(BranchUser, user.id).is_active is False
        assert db.session.get(BranchUserMirror, user.id).is_active is False


# =============================================================================
# PROVISIONING
# =============================================================================


class TestDefaultAdmin:

    def test_branch_creation_provisions_admin_in_both_stores(self, branch_a):
        admin = db.session.query(BranchUser).filter_by(
            branch_id=branch_a.id, username_normalized="admin"
        ).one()
        assert admin.role == "Manager"
        assert db.session.get(BranchUserMirror, admin.id) is not None

    def test_provisioning_is_idempotent(self, branch_a):
        first = db.session.query(BranchUser).filter_by(
            branch_id=branch_a.id, username_normalized="admin"
        ).one()
        again = branch_user_service.provision_default_admin(branch_a.id)

        assert again.id == first.id
        assert db.session.query(BranchUser).filter_by(
            branch_id=branch_a.id, username_normalized="admin"
        ).count() == 1
