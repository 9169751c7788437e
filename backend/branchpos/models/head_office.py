from __future__ import annotations

from ..extensions import db
from branchpos.time_utils import to_utc_z, utcnow


class Branch(db.Model):
    """
    A physical retail location managed by head office.

    Branches are looked up by ``code`` at login. Sales tax for the branch's
    orders is read from ``tax_rate_bps``.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Basis points (e.g., 1500 = 15%)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "is_active": self.is_active,
            "tax_rate_bps": self.tax_rate_bps,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BranchUser(db.Model):
    """
    Credential store record for a branch user.

    Authoritative for authentication. The branch tier keeps a mirror row
    (BranchUserMirror) with the same id that must eventually equal this one.

    Usernames are unique per branch, not globally. The constraint is on the
    normalized (lower-cased) username so concurrent creates that differ only
    in case fail at the storage layer.
    """
    __tablename__ = "branch_users"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "username_normalized", name="uq_branch_users_branch_username"),
        db.Index("ix_branch_users_branch_id", "branch_id"),
    )

    id = db.Column(db.String(36), primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)

    username = db.Column(db.String(64), nullable=False)
    username_normalized = db.Column(db.String(64), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    full_name_en = db.Column(db.String(200), nullable=False, default="")
    full_name_ar = db.Column(db.String(200), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    preferred_language = db.Column(db.String(8), nullable=False, default="en")
    role = db.Column(db.String(16), nullable=False, default="Cashier")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    # Last time the mirror was confirmed equal to this record
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(36), nullable=True)

    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "username": self.username,
            "email": self.email,
            "full_name_en": self.full_name_en,
            "full_name_ar": self.full_name_ar,
            "phone": self.phone,
            "preferred_language": self.preferred_language,
            "role": self.role,
            "is_active": self.is_active,
            "last_login_at": to_utc_z(self.last_login_at),
            "last_activity_at": to_utc_z(self.last_activity_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "synced_at": to_utc_z(self.synced_at),
        }


class MirrorSyncIssue(db.Model):
    """
    Queued mirror write that failed after its credential write committed.

    Lives in the head office database so the queue survives a branch
    outage. Rows are resolved by reconciliation, never deleted.
    """
    __tablename__ = "mirror_sync_issues"
    __table_args__ = (
        db.Index("ix_mirror_sync_issues_open", "resolved_at", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_user_id = db.Column(db.String(36), nullable=False, index=True)
    branch_id = db.Column(db.Integer, nullable=False)
    operation = db.Column(db.String(32), nullable=False)  # create, update, delete, last_login
    error = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_user_id": self.branch_user_id,
            "branch_id": self.branch_id,
            "operation": self.operation,
            "error": self.error,
            "attempts": self.attempts,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at),
        }
