from __future__ import annotations

from ..extensions import db
from branchpos.time_utils import to_utc_z, utcnow


class BranchUserMirror(db.Model):
    """
    Branch-local copy of a branch user, used for display and audit.

    Never authoritative and never read for authentication. Shares its id with
    the head office BranchUser row and is overwritten from it on every
    dual-write and by reconciliation.
    """
    __bind_key__ = "branch"
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_branch_username", "branch_id", "username"),
    )

    id = db.Column(db.String(36), primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    username = db.Column(db.String(64), nullable=False)
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
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(36), nullable=True)

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


class Zone(db.Model):
    """Dining area grouping tables (e.g. Terrace, Main Hall)."""
    __bind_key__ = "branch"
    __tablename__ = "zones"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "name", name="uq_zones_branch_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "display_order": self.display_order,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DiningTable(db.Model):
    """
    Dine-in table.

    ``status`` is written only through the table/order state machine
    (services/table_order_service.py). ``version_id`` is an optimistic
    concurrency token: two transactions that both read the table as
    available cannot both flip it to occupied.
    """
    __bind_key__ = "branch"
    __tablename__ = "tables"
    __table_args__ = (
        db.Index("ix_tables_branch_number", "branch_id", "number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    capacity = db.Column(db.Integer, nullable=False, default=4)
    zone_id = db.Column(db.Integer, db.ForeignKey("zones.id"), nullable=True, index=True)

    # available, occupied, reserved
    status = db.Column(db.String(16), nullable=False, default="available", index=True)

    # Layout (percentage-based: 0-100)
    position_x = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    position_y = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    rotation = db.Column(db.Integer, nullable=False, default=0)
    width = db.Column(db.Numeric(6, 2), nullable=False, default=10)
    height = db.Column(db.Numeric(6, 2), nullable=False, default=10)
    shape = db.Column(db.String(20), nullable=False, default="Rectangle")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    zone = db.relationship("Zone", backref=db.backref("tables", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "number": self.number,
            "name": self.name,
            "capacity": self.capacity,
            "zone_id": self.zone_id,
            "zone_name": self.zone.name if self.zone else None,
            "status": self.status,
            "position": {
                "x": float(self.position_x),
                "y": float(self.position_y),
                "rotation": self.rotation,
            },
            "dimensions": {
                "width": float(self.width),
                "height": float(self.height),
                "shape": self.shape,
            },
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
