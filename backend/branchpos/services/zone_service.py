from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, StateConflict, ValidationError
from ..extensions import db
from ..models import DiningTable, Zone
from .concurrency import lock_for_update, run_with_retry


def _name_taken(branch_id: int, name: str, exclude_zone_id: int | None = None) -> bool:
    query = db.session.query(Zone.id).filter(
        Zone.branch_id == branch_id,
        db.func.lower(Zone.name) == name.lower(),
    )
    if exclude_zone_id is not None:
        query = query.filter(Zone.id != exclude_zone_id)
    return query.first() is not None


def create_zone(
    branch_id: int,
    name: str,
    description: str | None = None,
    display_order: int = 0,
) -> Zone:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Zone name is required", details={"field": "name"})

    def _op():
        if _name_taken(branch_id, name):
            raise ValidationError(f"Zone '{name}' already exists", details={"field": "name"})

        zone = Zone(
            branch_id=branch_id,
            name=name,
            description=description,
            display_order=int(display_order or 0),
        )
        db.session.add(zone)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"Zone '{name}' already exists", details={"field": "name"})
        return zone

    return run_with_retry(_op)


def update_zone(
    zone_id: int,
    branch_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    display_order: int | None = None,
    is_active: bool | None = None,
) -> Zone:
    def _op():
        zone = lock_for_update(
            db.session.query(Zone).filter_by(id=zone_id, branch_id=branch_id)
        ).first()
        if not zone:
            raise NotFound("Zone not found")

        if name is not None:
            new_name = name.strip()
            if not new_name:
                raise ValidationError("Zone name cannot be empty", details={"field": "name"})
            if _name_taken(branch_id, new_name, exclude_zone_id=zone.id):
                raise ValidationError(f"Zone '{new_name}' already exists", details={"field": "name"})
            zone.name = new_name
        if description is not None:
            zone.description = description
        if display_order is not None:
            zone.display_order = int(display_order)
        if is_active is not None:
            zone.is_active = bool(is_active)

        db.session.commit()
        return zone

    return run_with_retry(_op)


def delete_zone(zone_id: int, branch_id: int) -> None:
    """Soft delete; refused while active tables are assigned to the zone."""
    def _op():
        zone = lock_for_update(
            db.session.query(Zone).filter_by(id=zone_id, branch_id=branch_id)
        ).first()
        if not zone:
            raise NotFound("Zone not found")

        in_use = db.session.query(DiningTable.id).filter(
            DiningTable.zone_id == zone.id,
            DiningTable.is_active.is_(True),
        ).count()
        if in_use:
            raise StateConflict(
                "Cannot delete zone with active tables",
                details={"zone_id": zone.id, "table_count": in_use},
            )

        zone.is_active = False
        db.session.commit()

    run_with_retry(_op)


def get_zone(zone_id: int, branch_id: int) -> Zone:
    zone = db.session.query(Zone).filter_by(id=zone_id, branch_id=branch_id).first()
    if not zone:
        raise NotFound("Zone not found")
    return zone


def list_zones(branch_id: int, include_inactive: bool = False) -> list[Zone]:
    query = db.session.query(Zone).filter(Zone.branch_id == branch_id)
    if not include_inactive:
        query = query.filter(Zone.is_active.is_(True))
    return query.order_by(Zone.display_order.asc(), Zone.name.asc()).all()
