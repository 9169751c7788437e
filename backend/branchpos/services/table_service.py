# Overview: Table registry; table CRUD and the status view of tables with their orders.

"""
Table Registry

Tables belong to a branch and are identified to staff by ``number``, which
is unique among the branch's active tables. Status is not edited here:
``set_status`` exists for the table/order state machine
(table_order_service) and nothing else calls it.

A table's order is the sale whose ``table_id`` points at it. There is at
most one.
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFound, StateConflict, ValidationError
from ..extensions import db
from ..models import DiningTable, Sale, Zone
from branchpos.time_utils import format_elapsed, utcnow
from .concurrency import lock_for_update, run_with_retry


STATUS_AVAILABLE = "available"
STATUS_OCCUPIED = "occupied"
STATUS_RESERVED = "reserved"
TABLE_STATUSES = (STATUS_AVAILABLE, STATUS_OCCUPIED, STATUS_RESERVED)

TABLE_SHAPES = ("Rectangle", "Circle", "Square")

MIN_CAPACITY = 1
MAX_CAPACITY = 100


def _int_field(attrs: dict, name: str, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        value = int(attrs[name])
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", details={"field": name})
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be at least {minimum}", details={"field": name})
    if maximum is not None and value > maximum:
        raise ValidationError(f"{name} must be at most {maximum}", details={"field": name})
    return value


def _percent_field(attrs: dict, name: str) -> float:
    try:
        value = float(attrs[name])
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", details={"field": name})
    if value < 0 or value > 100:
        raise ValidationError(f"{name} must be between 0 and 100", details={"field": name})
    return value


def _check_zone(branch_id: int, zone_id) -> int | None:
    if zone_id is None:
        return None
    zone = db.session.query(Zone).filter_by(id=zone_id, branch_id=branch_id, is_active=True).first()
    if not zone:
        raise ValidationError("Zone not found", details={"field": "zone_id"})
    return zone.id


def _number_taken(branch_id: int, number: int, exclude_table_id: int | None = None) -> bool:
    query = db.session.query(DiningTable.id).filter(
        DiningTable.branch_id == branch_id,
        DiningTable.number == number,
        DiningTable.is_active.is_(True),
    )
    if exclude_table_id is not None:
        query = query.filter(DiningTable.id != exclude_table_id)
    return query.first() is not None


def _apply_layout(table: DiningTable, attrs: dict) -> None:
    for name in ("position_x", "position_y", "width", "height"):
        if attrs.get(name) is not None:
            setattr(table, name, _percent_field(attrs, name))
    if attrs.get("rotation") is not None:
        table.rotation = _int_field(attrs, "rotation", 0, 359)
    if attrs.get("shape") is not None:
        if attrs["shape"] not in TABLE_SHAPES:
            raise ValidationError(
                f"Invalid shape: {attrs['shape']}. Must be one of {list(TABLE_SHAPES)}",
                details={"field": "shape"},
            )
        table.shape = attrs["shape"]


def create_table(branch_id: int, attrs: dict) -> DiningTable:
    """
    attrs: number (required), name, capacity, zone_id, position_x,
    position_y, rotation, width, height, shape.
    """
    if attrs.get("number") is None:
        raise ValidationError("number is required", details={"field": "number"})
    number = _int_field(attrs, "number", minimum=1)
    capacity = _int_field(attrs, "capacity", MIN_CAPACITY, MAX_CAPACITY) if attrs.get("capacity") is not None else 4

    def _op():
        if _number_taken(branch_id, number):
            raise ValidationError(f"Table number {number} already exists", details={"field": "number"})

        table = DiningTable(
            branch_id=branch_id,
            number=number,
            name=(attrs.get("name") or "").strip() or f"Table {number}",
            capacity=capacity,
            zone_id=_check_zone(branch_id, attrs.get("zone_id")),
            status=STATUS_AVAILABLE,
        )
        _apply_layout(table, attrs)
        db.session.add(table)
        db.session.commit()
        return table

    table = run_with_retry(_op)
    current_app.logger.info("Table %s created in branch %s", table.number, branch_id)
    return table


def update_table(table_id: int, branch_id: int, attrs: dict) -> DiningTable:
    """Update table details and layout. Status is not editable here."""
    def _op():
        table = lock_for_update(
            db.session.query(DiningTable).filter_by(id=table_id, branch_id=branch_id, is_active=True)
        ).first()
        if not table:
            raise NotFound("Table not found")

        if attrs.get("number") is not None:
            number = _int_field(attrs, "number", minimum=1)
            if number != table.number and _number_taken(branch_id, number, exclude_table_id=table.id):
                raise ValidationError(f"Table number {number} already exists", details={"field": "number"})
            table.number = number
        if attrs.get("name") is not None:
            table.name = attrs["name"].strip() or f"Table {table.number}"
        if attrs.get("capacity") is not None:
            table.capacity = _int_field(attrs, "capacity", MIN_CAPACITY, MAX_CAPACITY)
        if "zone_id" in attrs:
            table.zone_id = _check_zone(branch_id, attrs["zone_id"])
        _apply_layout(table, attrs)

        table.updated_at = utcnow()
        db.session.commit()
        return table

    return run_with_retry(_op)


def delete_table(table_id: int, branch_id: int) -> None:
    """Soft delete. Refused while an order is attached to the table."""
    def _op():
        table = lock_for_update(
            db.session.query(DiningTable).filter_by(id=table_id, branch_id=branch_id, is_active=True)
        ).first()
        if not table:
            raise NotFound("Table not found")

        if attached_sale(table) is not None:
            raise StateConflict(
                "Cannot delete table with an active order",
                details={"table_number": table.number},
            )

        now = utcnow()
        table.is_active = False
        table.deleted_at = now
        table.updated_at = now
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Table %s deleted in branch %s", table_id, branch_id)


def get_table(table_id: int, branch_id: int) -> DiningTable:
    table = db.session.query(DiningTable).filter_by(id=table_id, branch_id=branch_id, is_active=True).first()
    if not table:
        raise NotFound("Table not found")
    return table


def get_table_by_number(branch_id: int, number: int, for_update: bool = False) -> DiningTable:
    query = db.session.query(DiningTable).filter_by(branch_id=branch_id, number=number, is_active=True)
    if for_update:
        query = lock_for_update(query)
    table = query.first()
    if not table:
        raise NotFound(f"Table {number} not found", details={"table_number": number})
    return table


def attached_sale(table: DiningTable) -> Sale | None:
    return db.session.query(Sale).filter(Sale.table_id == table.id).order_by(Sale.id.desc()).first()


def set_status(table: DiningTable, status: str) -> None:
    """Write table status. Caller commits."""
    if status not in TABLE_STATUSES:
        raise ValidationError(f"Invalid table status: {status}")
    table.status = status
    table.updated_at = utcnow()


def get_tables_with_status(branch_id: int, zone_id: int | None = None) -> list[dict]:
    """
    Active tables with their current order, for the floor view.

    Each entry is the table's to_dict() plus sale_id, invoice_number,
    guest_count, order_total_cents, order_time (elapsed) and is_paid.
    """
    query = db.session.query(DiningTable).filter(
        DiningTable.branch_id == branch_id,
        DiningTable.is_active.is_(True),
    )
    if zone_id is not None:
        query = query.filter(DiningTable.zone_id == zone_id)
    tables = query.order_by(DiningTable.number.asc()).all()

    table_ids = [table.id for table in tables]
    sales_by_table: dict[int, Sale] = {}
    if table_ids:
        for sale in db.session.query(Sale).filter(Sale.table_id.in_(table_ids)).order_by(Sale.id.asc()).all():
            sales_by_table[sale.table_id] = sale

    now = utcnow()
    result = []
    for table in tables:
        data = table.to_dict()
        sale = sales_by_table.get(table.id)
        data.update({
            "sale_id": sale.id if sale else None,
            "invoice_number": sale.invoice_number if sale else None,
            "guest_count": sale.guest_count if sale else None,
            "order_total_cents": sale.total_cents if sale else None,
            "order_time": format_elapsed(sale.created_at, now) if sale else None,
            "is_paid": sale.is_paid if sale else False,
        })
        result.append(data)
    return result


def list_tables(branch_id: int, zone_id: int | None = None) -> list[DiningTable]:
    query = db.session.query(DiningTable).filter(
        DiningTable.branch_id == branch_id,
        DiningTable.is_active.is_(True),
    )
    if zone_id is not None:
        query = query.filter(DiningTable.zone_id == zone_id)
    return query.order_by(DiningTable.number.asc()).all()
