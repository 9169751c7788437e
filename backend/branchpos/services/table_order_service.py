# Overview: Table/order state machine; couples table status with the sale attached to it.

"""
Table-Order Coordinator

Table status and the table's attached sale (Sale.table_id) change together:
every operation here locks the table row(s), mutates the sale and the table,
and commits once on the branch bind. Either both changes land or neither.

Table status is written only by ``transition``, driven by TABLE_TRANSITIONS.

    available --start_order--> occupied --clear (sale paid)--> available
    available --reserve--> reserved --release--> available
    occupied --transfer_out--> available   (source table of a transfer)
    available --transfer_in--> occupied    (target table of a transfer)

Paying (or completing without payment) never frees a table. Only clearing
a paid order does, so staff always see who still owes money.
"""

from __future__ import annotations

from flask import current_app

from ..errors import (
    BranchPosError,
    CannotClearUnpaid,
    InvalidTransition,
    SameTable,
    TableNotAvailable,
    TargetOccupied,
    ValidationError,
)
from ..extensions import db
from ..models import DiningTable, Sale
from branchpos.time_utils import utcnow
from . import sales_service
from .concurrency import run_with_retry
from .table_service import (
    STATUS_AVAILABLE,
    STATUS_OCCUPIED,
    STATUS_RESERVED,
    attached_sale,
    get_table_by_number,
    set_status,
)


# (current status, event) -> new status
TABLE_TRANSITIONS = {
    (STATUS_AVAILABLE, "start_order"): STATUS_OCCUPIED,
    (STATUS_OCCUPIED, "clear"): STATUS_AVAILABLE,
    (STATUS_OCCUPIED, "transfer_out"): STATUS_AVAILABLE,
    (STATUS_AVAILABLE, "transfer_in"): STATUS_OCCUPIED,
    (STATUS_AVAILABLE, "reserve"): STATUS_RESERVED,
    (STATUS_RESERVED, "release"): STATUS_AVAILABLE,
}


def transition(table: DiningTable, event: str, error_cls=InvalidTransition) -> str:
    """Apply ``event`` to the table's status. Caller commits."""
    new_status = TABLE_TRANSITIONS.get((table.status, event))
    if new_status is None:
        raise error_cls(
            f"Table {table.number} is {table.status}; cannot {event.replace('_', ' ')}",
            details={"table_number": table.number, "status": table.status, "event": event},
        )
    set_status(table, new_status)
    return new_status


def _require_sale(table: DiningTable) -> Sale:
    sale = attached_sale(table)
    if sale is None:
        raise InvalidTransition(
            f"Table {table.number} has no active order",
            details={"table_number": table.number},
        )
    return sale


def _validate_guest_count(guest_count) -> int | None:
    if guest_count is None:
        return None
    value = sales_service._as_int(guest_count, "guest_count")
    if value < 1:
        raise ValidationError("guest_count must be at least 1", details={"field": "guest_count"})
    return value


def start_order(
    branch_id: int,
    table_number: int,
    guest_count: int | None = None,
    user_id: str | None = None,
    items: list[dict] | None = None,
    discount_cents: int = 0,
    notes: str | None = None,
) -> Sale:
    """
    Open a dine-in sale on an available table and mark it occupied.

    Two concurrent calls for the same table cannot both succeed: the loser
    either blocks on the row lock or fails the table's version check, and
    on retry sees the table occupied.

    Raises:
        NotFound: no active table with that number
        TableNotAvailable: table is occupied or reserved
    """
    guest_count = _validate_guest_count(guest_count)

    def _op():
        table = get_table_by_number(branch_id, table_number, for_update=True)
        if table.status != STATUS_AVAILABLE or attached_sale(table) is not None:
            raise TableNotAvailable(
                f"Table {table_number} is not available",
                details={"table_number": table_number, "status": table.status},
            )

        sale = sales_service._build_sale(
            branch_id,
            user_id,
            sales_service.ORDER_DINE_IN,
            items,
            discount_cents,
            notes,
        )
        sale.table_id = table.id
        sale.table_number = table.number
        sale.guest_count = guest_count
        transition(table, "start_order", error_cls=TableNotAvailable)

        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Table %s started order %s in branch %s", table_number, sale.invoice_number, branch_id
    )
    return sale


def complete_without_payment(branch_id: int, table_number: int) -> Sale:
    """Close the order unpaid (pay later). The table stays occupied."""
    def _op():
        table = get_table_by_number(branch_id, table_number, for_update=True)
        sale = _require_sale(table)
        sales_service._complete_unpaid(sale)
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info("Table %s order %s completed without payment", table_number, sale.invoice_number)
    return sale


def process_payment(
    branch_id: int,
    table_number: int,
    amount_cents: int,
    payment_method: str,
    discount_cents: int | None = None,
) -> Sale:
    """Pay the table's order in full. The table stays occupied until cleared."""
    def _op():
        table = get_table_by_number(branch_id, table_number, for_update=True)
        sale = _require_sale(table)
        sales_service._apply_payment(sale, amount_cents, payment_method, discount_cents)
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Table %s order %s paid via %s", table_number, sale.invoice_number, sale.payment_method
    )
    return sale


def _clear_locked(table: DiningTable) -> Sale | None:
    sale = attached_sale(table)
    if sale is None:
        return None
    if not sale.is_paid:
        raise CannotClearUnpaid(
            f"Table {table.number} has an unpaid order",
            details={
                "table_number": table.number,
                "sale_id": sale.id,
                "total_cents": sale.total_cents,
                "amount_paid_cents": sale.amount_paid_cents,
            },
        )
    sale.table_id = None
    sale.cleared_at = utcnow()
    transition(table, "clear")
    return sale


def clear_table(branch_id: int, table_number: int) -> Sale | None:
    """
    Detach a paid order and free the table.

    Returns the detached sale, or None when the table had no order (no-op).

    Raises:
        CannotClearUnpaid: the attached order is not paid
    """
    def _op():
        table = get_table_by_number(branch_id, table_number, for_update=True)
        sale = _clear_locked(table)
        if sale is not None:
            db.session.commit()
        return sale

    sale = run_with_retry(_op)
    if sale is not None:
        current_app.logger.info("Table %s cleared (sale %s)", table_number, sale.invoice_number)
    return sale


def transfer_order(branch_id: int, sale_id: int, from_table_number: int, to_table_number: int) -> Sale:
    """
    Move an order to another table. Line items move with the sale; orders
    are never merged.

    Raises:
        SameTable: source and target are the same table
        TargetOccupied: target table is not available
        InvalidTransition: the sale is not on the source table
    """
    if from_table_number == to_table_number:
        raise SameTable(
            "Cannot transfer an order to the same table",
            details={"table_number": from_table_number},
        )

    def _op():
        from_table = get_table_by_number(branch_id, from_table_number, for_update=True)
        to_table = get_table_by_number(branch_id, to_table_number, for_update=True)
        sale = sales_service._lock_sale(sale_id, branch_id)

        if sale.table_id != from_table.id:
            raise InvalidTransition(
                f"Order {sale.invoice_number} is not on table {from_table_number}",
                details={"sale_id": sale.id, "table_number": from_table_number},
            )
        if to_table.status != STATUS_AVAILABLE or attached_sale(to_table) is not None:
            raise TargetOccupied(
                f"Table {to_table_number} is not available",
                details={"table_number": to_table_number, "status": to_table.status},
            )

        sale.table_id = to_table.id
        sale.table_number = to_table.number
        transition(from_table, "transfer_out")
        transition(to_table, "transfer_in", error_cls=TargetOccupied)

        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Order %s transferred from table %s to table %s", sale.invoice_number, from_table_number, to_table_number
    )
    return sale


def clear_all(branch_id: int, payment_method: str) -> list[dict]:
    """
    End-of-service sweep: pay every unpaid table order in full with
    ``payment_method``, then clear every table whose order is paid.

    Each table is its own transaction. A failure on one table is reported in
    its result entry and does not undo or stop the others.
    """
    if payment_method not in sales_service.VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment_method: {payment_method}. Must be one of {sales_service.VALID_PAYMENT_METHODS}",
            details={"field": "payment_method"},
        )

    table_numbers = [
        row.number
        for row in db.session.query(DiningTable.number)
        .join(Sale, Sale.table_id == DiningTable.id)
        .filter(DiningTable.branch_id == branch_id, DiningTable.is_active.is_(True))
        .order_by(DiningTable.number.asc())
        .distinct()
        .all()
    ]

    results = []
    for number in table_numbers:
        def _op(number=number):
            table = get_table_by_number(branch_id, number, for_update=True)
            sale = attached_sale(table)
            if sale is None:
                return None, False
            paid_now = False
            if not sale.is_paid:
                sales_service._apply_payment(sale, sale.total_cents, payment_method)
                paid_now = True
            _clear_locked(table)
            db.session.commit()
            return sale, paid_now

        try:
            sale, paid_now = run_with_retry(_op)
        except BranchPosError as exc:
            db.session.rollback()
            current_app.logger.warning("Clear-all failed for table %s: %s", number, exc.message)
            results.append({
                "table_number": number,
                "cleared": False,
                "error": exc.message,
                "code": exc.code,
            })
            continue

        results.append({
            "table_number": number,
            "sale_id": sale.id if sale else None,
            "invoice_number": sale.invoice_number if sale else None,
            "paid_now": paid_now,
            "cleared": True,
        })

    current_app.logger.info(
        "Clear-all in branch %s: %s of %s tables cleared",
        branch_id, sum(1 for r in results if r["cleared"]), len(results),
    )
    return results


def reserve_table(branch_id: int, table_number: int) -> DiningTable:
    def _op():
        table = get_table_by_number(branch_id, table_number, for_update=True)
        transition(table, "reserve", error_cls=TableNotAvailable)
        db.session.commit()
        return table

    table = run_with_retry(_op)
    current_app.logger.info("Table %s reserved in branch %s", table_number, branch_id)
    return table


def release_table(branch_id: int, table_number: int) -> DiningTable:
    def _op():
        table = get_table_by_number(branch_id, table_number, for_update=True)
        transition(table, "release")
        db.session.commit()
        return table

    table = run_with_retry(_op)
    current_app.logger.info("Table %s released in branch %s", table_number, branch_id)
    return table
