"""
Sales Service - branch order ledger

WHY: One place computes sale totals and payment state, so table flows and
counter (take-out/delivery) flows agree on what "paid" means.

Money is integer cents throughout. Totals:
    line_total = discounted_unit_price * quantity
    subtotal   = sum(line_total)
    taxable    = subtotal - sale discount (discount <= subtotal)
    tax        = round_half_up(taxable * tax_rate_bps / 10000)
    total      = taxable + tax

Sale status moves through SALE_TRANSITIONS only. Functions prefixed with an
underscore mutate without committing; the table/order coordinator uses them
so table and sale changes commit together.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyPaid, InsufficientPayment, InvalidTransition, NotFound, ValidationError
from ..extensions import db
from ..models import Branch, InvoiceSequence, Sale, SaleLineItem
from branchpos.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# CONSTANTS
# =============================================================================

ORDER_DINE_IN = "DineIn"
ORDER_TAKE_OUT = "TakeOut"
ORDER_DELIVERY = "Delivery"
VALID_ORDER_TYPES = [ORDER_DINE_IN, ORDER_TAKE_OUT, ORDER_DELIVERY]

PAYMENT_CASH = "Cash"
PAYMENT_CARD = "Card"
PAYMENT_DIGITAL_WALLET = "DigitalWallet"
PAYMENT_BANK_TRANSFER = "BankTransfer"
PAYMENT_MULTIPLE = "Multiple"
VALID_PAYMENT_METHODS = [
    PAYMENT_CASH,
    PAYMENT_CARD,
    PAYMENT_DIGITAL_WALLET,
    PAYMENT_BANK_TRANSFER,
    PAYMENT_MULTIPLE,
]

DISCOUNT_NONE = "none"
DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
VALID_DISCOUNT_TYPES = [DISCOUNT_NONE, DISCOUNT_PERCENTAGE, DISCOUNT_FIXED]

SALE_OPEN = "open"
SALE_PARKED = "parked"
SALE_COMPLETED = "completed"

# (current status, event) -> new status
SALE_TRANSITIONS = {
    (SALE_OPEN, "park"): SALE_PARKED,
    (SALE_PARKED, "resume"): SALE_OPEN,
    (SALE_OPEN, "complete"): SALE_COMPLETED,
    (SALE_PARKED, "complete"): SALE_COMPLETED,
}


def _transition(sale: Sale, event: str) -> None:
    new_status = SALE_TRANSITIONS.get((sale.status, event))
    if new_status is None:
        raise InvalidTransition(
            f"Cannot {event} a sale with status {sale.status}",
            details={"sale_id": sale.id, "status": sale.status, "event": event},
        )
    sale.status = new_status


# =============================================================================
# TOTALS
# =============================================================================

def round_half_up_div(numerator: int, denominator: int) -> int:
    """Integer division rounding .5 away from zero (for non-negative inputs)."""
    return (numerator * 2 + denominator) // (denominator * 2)


def _as_int(value, field: str) -> int:
    """Whole numbers only; 1500.0 is accepted, 1500.5 is rejected rather than truncated."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be a whole number", details={"field": field})
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={"field": field})


def build_line_item(item: dict) -> SaleLineItem:
    """
    Validate one item payload and compute its discounted price and total.

    item: product_name, quantity (>0), unit_price_cents (>=0),
    discount_type (none|percentage|fixed), discount_value, notes.
    """
    product_name = (item.get("product_name") or "").strip()
    if not product_name:
        raise ValidationError("product_name is required", details={"field": "product_name"})

    quantity = _as_int(item.get("quantity"), "quantity")
    if quantity <= 0:
        raise ValidationError("quantity must be positive", details={"field": "quantity"})

    unit_price = _as_int(item.get("unit_price_cents"), "unit_price_cents")
    if unit_price < 0:
        raise ValidationError("unit_price_cents cannot be negative", details={"field": "unit_price_cents"})

    discount_type = item.get("discount_type") or DISCOUNT_NONE
    if discount_type not in VALID_DISCOUNT_TYPES:
        raise ValidationError(
            f"Invalid discount_type: {discount_type}. Must be one of {VALID_DISCOUNT_TYPES}",
            details={"field": "discount_type"},
        )
    discount_value = _as_int(item.get("discount_value") or 0, "discount_value")
    if discount_value < 0:
        raise ValidationError("discount_value cannot be negative", details={"field": "discount_value"})

    if discount_type == DISCOUNT_PERCENTAGE:
        if discount_value > 100:
            raise ValidationError("Percentage discount cannot exceed 100", details={"field": "discount_value"})
        discounted = unit_price - round_half_up_div(unit_price * discount_value, 100)
    elif discount_type == DISCOUNT_FIXED:
        discounted = max(0, unit_price - discount_value)
    else:
        discount_value = 0
        discounted = unit_price

    return SaleLineItem(
        product_name=product_name,
        quantity=quantity,
        unit_price_cents=unit_price,
        discount_type=discount_type,
        discount_value=discount_value,
        discounted_unit_price_cents=discounted,
        line_total_cents=discounted * quantity,
        notes=item.get("notes"),
    )


def recalculate_totals(sale: Sale, lines: list[SaleLineItem] | None = None) -> None:
    """Recompute subtotal, tax and total from line items and the sale discount."""
    lines = lines if lines is not None else sale.line_items
    subtotal = sum(line.line_total_cents for line in lines)
    discount = sale.discount_cents or 0
    if discount > subtotal:
        raise ValidationError(
            "Discount cannot exceed the order subtotal",
            details={"discount_cents": discount, "subtotal_cents": subtotal},
        )
    taxable = subtotal - discount
    tax = round_half_up_div(taxable * (sale.tax_rate_bps or 0), 10000)

    sale.subtotal_cents = subtotal
    sale.tax_cents = tax
    sale.total_cents = taxable + tax


def _bump_invoice_sequence(branch_id: int) -> int | None:
    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.branch_id == branch_id)
        .values(next_number=InvoiceSequence.next_number + 1)
    )
    if not db.session.execute(stmt).rowcount:
        return None
    current = (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(branch_id=branch_id)
        .scalar()
    )
    return current - 1


def next_invoice_number(branch_id: int) -> str:
    """
    Allocate the next invoice number for a branch inside the current
    transaction (flushes, does not commit).

    Branches get their counter row at creation; older branches get it on
    their first sale. When two first sales race, the loser's insert hits
    uq_invoice_sequences_branch and it takes the UPDATE path instead.
    """
    number = _bump_invoice_sequence(branch_id)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(InvoiceSequence(branch_id=branch_id, next_number=2))
            number = 1
        except IntegrityError:
            number = _bump_invoice_sequence(branch_id)
            if number is None:
                raise
    return f"INV-{branch_id:03d}-{number:06d}"


def seed_invoice_sequence(branch_id: int) -> None:
    """Create a branch's invoice counter (starting at 1) if it has none."""
    exists = db.session.query(InvoiceSequence.id).filter_by(branch_id=branch_id).first()
    if exists:
        return
    db.session.add(InvoiceSequence(branch_id=branch_id, next_number=1))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()


# =============================================================================
# LEDGER OPERATIONS (no commit)
# =============================================================================

def _validate_discount(discount_cents) -> int:
    value = _as_int(discount_cents or 0, "discount_cents")
    if value < 0:
        raise ValidationError("discount_cents cannot be negative", details={"field": "discount_cents"})
    return value


def _build_sale(
    branch_id: int,
    user_id: str | None,
    order_type: str,
    items: list[dict] | None = None,
    discount_cents: int = 0,
    notes: str | None = None,
) -> Sale:
    if order_type not in VALID_ORDER_TYPES:
        raise ValidationError(
            f"Invalid order_type: {order_type}. Must be one of {VALID_ORDER_TYPES}",
            details={"field": "order_type"},
        )

    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise NotFound("Branch not found")

    lines = [build_line_item(item) for item in (items or [])]

    sale = Sale(
        branch_id=branch_id,
        invoice_number=next_invoice_number(branch_id),
        order_type=order_type,
        status=SALE_OPEN,
        discount_cents=_validate_discount(discount_cents),
        tax_rate_bps=branch.tax_rate_bps,
        notes=notes,
        created_by=user_id,
        created_at=utcnow(),
    )
    for line in lines:
        line.sale = sale
    recalculate_totals(sale, lines)
    db.session.add(sale)
    db.session.add_all(lines)
    return sale


def _complete_unpaid(sale: Sale) -> None:
    """
    Complete a sale with nothing paid (pay later).

    A sale with no billable total can never be paid afterwards, so it stays
    open until items are added.
    """
    if sale.is_paid:
        raise AlreadyPaid("Sale is already paid", details={"sale_id": sale.id})
    if (sale.total_cents or 0) <= 0:
        raise ValidationError(
            "Cannot complete an order with no billable items", details={"sale_id": sale.id}
        )
    if sale.status != SALE_COMPLETED:
        _transition(sale, "complete")
        sale.completed_at = utcnow()
    sale.amount_paid_cents = 0
    sale.change_returned_cents = 0


def _apply_payment(
    sale: Sale,
    amount_cents,
    payment_method: str,
    discount_cents=None,
) -> Sale:
    """
    Pay a sale in full.

    Cash may over-tender (change is returned); other methods cannot exceed
    the total. A completed-but-unpaid sale can still be paid.
    """
    if payment_method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment_method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}",
            details={"field": "payment_method"},
        )
    amount = _as_int(amount_cents, "amount_cents")
    if amount < 0:
        raise ValidationError("amount_cents cannot be negative", details={"field": "amount_cents"})

    if sale.is_paid:
        raise AlreadyPaid("Sale is already paid", details={"sale_id": sale.id})

    if discount_cents is not None:
        sale.discount_cents = _validate_discount(discount_cents)
        recalculate_totals(sale)

    total = sale.total_cents
    if total <= 0:
        raise ValidationError("Cannot pay an order with no billable items", details={"sale_id": sale.id})
    if amount < total:
        raise InsufficientPayment(
            "Payment amount is less than the order total",
            details={"amount_cents": amount, "total_cents": total},
        )
    if payment_method != PAYMENT_CASH and amount > total:
        raise ValidationError(
            "Non-cash payment cannot exceed the order total",
            details={"amount_cents": amount, "total_cents": total},
        )

    if sale.status != SALE_COMPLETED:
        _transition(sale, "complete")
        sale.completed_at = utcnow()
    sale.amount_paid_cents = amount
    sale.change_returned_cents = max(0, amount - total)
    sale.payment_method = payment_method
    return sale


def _lock_sale(sale_id: int, branch_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id, branch_id=branch_id)).first()
    if not sale:
        raise NotFound("Sale not found", details={"sale_id": sale_id})
    return sale


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def create_sale(
    branch_id: int,
    user_id: str | None,
    order_type: str = ORDER_TAKE_OUT,
    items: list[dict] | None = None,
    table_number: int | None = None,
    guest_count: int | None = None,
    discount_cents: int = 0,
    notes: str | None = None,
) -> Sale:
    """
    Create an open sale.

    With ``table_number`` the sale is a dine-in order attached to that table
    in the same transaction that marks the table occupied.
    """
    if table_number is not None:
        from .table_order_service import start_order
        return start_order(
            branch_id,
            table_number,
            guest_count=guest_count,
            user_id=user_id,
            items=items,
            discount_cents=discount_cents,
            notes=notes,
        )

    if order_type == ORDER_DINE_IN:
        raise ValidationError("table_number is required for dine-in orders", details={"field": "table_number"})

    def _op():
        sale = _build_sale(branch_id, user_id, order_type, items, discount_cents, notes)
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info("Sale %s created (%s) in branch %s", sale.invoice_number, order_type, branch_id)
    return sale


def add_items(sale_id: int, branch_id: int, items: list[dict]) -> Sale:
    """Append line items to an open sale and recompute totals."""
    if not items:
        raise ValidationError("items are required", details={"field": "items"})

    def _op():
        sale = _lock_sale(sale_id, branch_id)
        if sale.status != SALE_OPEN:
            raise InvalidTransition(
                f"Can only add items to open sales (status: {sale.status})",
                details={"sale_id": sale.id, "status": sale.status},
            )
        lines = list(sale.line_items)
        for item in items:
            line = build_line_item(item)
            line.sale = sale
            db.session.add(line)
            lines.append(line)
        recalculate_totals(sale, lines)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def park_sale(sale_id: int, branch_id: int) -> Sale:
    def _op():
        sale = _lock_sale(sale_id, branch_id)
        _transition(sale, "park")
        db.session.commit()
        return sale

    return run_with_retry(_op)


def resume_sale(sale_id: int, branch_id: int) -> Sale:
    def _op():
        sale = _lock_sale(sale_id, branch_id)
        _transition(sale, "resume")
        db.session.commit()
        return sale

    return run_with_retry(_op)


def apply_payment(
    sale_id: int,
    branch_id: int,
    amount_cents: int,
    payment_method: str,
    discount_cents: int | None = None,
) -> Sale:
    """
    Pay any sale (table or counter) in full.

    Paying a dine-in sale does not free its table; clearing the table does.

    Raises:
        NotFound, ValidationError, InsufficientPayment, AlreadyPaid
    """
    def _op():
        sale = _lock_sale(sale_id, branch_id)
        _apply_payment(sale, amount_cents, payment_method, discount_cents)
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Sale %s paid: %s cents via %s", sale.invoice_number, sale.amount_paid_cents, sale.payment_method
    )
    return sale


def get_sale(sale_id: int, branch_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id, branch_id=branch_id).first()
    if not sale:
        raise NotFound("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    branch_id: int,
    *,
    status: str | None = None,
    order_type: str | None = None,
    table_number: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    query = db.session.query(Sale).filter(Sale.branch_id == branch_id)
    if status:
        query = query.filter(Sale.status == status)
    if order_type:
        query = query.filter(Sale.order_type == order_type)
    if table_number is not None:
        query = query.filter(Sale.table_number == table_number)

    total = query.count()

    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    sales = query.order_by(Sale.id.desc()).offset(offset).limit(limit).all()
    return sales, total
