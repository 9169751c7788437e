from __future__ import annotations

from ..extensions import db
from branchpos.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Sale (order) record in the branch order ledger.

    Dine-in sales reference a table through ``table_id``. The reference is
    weak: the table does not own the sale, and clearing the table detaches it
    (table_id -> NULL, table_number kept for history).

    Payment state is derived: a sale is paid when amount_paid >= total and
    total > 0. A completed sale with amount_paid = 0 is valid but unpaid.
    """
    __bind_key__ = "branch"
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "invoice_number", name="uq_sales_branch_invoice"),
        db.Index("ix_sales_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    invoice_number = db.Column(db.String(64), nullable=False)

    # Dine-in association (nullable for take-out and delivery)
    table_id = db.Column(db.Integer, db.ForeignKey("tables.id"), nullable=True, index=True)
    table_number = db.Column(db.Integer, nullable=True)
    guest_count = db.Column(db.Integer, nullable=True)

    order_type = db.Column(db.String(16), nullable=False, default="TakeOut")  # DineIn, TakeOut, Delivery
    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, parked, completed

    # Amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    change_returned_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=True)

    # Tax rate captured at creation (basis points)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(36), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cleared_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    table = db.relationship("DiningTable", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_paid(self) -> bool:
        total = self.total_cents or 0
        return total > 0 and (self.amount_paid_cents or 0) >= total

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "invoice_number": self.invoice_number,
            "table_id": self.table_id,
            "table_number": self.table_number,
            "guest_count": self.guest_count,
            "order_type": self.order_type,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "change_returned_cents": self.change_returned_cents,
            "payment_method": self.payment_method,
            "tax_rate_bps": self.tax_rate_bps,
            "is_paid": self.is_paid,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cleared_at": to_utc_z(self.cleared_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["line_items"] = [item.to_dict() for item in self.line_items]
        return data


class SaleLineItem(db.Model):
    """Individual line item on a sale."""
    __bind_key__ = "branch"
    __tablename__ = "sale_line_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    product_name = db.Column(db.String(200), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    # none, percentage, fixed
    discount_type = db.Column(db.String(16), nullable=False, default="none")
    # Percent (0-100) for percentage discounts, cents for fixed discounts
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    discounted_unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship(
        "Sale",
        backref=db.backref("line_items", lazy=True, order_by="SaleLineItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discounted_unit_price_cents": self.discounted_unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceSequence(db.Model):
    """
    Per-branch invoice counter.

    Incremented with a single UPDATE inside the sale's own transaction, so
    two sales in one branch never receive the same invoice number.
    """
    __bind_key__ = "branch"
    __tablename__ = "invoice_sequences"
    __table_args__ = (
        db.UniqueConstraint("branch_id", name="uq_invoice_sequences_branch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
