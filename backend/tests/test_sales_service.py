"""
Sales ledger tests: totals in integer cents, invoice numbering, the sale
lifecycle and payment rules.
"""

import pytest

from branchpos.errors import AlreadyPaid, InsufficientPayment, InvalidTransition, NotFound, ValidationError
from branchpos.extensions import db
from branchpos.models import InvoiceSequence
from branchpos.services import sales_service
from branchpos.services.sales_service import build_line_item, round_half_up_div


def _item(price, quantity=1, **extra):
    return {"product_name": "Item", "quantity": quantity, "unit_price_cents": price, **extra}


class TestCalculations:

    @pytest.mark.parametrize(
        "numerator,denominator,expected",
        [(5, 10, 1), (4, 10, 0), (15, 10, 2), (14999, 10000, 1), (15000, 10000, 2), (0, 100, 0)],
    )
    def test_round_half_up_div(self, numerator, denominator, expected):
        assert round_half_up_div(numerator, denominator) == expected

    def test_percentage_line_discount_rounds_half_up(self):
        line = build_line_item(_item(999, quantity=2, discount_type="percentage", discount_value=15))

        # 999 * 15% = 149.85 -> 150
        assert line.discounted_unit_price_cents == 849
        assert line.line_total_cents == 1698

    def test_fixed_line_discount_floors_at_zero(self):
        line = build_line_item(_item(300, discount_type="fixed", discount_value=500))
        assert line.discounted_unit_price_cents == 0
        assert line.line_total_cents == 0

    @pytest.mark.parametrize(
        "item",
        [
            {"quantity": 1, "unit_price_cents": 100},
            _item(100, quantity=0),
            _item(-1),
            _item("abc"),
            _item(100, discount_type="bogus"),
            _item(100, discount_type="percentage", discount_value=101),
            _item(99.5),
            _item(100, quantity=1.5),
        ],
    )
    def test_invalid_items_rejected(self, item):
        with pytest.raises(ValidationError):
            build_line_item(item)

    def test_whole_number_floats_accepted(self):
        line = build_line_item(_item(1500.0, quantity=2.0))
        assert line.line_total_cents == 3000
        assert isinstance(line.unit_price_cents, int)

    def test_fractional_payment_rejected(self, branch_a, cashier_a):
        sale = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(1000)])

        with pytest.raises(ValidationError):
            sales_service.apply_payment(sale.id, branch_a.id, 1150.9, "Cash")
        assert not sales_service.get_sale(sale.id, branch_a.id).is_paid

    def test_sale_totals_use_branch_tax_rate(self, branch_a, cashier_a):
        sale = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(333)])

        # 333 * 15% = 49.95 -> 50
        assert sale.tax_rate_bps == 1500
        assert sale.subtotal_cents == 333
        assert sale.tax_cents == 50
        assert sale.total_cents == 383

    def test_sale_discount_is_taken_before_tax(self, branch_a, cashier_a):
        sale = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(10000)], discount_cents=2000)

        assert sale.subtotal_cents == 10000
        assert sale.tax_cents == 1200
        assert sale.total_cents == 9200

    def test_discount_above_subtotal_rejected(self, branch_a, cashier_a):
        with pytest.raises(ValidationError):
            sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(500)], discount_cents=501)


class TestInvoiceNumbers:

    def test_sequential_per_branch(self, branch_a, branch_b, cashier_a):
        first = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])
        second = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])
        other = sales_service.create_sale(branch_b.id, None, items=[_item(100)])

        assert first.invoice_number == f"INV-{branch_a.id:03d}-000001"
        assert second.invoice_number == f"INV-{branch_a.id:03d}-000002"
        assert other.invoice_number == f"INV-{branch_b.id:03d}-000001"

    def test_failed_sale_does_not_consume_a_number(self, branch_a, cashier_a):
        with pytest.raises(ValidationError):
            sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)], discount_cents=1000)

        sale = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])
        assert sale.invoice_number.endswith("-000001")

    def test_new_branch_has_counter(self, branch_a):
        sequence = db.session.query(InvoiceSequence).filter_by(branch_id=branch_a.id).one()
        assert sequence.next_number == 1

    def test_branch_without_counter_gets_one_on_first_sale(self, branch_a, cashier_a):
        db.session.query(InvoiceSequence).filter_by(branch_id=branch_a.id).delete()
        db.session.commit()

        first = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])
        second = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])

        assert first.invoice_number.endswith("-000001")
        assert second.invoice_number.endswith("-000002")
        assert db.session.query(InvoiceSequence).filter_by(branch_id=branch_a.id).count() == 1

    def test_counter_inserted_concurrently_falls_back_to_update(self, branch_a, cashier_a, monkeypatch):
        # The first UPDATE misses, as if another transaction inserted the row after it ran
        real_bump = sales_service._bump_invoice_sequence
        calls = []

        def bump_missing_first(branch_id):
            calls.append(branch_id)
            if len(calls) == 1:
                return None
            return real_bump(branch_id)

        monkeypatch.setattr(sales_service, "_bump_invoice_sequence", bump_missing_first)

        sale = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])

        assert len(calls) == 2
        assert sale.invoice_number.endswith("-000001")
        assert db.session.query(InvoiceSequence).filter_by(branch_id=branch_a.id).one().next_number == 2


class TestLifecycle:

    def test_dine_in_requires_table(self, branch_a, cashier_a):
        with pytest.raises(ValidationError):
            sales_service.create_sale(branch_a.id, cashier_a.id, order_type="DineIn", items=[_item(100)])

    def test_invalid_order_type(self, branch_a, cashier_a):
        with pytest.raises(ValidationError):
            sales_service.create_sale(branch_a.id, cashier_a.id, order_type="Drone")

    def test_park_and_resume(self, branch_a, cashier_a):
        sale = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])

        parked = sales_service.park_sale(sale.id, branch_a.id)
        assert parked.status == "parked"

        with pytest.raises(InvalidTransition):
            sales_service.add_items(sale.id, branch_a.id, [_item(200)])

        resumed = sales_service.resume_sale(sale.id, branch_a.id)
        assert resumed.status == "open"

    def test_add_items_recomputes_totals(self, branch_a, cashier_a):
        sale = sales_service.create_sale(branch_a.id, cashier_a.id, order_type="Delivery", items=[_item(1000)])

        sale = sales_service.add_items(sale.id, branch_a.id, [_item(500, quantity=2)])

        assert len(sale.line_items) == 2
        assert sale.subtotal_cents == 2000
        assert sale.total_cents == 2300

    def test_completed_sale_cannot_be_parked(self, branch_a, cashier_a):
        sale = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(1000)])
        sales_service.apply_payment(sale.id, branch_a.id, sale.total_cents, "Card")

        with pytest.raises(InvalidTransition):
            sales_service.park_sale(sale.id, branch_a.id)
        with pytest.raises(InvalidTransition):
            sales_service.add_items(sale.id, branch_a.id, [_item(100)])

    def test_sales_are_branch_scoped(self, branch_a, branch_b, cashier_a):
        sale = sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])
        with pytest.raises(NotFound):
            sales_service.get_sale(sale.id, branch_b.id)

    def test_list_sales_filters(self, branch_a, cashier_a):
        sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(100)])
        sales_service.create_sale(branch_a.id, cashier_a.id, order_type="Delivery", items=[_item(100)])

        sales, total = sales_service.list_sales(branch_a.id, order_type="Delivery")
        assert total == 1
        assert sales[0].order_type == "Delivery"

        sales, total = sales_service.list_sales(branch_a.id, limit=1)
        assert total == 2
        assert len(sales) == 1


class TestPayment:

    @pytest.fixture
    def sale(self, branch_a, cashier_a):
        # 1000 + 15% tax = 1150
        return sales_service.create_sale(branch_a.id, cashier_a.id, items=[_item(1000)])

    def test_cash_over_tender_returns_change(self, branch_a, sale):
        paid = sales_service.apply_payment(sale.id, branch_a.id, 2000, "Cash")

        assert paid.is_paid
        assert paid.amount_paid_cents == 2000
        assert paid.change_returned_cents == 850
        assert paid.status == "completed"
        assert paid.completed_at is not None

    def test_non_cash_cannot_exceed_total(self, branch_a, sale):
        with pytest.raises(ValidationError):
            sales_service.apply_payment(sale.id, branch_a.id, 1151, "Card")

    def test_insufficient_payment(self, branch_a, sale):
        with pytest.raises(InsufficientPayment):
            sales_service.apply_payment(sale.id, branch_a.id, 1149, "Cash")

        assert not sales_service.get_sale(sale.id, branch_a.id).is_paid

    def test_already_paid(self, branch_a, sale):
        sales_service.apply_payment(sale.id, branch_a.id, 1150, "DigitalWallet")
        with pytest.raises(AlreadyPaid):
            sales_service.apply_payment(sale.id, branch_a.id, 1150, "Cash")

    def test_invalid_method(self, branch_a, sale):
        with pytest.raises(ValidationError):
            sales_service.apply_payment(sale.id, branch_a.id, 1150, "Cheque")

    def test_parked_sale_can_be_paid(self, branch_a, sale):
        sales_service.park_sale(sale.id, branch_a.id)
        paid = sales_service.apply_payment(sale.id, branch_a.id, 1150, "BankTransfer")
        assert paid.status == "completed"

    def test_empty_sale_cannot_be_paid(self, branch_a, cashier_a):
        empty = sales_service.create_sale(branch_a.id, cashier_a.id)
        with pytest.raises(ValidationError):
            sales_service.apply_payment(empty.id, branch_a.id, 0, "Cash")
