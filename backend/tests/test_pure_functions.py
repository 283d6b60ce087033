"""
Unit tests for the pure helpers: warranty arithmetic, line totals, warranty
text parsing and the repair status graph.

Run: pytest tests/test_pure_functions.py -v
"""

import unittest
from datetime import date, datetime, timedelta
from decimal import Decimal

from shopledger.errors import ValidationError
from shopledger.services.purchase_service import DEFAULT_WARRANTY_MONTHS, parse_warranty_months
from shopledger.services.repair_service import can_transition
from shopledger.services.warranty_service import compute_warranty
from shopledger.validation import discounted_line_total_cents, parse_discount, parse_money_cents


class TestComputeWarranty(unittest.TestCase):
    """30-day warranty months, whole-day remainder."""

    def setUp(self):
        self.today = date(2026, 10, 19)

    def test_exactly_360_days_is_expired(self):
        status = compute_warranty(self.today - timedelta(days=360), 12, self.today)
        self.assertEqual(status.remaining_days, 0)
        self.assertFalse(status.is_under_warranty)

    def test_359_days_has_one_day_left(self):
        status = compute_warranty(self.today - timedelta(days=359), 12, self.today)
        self.assertEqual(status.remaining_days, 1)
        self.assertTrue(status.is_under_warranty)

    def test_long_expired_never_negative(self):
        status = compute_warranty(date(2020, 1, 1), 6, self.today)
        self.assertEqual(status.remaining_days, 0)

    def test_datetime_purchase_date_uses_calendar_day(self):
        status = compute_warranty(datetime(2026, 10, 18, 23, 59), 1, self.today)
        self.assertEqual(status.end_date, date(2026, 11, 17))
        self.assertEqual(status.remaining_days, 29)

    def test_zero_months(self):
        status = compute_warranty(self.today, 0, self.today)
        self.assertFalse(status.is_under_warranty)


class TestLineTotals(unittest.TestCase):
    def test_discounted_total(self):
        self.assertEqual(discounted_line_total_cents(100000, 2, Decimal("10")), 180000)
        self.assertEqual(discounted_line_total_cents(50000, 1, Decimal("0")), 50000)

    def test_rounds_half_up_to_cent(self):
        # 333 x 0.875 = 291.375
        self.assertEqual(discounted_line_total_cents(333, 1, Decimal("12.5")), 291)
        # 1 x 0.5 = 0.5
        self.assertEqual(discounted_line_total_cents(1, 1, Decimal("50")), 1)

    def test_full_discount(self):
        self.assertEqual(discounted_line_total_cents(15000, 3, Decimal("100")), 0)

    def test_discount_bounds(self):
        self.assertEqual(parse_discount(None), Decimal("0"))
        self.assertEqual(parse_discount("12.345"), Decimal("12.35"))
        with self.assertRaises(ValidationError):
            parse_discount(100.01)

    def test_money_parsing(self):
        self.assertEqual(parse_money_cents("1,250.50", "price"), 125050)
        self.assertEqual(parse_money_cents(0.1, "price"), 10)
        with self.assertRaises(ValidationError):
            parse_money_cents("0", "price")


class TestParseWarrantyMonths(unittest.TestCase):
    def test_forms(self):
        self.assertEqual(parse_warranty_months(None), DEFAULT_WARRANTY_MONTHS)
        self.assertEqual(parse_warranty_months(24), 24)
        self.assertEqual(parse_warranty_months("6 months"), 6)
        self.assertEqual(parse_warranty_months("1 month"), 1)
        self.assertEqual(parse_warranty_months("No warranty"), 0)

    def test_rejects_garbage(self):
        with self.assertRaises(ValidationError):
            parse_warranty_months("forever")
        with self.assertRaises(ValidationError):
            parse_warranty_months(-1)


class TestRepairTransitions(unittest.TestCase):
    def test_allowed(self):
        self.assertTrue(can_transition("Pending", "In Progress"))
        self.assertTrue(can_transition("In Progress", "Waiting for Parts"))
        self.assertTrue(can_transition("Waiting for Parts", "Completed"))
        self.assertTrue(can_transition("Completed", "Picked Up"))
        self.assertTrue(can_transition("Completed", "In Progress"))

    def test_refused(self):
        self.assertFalse(can_transition("Pending", "Completed"))
        self.assertFalse(can_transition("Picked Up", "In Progress"))
        self.assertFalse(can_transition("Cancelled", "Pending"))
        self.assertFalse(can_transition("Pending", "Pending"))
        self.assertFalse(can_transition("Unknown", "Pending"))


if __name__ == '__main__':
    unittest.main()
