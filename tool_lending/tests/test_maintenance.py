import unittest
from datetime import date, timedelta

import lending_fixtures  # noqa: F401

from models.enums import MaintenanceState
from services.maintenance_service import (
    add_months,
    get_maintenance_expiration,
    get_maintenance_status,
    is_maintenance_blocked,
    is_maintenance_due_soon,
    is_maintenance_expired,
)


TODAY = date(2026, 5, 15)


class MaintenanceScheduleTests(unittest.TestCase):
    def test_add_months_clamps_to_month_end(self):
        self.assertEqual(add_months(date(2026, 1, 31), 1), date(2026, 2, 28))
        self.assertEqual(add_months(date(2024, 1, 31), 1), date(2024, 2, 29))
        self.assertEqual(add_months(date(2025, 11, 15), 3), date(2026, 2, 15))
        self.assertEqual(add_months(date(2026, 3, 10), -13), date(2025, 2, 10))

    def test_expiration_needs_date_and_positive_interval(self):
        self.assertIsNone(get_maintenance_expiration(None, 12))
        self.assertIsNone(get_maintenance_expiration(date(2026, 1, 1), None))
        self.assertIsNone(get_maintenance_expiration(date(2026, 1, 1), 0))
        self.assertEqual(get_maintenance_expiration(date(2026, 1, 1), 6), date(2026, 7, 1))

    def test_thirteen_months_ago_with_yearly_interval_is_expired(self):
        last = add_months(TODAY, -13)
        self.assertTrue(is_maintenance_expired(last, 12, TODAY))
        self.assertEqual(get_maintenance_status("available", last, 12, TODAY), MaintenanceState.EXPIRED)

    def test_thirteen_months_ago_with_longer_interval_is_compliant(self):
        last = add_months(TODAY, -13)
        self.assertFalse(is_maintenance_expired(last, 14, TODAY))
        self.assertEqual(get_maintenance_status("available", last, 14, TODAY), MaintenanceState.COMPLIANT)

    def test_expiring_inside_window_is_due_soon(self):
        last = date(2025, 5, 25)
        self.assertTrue(is_maintenance_due_soon(last, 12, TODAY))
        self.assertEqual(get_maintenance_status("rented", last, 12, TODAY), MaintenanceState.DUE_SOON)
        self.assertFalse(is_maintenance_due_soon(last, 12, TODAY, window_days=5))

    def test_expiration_today_is_not_expired_yet(self):
        last = add_months(TODAY, -12)
        self.assertFalse(is_maintenance_expired(last, 12, TODAY))
        self.assertTrue(is_maintenance_expired(last, 12, TODAY + timedelta(days=1)))
        self.assertEqual(get_maintenance_status("available", last, 12, TODAY), MaintenanceState.DUE_SOON)

    def test_tool_in_maintenance_reports_in_service(self):
        last = add_months(TODAY, -24)
        self.assertEqual(get_maintenance_status("maintenance", last, 12, TODAY), MaintenanceState.IN_SERVICE)

    def test_untracked_tool_is_compliant(self):
        self.assertEqual(get_maintenance_status("available", None, None, TODAY), MaintenanceState.COMPLIANT)


class MaintenanceBlockingTests(unittest.TestCase):
    def test_low_importance_never_blocks(self):
        last = add_months(TODAY, -36)
        self.assertFalse(is_maintenance_blocked("low", last, 12, TODAY))
        self.assertFalse(is_maintenance_blocked(None, last, 12, TODAY))

    def test_expired_medium_or_high_blocks(self):
        last = add_months(TODAY, -13)
        self.assertTrue(is_maintenance_blocked("medium", last, 12, TODAY))
        self.assertTrue(is_maintenance_blocked("high", last, 12, TODAY))

    def test_due_soon_does_not_block(self):
        self.assertFalse(is_maintenance_blocked("high", date(2025, 5, 25), 12, TODAY))

    def test_missing_schedule_does_not_block(self):
        self.assertFalse(is_maintenance_blocked("high", None, 12, TODAY))
        self.assertFalse(is_maintenance_blocked("high", date(2020, 1, 1), None, TODAY))


if __name__ == "__main__":
    unittest.main()
