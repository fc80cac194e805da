import unittest
from datetime import date, datetime, timedelta

import lending_fixtures  # noqa: F401

from services.pricing_service import as_calendar_date, billable_weeks, calculate_rental_cost


class RentalCostTests(unittest.TestCase):
    def test_exact_week_is_billed_once(self):
        self.assertEqual(calculate_rental_cost(date(2026, 1, 2), date(2026, 1, 9), 42), 42)

    def test_same_day_charges_minimum_week(self):
        for price in (0, 1, 42, 17.5):
            self.assertEqual(calculate_rental_cost(date(2026, 3, 6), date(2026, 3, 6), price), price)

    def test_partial_week_rounds_up(self):
        self.assertEqual(calculate_rental_cost(date(2026, 1, 2), date(2026, 1, 10), 42), 84)
        self.assertEqual(calculate_rental_cost(date(2026, 1, 2), date(2026, 1, 3), 42), 42)

    def test_end_before_start_is_free(self):
        self.assertEqual(calculate_rental_cost(date(2026, 1, 9), date(2026, 1, 2), 42), 0)

    def test_missing_inputs_and_negative_price_are_free(self):
        self.assertEqual(calculate_rental_cost(None, date(2026, 1, 9), 42), 0)
        self.assertEqual(calculate_rental_cost(date(2026, 1, 2), None, 42), 0)
        self.assertEqual(calculate_rental_cost(date(2026, 1, 2), date(2026, 1, 9), -5), 0)
        self.assertEqual(calculate_rental_cost(date(2026, 1, 2), date(2026, 1, 9), None), 0)

    def test_cost_is_non_decreasing_multiple_of_price(self):
        start = date(2026, 1, 2)
        price = 13
        previous = 0
        for offset in range(0, 120):
            cost = calculate_rental_cost(start, start + timedelta(days=offset), price)
            self.assertGreaterEqual(cost, previous)
            self.assertEqual(cost % price, 0)
            previous = cost

    def test_time_of_day_is_ignored(self):
        # Spans the March daylight-saving change in Europe.
        start = datetime(2026, 3, 27, 23, 30)
        end = datetime(2026, 4, 3, 0, 15)
        self.assertEqual(calculate_rental_cost(start, end, 10), 10)
        self.assertEqual(billable_weeks(start, end), 1)

    def test_iso_strings_are_accepted(self):
        self.assertEqual(calculate_rental_cost("2026-01-02", "2026-01-16T08:00:00", 5), 10)
        self.assertEqual(as_calendar_date("2026-01-02T23:59:00"), date(2026, 1, 2))
        self.assertIsNone(as_calendar_date(""))


if __name__ == "__main__":
    unittest.main()
