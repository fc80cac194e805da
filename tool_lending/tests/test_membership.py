import unittest
from datetime import date, timedelta

from lending_fixtures import add_user, make_session_factory
from sqlalchemy import select

from models.enums import MembershipBucket
from models.lending_models import AuditLog, MembershipRenewal, Transaction
from services.errors import ValidationError
from services.membership_service import (
    bucket_window,
    is_membership_active,
    is_membership_expiring_soon,
    membership_bucket,
    renew_membership,
)


TODAY = date(2026, 5, 15)


class MembershipClassifierTests(unittest.TestCase):
    def test_expiring_in_ten_days_is_expiring_soon(self):
        self.assertTrue(is_membership_expiring_soon(TODAY + timedelta(days=10), TODAY))

    def test_already_expired_is_not_expiring_soon(self):
        self.assertFalse(is_membership_expiring_soon(TODAY - timedelta(days=1), TODAY))

    def test_window_boundaries(self):
        self.assertTrue(is_membership_expiring_soon(TODAY, TODAY))
        self.assertTrue(is_membership_expiring_soon(TODAY + timedelta(days=29), TODAY))
        self.assertFalse(is_membership_expiring_soon(TODAY + timedelta(days=30), TODAY))
        self.assertFalse(is_membership_expiring_soon(None, TODAY))

    def test_active_includes_the_expiry_day(self):
        self.assertTrue(is_membership_active(TODAY, TODAY))
        self.assertFalse(is_membership_active(TODAY - timedelta(days=1), TODAY))
        self.assertFalse(is_membership_active(None, TODAY))

    def test_buckets(self):
        self.assertEqual(membership_bucket(TODAY + timedelta(days=90), TODAY), MembershipBucket.ACTIVE)
        self.assertEqual(membership_bucket(TODAY + timedelta(days=3), TODAY), MembershipBucket.EXPIRING_SOON)
        self.assertEqual(membership_bucket(TODAY - timedelta(days=3), TODAY), MembershipBucket.EXPIRED)

    def test_bucket_window_rejects_unknown_filter(self):
        self.assertEqual(bucket_window("expired", TODAY), (None, TODAY))
        with self.assertRaises(ValidationError):
            bucket_window("forever", TODAY)


class MembershipRenewalTests(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = make_session_factory()
        self.db = self.Session()
        self.admin = add_user(self.db, name="Sam Staff", role="admin")

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_renewal_extends_from_current_expiry(self):
        user = add_user(self.db, membership_expiry=date(2026, 6, 1))
        renew_membership(self.db, user, 30, "cash", duration_months=12, admin_id=self.admin.UserID, today=TODAY)

        self.assertEqual(user.MembershipExpiry, date(2027, 6, 1))
        fee = self.db.execute(select(Transaction).where(Transaction.UserID == user.UserID)).scalar_one()
        self.assertEqual(fee.Type, "MembershipFee")
        self.assertEqual(fee.Status, "pending")
        self.assertEqual(float(user.TotalDebt), 30.0)
        renewal = self.db.execute(select(MembershipRenewal)).scalar_one()
        self.assertEqual(renewal.PreviousExpiry, date(2026, 6, 1))
        self.assertEqual(renewal.AdminID, self.admin.UserID)
        actions = self.db.execute(select(AuditLog.Action).where(AuditLog.EntityID == user.UserID)).scalars().all()
        self.assertIn("renewed", actions)

    def test_renewal_of_expired_membership_starts_today(self):
        user = add_user(self.db, membership_expiry=date(2026, 1, 1))
        renew_membership(self.db, user, 30, "card", duration_months=12, today=TODAY)
        self.assertEqual(user.MembershipExpiry, date(2027, 5, 15))

    def test_renewal_rejects_out_of_range_duration(self):
        user = add_user(self.db)
        with self.assertRaises(ValidationError):
            renew_membership(self.db, user, 30, "card", duration_months=36, today=TODAY)
        with self.assertRaises(ValidationError):
            renew_membership(self.db, user, -1, "card", today=TODAY)


if __name__ == "__main__":
    unittest.main()
