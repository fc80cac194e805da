import tempfile
import unittest
from pathlib import Path

from lending_fixtures import TODAY, add_rental, add_tool, add_user, make_session_factory
from sqlalchemy import func, select

from models.lending_models import AuditLog, Rental, Tool, Transaction, User
from services.errors import ConflictError
from services.rental_service import activate_rental, reject_rental
from services.transaction_service import create_transaction, pay_transaction


class ConcurrentTransitionTests(unittest.TestCase):
    """Two sessions race on the same row; the loser must see a ConflictError."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(self.tmpdir.name) / "lending.db"
        self.engine, self.Session = make_session_factory(f"sqlite+pysqlite:///{db_path}")
        with self.Session() as db:
            staff = add_user(db, name="Sam Staff", role="staff")
            member = add_user(db, name="Alice Martin")
            tool = add_tool(db)
            rental = add_rental(db, member, tool)
            charge = create_transaction(db, member.UserID, 25, "RepairCost", today=TODAY)
            self.staff_id = staff.UserID
            self.member_id = member.UserID
            self.tool_id = tool.ToolID
            self.rental_id = rental.RentalID
            self.transaction_id = charge.TransactionID

    def tearDown(self):
        self.engine.dispose()
        self.tmpdir.cleanup()

    def test_only_one_activation_wins(self):
        first = self.Session()
        second = self.Session()
        try:
            staff_first = first.get(User, self.staff_id)
            staff_second = second.get(User, self.staff_id)
            # The second session holds a snapshot taken before the first commits.
            second.get(Rental, self.rental_id)
            second.get(Tool, self.tool_id)

            activate_rental(first, self.rental_id, staff_first, today=TODAY)
            with self.assertRaises(ConflictError):
                activate_rental(second, self.rental_id, staff_second, today=TODAY)
        finally:
            first.close()
            second.close()

        with self.Session() as db:
            self.assertEqual(db.get(Rental, self.rental_id).Status, "active")
            self.assertEqual(db.get(Tool, self.tool_id).Status, "rented")
            approvals = db.execute(
                select(func.count(AuditLog.AuditID)).where(AuditLog.Action == "approved")
            ).scalar()
            self.assertEqual(approvals, 1)

    def test_reject_loses_to_activation(self):
        first = self.Session()
        second = self.Session()
        try:
            staff_first = first.get(User, self.staff_id)
            staff_second = second.get(User, self.staff_id)
            second.get(Rental, self.rental_id)

            activate_rental(first, self.rental_id, staff_first, today=TODAY)
            with self.assertRaises(ConflictError):
                reject_rental(second, self.rental_id, staff_second, "Double booked")
        finally:
            first.close()
            second.close()

        with self.Session() as db:
            self.assertEqual(db.get(Rental, self.rental_id).Status, "active")

    def test_only_one_payment_wins(self):
        first = self.Session()
        second = self.Session()
        try:
            second.get(Transaction, self.transaction_id)

            pay_transaction(first, self.transaction_id, "cash", today=TODAY)
            with self.assertRaises(ConflictError):
                pay_transaction(second, self.transaction_id, "card", today=TODAY)
        finally:
            first.close()
            second.close()

        with self.Session() as db:
            transaction = db.get(Transaction, self.transaction_id)
            self.assertEqual(transaction.Status, "paid")
            self.assertEqual(transaction.Method, "cash")
            self.assertEqual(float(db.get(User, self.member_id).TotalDebt), 0.0)


if __name__ == "__main__":
    unittest.main()
