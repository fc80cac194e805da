import io
import unittest
from datetime import date, timedelta

import pandas as pd
from fastapi.testclient import TestClient

from lending_fixtures import add_rental, add_tool, add_user, make_session_factory

import ToolLending as app_module
from services.export_service import RENTAL_COLUMNS, TOOL_COLUMNS, TRANSACTION_COLUMNS
from services.maintenance_service import add_months
from services.transaction_service import create_transaction


class CsvExportTests(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = make_session_factory()
        self.today = date.today()
        with self.Session() as db:
            self.staff_id = add_user(db, name="Sam Staff", role="staff").UserID
            member = add_user(db, name="Alice Martin", membership_expiry=self.today + timedelta(days=365))
            self.member_id = member.UserID
            drill = add_tool(db, title="Hammer drill", status="rented")
            add_tool(
                db,
                title="Chainsaw",
                importance="high",
                interval=12,
                last_maintenance=add_months(self.today, -13),
            )
            add_rental(
                db,
                member,
                drill,
                start=self.today - timedelta(days=14),
                end=self.today - timedelta(days=7),
                status="active",
            )
            add_rental(db, member, drill, start=self.today + timedelta(days=7), status="pending")
            create_transaction(db, member.UserID, 30, "MembershipFee", method="cash")
            create_transaction(db, member.UserID, 15, "RepairCost")

        def _get_test_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app_module.app.dependency_overrides[app_module.get_db] = _get_test_db
        self.client = TestClient(app_module.app)
        self.staff = {"X-Actor-ID": str(self.staff_id)}

    def tearDown(self):
        app_module.app.dependency_overrides.clear()
        self.engine.dispose()

    def _frame(self, response):
        self.assertEqual(response.status_code, 200, response.text)
        self.assertTrue(response.headers["content-type"].startswith("text/csv"))
        self.assertIn("attachment; filename=", response.headers["content-disposition"])
        return pd.read_csv(io.StringIO(response.text))

    def test_exports_are_staff_only(self):
        for path in ("/api/exports/rentals", "/api/exports/tools", "/api/exports/transactions"):
            self.assertEqual(self.client.get(path).status_code, 401)
            member = self.client.get(path, headers={"X-Actor-ID": str(self.member_id)})
            self.assertEqual(member.status_code, 403)

    def test_rental_export_honors_filters(self):
        frame = self._frame(self.client.get("/api/exports/rentals", headers=self.staff))
        self.assertEqual(list(frame.columns), RENTAL_COLUMNS)
        self.assertEqual(list(frame["Status"]), ["active", "pending"])
        self.assertEqual(list(frame["Overdue"]), ["yes", "no"])
        self.assertEqual(list(frame["User"]), ["Alice Martin", "Alice Martin"])

        active = self._frame(self.client.get("/api/exports/rentals", params={"status": "active"}, headers=self.staff))
        self.assertEqual(len(active), 1)
        self.assertEqual(active["Tool"][0], "Hammer drill")

    def test_tool_export_with_maintenance_alert(self):
        frame = self._frame(self.client.get("/api/exports/tools", headers=self.staff))
        self.assertEqual(list(frame.columns), TOOL_COLUMNS)
        self.assertEqual(sorted(frame["Title"]), ["Chainsaw", "Hammer drill"])

        alerts = self._frame(
            self.client.get("/api/exports/tools", params={"maintenanceAlert": "true"}, headers=self.staff)
        )
        self.assertEqual(list(alerts["Title"]), ["Chainsaw"])
        self.assertEqual(list(alerts["Maintenance status"]), ["expired"])

    def test_transaction_export_honors_filters(self):
        frame = self._frame(
            self.client.get("/api/exports/transactions", params={"type": "MembershipFee"}, headers=self.staff)
        )
        self.assertEqual(list(frame.columns), TRANSACTION_COLUMNS)
        self.assertEqual(list(frame["Amount"]), [30.0])
        self.assertEqual(list(frame["Method"]), ["cash"])

    def test_empty_export_keeps_header(self):
        frame = self._frame(self.client.get("/api/exports/transactions", params={"status": "paid"}, headers=self.staff))
        self.assertTrue(frame.empty)
        self.assertEqual(list(frame.columns), TRANSACTION_COLUMNS)


if __name__ == "__main__":
    unittest.main()
