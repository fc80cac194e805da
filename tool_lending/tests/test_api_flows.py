import unittest
from datetime import date, timedelta

from fastapi.testclient import TestClient

from lending_fixtures import add_user, make_session_factory

import ToolLending as app_module
from models.lending_models import Rental


class LendingApiFlowTests(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = make_session_factory()
        self.today = date.today()
        with self.Session() as db:
            self.staff_id = add_user(db, name="Sam Staff", role="staff").UserID
            self.member_id = add_user(
                db, name="Alice Martin", membership_expiry=self.today + timedelta(days=365)
            ).UserID

        def _get_test_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app_module.app.dependency_overrides[app_module.get_db] = _get_test_db
        self.client = TestClient(app_module.app)
        self.staff = {"X-Actor-ID": str(self.staff_id)}
        self.member = {"X-Actor-ID": str(self.member_id)}

    def tearDown(self):
        app_module.app.dependency_overrides.clear()
        self.engine.dispose()

    def _create_tool(self, **overrides):
        payload = {"title": "Hammer drill", "weeklyPrice": 42}
        payload.update(overrides)
        response = self.client.post("/api/tools", json=payload, headers=self.staff)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def _request_rental(self, tool_id, days=7, headers=None):
        return self.client.post(
            "/api/rentals",
            json={
                "userID": self.member_id,
                "toolID": tool_id,
                "startDate": self.today.isoformat(),
                "endDate": (self.today + timedelta(days=days)).isoformat(),
            },
            headers=headers or self.member,
        )

    def test_healthcheck(self):
        self.assertEqual(self.client.get("/healthz").json(), {"status": "ok"})
        self.assertEqual(self.client.get("/api/healthz").status_code, 200)

    def test_tool_management_requires_staff(self):
        anonymous = self.client.post("/api/tools", json={"title": "Saw", "weeklyPrice": 5})
        self.assertEqual(anonymous.status_code, 401)

        member = self.client.post("/api/tools", json={"title": "Saw", "weeklyPrice": 5}, headers=self.member)
        self.assertEqual(member.status_code, 403)

        unknown = self.client.post("/api/tools", json={"title": "Saw", "weeklyPrice": 5}, headers={"X-Actor-ID": "999"})
        self.assertEqual(unknown.status_code, 401)

        tool = self._create_tool()
        self.assertEqual(tool["status"], "available")
        self.assertEqual(tool["maintenanceStatus"], "compliant")
        self.assertFalse(tool["maintenanceBlocked"])

    def test_pricing_quote(self):
        response = self.client.get(
            "/api/pricing/quote",
            params={"startDate": "2026-01-02", "endDate": "2026-01-09", "weeklyPrice": 42},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["weeks"], 1)
        self.assertEqual(response.json()["totalPrice"], 42)

        missing = self.client.get("/api/pricing/quote", params={"startDate": "2026-01-02", "endDate": "2026-01-09"})
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json()["field"], "weeklyPrice")

    def test_full_rental_flow_settles_debt(self):
        tool = self._create_tool()

        requested = self._request_rental(tool["toolID"])
        self.assertEqual(requested.status_code, 200, requested.text)
        rental = requested.json()
        self.assertEqual(rental["status"], "pending")
        self.assertEqual(rental["totalPrice"], 42)

        approved = self.client.post(f"/api/rentals/{rental['rentalID']}/approve", headers=self.staff)
        self.assertEqual(approved.status_code, 200, approved.text)
        self.assertEqual(approved.json()["status"], "active")
        self.assertEqual(self.client.get(f"/api/tools/{tool['toolID']}").json()["status"], "rented")

        returned = self.client.post(f"/api/rentals/{rental['rentalID']}/return", json={}, headers=self.member)
        self.assertEqual(returned.status_code, 200, returned.text)
        self.assertEqual(returned.json()["status"], "completed")
        self.assertEqual(self.client.get(f"/api/tools/{tool['toolID']}").json()["status"], "available")

        listing = self.client.get("/api/transactions", headers=self.member).json()
        self.assertEqual(listing["summary"]["totalPending"], 42)
        charge = listing["data"][0]
        self.assertEqual(charge["type"], "Rental")
        self.assertEqual(charge["rentalID"], rental["rentalID"])

        member_pay = self.client.post(f"/api/transactions/{charge['transactionID']}/pay", json={}, headers=self.member)
        self.assertEqual(member_pay.status_code, 403)

        paid = self.client.post(
            f"/api/transactions/{charge['transactionID']}/pay", json={"method": "card"}, headers=self.staff
        )
        self.assertEqual(paid.status_code, 200, paid.text)
        self.assertEqual(paid.json()["status"], "paid")

        again = self.client.post(f"/api/transactions/{charge['transactionID']}/pay", json={}, headers=self.staff)
        self.assertEqual(again.status_code, 400)

        user = self.client.get(f"/api/users/{self.member_id}", headers=self.member).json()
        self.assertEqual(user["totalDebt"], 0)

        detail = self.client.get(f"/api/rentals/{rental['rentalID']}", headers=self.member).json()
        self.assertEqual([entry["action"] for entry in detail["history"]], ["returned", "approved", "created"])

    def test_invalid_transition_is_reported(self):
        tool = self._create_tool()
        rental = self._request_rental(tool["toolID"], headers=self.staff).json()
        self.assertEqual(rental["status"], "active")

        rejected = self.client.post(f"/api/rentals/{rental['rentalID']}/reject", json={}, headers=self.staff)
        self.assertEqual(rejected.status_code, 400)
        self.assertIn("active -> rejected", rejected.json()["detail"])

    def test_blocked_tool_cannot_be_approved(self):
        tool = self._create_tool()
        rental = self._request_rental(tool["toolID"]).json()

        blocked = self.client.put(
            f"/api/tools/{tool['toolID']}",
            json={
                "maintenanceImportance": "high",
                "maintenanceInterval": 12,
                "lastMaintenanceDate": (self.today - timedelta(days=400)).isoformat(),
            },
            headers=self.staff,
        )
        self.assertEqual(blocked.status_code, 200, blocked.text)
        self.assertTrue(blocked.json()["maintenanceBlocked"])

        response = self.client.post(f"/api/rentals/{rental['rentalID']}/approve", headers=self.staff)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.get(f"/api/tools/{tool['toolID']}").json()["status"], "available")

        alerts = self.client.get("/api/tools", params={"maintenanceAlert": "true"}).json()
        self.assertEqual([item["toolID"] for item in alerts["data"]], [tool["toolID"]])

    def test_overlapping_request_returns_conflict(self):
        tool = self._create_tool()
        self.assertEqual(self._request_rental(tool["toolID"]).status_code, 200)
        conflict = self._request_rental(tool["toolID"], days=3)
        self.assertEqual(conflict.status_code, 409)

    def test_members_only_see_their_own_rentals(self):
        tool = self._create_tool()
        rental = self._request_rental(tool["toolID"]).json()
        with self.Session() as db:
            other_id = add_user(db, name="Bob Other", membership_expiry=self.today + timedelta(days=30)).UserID

        forbidden = self.client.get(f"/api/rentals/{rental['rentalID']}", headers={"X-Actor-ID": str(other_id)})
        self.assertEqual(forbidden.status_code, 403)
        own = self.client.get("/api/rentals", headers={"X-Actor-ID": str(other_id)}).json()
        self.assertEqual(own["meta"]["total"], 0)

        missing = self.client.get("/api/rentals/9999", headers=self.staff)
        self.assertEqual(missing.status_code, 404)

    def test_request_body_validation(self):
        tool = self._create_tool()
        response = self.client.post(
            "/api/rentals",
            json={
                "userID": self.member_id,
                "toolID": tool["toolID"],
                "startDate": self.today.isoformat(),
                "endDate": (self.today + timedelta(days=7)).isoformat(),
                "totalPrice": -5,
            },
            headers=self.staff,
        )
        self.assertEqual(response.status_code, 422)

        bad_email = self.client.post(
            "/api/users",
            json={"name": "Carl", "email": "not-an-email", "badgeNumber": "B-77"},
            headers=self.staff,
        )
        self.assertEqual(bad_email.status_code, 422)

        bad_domain = self.client.post(
            "/api/users",
            json={"name": "Carl", "email": "a@-.x", "badgeNumber": "B-78"},
            headers=self.staff,
        )
        self.assertEqual(bad_domain.status_code, 422)

    def test_duplicate_badge_is_a_conflict(self):
        payload = {"name": "Carl Jones", "email": "carl@example.org", "badgeNumber": "B-77"}
        self.assertEqual(self.client.post("/api/users", json=payload, headers=self.staff).status_code, 200)
        payload["email"] = "carl.jones@example.org"
        duplicate = self.client.post("/api/users", json=payload, headers=self.staff)
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["field"], "badgeNumber")

    def test_membership_renewal_creates_fee(self):
        response = self.client.post(
            f"/api/users/{self.member_id}/renew-membership",
            json={"amount": 30, "paymentMethod": "cash", "durationMonths": 12},
            headers=self.staff,
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["totalDebt"], 30)

        fees = self.client.get("/api/transactions", params={"type": "MembershipFee"}, headers=self.staff).json()
        self.assertEqual(fees["meta"]["total"], 1)

    def test_reconcile_endpoint_marks_overdue_rentals(self):
        tool = self._create_tool()
        start = self.today - timedelta(days=14)
        with self.Session() as db:
            db.add(
                Rental(
                    UserID=self.member_id,
                    ToolID=tool["toolID"],
                    StartDate=start,
                    EndDate=start + timedelta(days=7),
                    Status="active",
                    TotalPrice=42,
                )
            )
            db.commit()

        listing = self.client.get("/api/rentals", headers=self.staff).json()
        self.assertTrue(listing["data"][0]["isOverdue"])

        self.assertEqual(self.client.post("/api/rentals/reconcile-overdue", headers=self.member).status_code, 403)
        summary = self.client.post("/api/rentals/reconcile-overdue", headers=self.staff).json()
        self.assertEqual(summary["markedLate"], 1)

        listing = self.client.get("/api/rentals", params={"status": "late"}, headers=self.staff).json()
        self.assertEqual(listing["meta"]["total"], 1)
        pending = self.client.get("/api/notifications/pending", headers=self.staff).json()
        self.assertEqual([item["type"] for item in pending], ["Overdue"])


if __name__ == "__main__":
    unittest.main()
