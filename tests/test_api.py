import os
import sys
import unittest
from datetime import timedelta

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

import support  # noqa: E402  (sets up path and environment)

from fastapi.testclient import TestClient  # noqa: E402

from db.init import get_db  # noqa: E402
from main import app  # noqa: E402
from models.booking import Booking, BOOKING_COMPLETED  # noqa: E402
from models.profile import USER_TYPE_CLIENT  # noqa: E402
from models.user_ban import UserBan, BAN_PERMANENT  # noqa: E402
from services.policy import utc_now  # noqa: E402


def auth(user_id):
    return {"Authorization": f"Bearer {support.create_access_token(user_id)}"}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.Session = support.make_session_factory()

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)

        self.db = self.Session()
        support.add_profile(self.db, "pro-1", phone="5550001111", is_verified=True)
        support.add_profile(self.db, "client-1", user_type=USER_TYPE_CLIENT, phone="5559998888")

    def tearDown(self):
        self.db.close()
        app.dependency_overrides.clear()

    def book(self, client_id="client-1", provider_id="pro-1"):
        res = self.client.post(
            "/bookings/",
            json={"provider_id": provider_id, "service_category": "plumbing"},
            headers=auth(client_id),
        )
        self.assertEqual(res.status_code, 201, res.text)
        return res.json()["data"]["id"]

    def cancel(self, booking_id, user_id="client-1", reason="Found another provider"):
        return self.client.post(
            f"/bookings/{booking_id}/cancel",
            json={"reason": reason},
            headers=auth(user_id),
        )


class TestAuthentication(ApiTestCase):
    def test_write_requires_token(self):
        res = self.client.post("/subscriptions/", json={})
        self.assertEqual(res.status_code, 401)

    def test_invalid_token(self):
        res = self.client.get("/bans/me", headers={"Authorization": "Bearer not-a-token"})
        self.assertEqual(res.status_code, 401)

    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})


class TestBookingCancellation(ApiTestCase):
    def test_strikes_escalate_to_ban_and_block_writes(self):
        bookings = [self.book() for _ in range(3)]

        first = self.cancel(bookings[0]).json()
        self.assertIsNone(first["ban"])
        self.assertEqual(first["cancelled_by"], "client")
        self.assertEqual(first["strike"]["strike_count"], 1)
        self.assertIn("Warning", first["message"])

        self.assertEqual(self.cancel(bookings[1]).status_code, 200)

        third = self.cancel(bookings[2])
        self.assertEqual(third.status_code, 200)
        ban = third.json()["ban"]
        self.assertEqual(ban["type"], "temporary")
        self.assertTrue(ban["expires_at"].endswith("Z"))

        # the next write is rejected by the gate
        blocked = self.client.post("/subscriptions/", json={}, headers=auth("client-1"))
        self.assertEqual(blocked.status_code, 403)
        body = blocked.json()
        self.assertTrue(body["banned"])
        self.assertEqual(body["ban"]["type"], "temporary")
        self.assertEqual(body["ban"]["expires_at"], ban["expires_at"])
        self.assertIn("temporarily banned until", body["detail"])

        # reads stay open
        self.assertEqual(self.client.get("/providers/", headers=auth("client-1")).status_code, 200)
        status = self.client.get("/bans/me", headers=auth("client-1")).json()["data"]
        self.assertTrue(status["banned"])
        self.assertEqual(status["strike_count"], 3)

    def test_provider_cancellation_is_attributed(self):
        booking_id = self.book()
        res = self.cancel(booking_id, user_id="pro-1").json()
        self.assertEqual(res["cancelled_by"], "provider")
        self.assertEqual(res["data"]["status"], "cancelled")

    def test_non_participant_is_rejected(self):
        booking_id = self.book()
        res = self.cancel(booking_id, user_id="stranger")
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.json()["reason"], "not-participant")

    def test_finished_booking_is_not_cancellable(self):
        booking_id = self.book()
        booking = self.db.get(Booking, booking_id)
        booking.status = BOOKING_COMPLETED
        self.db.commit()

        res = self.cancel(booking_id)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["reason"], "booking-not-cancellable")

    def test_missing_booking(self):
        res = self.cancel(9999)
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.json()["reason"], "not-found")

    def test_reason_is_validated(self):
        booking_id = self.book()
        self.assertEqual(self.cancel(booking_id, reason="no").status_code, 422)

    def test_permanently_banned_user_cannot_book(self):
        self.db.add(
            UserBan(
                user_id="client-1",
                ban_type=BAN_PERMANENT,
                reason="Permanent ban: 3 temporary bans issued for excessive cancellations",
                strike_count=3,
                created_at=utc_now() - timedelta(days=1),
            )
        )
        self.db.commit()

        res = self.client.post(
            "/bookings/",
            json={"provider_id": "pro-1", "service_category": "plumbing"},
            headers=auth("client-1"),
        )
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.json()["ban"]["type"], "permanent")
        self.assertIsNone(res.json()["ban"]["expires_at"])
        self.assertEqual(self.db.query(Booking).count(), 0)


class TestSubscriptionAndVisibility(ApiTestCase):
    def test_specialist_lifecycle_over_http(self):
        created = self.client.post(
            "/subscriptions/",
            json={"plan_type": "specialist_monthly", "payment_method": "card"},
            headers=auth("pro-1"),
        )
        self.assertEqual(created.status_code, 201, created.text)
        self.assertEqual(created.json()["data"]["status"], "active")

        again = self.client.post("/subscriptions/", json={}, headers=auth("pro-1"))
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["reason"], "already-subscribed")

        upgraded = self.client.put("/providers/pro-1/tier", headers=auth("pro-1"))
        self.assertEqual(upgraded.status_code, 200, upgraded.text)
        self.assertEqual(upgraded.json()["data"]["provider_tier"], "specialist")
        self.assertEqual(upgraded.json()["data"]["phone"], "5550001111")

        # specialist phone hidden from everyone but the owner
        self.assertIsNone(self.client.get("/providers/pro-1").json()["data"]["phone"])
        self.assertIsNone(
            self.client.get("/providers/pro-1", headers=auth("client-1")).json()["data"]["phone"]
        )
        self.assertEqual(
            self.client.get("/providers/pro-1", headers=auth("pro-1")).json()["data"]["phone"],
            "5550001111",
        )
        listing = self.client.get("/providers/").json()
        self.assertEqual(listing["pagination"]["total"], 1)
        self.assertIsNone(listing["data"][0]["phone"])

        # opting in exposes it
        updated = self.client.put("/providers/me", json={"phone_visible": True}, headers=auth("pro-1"))
        self.assertEqual(updated.status_code, 200, updated.text)
        self.assertEqual(self.client.get("/providers/pro-1").json()["data"]["phone"], "5550001111")

        cancelled = self.client.delete("/subscriptions/", headers=auth("pro-1"))
        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["data"]["status"], "cancelled")

        status = self.client.get("/subscriptions/status", headers=auth("pro-1")).json()
        self.assertEqual(status["data"]["status"], "cancelled")
        self.assertEqual(self.client.get("/providers/pro-1").json()["data"]["provider_tier"], "basic")

    def test_basic_provider_phone_is_public(self):
        self.assertEqual(self.client.get("/providers/pro-1").json()["data"]["phone"], "5550001111")

    def test_upgrade_requires_subscription(self):
        res = self.client.put("/providers/pro-1/tier", headers=auth("pro-1"))
        self.assertEqual(res.status_code, 402)
        self.assertEqual(res.json()["reason"], "no-active-subscription")

    def test_upgrade_someone_else(self):
        res = self.client.put("/providers/pro-1/tier", headers=auth("client-1"))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.json()["reason"], "not-self")

    def test_unknown_plan(self):
        res = self.client.post("/subscriptions/", json={"plan_type": "gold"}, headers=auth("pro-1"))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["reason"], "unknown-plan")

    def test_empty_plan_is_not_sold(self):
        res = self.client.post("/subscriptions/", json={"plan_type": ""}, headers=auth("pro-1"))
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["reason"], "unknown-plan")
        self.assertIsNone(self.client.get("/subscriptions/status", headers=auth("pro-1")).json()["data"])

    def test_client_cannot_subscribe(self):
        res = self.client.post("/subscriptions/", json={}, headers=auth("client-1"))
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.json()["reason"], "not-a-provider")

    def test_status_without_subscription(self):
        res = self.client.get("/subscriptions/status", headers=auth("pro-1")).json()
        self.assertIsNone(res["data"])
        self.assertEqual(res["message"], "No subscription found.")

    def test_client_can_register_as_provider(self):
        res = self.client.post(
            "/providers/",
            json={"full_name": "Jane Doe", "city": "Queens"},
            headers=auth("client-1"),
        )
        self.assertEqual(res.status_code, 201, res.text)
        self.assertEqual(res.json()["data"]["user_type"], "provider")
        self.assertEqual(res.json()["data"]["provider_tier"], "basic")

        dup = self.client.post(
            "/providers/",
            json={"full_name": "Jane Doe", "city": "Queens"},
            headers=auth("client-1"),
        )
        self.assertEqual(dup.status_code, 409)

    def test_unknown_provider(self):
        self.assertEqual(self.client.get("/providers/nobody").status_code, 404)


if __name__ == '__main__':
    unittest.main()
