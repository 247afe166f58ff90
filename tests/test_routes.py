"""Tests for the HTTP layer: booking and gamification routers."""
import pytest
from fastapi.testclient import TestClient

from servicehub.main import app
from servicehub.db import get_db
from servicehub.booking_routes import get_notifier
from servicehub.ledger import award_points
from servicehub.models import TransactionType
from servicehub import notifications
from conftest import MONDAY


@pytest.fixture
def client(db, notifier):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


def booking_body(customer, technician, time="10:00"):
    return {
        "customer_id": customer.id,
        "technician_id": technician.id,
        "scheduled_date": MONDAY.isoformat(),
        "scheduled_time": time,
        "service_type": "REPAIR",
        "address": "Calle del Sol 12",
        "city": "Santiago",
        "phone": "809-555-9999",
    }


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestBookingRoutes:
    def test_create_and_fetch(self, client, customer, technician, notifier):
        response = client.post("/bookings", json=booking_body(customer, technician))
        assert response.status_code == 201
        booking = response.json()
        assert booking["status"] == "PENDING"
        assert booking["technician"]["id"] == technician.id
        assert notifications.BOOKING_CREATED_TECHNICIAN in notifier.kinds()

        fetched = client.get(f"/bookings/{booking['id']}")
        assert fetched.json()["scheduled_time"] == "10:00"

    def test_slot_conflict_is_409(self, client, customer, technician):
        client.post("/bookings", json=booking_body(customer, technician))
        response = client.post("/bookings", json=booking_body(customer, technician))
        assert response.status_code == 409

    def test_malformed_time_is_422(self, client, customer, technician):
        response = client.post("/bookings", json=booking_body(customer, technician, time="9am"))
        assert response.status_code == 422

    def test_missing_booking_is_404(self, client):
        assert client.get("/bookings/999").status_code == 404

    def test_wrong_technician_is_403(self, client, customer, technician, make_technician):
        booking = client.post("/bookings", json=booking_body(customer, technician)).json()
        other = make_technician()
        response = client.post(f"/bookings/{booking['id']}/confirm",
                               json={"technician_user_id": other.user_id})
        assert response.status_code == 403

    def test_full_lifecycle_with_review(self, client, customer, technician):
        booking = client.post("/bookings", json=booking_body(customer, technician)).json()
        actor = {"technician_user_id": technician.user_id}

        assert client.post(f"/bookings/{booking['id']}/confirm", json=actor).json()["status"] == "CONFIRMED"
        assert client.post(f"/bookings/{booking['id']}/start", json=actor).json()["status"] == "IN_PROGRESS"
        completed = client.post(f"/bookings/{booking['id']}/complete", json={**actor, "total_price": 2500})
        assert completed.json()["status"] == "COMPLETED"

        review = client.post(f"/bookings/{booking['id']}/review",
                             json={"author_id": customer.id, "rating": 5, "comment": "Muy bien"})
        assert review.status_code == 201

        invalid = client.post(f"/bookings/{booking['id']}/cancel",
                              json={"cancelled_by": "admin"})
        assert invalid.status_code == 409

    def test_cancel_with_bad_role_is_400(self, client, customer, technician):
        booking = client.post("/bookings", json=booking_body(customer, technician)).json()
        response = client.post(f"/bookings/{booking['id']}/cancel",
                               json={"cancelled_by": "robot", "user_id": customer.id})
        assert response.status_code == 400

    def test_lists(self, client, customer, technician):
        client.post("/bookings", json=booking_body(customer, technician, "09:00"))
        client.post("/bookings", json=booking_body(customer, technician, "11:00"))
        assert len(client.get(f"/bookings/customer/{customer.id}").json()) == 2
        assert len(client.get(f"/bookings/technician/{technician.id}?status=PENDING").json()) == 2
        assert client.get("/bookings?limit=1").json()["total"] == 2


class TestAvailabilityRoutes:
    def test_default_slots(self, client, technician):
        response = client.get(f"/bookings/technicians/{technician.id}/slots",
                              params={"day": MONDAY.isoformat()})
        assert response.status_code == 200
        assert len(response.json()["slots"]) == 10

    def test_set_and_get_schedule(self, client, technician):
        body = {"slots": [{"day_of_week": 1, "start_time": "09:00", "end_time": "11:00"}]}
        assert client.put(f"/bookings/technicians/{technician.id}/availability", json=body).status_code == 200
        schedule = client.get(f"/bookings/technicians/{technician.id}/availability").json()
        assert [(s["day_of_week"], s["start_time"]) for s in schedule] == [(1, "09:00")]

    def test_invalid_window_is_400(self, client, technician):
        body = {"slots": [{"day_of_week": 1, "start_time": "11:00", "end_time": "09:00"}]}
        assert client.put(f"/bookings/technicians/{technician.id}/availability", json=body).status_code == 400

    def test_time_off_round_trip(self, client, technician):
        created = client.post(f"/bookings/technicians/{technician.id}/time-off",
                              json={"start_date": "2099-01-01", "end_date": "2099-01-05"})
        assert created.status_code == 201
        listed = client.get(f"/bookings/technicians/{technician.id}/time-off").json()
        assert [t["id"] for t in listed] == [created.json()["id"]]
        removed = client.delete(f"/bookings/technicians/{technician.id}/time-off/{created.json()['id']}")
        assert removed.status_code == 204

    def test_remove_unknown_time_off_is_404(self, client, technician):
        response = client.delete(f"/bookings/technicians/{technician.id}/time-off/999")
        assert response.status_code == 404

    def test_unpadded_schedule_is_422(self, client, technician):
        body = {"slots": [{"day_of_week": 1, "start_time": "8:00", "end_time": "17:00"}]}
        assert client.put(f"/bookings/technicians/{technician.id}/availability", json=body).status_code == 422


class TestGamificationRoutes:
    def test_points_summary(self, client, customer):
        summary = client.post(f"/gamification/users/{customer.id}/init").json()
        assert summary["total_points"] == 0
        assert summary["level_name"] == "Rookie"

    def test_history(self, client, db, customer):
        award_points(db, customer.id, 50, TransactionType.EARNED, "BOOKING_COMPLETED", "Reserva completada")
        history = client.get(f"/gamification/users/{customer.id}/history").json()
        assert history["total"] == 1
        assert history["transactions"][0]["type"] == "EARNED"

    def test_catalogs(self, client):
        assert len(client.get("/gamification/levels").json()) == 6
        assert len(client.get("/gamification/achievements").json()) == 22
        assert len(client.get("/gamification/rewards").json()) == 6

    def test_check_achievements(self, client, customer):
        unlocked = client.post(f"/gamification/users/{customer.id}/achievements/check").json()["unlocked"]
        assert {a["code"] for a in unlocked} == {"REFERRAL_1", "REFERRAL_5"}
        listing = client.get(f"/gamification/users/{customer.id}/achievements").json()
        assert sum(a["is_unlocked"] for a in listing) == 2

    def test_leaderboard(self, client, db, customer):
        award_points(db, customer.id, 50, TransactionType.EARNED, "BOOKING_COMPLETED", "Reserva completada")
        board = client.get("/gamification/leaderboard").json()
        assert board["entries"][0]["user_id"] == customer.id
        assert client.get("/gamification/leaderboard?period=DAILY").status_code == 400

    def test_redeem(self, client, db, customer):
        assert client.post(f"/gamification/users/{customer.id}/rewards/DISCOUNT_5/redeem").status_code == 400

        award_points(db, customer.id, 250, TransactionType.EARNED, "BOOKING_COMPLETED", "Reserva completada")
        affordable = client.get(f"/gamification/users/{customer.id}/rewards/affordable").json()
        assert [r["code"] for r in affordable["rewards"]] == ["DISCOUNT_5"]

        response = client.post(f"/gamification/users/{customer.id}/rewards/DISCOUNT_5/redeem")
        assert response.status_code == 201
        assert response.json()["redemption_code"].startswith("DISCOUNT_5-")
        assert len(client.get(f"/gamification/users/{customer.id}/redemptions").json()) == 1

    def test_unknown_reward_is_404(self, client, customer):
        assert client.post(f"/gamification/users/{customer.id}/rewards/NOPE/redeem").status_code == 404
