from datetime import datetime, timedelta, UTC
from decimal import Decimal

from reservapp.models.reservation import CancellationSource, ReservationStatus
from reservapp.models.venue import Service
from tests.conftest import headers_for


def booking(service_id: str, days_ahead: int = 3, nights: int = 2, guests: int = 2) -> dict:
    check_in = datetime.now(UTC) + timedelta(days=days_ahead)
    return {
        "service_id": service_id,
        "check_in_date": check_in.isoformat(),
        "check_out_date": (check_in + timedelta(days=nights)).isoformat(),
        "guest_count": guests,
    }


class TestReservationCreation:
    def test_create_reservation_priced_per_night(self, client, guest, guest_headers, room):
        response = client.post("/api/reservations/", json=booking(room.id), headers=guest_headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "PENDING"
        assert data["user_id"] == guest.id
        assert data["total_amount"] == 200.0

    def test_partial_night_rounds_up(self, client, guest_headers, room):
        payload = booking(room.id, nights=1)
        check_in = datetime.fromisoformat(payload["check_in_date"])
        payload["check_out_date"] = (check_in + timedelta(hours=30)).isoformat()

        response = client.post("/api/reservations/", json=payload, headers=guest_headers)

        assert response.status_code == 201
        assert response.json()["data"]["total_amount"] == 200.0

    def test_timed_service_priced_per_guest(self, client, db_session, guest_headers, room):
        massage = Service(
            venue_id=room.venue_id,
            name="Massage",
            price=Decimal("50.00"),
            duration_minutes=60,
            capacity=5,
        )
        db_session.add(massage)
        db_session.commit()

        response = client.post(
            "/api/reservations/", json=booking(massage.id, nights=1, guests=3), headers=guest_headers
        )

        assert response.status_code == 201
        assert response.json()["data"]["total_amount"] == 150.0

    def test_check_in_in_the_past(self, client, guest_headers, room):
        response = client.post(
            "/api/reservations/", json=booking(room.id, days_ahead=-2), headers=guest_headers
        )

        assert response.status_code == 400
        assert "past" in response.json()["message"]

    def test_check_out_before_check_in(self, client, guest_headers, room):
        payload = booking(room.id)
        payload["check_in_date"], payload["check_out_date"] = (
            payload["check_out_date"],
            payload["check_in_date"],
        )
        response = client.post("/api/reservations/", json=payload, headers=guest_headers)
        assert response.status_code == 400

    def test_unknown_service(self, client, guest_headers, room):
        response = client.post(
            "/api/reservations/", json=booking("missing-service"), headers=guest_headers
        )
        assert response.status_code == 404

    def test_inactive_service(self, client, db_session, guest_headers, room):
        room.is_active = False
        db_session.commit()

        response = client.post("/api/reservations/", json=booking(room.id), headers=guest_headers)
        assert response.status_code == 404

    def test_capacity_exhausted(self, client, guest_headers, other_guest, make_reservation, room):
        # Existing booking: 3 of 4 places, days 7-9
        make_reservation(other_guest, guest_count=3)

        response = client.post(
            "/api/reservations/", json=booking(room.id, days_ahead=8, guests=2), headers=guest_headers
        )
        assert response.status_code == 400

    def test_capacity_free_outside_overlap(self, client, guest_headers, other_guest, make_reservation, room):
        make_reservation(other_guest, guest_count=4)

        response = client.post(
            "/api/reservations/", json=booking(room.id, days_ahead=20, guests=4), headers=guest_headers
        )
        assert response.status_code == 201

    def test_cancelled_reservation_frees_capacity(
        self, client, guest_headers, other_guest, make_reservation, room
    ):
        make_reservation(other_guest, status=ReservationStatus.CANCELLED, guest_count=4)

        response = client.post(
            "/api/reservations/", json=booking(room.id, days_ahead=8, guests=4), headers=guest_headers
        )
        assert response.status_code == 201

    def test_requires_authentication(self, client, room):
        response = client.post("/api/reservations/", json=booking(room.id))
        assert response.status_code == 401


class TestReservationRetrieval:
    def test_guest_sees_only_own(self, client, guest, guest_headers, other_guest, make_reservation):
        own = make_reservation(guest)
        make_reservation(other_guest)

        response = client.get("/api/reservations/", headers=guest_headers)

        assert response.status_code == 200
        page = response.json()["data"]
        assert page["total"] == 1
        assert [item["id"] for item in page["items"]] == [own.id]

    def test_staff_see_all(self, client, guest, other_guest, employee, make_reservation):
        make_reservation(guest)
        make_reservation(other_guest)

        response = client.get("/api/reservations/", headers=headers_for(employee))
        assert response.json()["data"]["total"] == 2

    def test_filter_by_status(self, client, guest, guest_headers, make_reservation):
        make_reservation(guest)
        make_reservation(guest, status=ReservationStatus.CONFIRMED)

        response = client.get(
            "/api/reservations/", params={"status": "CONFIRMED"}, headers=guest_headers
        )

        items = response.json()["data"]["items"]
        assert len(items) == 1
        assert items[0]["status"] == "CONFIRMED"

    def test_get_own_reservation(self, client, guest_headers, reservation):
        response = client.get(f"/api/reservations/{reservation.id}", headers=guest_headers)

        assert response.status_code == 200
        assert response.json()["data"]["id"] == reservation.id

    def test_other_users_reservation_is_not_found(self, client, other_guest, reservation):
        response = client.get(
            f"/api/reservations/{reservation.id}", headers=headers_for(other_guest)
        )
        assert response.status_code == 404

    def test_staff_can_get_any(self, client, employee, reservation):
        response = client.get(f"/api/reservations/{reservation.id}", headers=headers_for(employee))
        assert response.status_code == 200


class TestReservationCancellation:
    def test_guest_cancels_pending(self, client, guest_headers, reservation):
        response = client.post(f"/api/reservations/{reservation.id}/cancel", headers=guest_headers)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "CANCELLED"
        assert response.json()["data"]["cancellation_source"] == "REQUEST"
        assert reservation.cancellation_source == CancellationSource.REQUEST
        assert not reservation.can_transition_to(ReservationStatus.CONFIRMED)

    def test_guest_cannot_cancel_confirmed(self, client, guest, guest_headers, make_reservation):
        reservation = make_reservation(guest, status=ReservationStatus.CONFIRMED)

        response = client.post(f"/api/reservations/{reservation.id}/cancel", headers=guest_headers)
        assert response.status_code == 403

    def test_admin_cancels_confirmed(self, client, guest, admin_headers, make_reservation):
        reservation = make_reservation(guest, status=ReservationStatus.CONFIRMED)

        response = client.post(f"/api/reservations/{reservation.id}/cancel", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "CANCELLED"

    def test_cannot_cancel_twice(self, client, guest, guest_headers, make_reservation):
        reservation = make_reservation(guest, status=ReservationStatus.CANCELLED)

        response = client.post(f"/api/reservations/{reservation.id}/cancel", headers=guest_headers)
        assert response.status_code == 400

    def test_cannot_cancel_started_stay(self, client, guest, admin_headers, make_reservation):
        reservation = make_reservation(guest, status=ReservationStatus.CHECKED_IN)

        response = client.post(f"/api/reservations/{reservation.id}/cancel", headers=admin_headers)
        assert response.status_code == 400
