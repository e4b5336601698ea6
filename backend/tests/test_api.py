"""
HTTP tests: seat maps, holds, pricing, checkout and error responses.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import CONCERT_ID, MOVIE_ID, SHOW_START

CHECKOUT = {
    "customer": {"name": "Asha Rao", "email": "asha@example.com", "phone": "+91 98000 00000"},
    "payment_method_id": "pm_card",
}


async def reserve(client, seat_ids, schedule_id=MOVIE_ID, **extra):
    return await client.post(
        "/api/v1/reservations/",
        json={"schedule_id": schedule_id, "seat_ids": seat_ids, **extra},
    )


# ============== Seat maps ==============

@pytest.mark.asyncio
async def test_seat_map(client):
    response = await client.get(f"/api/v1/schedules/{MOVIE_ID}/seats")

    assert response.status_code == 200
    data = response.json()
    assert data["seat_count"] == 2
    assert data["needs_refresh"] is False
    [row] = data["rows"]
    assert row["row"] == "A"
    assert [Decimal(s["price"]) for s in row["seats"]] == [Decimal("250"), Decimal("500")]
    assert {s["status"] for s in row["seats"]} == {"AVAILABLE"}


@pytest.mark.asyncio
async def test_seat_map_flags_own_holds(client):
    session_id = (await reserve(client, ["A1"])).json()["session_id"]

    response = await client.get(
        f"/api/v1/schedules/{MOVIE_ID}/seats",
        headers={"X-Reservation-Session": session_id},
    )

    seats = {s["seat_id"]: s for s in response.json()["rows"][0]["seats"]}
    assert seats["A1"]["status"] == "RESERVED"
    assert seats["A1"]["held_by_you"] is True
    assert seats["A2"]["held_by_you"] is False


@pytest.mark.asyncio
async def test_unknown_schedule_seat_map(client):
    response = await client.get("/api/v1/schedules/999/seats")

    assert response.status_code == 404
    assert response.json()["code"] == "SCHEDULE_NOT_FOUND"


@pytest.mark.asyncio
async def test_generate_seat_map(client):
    response = await client.post(
        f"/api/v1/schedules/{CONCERT_ID}/seats",
        json={"seats_per_row": 10, "disabled_seats": ["a1"]},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["seat_count"] == 20
    assert len(data["rows"]) == 2
    assert data["rows"][0]["seats"][0]["status"] == "DISABLED"


@pytest.mark.asyncio
async def test_generate_seat_map_with_holds_is_conflict(client):
    held = await reserve(client, ["B1"], schedule_id=CONCERT_ID)
    assert held.status_code == 201

    response = await client.post(f"/api/v1/schedules/{CONCERT_ID}/seats", json={"seats_per_row": 10})

    assert response.status_code == 409
    assert response.json()["code"] == "SEAT_MAP_IN_USE"
    assert response.json()["details"]["seat_ids"] == ["B1"]


@pytest.mark.asyncio
async def test_consistency_report(client):
    response = await client.get(f"/api/v1/schedules/{CONCERT_ID}/consistency")

    assert response.status_code == 200
    data = response.json()
    assert data["consistent"] is True
    assert data["capacity"] == 20
    assert data["discrepancies"] == []


@pytest.mark.asyncio
async def test_booking_window(client, clock):
    clock.set(SHOW_START - timedelta(minutes=10))

    response = await client.get(f"/api/v1/schedules/{CONCERT_ID}/booking-window")

    assert response.json() == {
        "schedule_id": CONCERT_ID,
        "allowed": True,
        "minutes_elapsed": -10,
        "reason": None,
        "warning": "Hurry! The show starts in 10 minutes",
    }


# ============== Holds ==============

@pytest.mark.asyncio
async def test_reserve_returns_session(client):
    response = await reserve(client, ["a1", "A2"])

    assert response.status_code == 201
    data = response.json()
    assert data["seat_ids"] == ["A1", "A2"]
    assert data["seconds_remaining"] == 300
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_conflict_names_seats(client):
    await reserve(client, ["A1", "A2"])

    response = await reserve(client, ["A2"])

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "SEAT_CONFLICT"
    assert body["details"]["seat_ids"] == ["A2"]


@pytest.mark.asyncio
async def test_reserve_validation(client):
    empty = await reserve(client, [])
    unknown = await reserve(client, ["Z9"])

    assert empty.status_code == 422
    assert unknown.status_code == 404
    assert unknown.json()["details"]["seat_id"] == "Z9"


@pytest.mark.asyncio
async def test_too_many_seats(client):
    response = await reserve(client, [f"{r}{n}" for r in "ABC" for n in range(1, 5)], schedule_id=CONCERT_ID)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SEAT_SELECTION"


@pytest.mark.asyncio
async def test_replace_with_header_token(client):
    first = (await reserve(client, ["C1"], schedule_id=CONCERT_ID)).json()

    response = await client.post(
        "/api/v1/reservations/",
        json={"schedule_id": CONCERT_ID, "seat_ids": ["C1", "C2"]},
        headers={"X-Reservation-Session": first["session_id"]},
    )

    assert response.status_code == 201
    assert response.json()["session_id"] != first["session_id"]
    old = await client.get(f"/api/v1/reservations/{first['session_id']}")
    assert old.status_code == 410


@pytest.mark.asyncio
async def test_change_and_deselect(client):
    session_id = (await reserve(client, ["C1", "C2"], schedule_id=CONCERT_ID)).json()["session_id"]

    changed = await client.put(f"/api/v1/reservations/{session_id}", json={"seat_ids": ["C3", "C4"]})
    assert changed.status_code == 200
    new_id = changed.json()["session_id"]
    assert changed.json()["seat_ids"] == ["C3", "C4"]

    partial = await client.post(f"/api/v1/reservations/{new_id}/deselect", json={"seat_ids": ["C4"]})
    assert partial.json()["seat_ids"] == ["C3"]
    assert partial.json()["session_id"] == new_id

    emptied = await client.post(f"/api/v1/reservations/{new_id}/deselect", json={"seat_ids": ["C3"]})
    assert emptied.json() == {"session_id": new_id, "released": True}


@pytest.mark.asyncio
async def test_release(client):
    session_id = (await reserve(client, ["A1"])).json()["session_id"]

    first = await client.delete(f"/api/v1/reservations/{session_id}")
    second = await client.delete(f"/api/v1/reservations/{session_id}")

    assert first.json()["released"] is True
    assert second.status_code == 200
    assert second.json()["released"] is False


@pytest.mark.asyncio
async def test_expired_session_is_gone(client, clock):
    session_id = (await reserve(client, ["A1"])).json()["session_id"]
    clock.advance(minutes=5)

    response = await client.get(f"/api/v1/reservations/{session_id}")

    assert response.status_code == 410
    assert response.json()["code"] == "SESSION_EXPIRED"


# ============== Pricing and checkout ==============

@pytest.mark.asyncio
async def test_pricing(client):
    session_id = (await reserve(client, ["A1", "A2"])).json()["session_id"]

    plain = (await client.get(f"/api/v1/reservations/{session_id}/pricing")).json()
    promo = (await client.get(f"/api/v1/reservations/{session_id}/pricing", params={"promotion_code": "FLAT600"})).json()
    bad = await client.get(f"/api/v1/reservations/{session_id}/pricing", params={"promotion_code": "NOPE"})

    assert Decimal(plain["subtotal"]) == 750
    assert Decimal(plain["fee"]) == 38
    assert Decimal(plain["tax"]) == 135
    assert Decimal(plain["total"]) == 923
    assert Decimal(promo["total"]) == 323
    assert bad.status_code == 400
    assert bad.json()["code"] == "PROMOTION_INVALID"


@pytest.mark.asyncio
async def test_checkout_and_lookup(client):
    session_id = (await reserve(client, ["A1", "A2"])).json()["session_id"]

    response = await client.post("/api/v1/bookings/", json={"session_id": session_id, **CHECKOUT})

    assert response.status_code == 201
    booking = response.json()
    assert booking["booking_number"] == "BK00001"
    assert booking["status"] == "CONFIRMED"
    assert booking["effective_status"] == "CONFIRMED"
    assert booking["payment_status"] == "COMPLETED"
    assert Decimal(booking["total_amount"]) == 923
    assert [s["seat_id"] for s in booking["seats"]] == ["A1", "A2"]
    assert booking["customer"]["email"] == "asha@example.com"

    by_number = await client.get("/api/v1/bookings/number/BK00001")
    assert by_number.json()["id"] == booking["id"]

    seats = (await client.get(f"/api/v1/schedules/{MOVIE_ID}/seats")).json()["rows"][0]["seats"]
    assert {s["status"] for s in seats} == {"SOLD"}


@pytest.mark.asyncio
async def test_checkout_rejects_bad_email(client):
    session_id = (await reserve(client, ["A1"])).json()["session_id"]
    body = {**CHECKOUT, "customer": {"name": "X", "email": "not-an-email"}}

    response = await client.post("/api/v1/bookings/", json={"session_id": session_id, **body})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_checkout_declined(client, payments):
    payments.decline = True
    session_id = (await reserve(client, ["A1"])).json()["session_id"]

    response = await client.post("/api/v1/bookings/", json={"session_id": session_id, **CHECKOUT})

    assert response.status_code == 402
    assert response.json()["code"] == "PAYMENT_DECLINED"
    pending = await client.get("/api/v1/bookings/1")
    assert pending.json()["status"] == "PENDING"
    assert pending.json()["payment_status"] == "FAILED"


@pytest.mark.asyncio
async def test_checkout_expired_session(client):
    response = await client.post("/api/v1/bookings/", json={"session_id": "gone", **CHECKOUT})

    assert response.status_code == 410


@pytest.mark.asyncio
async def test_checkout_window_closed(client, clock):
    clock.set(SHOW_START + timedelta(minutes=2))
    session_id = (await reserve(client, ["C1"], schedule_id=CONCERT_ID)).json()["session_id"]

    response = await client.post("/api/v1/bookings/", json={"session_id": session_id, **CHECKOUT})

    assert response.status_code == 403
    assert response.json()["details"]["minutes_elapsed"] == 2


@pytest.mark.asyncio
async def test_cancel_booking(client, clock):
    session_id = (await reserve(client, ["A1"])).json()["session_id"]
    booking_id = (await client.post("/api/v1/bookings/", json={"session_id": session_id, **CHECKOUT})).json()["id"]

    response = await client.post(f"/api/v1/bookings/{booking_id}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["payment_status"] == "REFUND_PENDING"

    again = await client.post(f"/api/v1/bookings/{booking_id}/cancel")
    assert again.status_code == 409
    assert again.json()["code"] == "INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_refund_flow(client, clock):
    session_id = (await reserve(client, ["A1"])).json()["session_id"]
    booking_id = (await client.post("/api/v1/bookings/", json={"session_id": session_id, **CHECKOUT})).json()["id"]

    early = await client.post(f"/api/v1/bookings/{booking_id}/refund-request")
    assert early.status_code == 409

    clock.set(SHOW_START + timedelta(days=1))
    requested = await client.post(f"/api/v1/bookings/{booking_id}/refund-request")
    assert requested.json()["status"] == "REFUND_REQUESTED"

    approved = await client.post(f"/api/v1/bookings/{booking_id}/refund-approval")
    assert approved.json()["status"] == "REFUNDED"
    assert approved.json()["payment_status"] == "REFUNDED"


@pytest.mark.asyncio
async def test_unknown_booking(client):
    response = await client.get("/api/v1/bookings/42")

    assert response.status_code == 404
    assert response.json()["code"] == "BOOKING_NOT_FOUND"


# ============== Health ==============

@pytest.mark.asyncio
async def test_health(client):
    await reserve(client, ["A1"])

    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["active_holds"] == 1
    assert data["seat_gate"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_metrics(client):
    await reserve(client, ["A1"])

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "seat_reservation_attempts_total" in response.text
