"""Integration tests for API endpoints."""

from datetime import timedelta

import pytest
from conftest import insert_booking, insert_departure, utc_now

from vendor_portal.models import BookingStatus, PaymentStatus


def _future(days: int) -> str:
    return (utc_now() + timedelta(days=days)).date().isoformat()


@pytest.mark.asyncio
async def test_create_plan_endpoint(test_client, vendor_headers):
    """Test the plan creation endpoint."""
    response = await test_client.post(
        "/v1/plan/create",
        json={"name": "Valley of Flowers", "price": {"amount": 850000}},
        headers=vendor_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Valley of Flowers"
    assert data["price"] == {"amount": 850000, "currency": "INR"}
    assert data["vendor_id"] == "vendor-1"
    assert "id" in data

    response = await test_client.post("/v1/plan/list", headers=vendor_headers)
    assert response.status_code == 200
    assert [p["name"] for p in response.json()["plans"]] == ["Valley of Flowers"]


@pytest.mark.asyncio
async def test_create_plan_missing_auth(test_client):
    """Test plan creation without authentication."""
    response = await test_client.post("/v1/plan/create", json={"name": "x", "price": {"amount": 1}})

    assert response.status_code == 401
    data = response.json()
    assert data["status"] == 401
    assert "authentication" in data["title"].lower()


@pytest.mark.asyncio
async def test_create_plan_requires_vendor_role(test_client, traveller_headers):
    response = await test_client.post(
        "/v1/plan/create",
        json={"name": "x", "price": {"amount": 1}},
        headers=traveller_headers,
    )

    assert response.status_code == 403
    assert response.json()["required_role"] == "vendor"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(test_client):
    response = await test_client.post(
        "/v1/plan/list",
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_plan_invalid_data(test_client, vendor_headers):
    """Test plan creation with invalid data."""
    response = await test_client.post(
        "/v1/plan/create",
        json={"name": "", "price": {"amount": -5}},
        headers=vendor_headers,
    )

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    assert "violations" in data


@pytest.mark.asyncio
async def test_departure_lifecycle_endpoints(test_client, vendor_headers, plan):
    response = await test_client.post(
        "/v1/departure/create",
        json={
            "plan_id": str(plan.id),
            "departure_date": _future(20),
            "pickup_location": "Joshimath",
            "pickup_time": "06:15",
            "total_capacity": 15,
        },
        headers=vendor_headers,
    )
    assert response.status_code == 200
    departure = response.json()
    assert departure["booked_seats"] == 0
    assert departure["available_seats"] == 15
    assert departure["status"] == "scheduled"

    response = await test_client.post(
        "/v1/departure/update",
        json={"departure_id": departure["id"], "total_capacity": 12},
        headers=vendor_headers,
    )
    assert response.status_code == 200
    assert response.json()["total_capacity"] == 12

    response = await test_client.post("/v1/departure/list", json={"plan_id": str(plan.id)}, headers=vendor_headers)
    assert response.status_code == 200
    assert [d["id"] for d in response.json()["departures"]] == [departure["id"]]

    response = await test_client.post(
        "/v1/departure/delete", json={"departure_id": departure["id"]}, headers=vendor_headers
    )
    assert response.status_code == 200
    assert response.json() == {"departure_id": departure["id"], "deleted": True}

    response = await test_client.post("/v1/departure/get", json={"departure_id": departure["id"]}, headers=vendor_headers)
    assert response.status_code == 404
    assert response.json()["resource_type"] == "departure"


@pytest.mark.asyncio
async def test_bulk_create_endpoint(test_client, vendor_headers, plan):
    response = await test_client.post(
        "/v1/departure/bulk-create",
        json={
            "plan_id": str(plan.id),
            "start_date": _future(1),
            "end_date": _future(14),
            "recurrence": "weekly",
            "weekdays": [5],
            "pickup_location": "Rishikesh",
            "pickup_time": "05:00",
            "total_capacity": 10,
        },
        headers=vendor_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["requested"] == 2
    assert data["created"] == 2
    assert data["failed"] == 0
    assert len(data["departures"]) == 2


@pytest.mark.asyncio
async def test_bulk_create_weekly_requires_weekdays(test_client, vendor_headers, plan):
    response = await test_client.post(
        "/v1/departure/bulk-create",
        json={
            "plan_id": str(plan.id),
            "start_date": _future(1),
            "end_date": _future(14),
            "recurrence": "weekly",
            "pickup_location": "Rishikesh",
            "pickup_time": "05:00",
            "total_capacity": 10,
        },
        headers=vendor_headers,
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_booking_flow_endpoints(test_client, traveller_headers, payments_headers, plan, departure):
    """Create, pay for and cancel a booking over HTTP, watching the seat counter."""
    response = await test_client.post(
        "/v1/booking/create",
        json={"plan_id": str(plan.id), "departure_id": str(departure.id), "num_people": 3},
        headers=traveller_headers,
    )
    assert response.status_code == 200
    booking = response.json()
    assert booking["booking_status"] == "pending"
    assert booking["trip_cost"] == plan.price_amount * 3

    response = await test_client.post(
        "/v1/booking/complete-payment",
        json={"booking_id": booking["id"], "payment_reference": "pay_789"},
        headers=payments_headers,
    )
    assert response.status_code == 200
    assert response.json()["booking_status"] == "confirmed"

    response = await test_client.post(
        "/v1/inventory/availability", json={"departure_id": str(departure.id)}, headers=traveller_headers
    )
    assert response.status_code == 200
    assert response.json()["booked_seats"] == 3

    response = await test_client.post("/v1/booking/list", json={}, headers=traveller_headers)
    assert [b["id"] for b in response.json()["bookings"]] == [booking["id"]]

    response = await test_client.post(
        "/v1/booking/cancel", json={"booking_id": booking["id"]}, headers=traveller_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["booking_status"] == "cancelled"
    assert data["refund_status"] == "requested"

    response = await test_client.post(
        "/v1/inventory/availability", json={"departure_id": str(departure.id)}, headers=traveller_headers
    )
    assert response.json()["booked_seats"] == 0


@pytest.mark.asyncio
async def test_payment_callbacks_require_payments_role(test_client, test_session, traveller_headers, departure):
    booking = await insert_booking(
        test_session, departure, booking_status=BookingStatus.PENDING, payment_status=PaymentStatus.PENDING
    )

    response = await test_client.post(
        "/v1/booking/complete-payment", json={"booking_id": str(booking.id)}, headers=traveller_headers
    )

    assert response.status_code == 403
    assert response.json()["required_role"] == "payments"


@pytest.mark.asyncio
async def test_complete_payment_full_departure(test_client, test_session, traveller_headers, payments_headers, plan):
    departure = await insert_departure(test_session, plan, total_capacity=2)
    first = await test_client.post(
        "/v1/booking/create",
        json={"plan_id": str(plan.id), "departure_id": str(departure.id), "num_people": 2},
        headers=traveller_headers,
    )
    second = await test_client.post(
        "/v1/booking/create",
        json={"plan_id": str(plan.id), "departure_id": str(departure.id), "num_people": 1},
        headers=traveller_headers,
    )

    response = await test_client.post(
        "/v1/booking/complete-payment", json={"booking_id": first.json()["id"]}, headers=payments_headers
    )
    assert response.status_code == 200

    response = await test_client.post(
        "/v1/booking/complete-payment", json={"booking_id": second.json()["id"]}, headers=payments_headers
    )
    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "FULL"
    assert data["retryable"] is False


@pytest.mark.asyncio
async def test_cancel_departure_endpoint(test_client, test_session, refund_service, vendor_headers, plan):
    departure = await insert_departure(test_session, plan, total_capacity=10, booked_seats=5)
    ok_booking = await insert_booking(test_session, departure, user_id="t-1", num_people=2)
    failing_booking = await insert_booking(test_session, departure, user_id="t-2", num_people=3)
    refund_service.fail(failing_booking.id, "Refund window closed")

    response = await test_client.post(
        "/v1/departure/cancel",
        json={"departure_id": str(departure.id), "reason": "Heavy snowfall"},
        headers=vendor_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["departure"]["status"] == "cancelled"
    assert data["departure"]["is_active"] is False
    assert data["departure"]["booked_seats"] == 3
    assert data["refund_results"] == {
        "total": 2,
        "successful": 1,
        "failed": 1,
        "errors": [f"Failed to refund booking {failing_booking.id}: Refund window closed"],
    }
    items = {item["booking_id"]: item for item in data["items"]}
    assert items[str(ok_booking.id)]["ok"] is True
    assert items[str(failing_booking.id)] == {
        "booking_id": str(failing_booking.id),
        "ok": False,
        "reason": "Refund window closed",
    }


@pytest.mark.asyncio
async def test_cancel_departure_endpoint_errors(test_client, test_session, other_vendor_headers, vendor_headers, plan):
    departure = await insert_departure(test_session, plan)
    past = await insert_departure(test_session, plan, days_ahead=-3)

    response = await test_client.post(
        "/v1/departure/cancel", json={"departure_id": str(departure.id)}, headers=other_vendor_headers
    )
    assert response.status_code == 403

    response = await test_client.post(
        "/v1/departure/cancel", json={"departure_id": str(past.id)}, headers=vendor_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot cancel past departures"
    assert response.json()["code"] == "DEPARTURE_PAST"


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Test the Prometheus metrics endpoint."""
    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert "bookings_confirmed_total" in response.text
