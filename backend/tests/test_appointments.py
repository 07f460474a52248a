"""
Tests for the appointment endpoints.

Covers scheduling with attendees, invitation notifications, attendee
visibility, updates with attendee changes, deletion, and converting an
appointment into a time entry.
"""

import uuid
from datetime import datetime, timedelta, timezone

from httpx import AsyncClient

from caseace.auth.models import User

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

MEETING_START = datetime(2026, 5, 4, 14, 0, tzinfo=timezone.utc)


async def _create_appointment(client: AsyncClient, attendee_ids: list[str], case_id: str | None = None, **extra) -> dict:
    data = {
        "title": "Strategy meeting",
        "start_time": MEETING_START.isoformat(),
        "end_time": (MEETING_START + timedelta(hours=1)).isoformat(),
        "location": "Conference room B",
        "case_id": case_id,
        "attendee_ids": attendee_ids,
        **extra,
    }
    resp = await client.post("/api/appointments", json=data)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


class TestCreateAppointment:
    """POST /api/appointments, GET /api/appointments, GET /api/appointments/{id}"""

    async def test_creator_accepted_invitees_tentative(
        self, associate_client: AsyncClient, associate_user: User, client_user: User, sample_case: dict
    ):
        body = await _create_appointment(associate_client, [str(client_user.id)], sample_case["id"])
        statuses = {a["user_id"]: a["status"] for a in body["attendees"]}
        assert statuses == {str(associate_user.id): "accepted", str(client_user.id): "tentative"}
        assert body["created_by"]["id"] == str(associate_user.id)

    async def test_invitee_is_notified(
        self, associate_client: AsyncClient, client_client: AsyncClient, client_user: User
    ):
        await _create_appointment(associate_client, [str(client_user.id)])
        notes = (await client_client.get("/api/notifications")).json()["items"]
        assert [n["type"] for n in notes] == ["appointment"]

    async def test_end_must_follow_start(self, associate_client: AsyncClient):
        resp = await associate_client.post(
            "/api/appointments",
            json={
                "title": "Backwards",
                "start_time": MEETING_START.isoformat(),
                "end_time": MEETING_START.isoformat(),
            },
        )
        assert resp.status_code == 422

    async def test_unknown_attendee(self, associate_client: AsyncClient):
        resp = await associate_client.post(
            "/api/appointments",
            json={
                "title": "Ghost",
                "start_time": MEETING_START.isoformat(),
                "end_time": (MEETING_START + timedelta(hours=1)).isoformat(),
                "attendee_ids": [str(uuid.uuid4())],
            },
        )
        assert resp.status_code == 404

    async def test_client_cannot_schedule(self, client_client: AsyncClient):
        resp = await client_client.post(
            "/api/appointments",
            json={
                "title": "Nope",
                "start_time": MEETING_START.isoformat(),
                "end_time": (MEETING_START + timedelta(hours=1)).isoformat(),
            },
        )
        assert resp.status_code == 403

    async def test_listing_shows_only_attended(
        self,
        associate_client: AsyncClient,
        client_client: AsyncClient,
        paralegal_client: AsyncClient,
        client_user: User,
    ):
        await _create_appointment(associate_client, [str(client_user.id)])
        assert len((await client_client.get("/api/appointments")).json()) == 1
        assert len((await paralegal_client.get("/api/appointments")).json()) == 0

    async def test_non_attendee_client_gets_404(
        self, associate_client: AsyncClient, client_client: AsyncClient
    ):
        appointment = await _create_appointment(associate_client, [])
        resp = await client_client.get(f"/api/appointments/{appointment['id']}")
        assert resp.status_code == 404

    async def test_staff_can_view_any(self, associate_client: AsyncClient, paralegal_client: AsyncClient):
        appointment = await _create_appointment(associate_client, [])
        resp = await paralegal_client.get(f"/api/appointments/{appointment['id']}")
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


class TestUpdateAppointment:
    """PATCH /api/appointments/{id}, DELETE /api/appointments/{id}"""

    async def test_replace_attendees_keeps_creator(
        self,
        associate_client: AsyncClient,
        associate_user: User,
        client_user: User,
        paralegal_user: User,
    ):
        appointment = await _create_appointment(associate_client, [str(client_user.id)])
        resp = await associate_client.patch(
            f"/api/appointments/{appointment['id']}",
            json={"attendee_ids": [str(paralegal_user.id)], "title": "Moved meeting"},
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["title"] == "Moved meeting"
        assert {a["user_id"] for a in body["attendees"]} == {str(associate_user.id), str(paralegal_user.id)}

    async def test_update_rejects_inverted_times(self, associate_client: AsyncClient):
        appointment = await _create_appointment(associate_client, [])
        resp = await associate_client.patch(
            f"/api/appointments/{appointment['id']}",
            json={"end_time": (MEETING_START - timedelta(hours=1)).isoformat()},
        )
        assert resp.status_code == 400

    async def test_delete(self, associate_client: AsyncClient):
        appointment = await _create_appointment(associate_client, [])
        resp = await associate_client.delete(f"/api/appointments/{appointment['id']}")
        assert resp.status_code == 204
        assert (await associate_client.get(f"/api/appointments/{appointment['id']}")).status_code == 404


# ---------------------------------------------------------------------------
# Convert to time entry
# ---------------------------------------------------------------------------


class TestConvertToTimeEntry:
    """POST /api/appointments/{id}/convert-to-time-entry"""

    async def test_convert_defaults(self, associate_client: AsyncClient, sample_case: dict):
        appointment = await _create_appointment(associate_client, [], sample_case["id"])
        resp = await associate_client.post(
            f"/api/appointments/{appointment['id']}/convert-to-time-entry", json={"rate_cents": 20000}
        )
        assert resp.status_code == 201, resp.text
        entry = resp.json()
        assert entry["description"] == "Meeting: Strategy meeting"
        assert entry["type"] == "meeting"
        assert entry["status"] == "draft"
        assert entry["duration_minutes"] == 60
        assert entry["billable_amount_cents"] == 20000
        assert entry["case_id"] == sample_case["id"]

    async def test_convert_without_body(self, associate_client: AsyncClient):
        appointment = await _create_appointment(associate_client, [])
        resp = await associate_client.post(f"/api/appointments/{appointment['id']}/convert-to-time-entry")
        assert resp.status_code == 201
        assert resp.json()["billable_amount_cents"] is None

    async def test_non_attendee_cannot_convert(
        self, associate_client: AsyncClient, paralegal_client: AsyncClient
    ):
        appointment = await _create_appointment(associate_client, [])
        resp = await paralegal_client.post(f"/api/appointments/{appointment['id']}/convert-to-time-entry")
        assert resp.status_code == 400
