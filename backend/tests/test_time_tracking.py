"""
Tests for time tracking: time entry CRUD, billable amount computation,
the single-running-timer rule, reports, and billing-status views.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from caseace.time_tracking.models import compute_billable_amount
from caseace.time_tracking.service import minutes_between
from tests.conftest import TimeEntryFactory

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _create_entry(client: AsyncClient, case_id: str | None = None, **overrides) -> dict:
    resp = await client.post("/api/time-tracking", json=TimeEntryFactory(case_id=case_id, **overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestBillableAmount:
    @pytest.mark.parametrize(
        ("minutes", "rate", "expected"),
        [
            (90, 20000, 30000),
            (60, 15000, 15000),
            (1, 100, 2),
            (0, 20000, 0),
        ],
    )
    def test_amount(self, minutes, rate, expected):
        assert compute_billable_amount(True, minutes, rate) == expected

    def test_non_billable_has_no_amount(self):
        assert compute_billable_amount(False, 60, 20000) is None

    def test_missing_rate_has_no_amount(self):
        assert compute_billable_amount(True, 60, None) is None

    def test_minutes_between_rounds_half_up(self):
        start = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)
        assert minutes_between(start, start + timedelta(minutes=44, seconds=30)) == 45
        assert minutes_between(start, start + timedelta(minutes=44, seconds=29)) == 44


# ---------------------------------------------------------------------------
# Time entries
# ---------------------------------------------------------------------------


class TestTimeEntries:
    """POST/GET /api/time-tracking, GET/PATCH/DELETE /api/time-tracking/{id}"""

    async def test_create_computes_amount(self, associate_client: AsyncClient, sample_case: dict):
        body = await _create_entry(associate_client, sample_case["id"], duration_minutes=90, rate_cents=20000)
        assert body["billable_amount_cents"] == 30000
        assert body["invoice_status"] == "unbilled"
        assert body["case"]["case_number"] == sample_case["case_number"]

    async def test_duration_derived_from_end_time(self, associate_client: AsyncClient, sample_case: dict):
        start = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        body = await _create_entry(
            associate_client,
            sample_case["id"],
            start_time=start.isoformat(),
            end_time=(start + timedelta(minutes=45)).isoformat(),
            duration_minutes=None,
            rate_cents=12000,
        )
        assert body["duration_minutes"] == 45
        assert body["billable_amount_cents"] == 9000

    async def test_end_before_start_rejected(self, associate_client: AsyncClient):
        start = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        resp = await associate_client.post(
            "/api/time-tracking",
            json=TimeEntryFactory(start_time=start.isoformat(), end_time=(start - timedelta(hours=1)).isoformat()),
        )
        assert resp.status_code == 422

    async def test_unknown_case(self, associate_client: AsyncClient):
        resp = await associate_client.post(
            "/api/time-tracking", json=TimeEntryFactory(case_id="00000000-0000-0000-0000-000000000000")
        )
        assert resp.status_code == 404

    async def test_client_cannot_log_time(self, client_client: AsyncClient):
        resp = await client_client.post("/api/time-tracking", json=TimeEntryFactory())
        assert resp.status_code == 403

    async def test_list_is_own_entries_only(
        self, associate_client: AsyncClient, paralegal_client: AsyncClient, sample_case: dict
    ):
        await _create_entry(associate_client, sample_case["id"])
        await _create_entry(associate_client, sample_case["id"])
        await _create_entry(paralegal_client)

        assert (await associate_client.get("/api/time-tracking")).json()["total"] == 2
        assert (await paralegal_client.get("/api/time-tracking")).json()["total"] == 1

    async def test_all_staff_listing_partner_only(
        self, partner_client: AsyncClient, associate_client: AsyncClient, sample_case: dict
    ):
        await _create_entry(associate_client, sample_case["id"])
        assert (await partner_client.get("/api/time-tracking/all-staff")).json()["total"] == 1
        assert (await associate_client.get("/api/time-tracking/all-staff")).status_code == 403

    async def test_other_users_entry_is_404(
        self, associate_client: AsyncClient, paralegal_client: AsyncClient, sample_case: dict
    ):
        entry = await _create_entry(associate_client, sample_case["id"])
        resp = await paralegal_client.get(f"/api/time-tracking/{entry['id']}")
        assert resp.status_code == 404

    async def test_update_recomputes_amount(self, associate_client: AsyncClient, sample_case: dict):
        entry = await _create_entry(associate_client, sample_case["id"], duration_minutes=60, rate_cents=20000)
        resp = await associate_client.patch(f"/api/time-tracking/{entry['id']}", json={"duration_minutes": 30})
        assert resp.status_code == 200
        assert resp.json()["billable_amount_cents"] == 10000

        resp = await associate_client.patch(f"/api/time-tracking/{entry['id']}", json={"billable": False})
        assert resp.json()["billable_amount_cents"] is None

    async def test_delete_unbilled_entry(self, associate_client: AsyncClient, sample_case: dict):
        entry = await _create_entry(associate_client, sample_case["id"])
        resp = await associate_client.delete(f"/api/time-tracking/{entry['id']}")
        assert resp.status_code == 204
        assert (await associate_client.get(f"/api/time-tracking/{entry['id']}")).status_code == 404

    async def test_invoiced_entry_is_locked(
        self, partner_client: AsyncClient, associate_client: AsyncClient, sample_case: dict
    ):
        entry = await _create_entry(associate_client, sample_case["id"])
        draft = await partner_client.post(
            "/api/billing/draft-from-time-entries", json={"time_entry_ids": [entry["id"]]}
        )
        assert draft.status_code == 201, draft.text

        delete = await associate_client.delete(f"/api/time-tracking/{entry['id']}")
        assert delete.status_code == 409

        rate_change = await associate_client.patch(f"/api/time-tracking/{entry['id']}", json={"rate_cents": 1})
        assert rate_change.status_code == 409

        note_change = await associate_client.patch(
            f"/api/time-tracking/{entry['id']}", json={"description": "Clarified narrative"}
        )
        assert note_change.status_code == 200


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------


class TestTimers:
    """/api/time-tracking/timer/*"""

    async def test_start_and_stop(self, associate_client: AsyncClient, sample_case: dict):
        start = await associate_client.post(
            "/api/time-tracking/timer/start",
            json={"case_id": sample_case["id"], "description": "Client call", "type": "call", "rate_cents": 18000},
        )
        assert start.status_code == 201, start.text

        active = await associate_client.get("/api/time-tracking/timer/active")
        assert active.json()["description"] == "Client call"

        stop = await associate_client.post("/api/time-tracking/timer/stop")
        assert stop.status_code == 200, stop.text
        entry = stop.json()
        assert entry["type"] == "call"
        assert entry["rate_cents"] == 18000
        assert entry["billable"] is True
        assert entry["duration_minutes"] == 0
        assert entry["end_time"] is not None

        assert (await associate_client.get("/api/time-tracking/timer/active")).json() is None

    async def test_stop_overrides(self, associate_client: AsyncClient):
        await associate_client.post("/api/time-tracking/timer/start", json={"description": "Research"})
        stop = await associate_client.post(
            "/api/time-tracking/timer/stop",
            json={"description": "Research on limitation periods", "billable": False},
        )
        assert stop.status_code == 200
        assert stop.json()["description"] == "Research on limitation periods"
        assert stop.json()["billable"] is False

    async def test_second_timer_rejected(self, associate_client: AsyncClient):
        first = await associate_client.post("/api/time-tracking/timer/start", json={"description": "One"})
        assert first.status_code == 201
        second = await associate_client.post("/api/time-tracking/timer/start", json={"description": "Two"})
        assert second.status_code == 400

    async def test_timers_are_per_user(self, associate_client: AsyncClient, paralegal_client: AsyncClient):
        assert (await associate_client.post("/api/time-tracking/timer/start", json={"description": "A"})).status_code == 201
        assert (await paralegal_client.post("/api/time-tracking/timer/start", json={"description": "B"})).status_code == 201

    async def test_stop_without_timer(self, associate_client: AsyncClient):
        resp = await associate_client.post("/api/time-tracking/timer/stop")
        assert resp.status_code == 400

    async def test_cancel(self, associate_client: AsyncClient):
        assert (await associate_client.delete("/api/time-tracking/timer/cancel")).status_code == 400

        await associate_client.post("/api/time-tracking/timer/start", json={"description": "Oops"})
        assert (await associate_client.delete("/api/time-tracking/timer/cancel")).status_code == 204
        assert (await associate_client.get("/api/time-tracking")).json()["total"] == 0


# ---------------------------------------------------------------------------
# Reports and billing views
# ---------------------------------------------------------------------------


class TestReportsAndBillingViews:
    """GET /report, /unbilled, /billing-summary, PATCH /invoice-status"""

    async def test_report_summary(self, associate_client: AsyncClient, sample_case: dict):
        await _create_entry(associate_client, sample_case["id"], duration_minutes=90)
        await _create_entry(associate_client, sample_case["id"], duration_minutes=30, billable=False)

        resp = await associate_client.get("/api/time-tracking/report")
        assert resp.status_code == 200
        summary = resp.json()["summary"]
        assert summary == {
            "total_hours": 2.0,
            "billable_hours": 1.5,
            "non_billable_hours": 0.5,
            "total_entries": 2,
        }

    async def test_unbilled_filters(
        self, associate_client: AsyncClient, partner_client: AsyncClient, client_user, sample_case: dict
    ):
        await _create_entry(associate_client, sample_case["id"])
        await _create_entry(associate_client, sample_case["id"], billable=False)
        await _create_entry(associate_client, sample_case["id"], rate_cents=None)

        mine = await associate_client.get("/api/time-tracking/unbilled")
        assert len(mine.json()) == 1

        by_client = await partner_client.get("/api/time-tracking/unbilled", params={"client_id": str(client_user.id)})
        assert len(by_client.json()) == 1

    async def test_billing_summary_buckets(
        self, associate_client: AsyncClient, partner_client: AsyncClient, sample_case: dict
    ):
        billed = await _create_entry(associate_client, sample_case["id"], duration_minutes=60, rate_cents=20000)
        await _create_entry(associate_client, sample_case["id"], duration_minutes=30, rate_cents=20000)
        await partner_client.post("/api/billing/draft-from-time-entries", json={"time_entry_ids": [billed["id"]]})

        resp = await associate_client.get("/api/time-tracking/billing-summary")
        assert resp.json() == {
            "unbilled": {"amount_cents": 10000, "count": 1},
            "billed": {"amount_cents": 20000, "count": 1},
            "paid": {"amount_cents": 0, "count": 0},
        }

        firm = await partner_client.get("/api/time-tracking/billing-summary/all-staff")
        assert firm.json()["billed"]["count"] == 1

    async def test_bulk_invoice_status_rules(
        self, associate_client: AsyncClient, partner_client: AsyncClient, sample_case: dict
    ):
        entry = await _create_entry(associate_client, sample_case["id"])

        paid = await partner_client.patch(
            "/api/time-tracking/invoice-status",
            json={"time_entry_ids": [entry["id"]], "invoice_status": "paid"},
        )
        assert paid.status_code == 400

        missing_invoice = await partner_client.patch(
            "/api/time-tracking/invoice-status",
            json={"time_entry_ids": [entry["id"]], "invoice_status": "billed"},
        )
        assert missing_invoice.status_code == 400

        draft = await partner_client.post(
            "/api/billing/draft-from-time-entries", json={"time_entry_ids": [entry["id"]]}
        )
        reset = await partner_client.patch(
            "/api/time-tracking/invoice-status",
            json={"time_entry_ids": [entry["id"]], "invoice_status": "unbilled"},
        )
        assert reset.json() == {"updated": 1}

        rebill = await partner_client.patch(
            "/api/time-tracking/invoice-status",
            json={"time_entry_ids": [entry["id"]], "invoice_status": "billed", "invoice_id": draft.json()["id"]},
        )
        assert rebill.json() == {"updated": 1}

        refreshed = await associate_client.get(f"/api/time-tracking/{entry['id']}")
        assert refreshed.json()["invoice_id"] == draft.json()["id"]
        assert refreshed.json()["invoice_status"] == "billed"

    async def test_status_changes_keep_invoice_totals_in_step(
        self, associate_client: AsyncClient, partner_client: AsyncClient, sample_case: dict
    ):
        entry = await _create_entry(associate_client, sample_case["id"], duration_minutes=60, rate_cents=10000)
        draft = await partner_client.post(
            "/api/billing/draft-from-time-entries", json={"time_entry_ids": [entry["id"]]}
        )
        invoice_id = draft.json()["id"]
        assert draft.json()["subtotal_cents"] == 10000

        await partner_client.patch(
            "/api/time-tracking/invoice-status",
            json={"time_entry_ids": [entry["id"]], "invoice_status": "unbilled"},
        )
        emptied = (await partner_client.get(f"/api/billing/invoices/{invoice_id}")).json()
        assert emptied["time_entries"] == []
        assert (emptied["subtotal_cents"], emptied["tax_cents"], emptied["total_cents"]) == (0, 0, 0)

        redraft = await partner_client.post(
            "/api/billing/draft-from-time-entries", json={"time_entry_ids": [entry["id"]]}
        )
        body = redraft.json()
        assert body["id"] == invoice_id
        assert len(body["time_entries"]) == 1
        assert body["subtotal_cents"] == sum(e["billable_amount_cents"] for e in body["time_entries"]) == 10000
        assert body["total_cents"] == 11000

        other = await _create_entry(associate_client, sample_case["id"], duration_minutes=30, rate_cents=10000)
        await partner_client.patch(
            "/api/time-tracking/invoice-status",
            json={"time_entry_ids": [other["id"]], "invoice_status": "billed", "invoice_id": invoice_id},
        )
        attached = (await partner_client.get(f"/api/billing/invoices/{invoice_id}")).json()
        assert attached["subtotal_cents"] == 15000
        assert attached["tax_cents"] == 1500
        assert attached["total_cents"] == 16500

    async def test_entries_on_sent_invoice_cannot_move(
        self, associate_client: AsyncClient, partner_client: AsyncClient, sample_case: dict
    ):
        entry = await _create_entry(associate_client, sample_case["id"])
        draft = await partner_client.post(
            "/api/billing/draft-from-time-entries", json={"time_entry_ids": [entry["id"]]}
        )
        await partner_client.patch(f"/api/billing/invoices/{draft.json()['id']}/status", json={"status": "sent"})

        resp = await partner_client.patch(
            "/api/time-tracking/invoice-status",
            json={"time_entry_ids": [entry["id"]], "invoice_status": "unbilled"},
        )
        assert resp.status_code == 409

        unchanged = await associate_client.get(f"/api/time-tracking/{entry['id']}")
        assert unchanged.json()["invoice_status"] == "billed"
        assert unchanged.json()["invoice_id"] == draft.json()["id"]

    async def test_invoice_status_partner_only(self, associate_client: AsyncClient, sample_case: dict):
        entry = await _create_entry(associate_client, sample_case["id"])
        resp = await associate_client.patch(
            "/api/time-tracking/invoice-status",
            json={"time_entry_ids": [entry["id"]], "invoice_status": "unbilled"},
        )
        assert resp.status_code == 403
