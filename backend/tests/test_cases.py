"""
Tests for the case endpoints.

Covers case creation (existing client or inline client account), case
number allocation, role-based visibility, assignment, closing, and the
cascading delete of a case with its related records.
"""

from datetime import datetime, timezone

from httpx import AsyncClient

from caseace.auth.models import User
from tests.conftest import CaseFactory, TimeEntryFactory

# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateCase:
    """POST /api/cases"""

    async def test_create_with_existing_client(self, partner_client: AsyncClient, client_user: User):
        resp = await partner_client.post("/api/cases", json=CaseFactory(client_id=str(client_user.id)))
        assert resp.status_code == 201, resp.text
        body = resp.json()
        now = datetime.now(timezone.utc)
        assert body["case_number"] == f"CASE-{now.year}-{now.month:02d}-0001"
        assert body["status"] == "open"
        assert body["client"]["id"] == str(client_user.id)
        assert body["client_login_info"] is None

    async def test_case_numbers_increment(self, partner_client: AsyncClient, client_user: User):
        first = await partner_client.post("/api/cases", json=CaseFactory(client_id=str(client_user.id)))
        second = await partner_client.post("/api/cases", json=CaseFactory(client_id=str(client_user.id)))
        assert first.json()["case_number"].endswith("-0001")
        assert second.json()["case_number"].endswith("-0002")

    async def test_create_with_inline_client(self, partner_client: AsyncClient):
        data = CaseFactory(client_name="New Client", client_email="new.client@caseace-test.com")
        resp = await partner_client.post("/api/cases", json=data)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["client"]["email"] == "new.client@caseace-test.com"
        assert body["client"]["role"] == "client"
        login = body["client_login_info"]
        assert login["email"] == "new.client@caseace-test.com"
        assert len(login["password"]) == 12

    async def test_inline_client_can_log_in(self, partner_client: AsyncClient, client: AsyncClient):
        data = CaseFactory(
            client_name="Portal Client",
            client_email="portal@caseace-test.com",
            client_password="ChosenPass123",
        )
        resp = await partner_client.post("/api/cases", json=data)
        assert resp.status_code == 201

        login = await client.post(
            "/api/auth/login",
            json={"email": "portal@caseace-test.com", "password": "ChosenPass123"},
        )
        assert login.status_code == 200

    async def test_both_client_id_and_inline_client_rejected(self, partner_client: AsyncClient, client_user: User):
        data = CaseFactory(
            client_id=str(client_user.id),
            client_name="Someone",
            client_email="someone@caseace-test.com",
        )
        resp = await partner_client.post("/api/cases", json=data)
        assert resp.status_code == 400

    async def test_no_client_information_rejected(self, partner_client: AsyncClient):
        resp = await partner_client.post("/api/cases", json=CaseFactory())
        assert resp.status_code == 400

    async def test_inline_client_email_taken(self, partner_client: AsyncClient, client_user: User):
        data = CaseFactory(client_name="Dup", client_email=client_user.email)
        resp = await partner_client.post("/api/cases", json=data)
        assert resp.status_code == 400

    async def test_assigning_a_client_is_rejected(self, partner_client: AsyncClient, client_user: User):
        data = CaseFactory(client_id=str(client_user.id), assigned_user_ids=[str(client_user.id)])
        resp = await partner_client.post("/api/cases", json=data)
        assert resp.status_code == 400

    async def test_associate_cannot_create(self, associate_client: AsyncClient, client_user: User):
        resp = await associate_client.post("/api/cases", json=CaseFactory(client_id=str(client_user.id)))
        assert resp.status_code == 403

    async def test_assignee_is_notified(self, sample_case: dict, associate_client: AsyncClient):
        resp = await associate_client.get("/api/notifications")
        assert resp.status_code == 200
        items = resp.json()["items"]
        assert any(n["type"] == "case_assigned" and n["case_id"] == sample_case["id"] for n in items)


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


class TestCaseVisibility:
    """GET /api/cases, GET /api/cases/{id}"""

    async def test_partner_sees_all(self, partner_client: AsyncClient, sample_case: dict):
        resp = await partner_client.get("/api/cases")
        assert resp.status_code == 200
        assert resp.json()["total"] == 1

    async def test_assigned_associate_sees_case(self, associate_client: AsyncClient, sample_case: dict):
        resp = await associate_client.get(f"/api/cases/{sample_case['id']}")
        assert resp.status_code == 200

    async def test_unassigned_paralegal_gets_404(self, paralegal_client: AsyncClient, sample_case: dict):
        resp = await paralegal_client.get(f"/api/cases/{sample_case['id']}")
        assert resp.status_code == 404

        listing = await paralegal_client.get("/api/cases")
        assert listing.json()["total"] == 0

    async def test_client_sees_only_own_cases(
        self, partner_client: AsyncClient, client_client: AsyncClient, sample_case: dict
    ):
        other = await partner_client.post(
            "/api/cases",
            json=CaseFactory(client_name="Other Client", client_email="other@caseace-test.com"),
        )
        assert other.status_code == 201

        resp = await client_client.get("/api/cases")
        ids = [c["id"] for c in resp.json()["items"]]
        assert ids == [sample_case["id"]]

        hidden = await client_client.get(f"/api/cases/{other.json()['id']}")
        assert hidden.status_code == 404

    async def test_task_assignee_sees_case(
        self, partner_client: AsyncClient, paralegal_client: AsyncClient, paralegal_user: User, sample_case: dict
    ):
        task = await partner_client.post(
            "/api/tasks",
            json={"case_id": sample_case["id"], "title": "Collect exhibits", "assigned_to_id": str(paralegal_user.id)},
        )
        assert task.status_code == 201

        resp = await paralegal_client.get(f"/api/cases/{sample_case['id']}")
        assert resp.status_code == 200

    async def test_search_filter(self, partner_client: AsyncClient, client_user: User):
        await partner_client.post(
            "/api/cases", json=CaseFactory(case_name="Smith v. Jones", client_id=str(client_user.id))
        )
        await partner_client.post(
            "/api/cases", json=CaseFactory(case_name="Estate of Brown", client_id=str(client_user.id))
        )
        resp = await partner_client.get("/api/cases", params={"search": "smith"})
        assert resp.json()["total"] == 1


# ---------------------------------------------------------------------------
# Update / assign / close
# ---------------------------------------------------------------------------


class TestCaseChanges:
    """PATCH /api/cases/{id}, POST /api/cases/{id}/assign, PATCH /api/cases/{id}/close"""

    async def test_update_case(self, associate_client: AsyncClient, sample_case: dict):
        resp = await associate_client.patch(f"/api/cases/{sample_case['id']}", json={"practice_area": "Family"})
        assert resp.status_code == 200
        assert resp.json()["practice_area"] == "Family"

    async def test_paralegal_cannot_update(self, paralegal_client: AsyncClient, sample_case: dict):
        resp = await paralegal_client.patch(f"/api/cases/{sample_case['id']}", json={"practice_area": "Family"})
        assert resp.status_code == 403

    async def test_assign_replaces_assignment_set(
        self, partner_client: AsyncClient, sample_case: dict, paralegal_user: User
    ):
        resp = await partner_client.post(
            f"/api/cases/{sample_case['id']}/assign", json={"user_ids": [str(paralegal_user.id)]}
        )
        assert resp.status_code == 200, resp.text
        assert [a["user_id"] for a in resp.json()] == [str(paralegal_user.id)]

        listing = await partner_client.get(f"/api/cases/{sample_case['id']}/assignments")
        assert [a["user_id"] for a in listing.json()] == [str(paralegal_user.id)]

    async def test_close_case(self, partner_client: AsyncClient, sample_case: dict):
        resp = await partner_client.patch(f"/api/cases/{sample_case['id']}/close")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "closed"
        assert body["closed_at"] is not None


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


class TestDeleteCase:
    """DELETE /api/cases/{id}"""

    async def test_delete_cascades(
        self, partner_client: AsyncClient, associate_client: AsyncClient, sample_case: dict, fake_object_storage: dict
    ):
        case_id = sample_case["id"]
        entry = await associate_client.post("/api/time-tracking", json=TimeEntryFactory(case_id=case_id))
        assert entry.status_code == 201
        upload = await partner_client.post(
            f"/api/cases/{case_id}/documents",
            files={"file": ("brief.pdf", b"%PDF-1.4 brief", "application/pdf")},
        )
        assert upload.status_code == 201
        storage_key = next(iter(fake_object_storage["stored"]))

        resp = await partner_client.delete(f"/api/cases/{case_id}")
        assert resp.status_code == 200
        assert resp.json()["deleted_case_id"] == case_id
        assert storage_key in fake_object_storage["removed"]

        assert (await partner_client.get(f"/api/cases/{case_id}")).status_code == 404
        gone = await associate_client.get(f"/api/time-tracking/{entry.json()['id']}")
        assert gone.status_code == 404

    async def test_only_partner_can_delete(self, associate_client: AsyncClient, sample_case: dict):
        resp = await associate_client.delete(f"/api/cases/{sample_case['id']}")
        assert resp.status_code == 403
