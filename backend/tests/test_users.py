"""
Tests for partner-only user administration: listing, updates and role
changes, related-record counts, and guarded deletion.
"""

import uuid

from httpx import AsyncClient

from caseace.auth.models import User

# ---------------------------------------------------------------------------
# Listing / update
# ---------------------------------------------------------------------------


class TestUserAdmin:
    """GET /api/users, PATCH /api/users/{id}"""

    async def test_list_and_filter(
        self, partner_client: AsyncClient, associate_user: User, paralegal_user: User, client_user: User
    ):
        resp = await partner_client.get("/api/users")
        assert resp.status_code == 200
        assert resp.json()["total"] == 4

        clients = await partner_client.get("/api/users", params={"role": "client"})
        assert [u["email"] for u in clients.json()["items"]] == [client_user.email]

        search = await partner_client.get("/api/users", params={"search": "pat"})
        assert [u["id"] for u in search.json()["items"]] == [str(paralegal_user.id)]

    async def test_non_partner_forbidden(self, associate_client: AsyncClient):
        assert (await associate_client.get("/api/users")).status_code == 403

    async def test_role_change_is_audited_as_role_change(
        self, partner_client: AsyncClient, paralegal_user: User
    ):
        resp = await partner_client.patch(f"/api/users/{paralegal_user.id}", json={"role": "associate"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["role"] == "associate"

        logs = await partner_client.get(
            "/api/users/audit-logs", params={"entity_type": "user", "entity_id": str(paralegal_user.id)}
        )
        entry = logs.json()["items"][0]
        assert entry["action"] == "role_change"
        assert entry["severity"] == "high"

    async def test_deactivated_user_cannot_authenticate(
        self, partner_client: AsyncClient, associate_client: AsyncClient, associate_user: User
    ):
        resp = await partner_client.patch(f"/api/users/{associate_user.id}", json={"is_active": False})
        assert resp.status_code == 200
        assert (await associate_client.get("/api/auth/me")).status_code == 401

    async def test_unknown_user(self, partner_client: AsyncClient):
        resp = await partner_client.patch(f"/api/users/{uuid.uuid4()}", json={"name": "Nobody"})
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Related records / delete
# ---------------------------------------------------------------------------


class TestUserDeletion:
    """GET /api/users/{id}/related, DELETE /api/users/{id}"""

    async def test_related_counts(self, partner_client: AsyncClient, client_user: User, sample_case: dict):
        resp = await partner_client.get(f"/api/users/{client_user.id}/related")
        assert resp.status_code == 200
        body = resp.json()
        assert body["related_records"]["cases"] == 1
        assert body["can_delete"] is False

    async def test_delete_blocked_by_related_records(
        self, partner_client: AsyncClient, client_user: User, sample_case: dict
    ):
        resp = await partner_client.delete(f"/api/users/{client_user.id}")
        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["user"]["email"] == client_user.email
        assert detail["related_records"]["cases"] == 1
        assert detail["suggestions"]

    async def test_delete_user_without_history(
        self, partner_client: AsyncClient, associate_client: AsyncClient, associate_user: User, sample_case: dict
    ):
        # An assignment and its notification are not history and go with the user
        await associate_client.post("/api/time-tracking/timer/start", json={"description": "Running"})

        resp = await partner_client.delete(f"/api/users/{associate_user.id}")
        assert resp.status_code == 204, resp.text

        assignments = await partner_client.get(f"/api/cases/{sample_case['id']}/assignments")
        assert assignments.json() == []
        assert (await partner_client.get(f"/api/users/{associate_user.id}/related")).status_code == 404

    async def test_cannot_delete_self(self, partner_client: AsyncClient, partner_user: User):
        resp = await partner_client.delete(f"/api/users/{partner_user.id}")
        assert resp.status_code == 400
