"""Integration tests: notification endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient


async def _submit(client: AsyncClient, headers: dict, description: str = "Lab cleanup") -> str:
    response = await client.post(
        "/api/v1/requests",
        json={"work_description": description, "requested_points": 30},
        headers=headers,
    )
    return response.json()["id"]


class TestNotificationsAPI:
    """Integration: notifications produced by the lifecycle and read flows."""

    @pytest.mark.asyncio
    async def test_list_notifications_empty(self, client: AsyncClient, campus, auth_headers):
        response = await client.get("/api/v1/notifications", headers=auth_headers(campus.advisor))
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 0
        assert data["notifications"] == []

    @pytest.mark.asyncio
    async def test_submission_notifies_advisor(self, client: AsyncClient, campus, auth_headers):
        request_id = await _submit(client, auth_headers(campus.staff))

        data = (await client.get("/api/v1/notifications", headers=auth_headers(campus.advisor))).json()
        assert data["total"] == 1
        notification = data["notifications"][0]
        assert notification["type"] == "request_submitted"
        assert notification["title"] == "New Work Request"
        assert notification["read"] is False
        assert notification["related_request_id"] == request_id
        assert notification["request_data"]["requested_points"] == 30

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(campus.advisor))
        assert count.json()["unread_count"] == 1

    @pytest.mark.asyncio
    async def test_approval_notifies_staff(self, client: AsyncClient, campus, auth_headers):
        request_id = await _submit(client, auth_headers(campus.staff))
        await client.post(
            f"/api/v1/requests/{request_id}/approve",
            json={"approved_points": 30},
            headers=auth_headers(campus.advisor),
        )

        data = (await client.get("/api/v1/notifications", headers=auth_headers(campus.staff))).json()
        assert [n["type"] for n in data["notifications"]] == ["request_approved"]
        assert data["notifications"][0]["message"] == "Your request has been approved! You received 30 CRED points."

    @pytest.mark.asyncio
    async def test_mark_as_read(self, client: AsyncClient, campus, auth_headers):
        await _submit(client, auth_headers(campus.staff))
        headers = auth_headers(campus.advisor)
        notification_id = (await client.get("/api/v1/notifications", headers=headers)).json()["notifications"][0]["id"]

        response = await client.post(f"/api/v1/notifications/{notification_id}/read", headers=headers)
        assert response.status_code == 200

        count = await client.get("/api/v1/notifications/unread-count", headers=headers)
        assert count.json()["unread_count"] == 0

    @pytest.mark.asyncio
    async def test_cannot_read_someone_elses_notification(self, client: AsyncClient, campus, auth_headers):
        await _submit(client, auth_headers(campus.staff))
        notification_id = (
            await client.get("/api/v1/notifications", headers=auth_headers(campus.advisor))
        ).json()["notifications"][0]["id"]

        response = await client.post(
            f"/api/v1/notifications/{notification_id}/read", headers=auth_headers(campus.other_advisor)
        )
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_mark_all_read(self, client: AsyncClient, campus, auth_headers):
        await _submit(client, auth_headers(campus.staff), "First")
        await _submit(client, auth_headers(campus.other_staff), "Second")
        headers = auth_headers(campus.advisor)

        response = await client.post("/api/v1/notifications/read-all", headers=headers)
        assert response.status_code == 200
        assert response.json()["detail"] == "Marked 2 notifications as read"

        count = await client.get("/api/v1/notifications/unread-count", headers=headers)
        assert count.json()["unread_count"] == 0

    @pytest.mark.asyncio
    async def test_mark_read_by_request(self, client: AsyncClient, campus, auth_headers):
        first = await _submit(client, auth_headers(campus.staff), "First")
        await _submit(client, auth_headers(campus.staff), "Second")
        headers = auth_headers(campus.advisor)

        response = await client.post(f"/api/v1/notifications/read-by-request/{first}", headers=headers)
        assert response.json()["detail"] == "Marked 1 notifications as read"

        data = (await client.get("/api/v1/notifications", headers=headers)).json()
        unread = {n["related_request_id"]: n["read"] for n in data["notifications"]}
        assert unread[first] is True
        assert sorted(unread.values()) == [False, True]

    @pytest.mark.asyncio
    async def test_pagination(self, client: AsyncClient, campus, auth_headers):
        for i in range(3):
            await _submit(client, auth_headers(campus.staff), f"Task {i}")

        data = (
            await client.get(
                "/api/v1/notifications", params={"page": 2, "per_page": 2}, headers=auth_headers(campus.advisor)
            )
        ).json()
        assert data["total"] == 3
        assert data["page"] == 2
        assert len(data["notifications"]) == 1
