"""Integration tests: projects, invitations and checkpoints end to end."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.db.models import Profile


async def _create_project(client: AsyncClient, headers: dict, **body) -> dict:
    body.setdefault("title", "Summer trip")
    response = await client.post("/api/v1/projects", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _inbox(client: AsyncClient, headers: dict) -> dict:
    response = await client.get("/api/v1/notifications/inbox", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


class TestProjectLifecycle:
    @pytest.mark.asyncio
    async def test_create_unlocks_first_project_once(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, auth_headers,
    ):
        first = await _create_project(client, auth_headers(alice))
        assert [a["name"] for a in first["unlocked_achievements"]] == ["First Project"]
        assert first["project"]["owner_id"] == str(alice.id)

        second = await _create_project(client, auth_headers(alice), title="Second")
        assert second["unlocked_achievements"] == []

    @pytest.mark.asyncio
    async def test_invitation_accept_flow(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, bob: Profile, auth_headers,
    ):
        created = await _create_project(client, auth_headers(alice), invited_user_ids=[str(bob.id)])
        project_id = created["project"]["id"]
        assert created["invited_user_ids"] == [str(bob.id)]

        inbox = await _inbox(client, auth_headers(bob))
        assert [i["project_id"] for i in inbox["project_invitations"]] == [project_id]
        assert inbox["project_invitations"][0]["inviter"]["username"] == "alice"
        assert inbox["pending_count"] == 1

        response = await client.post(
            f"/api/v1/projects/{project_id}/invitation/respond", json={"accept": True}, headers=auth_headers(bob),
        )
        assert response.status_code == 200
        assert response.json()["membership"]["status"] == "active"
        assert [a["name"] for a in response.json()["unlocked_achievements"]] == ["Collaborator"]

        inbox = await _inbox(client, auth_headers(bob))
        assert inbox["project_invitations"] == []

        role = await client.get(f"/api/v1/projects/{project_id}/role", headers=auth_headers(bob))
        assert role.json() == {
            "project_id": project_id,
            "role": "member",
            "is_owner": False,
            "is_member": True,
            "can_manage": False,
        }

    @pytest.mark.asyncio
    async def test_declined_invitation_never_reappears(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, bob: Profile, auth_headers,
    ):
        created = await _create_project(client, auth_headers(alice), invited_user_ids=[str(bob.id)])
        project_id = created["project"]["id"]

        response = await client.post(
            f"/api/v1/projects/{project_id}/invitation/respond", json={"accept": False}, headers=auth_headers(bob),
        )
        assert response.status_code == 200
        assert response.json()["unlocked_achievements"] == []

        for _ in range(2):
            assert (await _inbox(client, auth_headers(bob)))["project_invitations"] == []

        again = await client.post(
            f"/api/v1/projects/{project_id}/invitation/respond", json={"accept": True}, headers=auth_headers(bob),
        )
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_member_management_permissions(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, bob: Profile, carol: Profile,
        auth_headers,
    ):
        created = await _create_project(client, auth_headers(alice), invited_user_ids=[str(bob.id)])
        project_id = created["project"]["id"]
        await client.post(
            f"/api/v1/projects/{project_id}/invitation/respond", json={"accept": True}, headers=auth_headers(bob),
        )

        denied = await client.post(
            f"/api/v1/projects/{project_id}/members", json={"user_id": str(carol.id)}, headers=auth_headers(bob),
        )
        assert denied.status_code == 403

        promoted = await client.patch(
            f"/api/v1/projects/{project_id}/members/{bob.id}", json={"role": "manager"}, headers=auth_headers(alice),
        )
        assert promoted.json()["role"] == "manager"

        invited = await client.post(
            f"/api/v1/projects/{project_id}/members", json={"user_id": str(carol.id)}, headers=auth_headers(bob),
        )
        assert invited.status_code == 201
        assert invited.json()["status"] == "pending"

        duplicate = await client.post(
            f"/api/v1/projects/{project_id}/members", json={"user_id": str(carol.id)}, headers=auth_headers(alice),
        )
        assert duplicate.status_code == 409

        detail = await client.get(f"/api/v1/projects/{project_id}", headers=auth_headers(alice))
        assert {m["username"]: m["status"] for m in detail.json()["members"]} == {
            "alice": "active",
            "bob": "active",
            "carol": "pending",
        }

        removed = await client.delete(f"/api/v1/projects/{project_id}/members/{carol.id}", headers=auth_headers(bob))
        assert removed.status_code == 200
        assert (await _inbox(client, auth_headers(carol)))["project_invitations"] == []

    @pytest.mark.asyncio
    async def test_concurrent_invite_is_conflict(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, bob: Profile, auth_headers,
    ):
        created = await _create_project(client, auth_headers(alice))
        project_id = created["project"]["id"]
        invite = {"user_id": str(bob.id)}

        first = await client.post(f"/api/v1/projects/{project_id}/members", json=invite, headers=auth_headers(alice))
        assert first.status_code == 201

        # Second request saw no membership yet and reaches the insert
        with patch("cowork.projects.membership_service.get_membership", AsyncMock(return_value=None)):
            second = await client.post(
                f"/api/v1/projects/{project_id}/members", json=invite, headers=auth_headers(alice),
            )
        assert second.status_code == 409
        assert second.json() == {"detail": "User already has a pending invitation to this project"}

    @pytest.mark.asyncio
    async def test_manager_cannot_grant_admin(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, bob: Profile, carol: Profile,
        auth_headers,
    ):
        created = await _create_project(client, auth_headers(alice), invited_user_ids=[str(bob.id)])
        project_id = created["project"]["id"]
        await client.post(
            f"/api/v1/projects/{project_id}/invitation/respond", json={"accept": True}, headers=auth_headers(bob),
        )
        await client.patch(
            f"/api/v1/projects/{project_id}/members/{bob.id}", json={"role": "manager"}, headers=auth_headers(alice),
        )

        as_admin = await client.post(
            f"/api/v1/projects/{project_id}/members",
            json={"user_id": str(carol.id), "role": "admin"},
            headers=auth_headers(bob),
        )
        assert as_admin.status_code == 403

        self_promotion = await client.patch(
            f"/api/v1/projects/{project_id}/members/{bob.id}", json={"role": "admin"}, headers=auth_headers(bob),
        )
        assert self_promotion.status_code == 403

    @pytest.mark.asyncio
    async def test_leave(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, bob: Profile, auth_headers,
    ):
        created = await _create_project(client, auth_headers(alice), invited_user_ids=[str(bob.id)])
        project_id = created["project"]["id"]
        await client.post(
            f"/api/v1/projects/{project_id}/invitation/respond", json={"accept": True}, headers=auth_headers(bob),
        )

        owner_leaves = await client.post(f"/api/v1/projects/{project_id}/leave", headers=auth_headers(alice))
        assert owner_leaves.status_code == 400

        member_leaves = await client.post(f"/api/v1/projects/{project_id}/leave", headers=auth_headers(bob))
        assert member_leaves.status_code == 200

        hidden = await client.get(f"/api/v1/projects/{project_id}", headers=auth_headers(bob))
        assert hidden.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_project(self, client: AsyncClient, alice: Profile, auth_headers):
        response = await client.get(
            "/api/v1/projects/00000000-0000-0000-0000-000000000000/role", headers=auth_headers(alice),
        )
        assert response.status_code == 404
        assert response.json() == {"detail": "Project not found"}


class TestCheckpointFlow:
    @pytest.mark.asyncio
    async def test_rejected_checkpoint_reaches_the_team(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, bob: Profile, auth_headers,
    ):
        created = await _create_project(client, auth_headers(alice), invited_user_ids=[str(bob.id)])
        project_id = created["project"]["id"]
        await client.post(
            f"/api/v1/projects/{project_id}/invitation/respond", json={"accept": True}, headers=auth_headers(bob),
        )

        checkpoint = await client.post(
            f"/api/v1/projects/{project_id}/checkpoints", json={"title": "Book flights"}, headers=auth_headers(alice),
        )
        assert checkpoint.status_code == 201
        checkpoint_id = checkpoint.json()["id"]

        evidence = await client.post(
            f"/api/v1/checkpoints/{checkpoint_id}/evidence", json={"note": "Booked!"}, headers=auth_headers(bob),
        )
        assert evidence.status_code == 200
        assert evidence.json()["checkpoint"]["is_completed"] is True
        assert [a["name"] for a in evidence.json()["unlocked_achievements"]] == ["First Success"]

        review = await client.post(
            f"/api/v1/checkpoints/{checkpoint_id}/review",
            json={"rating": 4, "rejection_reason": "Wrong dates"},
            headers=auth_headers(alice),
        )
        assert review.status_code == 200
        assert review.json()["is_completed"] is False
        assert review.json()["rejection_reason"] == "Wrong dates"

        for headers in (auth_headers(alice), auth_headers(bob)):
            inbox = await _inbox(client, headers)
            assert [c["id"] for c in inbox["rejected_checkpoints"]] == [checkpoint_id]

        bob_inbox = await _inbox(client, auth_headers(bob))
        types = [n["type"] for n in bob_inbox["system_notifications"]]
        assert "checkpoint_rejected" in types

        await client.post(
            f"/api/v1/checkpoints/{checkpoint_id}/evidence", json={"note": "Fixed"}, headers=auth_headers(bob),
        )
        assert (await _inbox(client, auth_headers(bob)))["rejected_checkpoints"] == []

    @pytest.mark.asyncio
    async def test_review_rating_validated(
        self, client: AsyncClient, seeded_db: AsyncSession, alice: Profile, auth_headers,
    ):
        created = await _create_project(client, auth_headers(alice))
        checkpoint = await client.post(
            f"/api/v1/projects/{created['project']['id']}/checkpoints",
            json={"title": "Pack"},
            headers=auth_headers(alice),
        )
        response = await client.post(
            f"/api/v1/checkpoints/{checkpoint.json()['id']}/review", json={"rating": 0}, headers=auth_headers(alice),
        )
        assert response.status_code == 422
