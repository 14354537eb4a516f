"""End-to-end tests through the FastAPI application."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from acs_auth.core.database.engine import get_db
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.users.auth import create_access_token
from acs_auth.main import app


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def people(session, index, roles, tree, make_user):
    """A super admin, a conference admin on C1 and a church viewer on Ch1."""
    admin = await make_user("admin", is_super_admin=True)
    conference_admin = await make_user("conference_admin")
    viewer = await make_user("viewer")
    await index.grant(conference_admin, EntityKind.CONFERENCE, tree.c1.id, roles["conference_admin"])
    await index.grant(viewer, EntityKind.CHURCH, tree.ch1.id, roles["church_viewer"])
    await session.commit()
    return admin, conference_admin, viewer


class TestAuthentication:
    async def test_health_is_public(self, client):
        response = await client.get("/health")
        assert response.status_code == 200

    async def test_missing_token(self, client):
        response = await client.get("/users/me")
        assert response.status_code in (401, 403)

    async def test_invalid_token(self, client):
        response = await client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_me(self, client, people, tree):
        _, conference_admin, _ = people
        response = await client.get("/users/me", headers=auth(conference_admin))

        assert response.status_code == 200
        body = response.json()
        assert body["highest_level"] == "conference"
        assert [a["entity_id"] for a in body["assignments"]] == [tree.c1.id]
        assert body["assignments"][0]["role"]["name"] == "conference_admin"


class TestAuthorizationRoutes:
    async def test_check(self, client, people, tree):
        _, conference_admin, _ = people
        headers = auth(conference_admin)

        inside = await client.post("/authorization/check", headers=headers, json={
            "permission": "users.create", "kind": "church", "entity_id": tree.ch1.id,
        })
        outside = await client.post("/authorization/check", headers=headers, json={
            "permission": "users.create", "kind": "church", "entity_id": tree.ch2.id,
        })

        assert inside.json()["allowed"] is True
        assert inside.json()["scope"] == "subordinate"
        assert outside.json()["allowed"] is False
        assert outside.json()["reason"] == "insufficient permissions"

    async def test_check_rejects_malformed_permission(self, client, people, tree):
        admin, _, _ = people
        response = await client.post("/authorization/check", headers=auth(admin), json={
            "permission": "users", "kind": "church", "entity_id": tree.ch1.id,
        })
        assert response.status_code == 400
        assert response.json()["errorCode"] == "VALIDATION_ERROR"

    async def test_accessible(self, client, people, tree):
        admin, conference_admin, _ = people

        scoped = await client.get("/authorization/accessible/church", headers=auth(conference_admin))
        everything = await client.get("/authorization/accessible/church", headers=auth(admin))

        assert scoped.json()["ids"] == [tree.ch1.id]
        assert scoped.json()["resource"] == "organizations"
        assert set(everything.json()["ids"]) == {tree.ch1.id, tree.ch2.id}


class TestHierarchyRoutes:
    async def test_list_is_scoped(self, client, people, tree):
        _, conference_admin, _ = people
        response = await client.get("/hierarchy/church", headers=auth(conference_admin))

        assert response.status_code == 200
        assert [entity["id"] for entity in response.json()] == [tree.ch1.id]

    async def test_subtree(self, client, people, tree):
        admin, conference_admin, _ = people

        churches = await client.get(f"/hierarchy/conference/{tree.c1.id}/subtree/church", headers=auth(admin))
        services = await client.get(f"/hierarchy/union/{tree.u1.id}/subtree/service", headers=auth(admin))
        foreign = await client.get(f"/hierarchy/conference/{tree.c2.id}/subtree/church", headers=auth(conference_admin))

        assert [entity["id"] for entity in churches.json()] == [tree.ch1.id]
        assert [entity["id"] for entity in services.json()] == [tree.s1.id]
        assert foreign.status_code == 403

    async def test_create_under_own_subtree(self, client, people, tree):
        _, conference_admin, _ = people
        headers = auth(conference_admin)

        created = await client.post("/hierarchy/church", headers=headers, json={
            "name": "New Church", "parent_id": tree.c1.id,
        })
        refused = await client.post("/hierarchy/church", headers=headers, json={
            "name": "Elsewhere", "parent_id": tree.c2.id,
        })

        assert created.status_code == 201
        body = created.json()
        assert body["hierarchy_path"] == f"{tree.c1.hierarchy_path}/{body['id']}"
        assert body["hierarchy_level"] == 2
        assert refused.status_code == 403

    async def test_only_super_admin_creates_unions(self, client, people):
        admin, conference_admin, _ = people

        refused = await client.post("/hierarchy/union", headers=auth(conference_admin), json={"name": "Rogue"})
        created = await client.post("/hierarchy/union", headers=auth(admin), json={"name": "South Union"})

        assert refused.status_code == 403
        assert created.status_code == 201
        assert created.json()["hierarchy_path"] == created.json()["id"]

    async def test_delete_blocked_by_descendants(self, client, people, tree):
        admin, _, _ = people

        check = await client.get(f"/hierarchy/union/{tree.u1.id}/can-delete", headers=auth(admin))
        response = await client.delete(f"/hierarchy/union/{tree.u1.id}", headers=auth(admin))

        assert check.json()["allowed"] is False
        assert check.json()["blocking_level"] == "conference"
        assert response.status_code == 409
        body = response.json()
        assert body["errorCode"] == "INTEGRITY_VIOLATION"
        assert body["blocking"] == {"level": "conference", "count": 2}

    async def test_delete_leaf_within_scope(self, client, people, tree):
        _, conference_admin, _ = people
        headers = auth(conference_admin)

        response = await client.delete(f"/hierarchy/service/{tree.s1.id}", headers=headers)
        gone = await client.get(f"/hierarchy/service/{tree.s1.id}", headers=headers)

        assert response.status_code == 204
        assert gone.status_code == 404

    async def test_denial_is_audited(self, client, people, tree):
        admin, conference_admin, _ = people

        response = await client.delete(f"/hierarchy/church/{tree.ch2.id}", headers=auth(conference_admin))
        assert response.status_code == 403
        assert response.json()["detail"]["required"] == "organizations.delete"

        audit = await client.get("/audit-logs", params={"action": "deny"}, headers=auth(admin))
        assert audit.status_code == 200
        entries = audit.json()["items"]
        assert [entry["resource_id"] for entry in entries] == [tree.ch2.id]
        assert entries[0]["allowed"] is False
        assert entries[0]["user_id"] == conference_admin.id


class TestAssignmentRoutes:
    async def test_grant_within_scope(self, client, people, roles, tree):
        admin, conference_admin, _ = people
        new_user = await client.post("/users/", headers=auth(admin), json={
            "email": "pastor@example.org", "name": "Pastor",
        })
        assert new_user.status_code == 201
        user_id = new_user.json()["id"]

        granted = await client.post(f"/users/{user_id}/assignments", headers=auth(conference_admin), json={
            "level": "church", "entity_id": tree.ch1.id, "role_id": roles["church_pastor"].id,
        })
        outside = await client.post(f"/users/{user_id}/assignments", headers=auth(conference_admin), json={
            "level": "church", "entity_id": tree.ch2.id, "role_id": roles["church_pastor"].id,
        })

        assert granted.status_code == 201
        assert granted.json()["granted_by_id"] == conference_admin.id
        assert outside.status_code == 403

        listed = await client.get(f"/users/{user_id}/assignments", headers=auth(admin))
        assert [a["role"]["name"] for a in listed.json()] == ["church_pastor"]

    async def test_cannot_delegate_more_senior_role(self, client, people, roles, tree):
        _, conference_admin, viewer = people
        response = await client.post(f"/users/{viewer.id}/assignments", headers=auth(conference_admin), json={
            "level": "union", "entity_id": tree.u1.id, "role_id": roles["union_admin"].id,
        })
        assert response.status_code == 403

    async def test_all_scope_role_cannot_be_self_granted(self, client, session, catalog, people, tree):
        _, conference_admin, _ = people
        auditor = await catalog.create_role("auditor", "Auditor", "church", ["organizations.update:all"])
        await session.commit()
        headers = auth(conference_admin)

        response = await client.post(f"/users/{conference_admin.id}/assignments", headers=headers, json={
            "level": "church", "entity_id": tree.ch1.id, "role_id": auditor.id,
        })
        check = await client.post("/authorization/check", headers=headers, json={
            "permission": "organizations.update", "kind": "church", "entity_id": tree.ch2.id,
        })

        assert response.status_code == 403
        assert response.json()["detail"]["required"] == "delegate:auditor"
        assert check.json()["allowed"] is False

    async def test_role_level_mismatch(self, client, people, roles, tree):
        admin, _, viewer = people
        response = await client.post(f"/users/{viewer.id}/assignments", headers=auth(admin), json={
            "level": "church", "entity_id": tree.ch1.id, "role_id": roles["conference_admin"].id,
        })
        assert response.status_code == 400

    async def test_revoke(self, client, people, tree):
        admin, _, viewer = people
        assignment_id = viewer.assignments[0].id

        response = await client.delete(f"/users/{viewer.id}/assignments/{assignment_id}", headers=auth(admin))
        again = await client.delete(f"/users/{viewer.id}/assignments/{assignment_id}", headers=auth(admin))

        assert response.status_code == 204
        assert again.status_code == 404


class TestRoleRoutes:
    async def test_list_requires_roles_read(self, client, people):
        _, conference_admin, viewer = people

        allowed = await client.get("/roles", headers=auth(conference_admin))
        denied = await client.get("/roles", headers=auth(viewer))

        assert allowed.status_code == 200
        assert len(allowed.json()) == 7
        assert denied.status_code == 403

    async def test_create_rejects_malformed_permissions(self, client, people):
        admin, _, _ = people
        response = await client.post("/roles", headers=auth(admin), json={
            "name": "broken",
            "display_name": "Broken",
            "level": "church",
            "permissions": ["stories.read", "stories", "stories.read:galaxy"],
        })

        assert response.status_code == 400
        assert response.json()["errors"] == ["stories", "stories.read:galaxy"]

    async def test_system_role_protected(self, client, people, roles):
        admin, _, _ = people
        role_id = roles["church_viewer"].id

        renamed = await client.patch(f"/roles/{role_id}", headers=auth(admin), json={"name": "viewer"})
        deleted = await client.delete(f"/roles/{role_id}", headers=auth(admin))
        described = await client.patch(f"/roles/{role_id}", headers=auth(admin), json={"description": "Guests"})

        assert renamed.status_code == 409
        assert renamed.json()["errorCode"] == "SYSTEM_ROLE_PROTECTED"
        assert deleted.status_code == 409
        assert described.status_code == 200
        assert described.json()["description"] == "Guests"

    async def test_system_role_patch_restating_current_values(self, client, people, roles):
        admin, _, _ = people
        viewer_role = roles["church_viewer"]

        response = await client.patch(f"/roles/{viewer_role.id}", headers=auth(admin), json={
            "name": viewer_role.name,
            "level": viewer_role.level,
            "permissions": viewer_role.permissions,
            "description": "Guests and visitors",
        })

        assert response.status_code == 200
        assert response.json()["description"] == "Guests and visitors"

    async def test_role_mutations_require_system_configure(
        self, client, session, people, index, roles, tree, make_user
    ):
        admin, _, _ = people
        union_admin = await make_user("union_admin")
        await index.grant(union_admin, EntityKind.UNION, tree.u1.id, roles["union_admin"])
        await session.commit()
        body = {"name": "usher", "display_name": "Usher", "level": "church", "permissions": ["stories.read:own"]}

        refused = await client.post("/roles", headers=auth(union_admin), json=body)
        listed = await client.get("/roles", headers=auth(union_admin))
        created = await client.post("/roles", headers=auth(admin), json=body)

        assert refused.status_code == 403
        assert refused.json()["detail"]["required"] == "system.configure"
        assert listed.status_code == 200
        assert created.status_code == 201

    async def test_create_rejects_unregistered_permissions(self, client, people):
        admin, _, _ = people
        response = await client.post("/roles", headers=auth(admin), json={
            "name": "wide_viewer",
            "display_name": "Wide Viewer",
            "level": "church",
            "permissions": ["services.read:public", "dashboard.view:all"],
        })

        assert response.status_code == 400
        assert response.json()["errors"] == ["dashboard.view:all"]

    @pytest.mark.parametrize("who", [1, 2])
    async def test_reseed_is_super_admin_only(self, client, people, who):
        response = await client.post("/roles/seed", headers=auth(people[who]))
        assert response.status_code == 403

    async def test_reseed(self, client, people):
        admin, _, _ = people
        response = await client.post("/roles/seed", headers=auth(admin))

        assert response.status_code == 200
        assert response.json()["created"] == []
        assert response.json()["updated"] == []
        assert len(response.json()["unchanged"]) == 7


class TestPermissionRoutes:
    async def test_categories(self, client, people):
        _, conference_admin, viewer = people

        allowed = await client.get("/permissions/categories", headers=auth(conference_admin))
        denied = await client.get("/permissions/categories", headers=auth(viewer))

        assert allowed.status_code == 200
        names = [category["name"] for category in allowed.json()]
        assert names[0] == "users"
        assert "system" in names
        assert denied.status_code == 403

    async def test_available_for_role(self, client, people):
        _, conference_admin, _ = people
        headers = auth(conference_admin)

        union = await client.get("/permissions/available-for-role", params={"role_level": "union"}, headers=headers)
        church = await client.get("/permissions/available-for-role", params={"role_level": "church"}, headers=headers)

        union_groups = {group["category"]["name"]: group["permissions"] for group in union.json()}
        church_groups = {group["category"]["name"]: group["permissions"] for group in church.json()}
        assert [p["key"] for p in union_groups["system"]] == ["system.configure"]
        assert "system" not in church_groups
        users_read = next(p for p in church_groups["users"] if p["key"] == "users.read")
        assert "self" in users_read["allowed_scopes"]

    async def test_custom_permission_lifecycle(self, client, people):
        admin, conference_admin, _ = people
        categories = await client.get("/permissions/categories", headers=auth(admin))
        services = next(category for category in categories.json() if category["name"] == "services")
        body = {
            "key": "services.schedule",
            "label": "Schedule services",
            "category_id": services["id"],
            "allowed_scopes": ["own", "acs"],
        }

        refused = await client.post("/permissions", headers=auth(conference_admin), json=body)
        created = await client.post("/permissions", headers=auth(admin), json=body)
        duplicate = await client.post("/permissions", headers=auth(admin), json=body)

        assert refused.status_code == 403
        assert created.status_code == 201
        assert created.json()["is_system"] is False
        assert duplicate.status_code == 409

        role = await client.post("/roles", headers=auth(admin), json={
            "name": "scheduler", "display_name": "Scheduler", "level": "church",
            "permissions": ["services.schedule:acs"],
        })
        assert role.status_code == 201

        deleted = await client.delete(f"/permissions/{created.json()['id']}", headers=auth(admin))
        assert deleted.status_code == 204

    async def test_system_permission_cannot_be_deleted(self, client, people):
        admin, _, _ = people
        groups = await client.get("/permissions", headers=auth(admin))
        system = next(group for group in groups.json() if group["category"]["name"] == "system")

        response = await client.delete(f"/permissions/{system['permissions'][0]['id']}", headers=auth(admin))

        assert response.status_code == 409
        assert response.json()["errorCode"] == "SYSTEM_PERMISSION_PROTECTED"
