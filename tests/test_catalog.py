"""Tests for the role catalog."""

import pytest
from sqlalchemy import select, func

from acs_auth.core.exceptions import (
    ConflictError,
    SystemRoleProtectedError,
    ValidationError,
)
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.permissions.models import Role
from acs_auth.features.permissions.system_roles import SYSTEM_ROLE_NAMES


async def snapshot(session):
    result = await session.execute(
        select(Role.id, Role.name, Role.permissions, Role.level, Role.updated_at).order_by(Role.name)
    )
    return [tuple(row) for row in result]


class TestSystemRoles:
    """Test cases for create_system_roles."""

    async def test_seeds_every_system_role(self, session, catalog):
        names = {role.name for role in await catalog.list_roles()}
        assert names == SYSTEM_ROLE_NAMES

        super_admin = await catalog.find_by_name("super_admin")
        assert super_admin.permissions == ["*"]
        assert super_admin.is_system

    async def test_second_run_is_a_no_op(self, session, catalog):
        before = await snapshot(session)

        outcome = await catalog.create_system_roles()
        await session.commit()

        assert outcome.created == []
        assert outcome.updated == []
        assert sorted(outcome.unchanged) == sorted(SYSTEM_ROLE_NAMES)
        assert not outcome.changed
        assert await snapshot(session) == before

    async def test_drifted_role_is_restored(self, session, catalog):
        viewer = await catalog.find_by_name("church_viewer")
        viewer.permissions = ["services.read:public"]
        await session.commit()

        outcome = await catalog.create_system_roles()

        assert outcome.updated == ["church_viewer"]
        assert viewer.permissions == ["services.read:public", "stories.read:public"]
        count = await session.execute(select(func.count()).select_from(Role))
        assert count.scalar_one() == len(SYSTEM_ROLE_NAMES)


class TestLookups:
    async def test_find_by_name_is_case_insensitive(self, catalog):
        role = await catalog.find_by_name("  Church_Pastor ")
        assert role is not None
        assert role.level == "church"

    async def test_find_by_level(self, catalog):
        church_roles = await catalog.find_by_level(EntityKind.CHURCH)
        assert [role.name for role in church_roles] == [
            "church_acs_leader", "church_pastor", "church_team_member", "church_viewer",
        ]

    async def test_find_by_level_rejects_team(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.find_by_level("team")


class TestCustomRoles:
    """Test cases for custom role mutations."""

    async def test_create_role(self, catalog):
        role = await catalog.create_role(
            name="Story_Editor",
            display_name="Story Editor",
            level="conference",
            permissions=["stories.*:subordinate", "stories.read:subordinate", "stories.*:subordinate"],
        )
        assert role.name == "story_editor"
        assert role.permissions == ["stories.*:subordinate", "stories.read:subordinate"]
        assert not role.is_system

    async def test_create_rejects_malformed_permissions(self, catalog):
        with pytest.raises(ValidationError) as exc_info:
            await catalog.create_role("broken", "Broken", "church", ["stories.read", "stories", "x.y:z"])
        assert exc_info.value.errors == ["stories", "x.y:z"]
        assert await catalog.find_by_name("broken") is None

    async def test_create_rejects_duplicate_name(self, catalog):
        with pytest.raises(ConflictError):
            await catalog.create_role("church_viewer", "Copy", "church", [])

    async def test_update_revalidates_permissions(self, catalog):
        role = await catalog.create_role("helper", "Helper", "church", ["services.read:own"])
        with pytest.raises(ValidationError):
            await catalog.update_role(role, permissions=["services.read:own", "nope"])
        assert role.permissions == ["services.read:own"]

        await catalog.update_role(role, permissions=["services.*:own"], display_name="Helper+")
        assert role.permissions == ["services.*:own"]
        assert role.display_name == "Helper+"

    async def test_system_role_cannot_be_renamed_or_redefined(self, catalog):
        pastor = await catalog.find_by_name("church_pastor")
        with pytest.raises(SystemRoleProtectedError):
            await catalog.update_role(pastor, name="pastor")
        with pytest.raises(SystemRoleProtectedError):
            await catalog.update_role(pastor, permissions=["*"])

        await catalog.update_role(pastor, description="Leads the congregation")
        assert pastor.description == "Leads the congregation"

    async def test_system_role_cannot_be_deleted(self, catalog):
        with pytest.raises(SystemRoleProtectedError):
            await catalog.delete_role(await catalog.find_by_name("super_admin"))

    async def test_assigned_role_cannot_be_deleted(self, catalog, index, tree, make_user):
        role = await catalog.create_role("greeter", "Greeter", "church", ["stories.read:own"])
        user = await make_user()
        await index.grant(user, EntityKind.CHURCH, tree.ch1.id, role)

        with pytest.raises(ConflictError):
            await catalog.delete_role(role)

        await index.revoke_at(user, EntityKind.CHURCH, tree.ch1.id)
        await catalog.delete_role(role)
        assert await catalog.find_by_name("greeter") is None

    async def test_system_role_accepts_its_current_values(self, catalog):
        pastor = await catalog.find_by_name("church_pastor")
        permissions = list(pastor.permissions)

        await catalog.update_role(
            pastor,
            name="Church_Pastor",
            level="church",
            permissions=permissions,
            is_active=True,
            description="Shepherds one congregation",
        )

        assert pastor.name == "church_pastor"
        assert pastor.permissions == permissions
        assert pastor.description == "Shepherds one congregation"

        with pytest.raises(SystemRoleProtectedError) as exc_info:
            await catalog.update_role(pastor, level="church", is_active=False)
        assert "is_active" in exc_info.value.message
        assert "level" not in exc_info.value.message

    async def test_create_rejects_unregistered_permissions(self, catalog):
        with pytest.raises(ValidationError) as exc_info:
            await catalog.create_role(
                "misfit", "Misfit", "church",
                ["stories.read:own", "reports.read", "dashboard.view:all", "roles.*:subordinate"],
            )
        assert exc_info.value.errors == ["reports.read", "dashboard.view:all", "roles.*:subordinate"]
        assert await catalog.find_by_name("misfit") is None

    async def test_update_rejects_disallowed_scope(self, catalog):
        role = await catalog.create_role("reader", "Reader", "church", ["organizations.read:own"])
        with pytest.raises(ValidationError) as exc_info:
            await catalog.update_role(role, permissions=["organizations.update:public"])
        assert exc_info.value.errors == ["organizations.update:public"]
        assert role.permissions == ["organizations.read:own"]
