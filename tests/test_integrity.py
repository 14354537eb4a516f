"""Tests for hierarchy creation and the leaf-first delete guard."""

import pytest

from acs_auth.core.exceptions import (
    ConsistencyError,
    IntegrityViolation,
    NotFoundError,
    ValidationError,
)
from acs_auth.features.hierarchy.models import EntityKind, HierarchyLevel
from acs_auth.features.hierarchy.path import PENDING_PATH


class TestCreate:
    """Test cases for two-phase path assignment."""

    async def test_paths_and_levels(self, tree):
        assert tree.u1.hierarchy_path == tree.u1.id
        assert tree.ch1.hierarchy_path == f"{tree.u1.id}/{tree.c1.id}/{tree.ch1.id}"
        assert tree.s1.hierarchy_path == f"{tree.t1.hierarchy_path}/{tree.s1.id}"
        assert tree.ch1.hierarchy_level == HierarchyLevel.CHURCH
        assert tree.s1.hierarchy_level == tree.t1.hierarchy_level == HierarchyLevel.TEAM
        assert PENDING_PATH not in tree.s1.hierarchy_path

    async def test_ids_are_ulid_strings(self, tree):
        ids = [tree.u1.id, tree.c1.id, tree.ch1.id, tree.t1.id, tree.s1.id]
        assert all(isinstance(entity_id, str) and len(entity_id) == 26 for entity_id in ids)
        assert len(set(ids)) == len(ids)

    async def test_parent_rules(self, hierarchy, tree):
        with pytest.raises(ValidationError):
            await hierarchy.create(EntityKind.CHURCH, "Orphan")
        with pytest.raises(ValidationError):
            await hierarchy.create(EntityKind.UNION, "Nested", parent_id=tree.u1.id)
        with pytest.raises(NotFoundError):
            await hierarchy.create(EntityKind.CHURCH, "Lost", parent_id="missing")
        with pytest.raises(NotFoundError):
            # a church cannot hang directly off a union
            await hierarchy.create(EntityKind.CHURCH, "Skipped", parent_id=tree.u1.id)

    async def test_path_is_immutable(self, tree):
        with pytest.raises(ConsistencyError):
            tree.ch1.hierarchy_path = f"{tree.u1.id}/{tree.c2.id}/{tree.ch1.id}"

    async def test_inactive_parent_is_rejected(self, session, hierarchy, tree):
        tree.c2.is_active = False
        await session.flush()
        with pytest.raises(NotFoundError):
            await hierarchy.create(EntityKind.CHURCH, "Late", parent_id=tree.c2.id)


class TestDescendantCount:
    async def test_counts_strict_descendants(self, hierarchy, tree):
        assert await hierarchy.descendant_count_at_level(tree.u1.path, EntityKind.CONFERENCE) == 2
        assert await hierarchy.descendant_count_at_level(tree.c1.path, EntityKind.CHURCH) == 1
        assert await hierarchy.descendant_count_at_level(tree.ch1.path, EntityKind.CHURCH) == 0
        assert await hierarchy.descendant_count_at_level(tree.ch1.path, EntityKind.TEAM) == 2

    async def test_like_wildcards_in_paths_are_escaped(self, session, hierarchy, tree):
        wildcard_union = await hierarchy.create(EntityKind.UNION, "Wildcard Union")
        # A root path of "%" must not match every row
        assert await hierarchy.descendant_count_at_level("%", EntityKind.CONFERENCE) == 0
        assert await hierarchy.descendant_count_at_level("_" * len(tree.u1.id), EntityKind.CONFERENCE) == 0
        assert await hierarchy.descendant_count_at_level(wildcard_union.path, EntityKind.CONFERENCE) == 0

    async def test_active_only(self, session, hierarchy, tree):
        tree.t1b.is_active = False
        await session.flush()
        assert await hierarchy.descendant_count_at_level(tree.ch1.path, EntityKind.TEAM) == 1
        assert await hierarchy.descendant_count_at_level(tree.ch1.path, EntityKind.TEAM, active_only=False) == 2


class TestIntegrityGuard:
    """Test cases for can_delete / soft_delete."""

    async def test_union_blocked_by_conferences(self, guard, tree):
        check = await guard.can_delete(tree.u1)

        assert not check.allowed
        assert check.blocking_kind is EntityKind.CONFERENCE
        assert check.count == 2
        assert check.message == (
            "Cannot delete union: 2 active conferences still exist. Please delete all conferences first."
        )

    async def test_immediate_children_reported_first(self, session, guard, tree):
        tree.c1.is_active = False
        tree.c2.is_active = False
        await session.flush()

        check = await guard.can_delete(tree.u1)

        assert check.blocking_kind is EntityKind.CHURCH
        assert check.count == 2
        assert "2 active churches" in check.message

    async def test_leaf_can_be_deleted(self, guard, tree):
        assert (await guard.can_delete(tree.s1)).allowed

    async def test_leaf_first_deletion(self, guard, tree):
        with pytest.raises(IntegrityViolation) as exc_info:
            await guard.soft_delete(tree.t1)
        assert exc_info.value.blocking_kind == "service"
        assert exc_info.value.count == 1
        assert exc_info.value.to_dict()["blocking"] == {"level": "service", "count": 1}
        assert tree.t1.is_active

        await guard.soft_delete(tree.s1, deleted_by_id="admin")
        deleted = await guard.soft_delete(tree.t1, deleted_by_id="admin")

        assert not deleted.is_active
        assert deleted.deleted_at is not None
        assert deleted.deleted_by_id == "admin"

    async def test_whole_union_leaf_first(self, guard, tree):
        for entity in (tree.s1, tree.t1, tree.t1b, tree.t2, tree.ch1, tree.ch2, tree.c1, tree.c2):
            await guard.soft_delete(entity)

        assert (await guard.can_delete(tree.u1)).allowed
        await guard.soft_delete(tree.u1)
        assert not tree.u1.is_active

    async def test_delete_rechecks_new_children(self, hierarchy, guard, tree):
        assert (await guard.can_delete(tree.ch2)).allowed is False
        await guard.soft_delete(tree.t2)
        assert (await guard.can_delete(tree.ch2)).allowed

        await hierarchy.create(EntityKind.TEAM, "Late Team", parent_id=tree.ch2.id)

        with pytest.raises(IntegrityViolation):
            await guard.soft_delete(tree.ch2)
