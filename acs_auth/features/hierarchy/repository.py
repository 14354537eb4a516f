"""
Data access for hierarchy entities.

All subtree queries go through subtree_filter/descendant_filter so that the
prefix match is escaped and anchored on the separator in exactly one place.
"""
from collections.abc import Iterable
from typing import Any
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from acs_auth.core.exceptions import NotFoundError, ValidationError
from acs_auth.features.hierarchy import path as hierarchy_path
from acs_auth.features.hierarchy.models import ENTITY_MODELS, EntityKind
from acs_auth.features.hierarchy.path import PENDING_PATH, HierarchyPath
from acs_auth.utils import get_logger


log = get_logger(__name__)


def descendant_filter(column: Any, root_path: HierarchyPath | str) -> ColumnElement[bool]:
    """
    Strict descendants of root_path.

    autoescape escapes LIKE wildcards (% and _) in the prefix, so IDs or
    crafted names can never widen the match.
    """
    root = HierarchyPath(str(root_path))
    return column.startswith(root.descendant_prefix, autoescape=True)


def subtree_filter(column: Any, root_path: HierarchyPath | str) -> ColumnElement[bool]:
    """root_path itself plus all of its descendants."""
    return or_(column == str(root_path), descendant_filter(column, root_path))


class HierarchyRepository:
    """Reads and creates hierarchy entities within one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, kind: EntityKind, entity_id: str, include_inactive: bool = False):
        model = ENTITY_MODELS[kind]
        stmt = select(model).where(model.id == entity_id)
        if not include_inactive:
            stmt = stmt.where(model.is_active == True)  # noqa: E712
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_404(self, kind: EntityKind, entity_id: str, include_inactive: bool = False):
        entity = await self.get(kind, entity_id, include_inactive=include_inactive)
        if entity is None:
            raise NotFoundError(kind.value.capitalize())
        return entity

    async def create(self, kind: EntityKind, name: str, parent_id: str | None = None, **fields):
        """
        Create an entity and assign its path.

        The row is first written with a placeholder path, flushed so that its
        ID is known, and then given its real path. Both writes happen in the
        caller's transaction.
        """
        model = ENTITY_MODELS[kind]
        parent_path: HierarchyPath | None = None

        if kind.parent is None:
            if parent_id is not None:
                raise ValidationError(f"A {kind.value} cannot have a parent")
        else:
            if parent_id is None:
                raise ValidationError(f"A {kind.value} requires a parent {kind.parent.value}")
            parent = await self.get(kind.parent, parent_id)
            if parent is None:
                raise NotFoundError(f"Parent {kind.parent.value}")
            parent_path = parent.path
            fields["parent_id"] = parent_id

        entity = model(
            name=name,
            hierarchy_path=PENDING_PATH,
            hierarchy_level=int(kind.level),
            **fields,
        )
        self.db.add(entity)
        await self.db.flush()

        entity.hierarchy_path = hierarchy_path.build(parent_path, entity.id)
        await self.db.flush()

        log.info(f"Created {kind.value} {entity.id} at {entity.hierarchy_path}")
        return entity

    async def active_ids(self, kind: EntityKind) -> list[str]:
        model = ENTITY_MODELS[kind]
        result = await self.db.execute(
            select(model.id).where(model.is_active == True).order_by(model.hierarchy_path)  # noqa: E712
        )
        return list(result.scalars().all())

    async def active_ids_in_subtree(self, kind: EntityKind, root_path: HierarchyPath | str) -> list[str]:
        """Active entities of kind whose path equals or lies beneath root_path."""
        model = ENTITY_MODELS[kind]
        result = await self.db.execute(
            select(model.id)
            .where(model.is_active == True)  # noqa: E712
            .where(subtree_filter(model.hierarchy_path, root_path))
            .order_by(model.hierarchy_path)
        )
        return list(result.scalars().all())

    async def list_active(self, kind: EntityKind, ids: Iterable[str] | None = None, skip: int = 0, limit: int = 100):
        model = ENTITY_MODELS[kind]
        stmt = select(model).where(model.is_active == True)  # noqa: E712
        if ids is not None:
            stmt = stmt.where(model.id.in_(list(ids)))
        stmt = stmt.order_by(model.hierarchy_path).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def descendant_count_at_level(
        self,
        root_path: HierarchyPath | str,
        kind: EntityKind,
        active_only: bool = True,
    ) -> int:
        """Count strict descendants of root_path of the given kind."""
        model = ENTITY_MODELS[kind]
        stmt = select(func.count()).select_from(model).where(
            descendant_filter(model.hierarchy_path, root_path)
        )
        if active_only:
            stmt = stmt.where(model.is_active == True)  # noqa: E712
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def paths_for(self, kind: EntityKind, ids: Iterable[str]) -> dict[str, str]:
        """Map entity ID to its stored path for active entities of kind."""
        ids = list(ids)
        if not ids:
            return {}
        model = ENTITY_MODELS[kind]
        result = await self.db.execute(
            select(model.id, model.hierarchy_path)
            .where(model.id.in_(ids))
            .where(model.is_active == True)  # noqa: E712
        )
        return {row.id: row.hierarchy_path for row in result}
