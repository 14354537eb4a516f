"""
Delete guard for hierarchy entities.

An entity may only be deactivated once its entire subtree is inactive, so
deletions happen leaf first.
"""
from dataclasses import dataclass
from datetime import datetime, timezone

from acs_auth.core.exceptions import IntegrityViolation
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.hierarchy.repository import HierarchyRepository
from acs_auth.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class DeleteCheck:
    """Outcome of IntegrityGuard.can_delete."""
    allowed: bool
    blocking_kind: EntityKind | None = None
    count: int = 0
    message: str | None = None

    @classmethod
    def allow(cls) -> "DeleteCheck":
        return cls(allowed=True)

    def raise_for_block(self) -> None:
        if not self.allowed:
            raise IntegrityViolation(self.message or "Delete blocked", self.blocking_kind.value, self.count)


class IntegrityGuard:
    def __init__(self, hierarchy: HierarchyRepository):
        self.hierarchy = hierarchy

    async def can_delete(self, entity) -> DeleteCheck:
        """
        Check every subordinate level, immediate children first, and stop at
        the first level that still has active entities in the subtree.
        """
        root_path = entity.path
        for kind in entity.kind.subordinates:
            count = await self.hierarchy.descendant_count_at_level(root_path, kind, active_only=True)
            if count:
                noun = kind.value if count == 1 else kind.plural
                message = (
                    f"Cannot delete {entity.kind.value}: {count} active {noun} still exist. "
                    f"Please delete all {kind.plural} first."
                )
                log.info(f"Delete of {entity.kind.value} {entity.id} blocked: {count} active {noun}")
                return DeleteCheck(allowed=False, blocking_kind=kind, count=count, message=message)
        return DeleteCheck.allow()

    async def soft_delete(self, entity, deleted_by_id: str | None = None):
        """
        Deactivate entity after re-checking its subtree in the same transaction.

        Raises:
            IntegrityViolation: if active descendants exist
        """
        check = await self.can_delete(entity)
        check.raise_for_block()

        entity.is_active = False
        entity.deleted_at = datetime.now(timezone.utc)
        entity.deleted_by_id = deleted_by_id
        await self.hierarchy.db.flush()

        log.info(f"Soft deleted {entity.kind.value} {entity.id} (by {deleted_by_id})")
        return entity
