"""
Hierarchy entity models: Union → Conference → Church → Team → Service.

Every entity carries a materialized hierarchy_path and its ordinal
hierarchy_level. Entities are soft-deleted by clearing is_active.
"""
from datetime import datetime
from typing import ClassVar
from sqlalchemy import String, ForeignKey, Boolean, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column, validates
import enum

from acs_auth.core.database.base import Base, TimestampMixin, generate_ulid
from acs_auth.core.exceptions import ConsistencyError, ValidationError
from acs_auth.features.hierarchy.path import PENDING_PATH, HierarchyPath


class HierarchyLevel(enum.IntEnum):
    """Ordinal depth in the hierarchy; lower is more senior."""
    UNION = 0
    CONFERENCE = 1
    CHURCH = 2
    TEAM = 3


class EntityKind(str, enum.Enum):
    """Types of hierarchy entity."""
    UNION = "union"
    CONFERENCE = "conference"
    CHURCH = "church"
    TEAM = "team"
    SERVICE = "service"

    @property
    def level(self) -> HierarchyLevel:
        return _LEVELS[self]

    @property
    def plural(self) -> str:
        return "churches" if self is EntityKind.CHURCH else f"{self.value}s"

    @property
    def parent(self) -> "EntityKind | None":
        index = KIND_ORDER.index(self)
        return KIND_ORDER[index - 1] if index else None

    @property
    def resource(self) -> str:
        """Permission resource that governs entities of this kind."""
        return "services" if self is EntityKind.SERVICE else "organizations"

    @property
    def subordinates(self) -> tuple["EntityKind", ...]:
        """Kinds below this one, immediate child kind first."""
        return KIND_ORDER[KIND_ORDER.index(self) + 1:]


_LEVELS = {
    EntityKind.UNION: HierarchyLevel.UNION,
    EntityKind.CONFERENCE: HierarchyLevel.CONFERENCE,
    EntityKind.CHURCH: HierarchyLevel.CHURCH,
    EntityKind.TEAM: HierarchyLevel.TEAM,
    EntityKind.SERVICE: HierarchyLevel.TEAM,
}

KIND_ORDER: tuple[EntityKind, ...] = (
    EntityKind.UNION,
    EntityKind.CONFERENCE,
    EntityKind.CHURCH,
    EntityKind.TEAM,
    EntityKind.SERVICE,
)

# Roles are bound to one of these levels
ROLE_KINDS = (EntityKind.UNION, EntityKind.CONFERENCE, EntityKind.CHURCH)

# Principals can be assigned at these levels
ASSIGNMENT_KINDS = (EntityKind.UNION, EntityKind.CONFERENCE, EntityKind.CHURCH, EntityKind.TEAM)


class HierarchyEntityMixin(TimestampMixin):
    """Columns shared by every hierarchy entity."""
    kind: ClassVar[EntityKind]

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # Ancestor IDs joined with "/" down to and including this entity
    hierarchy_path: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    hierarchy_level: Mapped[int] = mapped_column(Integer, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    @validates("hierarchy_path")
    def _validate_hierarchy_path(self, _key: str, value: str) -> str:
        current = self.__dict__.get("hierarchy_path")
        if current not in (None, PENDING_PATH) and current != value:
            raise ConsistencyError(
                f"Hierarchy path of {self.kind.value} {self.id} is immutable "
                f"({current!r} -> {value!r})"
            )
        if value != PENDING_PATH:
            HierarchyPath(value)
        return value

    @property
    def path(self) -> HierarchyPath:
        """Validated path; raises ConsistencyError when missing or malformed."""
        try:
            return HierarchyPath(self.hierarchy_path)
        except ValidationError as e:
            raise ConsistencyError(
                f"{self.kind.value} {self.id} has an invalid hierarchy path {self.hierarchy_path!r}"
            ) from e

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, name={self.name!r}, path={self.hierarchy_path})>"


class Union(Base, HierarchyEntityMixin):
    """Top of the hierarchy."""
    __tablename__ = "unions"
    kind = EntityKind.UNION

    @property
    def parent_id(self) -> None:
        return None


class Conference(Base, HierarchyEntityMixin):
    __tablename__ = "conferences"
    kind = EntityKind.CONFERENCE

    parent_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("unions.id"), nullable=False, index=True
    )


class Church(Base, HierarchyEntityMixin):
    __tablename__ = "churches"
    kind = EntityKind.CHURCH

    parent_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("conferences.id"), nullable=False, index=True
    )


class Team(Base, HierarchyEntityMixin):
    """
    A named sub-team of a church. ACS teams back the acs/acs_team scopes.
    """
    __tablename__ = "teams"
    kind = EntityKind.TEAM

    parent_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("churches.id"), nullable=False, index=True
    )
    team_type: Mapped[str] = mapped_column(String(50), nullable=False, default="acs")


class Service(Base, HierarchyEntityMixin):
    """A community service run by a team."""
    __tablename__ = "services"
    kind = EntityKind.SERVICE

    parent_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teams.id"), nullable=False, index=True
    )

    @property
    def team_id(self) -> str:
        return self.parent_id


ENTITY_MODELS: dict[EntityKind, type] = {
    EntityKind.UNION: Union,
    EntityKind.CONFERENCE: Conference,
    EntityKind.CHURCH: Church,
    EntityKind.TEAM: Team,
    EntityKind.SERVICE: Service,
}
