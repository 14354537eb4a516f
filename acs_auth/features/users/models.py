"""
Principal model with hierarchical role assignments and team memberships.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from acs_auth.core.database.base import Base, TimestampMixin, generate_ulid
from acs_auth.features.hierarchy.models import EntityKind, Team
from acs_auth.features.permissions.models import Role


class User(Base, TimestampMixin):
    """
    User model representing the principal whose access is evaluated.

    Every change to assignments or memberships also bumps assignments_changed_at,
    which increments version. Concurrent grants and revokes on the same user
    therefore collide instead of silently overwriting each other.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    assignments_changed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    assignments: Mapped[list["Assignment"]] = relationship(
        "Assignment",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="Assignment.user_id",
        lazy="selectin",
    )

    team_memberships: Mapped[list["TeamMembership"]] = relationship(
        "TeamMembership",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="TeamMembership.user_id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def team_ids(self) -> set[str]:
        return {m.team_id for m in self.team_memberships}

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"


class Assignment(Base):
    """
    Binding of a user to one entity at one level via one role.
    """
    __tablename__ = "user_assignments"
    __table_args__ = (
        UniqueConstraint("user_id", "level", "entity_id", "role_id", name="uq_user_assignment"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # union, conference, church or team; entity_id points into that level's table
    level: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)

    role_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("roles.id"), nullable=False, index=True
    )
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now)
    granted_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="assignments", foreign_keys=[user_id])
    role: Mapped["Role"] = relationship("Role", lazy="selectin")

    @property
    def kind(self) -> EntityKind:
        return EntityKind(self.level)

    def __repr__(self) -> str:
        return f"<Assignment(user_id={self.user_id}, level={self.level}, entity_id={self.entity_id}, role_id={self.role_id})>"


class TeamMembership(Base):
    """Membership of a user in a church sub-team; backs the acs/acs_team scopes."""
    __tablename__ = "team_memberships"

    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    team_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now)
    invited_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="team_memberships", foreign_keys=[user_id])
    team: Mapped["Team"] = relationship("Team", lazy="selectin")

    def __repr__(self) -> str:
        return f"<TeamMembership(user_id={self.user_id}, team_id={self.team_id})>"
