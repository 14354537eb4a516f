"""
Permission registry, role and audit log models.

A Role is a named bundle of permission strings bound to one hierarchy
level. System roles are seeded at startup and cannot be renamed or deleted.
The registry lists the permission keys roles may use, grouped into
categories, and the scopes each key may carry.
"""
from typing import Any, Dict
from sqlalchemy import String, Boolean, ForeignKey, Integer, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from acs_auth.core.database.base import Base, TimestampMixin, generate_ulid
from acs_auth.core.exceptions import ValidationError
from acs_auth.features.permissions import grammar


class PermissionCategory(Base, TimestampMixin):
    """Display group for registered permissions, e.g. users, services, system."""
    __tablename__ = "permission_categories"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=100, nullable=False)

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    permissions: Mapped[list["PermissionDefinition"]] = relationship(
        "PermissionDefinition",
        back_populates="category",
        order_by="PermissionDefinition.key",
        lazy="selectin",
    )

    @validates("name")
    def _normalize_name(self, _key: str, value: str) -> str:
        return value.strip().lower()

    def __repr__(self) -> str:
        return f"<PermissionCategory(id={self.id}, name={self.name!r})>"


class PermissionDefinition(Base, TimestampMixin):
    """
    A registered permission key and the scopes it may be granted with.

    An empty allowed_scopes list means the key is only meaningful unscoped,
    e.g. roles.read or system.configure.
    """
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    category_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("permission_categories.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    allowed_scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by_id: Mapped[str | None] = mapped_column(String(26), nullable=True)

    category: Mapped["PermissionCategory"] = relationship(
        "PermissionCategory",
        back_populates="permissions",
        lazy="selectin",
    )

    @validates("allowed_scopes")
    def _validate_scopes(self, _key: str, value: list[str]) -> list[str]:
        scopes = []
        for scope in value or []:
            try:
                scopes.append(grammar.Scope(scope).value)
            except ValueError as e:
                raise ValidationError(f"Unknown scope {scope!r}", errors=[scope]) from e
        return scopes

    def allows(self, scope: grammar.Scope | None) -> bool:
        """Whether this key may be granted with scope (None meaning unscoped)."""
        return scope is None or scope.value in (self.allowed_scopes or [])

    def __repr__(self) -> str:
        return f"<PermissionDefinition(id={self.id}, key={self.key!r})>"


class Role(Base, TimestampMixin):
    """
    Role model for grouping permissions.

    Examples: super_admin, conference_admin, church_pastor, church_viewer
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Role definition
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # union, conference, church
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Ordered permission strings, e.g. ["users.read:subordinate", "roles.read"]
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("permissions")
    def _validate_permissions(self, _key: str, value: list[str]) -> list[str]:
        return grammar.validate_permissions(value or [])

    @validates("name")
    def _normalize_name(self, _key: str, value: str) -> str:
        return value.strip().lower()

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, level={self.level})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for authorization decisions and administrative changes.

    Tracks who did what to which entity.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor (no foreign key: audit rows outlive users)
    user_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    # Outcome of an authorization check, null for plain changes
    allowed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
