"""
Role catalog: lookups, validated mutations and idempotent system role seeding.
"""
from dataclasses import dataclass, field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from acs_auth.core.exceptions import (
    ConflictError,
    NotFoundError,
    SystemRoleProtectedError,
    ValidationError,
)
from acs_auth.features.hierarchy.models import ROLE_KINDS, EntityKind
from acs_auth.features.permissions import grammar
from acs_auth.features.permissions.models import Role
from acs_auth.features.permissions.registry import PermissionRegistry
from acs_auth.features.permissions.system_roles import SYSTEM_ROLES
from acs_auth.features.users.models import Assignment
from acs_auth.utils import get_logger


log = get_logger(__name__)

# Fields a system role definition controls
SYSTEM_FIELDS = ("display_name", "level", "permissions", "description", "is_system", "is_active")


@dataclass
class SeedResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated)


def validate_level(level: str | EntityKind) -> str:
    try:
        kind = EntityKind(level)
    except ValueError:
        kind = None
    if kind not in ROLE_KINDS:
        allowed = ", ".join(k.value for k in ROLE_KINDS)
        raise ValidationError(f"Role level must be one of: {allowed}", errors=[str(level)])
    return kind.value


class RoleCatalog:
    """Named roles, read at call time from the roles table."""

    def __init__(self, db: AsyncSession, registry: PermissionRegistry | None = None):
        self.db = db
        self.registry = registry or PermissionRegistry(db)

    async def find_by_name(self, name: str) -> Role | None:
        result = await self.db.execute(select(Role).where(Role.name == name.strip().lower()))
        return result.scalars().first()

    async def find_by_id(self, role_id: str) -> Role | None:
        result = await self.db.execute(select(Role).where(Role.id == role_id))
        return result.scalars().first()

    async def get_or_404(self, role_id: str) -> Role:
        role = await self.find_by_id(role_id)
        if role is None:
            raise NotFoundError("Role")
        return role

    async def find_by_level(self, level: str | EntityKind, include_inactive: bool = False) -> list[Role]:
        stmt = select(Role).where(Role.level == validate_level(level))
        if not include_inactive:
            stmt = stmt.where(Role.is_active == True)  # noqa: E712
        result = await self.db.execute(stmt.order_by(Role.name))
        return list(result.scalars().all())

    async def list_roles(self, skip: int = 0, limit: int = 100, include_inactive: bool = False) -> list[Role]:
        stmt = select(Role)
        if not include_inactive:
            stmt = stmt.where(Role.is_active == True)  # noqa: E712
        result = await self.db.execute(stmt.order_by(Role.level, Role.name).offset(skip).limit(limit))
        return list(result.scalars().all())

    async def create_system_roles(self) -> SeedResult:
        """
        Upsert the permission registry, then every built-in role by name.

        Only differing attributes are written, so a second run issues no
        UPDATE and leaves the table untouched.
        """
        await self.registry.create_system_permissions()

        outcome = SeedResult()
        for definition in SYSTEM_ROLES:
            desired = dict(definition, is_system=True, is_active=True)
            desired["permissions"] = grammar.validate_permissions(desired["permissions"])
            await self.registry.check(desired["permissions"])

            role = await self.find_by_name(desired["name"])
            if role is None:
                self.db.add(Role(**desired))
                outcome.created.append(desired["name"])
                continue

            changed = False
            for key in SYSTEM_FIELDS:
                if getattr(role, key) != desired.get(key):
                    setattr(role, key, desired.get(key))
                    changed = True
            if changed:
                outcome.updated.append(role.name)
            else:
                outcome.unchanged.append(role.name)

        await self.db.flush()
        log.info(
            f"System roles: {len(outcome.created)} created, "
            f"{len(outcome.updated)} updated, {len(outcome.unchanged)} unchanged"
        )
        return outcome

    async def create_role(
        self,
        name: str,
        display_name: str,
        level: str | EntityKind,
        permissions: list[str],
        description: str | None = None,
    ) -> Role:
        """
        Create a custom role.

        Raises:
            ValidationError: malformed, unregistered or wrongly scoped
                permissions, or an invalid level
            ConflictError: name already taken
        """
        level = validate_level(level)
        permissions = grammar.validate_permissions(permissions)
        await self.registry.check(permissions)
        if await self.find_by_name(name) is not None:
            raise ConflictError("Role with this name already exists")

        role = Role(
            name=name,
            display_name=display_name,
            level=level,
            permissions=permissions,
            description=description,
            is_system=False,
        )
        self.db.add(role)
        await self.db.flush()
        log.info(f"Created role {role.name} ({role.level}) with {len(permissions)} permissions")
        return role

    async def update_role(self, role: Role, **changes) -> Role:
        """
        Apply changes to a role after validating all of them.

        System roles only accept display_name and description changes.
        """
        changes = {key: value for key, value in changes.items() if value is not None}

        if "permissions" in changes:
            changes["permissions"] = grammar.validate_permissions(changes["permissions"])
        if "level" in changes:
            changes["level"] = validate_level(changes["level"])
        if "name" in changes:
            changes["name"] = changes["name"].strip().lower()

        if role.is_system:
            # Restating a protected field with its current value is not a change
            protected = sorted(
                key for key in ("name", "level", "permissions", "is_active")
                if key in changes and changes[key] != getattr(role, key)
            )
            if protected:
                raise SystemRoleProtectedError(
                    f"System role {role.name} cannot change {', '.join(protected)}"
                )

        if "permissions" in changes:
            await self.registry.check(changes["permissions"])
        if "name" in changes:
            if changes["name"] != role.name and await self.find_by_name(changes["name"]) is not None:
                raise ConflictError("Role with this name already exists")

        for key, value in changes.items():
            setattr(role, key, value)
        await self.db.flush()
        log.info(f"Updated role {role.name}: {sorted(changes)}")
        return role

    async def delete_role(self, role: Role) -> None:
        """
        Raises:
            SystemRoleProtectedError: role is a system role
            ConflictError: role is still assigned to principals
        """
        if role.is_system:
            raise SystemRoleProtectedError(f"System role {role.name} cannot be deleted")

        result = await self.db.execute(
            select(func.count()).select_from(Assignment).where(Assignment.role_id == role.id)
        )
        in_use = result.scalar_one()
        if in_use:
            raise ConflictError(f"Role {role.name} is still assigned {in_use} time(s). Revoke those assignments first.")

        await self.db.delete(role)
        await self.db.flush()
        log.info(f"Deleted role {role.name}")
