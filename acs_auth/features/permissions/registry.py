"""
Permission registry: the catalog of permission keys roles may be built from.

Every role permission must name a registered key (or a wildcard over a
registered resource) and carry a scope that key allows.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from acs_auth.core.exceptions import (
    ConflictError,
    NotFoundError,
    SystemPermissionProtectedError,
    ValidationError,
)
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.permissions import grammar
from acs_auth.features.permissions.models import PermissionCategory, PermissionDefinition
from acs_auth.features.permissions.system_permissions import SYSTEM_CATEGORIES, SYSTEM_PERMISSIONS
from acs_auth.utils import get_logger


log = get_logger(__name__)

# Only union level roles may be offered the system category
SYSTEM_CATEGORY = "system"


class PermissionRegistry:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def list_categories(self, include_inactive: bool = False) -> list[PermissionCategory]:
        stmt = select(PermissionCategory)
        if not include_inactive:
            stmt = stmt.where(PermissionCategory.is_active == True)  # noqa: E712
        result = await self.db.execute(stmt.order_by(PermissionCategory.display_order, PermissionCategory.name))
        return list(result.scalars().all())

    async def find_category(self, category_id: str) -> PermissionCategory | None:
        result = await self.db.execute(select(PermissionCategory).where(PermissionCategory.id == category_id))
        return result.scalars().first()

    async def find_by_key(self, key: str) -> PermissionDefinition | None:
        result = await self.db.execute(select(PermissionDefinition).where(PermissionDefinition.key == key))
        return result.scalars().first()

    async def get_or_404(self, permission_id: str) -> PermissionDefinition:
        result = await self.db.execute(select(PermissionDefinition).where(PermissionDefinition.id == permission_id))
        definition = result.scalars().first()
        if definition is None:
            raise NotFoundError("Permission")
        return definition

    async def list_permissions(self) -> list[PermissionDefinition]:
        result = await self.db.execute(select(PermissionDefinition).order_by(PermissionDefinition.key))
        return list(result.scalars().all())

    async def grouped(
        self, role_level: str | EntityKind | None = None
    ) -> list[tuple[PermissionCategory, list[PermissionDefinition]]]:
        """
        Active categories in display order with their permissions.

        With a role_level, the system category is only offered to union
        level roles.
        """
        categories = await self.list_categories()
        if role_level is not None and EntityKind(role_level) is not EntityKind.UNION:
            categories = [category for category in categories if category.name != SYSTEM_CATEGORY]

        by_category: dict[str, list[PermissionDefinition]] = {}
        for definition in await self.list_permissions():
            by_category.setdefault(definition.category_id, []).append(definition)
        return [(category, by_category.get(category.id, [])) for category in categories]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def unregistered(self, permissions: list[str]) -> list[str]:
        """
        Return every entry that is not backed by the registry.

        An entry must be well formed already. "*" and unscoped entries over a
        registered resource are always accepted; a scoped entry needs a key
        that allows its scope, and "resource.*:scope" needs at least one key
        of that resource allowing it.
        """
        definitions = await self.list_permissions()
        by_key = {definition.key: definition for definition in definitions}
        resources: dict[str, list[PermissionDefinition]] = {}
        for definition in definitions:
            resources.setdefault(definition.resource, []).append(definition)

        invalid = []
        for entry in permissions:
            permission = grammar.Permission.parse(entry)
            if permission.is_global:
                continue
            if permission.action == grammar.ACTION_WILDCARD:
                candidates = resources.get(permission.resource, [])
            else:
                definition = by_key.get(f"{permission.resource}.{permission.action}")
                candidates = [definition] if definition else []
            if not any(definition.allows(permission.scope) for definition in candidates):
                invalid.append(entry)
        return invalid

    async def check(self, permissions: list[str]) -> list[str]:
        """
        Raise unless every entry is registered with an allowed scope.

        Raises:
            ValidationError: with the offending entries in errors
        """
        invalid = await self.unregistered(permissions)
        if invalid:
            raise ValidationError("Unknown permissions or scopes not allowed for them", errors=invalid)
        return permissions

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_system_permissions(self) -> int:
        """
        Upsert the built-in categories and permissions.

        Returns the number of rows created or changed; a second run returns 0.
        """
        changed = 0
        categories: dict[str, PermissionCategory] = {}
        for name, display_name, description, icon, display_order in SYSTEM_CATEGORIES:
            result = await self.db.execute(select(PermissionCategory).where(PermissionCategory.name == name))
            category = result.scalars().first()
            desired = {
                "display_name": display_name,
                "description": description,
                "icon": icon,
                "display_order": display_order,
                "is_system": True,
                "is_active": True,
            }
            if category is None:
                category = PermissionCategory(name=name, permissions=[], **desired)
                self.db.add(category)
                changed += 1
            else:
                stale = {key: value for key, value in desired.items() if getattr(category, key) != value}
                for key, value in stale.items():
                    setattr(category, key, value)
                changed += bool(stale)
            categories[name] = category
        await self.db.flush()

        for key, category_name, label, allowed_scopes in SYSTEM_PERMISSIONS:
            resource, action = grammar.split_required(key)
            category = categories[category_name]
            definition = await self.find_by_key(key)
            if definition is None:
                self.db.add(PermissionDefinition(
                    key=key,
                    resource=resource,
                    action=action,
                    label=label,
                    category=category,
                    allowed_scopes=allowed_scopes,
                    is_system=True,
                ))
                changed += 1
                continue
            desired = {
                "label": label,
                "category_id": category.id,
                "allowed_scopes": list(allowed_scopes),
                "is_system": True,
            }
            stale = {name: value for name, value in desired.items() if getattr(definition, name) != value}
            for name, value in stale.items():
                setattr(definition, name, value)
            changed += bool(stale)

        await self.db.flush()
        log.info(f"Permission registry: {changed} change(s)")
        return changed

    async def create_permission(
        self,
        key: str,
        label: str,
        category_id: str,
        allowed_scopes: list[str] | None = None,
        description: str | None = None,
        created_by_id: str | None = None,
    ) -> PermissionDefinition:
        """
        Register a custom permission key.

        Raises:
            ValidationError: key is not "resource.action" or category is unknown
            ConflictError: key already registered
        """
        key = (key or "").strip()
        if not grammar.is_valid(key) or key == "*" or ":" in key or key.endswith(f".{grammar.ACTION_WILDCARD}"):
            raise ValidationError("Permission key must be resource.action without a scope", errors=[key])
        category = await self.find_category(category_id)
        if category is None:
            raise ValidationError("Invalid category", errors=[category_id])
        if await self.find_by_key(key) is not None:
            raise ConflictError("Permission key already exists")

        resource, action = grammar.split_required(key)
        definition = PermissionDefinition(
            key=key,
            resource=resource,
            action=action,
            label=label,
            description=description,
            category=category,
            allowed_scopes=allowed_scopes or [],
            is_system=False,
            created_by_id=created_by_id,
        )
        self.db.add(definition)
        await self.db.flush()
        log.info(f"Registered permission {key} in {category.name} with scopes {definition.allowed_scopes}")
        return definition

    async def delete_permission(self, definition: PermissionDefinition) -> None:
        """
        Raises:
            SystemPermissionProtectedError: definition is built in
        """
        if definition.is_system:
            raise SystemPermissionProtectedError(f"System permission {definition.key} cannot be deleted")
        await self.db.delete(definition)
        await self.db.flush()
        log.info(f"Deleted permission {definition.key}")
