"""
Permission registry and role catalog dependencies, and audit logging helpers.
"""
from typing import Annotated, Any, Dict, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from acs_auth.core.database.engine import get_db
from acs_auth.features.permissions.catalog import RoleCatalog
from acs_auth.features.permissions.models import AuditLog
from acs_auth.features.permissions.registry import PermissionRegistry
from acs_auth.utils import get_logger


log = get_logger(__name__)


def get_permission_registry(db: Annotated[AsyncSession, Depends(get_db)]) -> PermissionRegistry:
    return PermissionRegistry(db)


def get_role_catalog(
    db: Annotated[AsyncSession, Depends(get_db)],
    registry: Annotated[PermissionRegistry, Depends(get_permission_registry)],
) -> RoleCatalog:
    return RoleCatalog(db, registry=registry)


# ============================================================================
# Audit Logging
# ============================================================================

def request_origin(request: Optional[Request]) -> Dict[str, Optional[str]]:
    """Client address and user agent of a request, for audit rows."""
    if request is None:
        return {"ip_address": None, "user_agent": None}
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    allowed: Optional[bool] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """
    Create an audit log entry and commit it with the current transaction.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "grant", "revoke", "delete", "deny")
        resource_type: Type of resource (e.g., "role", "assignment", "church")
        resource_id: ID of the resource
        allowed: Outcome of an authorization check, None for plain changes
        details: Additional details
        request: Incoming request, source of client IP and user agent

    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        allowed=allowed,
        details=details,
        **request_origin(request),
    )

    db.add(audit_log)
    await db.commit()

    log.info(f"Audit: user={user_id} action={action} resource={resource_type}:{resource_id} allowed={allowed}")

    return audit_log
