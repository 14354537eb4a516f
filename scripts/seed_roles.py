"""
Seed script to re-assert the built-in system roles.

Safe to run repeatedly: roles are upserted by name and unchanged roles are
left untouched.

Usage:
    python -m scripts.seed_roles
"""
import asyncio

from acs_auth.core.database.engine import get_db, init_db
from acs_auth.features.permissions.catalog import RoleCatalog
from acs_auth.features.permissions.system_roles import SYSTEM_ROLES
from acs_auth.utils import configure_logging, get_logger


log = get_logger(__name__)


async def main():
    """Create tables if needed, then upsert the system roles."""
    log.info("Starting system role seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            outcome = await RoleCatalog(db).create_system_roles()
            await db.commit()

            log.info("System role seeding completed successfully!")
            for role in SYSTEM_ROLES:
                if role["name"] in outcome.created:
                    state = "created"
                elif role["name"] in outcome.updated:
                    state = "updated"
                else:
                    state = "unchanged"
                log.info(f"  - {role['name']} ({role['level']}): {state}")

        except Exception as e:
            log.error(f"Error seeding system roles: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    configure_logging()
    asyncio.run(main())
