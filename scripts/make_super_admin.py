"""
Create a user if needed and set the super-admin flag on it.

Prints a bearer token for the user so the API can be used right away.

Usage:
    python -m scripts.make_super_admin admin@example.org "Admin Name"
"""
import argparse
import asyncio
from sqlalchemy import select

from acs_auth.core.database.engine import get_db, init_db
from acs_auth.features.users.auth import create_access_token
from acs_auth.features.users.models import User
from acs_auth.utils import configure_logging, get_logger


log = get_logger(__name__)


async def main(email: str, name: str | None):
    await init_db()

    async for db in get_db():
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None:
            user = User(email=email, name=name or email, assignments=[], team_memberships=[])
            db.add(user)
            log.info(f"Created user {email}")

        user.is_super_admin = True
        await db.commit()
        log.info(f"User {user.id} ({email}) is now a super admin")
        print(create_access_token(user.id))
        break  # Only use first session


if __name__ == "__main__":
    configure_logging()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("email")
    parser.add_argument("name", nargs="?")
    args = parser.parse_args()
    asyncio.run(main(args.email, args.name))
