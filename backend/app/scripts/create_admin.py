"""
Create Admin Script
===================
Creates an active, email-verified admin account with an admin profile.
MFA starts disabled; the admin turns it on from /api/admin/auth/mfa-setup.

Run with: python -m app.scripts.create_admin --email admin@example.com --name "Ops" --password '...'
"""

import argparse
import asyncio
import sys
from datetime import datetime

from app.core.config import settings
from app.core.database import get_session_local, init_db
from app.core.logging_config import logger
from app.core.security import get_password_hash
from app.core.types import generate_uuid
from app.models.user import AdminLevel, AdminProfile, User, UserRole, UserStatus
from app.services.auth_service import get_user_by_email


async def create_admin(email: str, name: str, password: str, super_admin: bool = False) -> User:
    """Create the admin. Raises ValueError when the email is already taken."""
    await init_db()

    session_factory = get_session_local()
    async with session_factory() as db:
        try:
            if await get_user_by_email(db, email):
                raise ValueError(f"A user with email {email} already exists")

            user = User(
                id=generate_uuid(),
                name=name,
                email=email.strip().lower(),
                hashed_password=get_password_hash(password),
                role=UserRole.ADMIN,
                status=UserStatus.ACTIVE,
                email_verified_at=datetime.utcnow(),
            )
            db.add(user)
            db.add(AdminProfile(
                user_id=user.id,
                admin_level=AdminLevel.SUPER_ADMIN if super_admin else AdminLevel.ADMIN,
                mfa_enabled=False,
            ))
            await db.commit()

            logger.info(f"Created admin {user.email}", extra={"event_type": "admin_created"})
            return user

        except Exception as e:
            await db.rollback()
            logger.error(f"Admin creation failed: {e}")
            raise


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an admin account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--super-admin", action="store_true", help="grant the super_admin level")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main entry point"""
    args = parse_args(argv)

    if len(args.password) < settings.MIN_PASSWORD_LENGTH:
        print(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters")
        return 1

    try:
        user = await create_admin(args.email, args.name, args.password, args.super_admin)
    except ValueError as e:
        print(f"\n❌ {e}")
        return 1

    print(f"\n✅ Admin created: {user.email}")
    print("   Next: log in and enable MFA via /api/admin/auth/mfa-setup")
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
