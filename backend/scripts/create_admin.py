#!/usr/bin/env python3
"""Create an admin account for the onboarding portal."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from database import async_session
from models.user import User, UserRole
from services.auth_service import AuthService


async def create_admin(email: str, password: str, company_name: str | None = None):
    """Create an admin user, or report that it already exists."""
    email = email.lower()
    async with async_session() as db:
        result = await db.execute(select(User).where(User.email == email))
        if result.scalar_one_or_none():
            print(f"User {email} already exists.")
            return

        user = User(
            email=email,
            password_hash=AuthService.hash_password(password),
            company_name=company_name,
            role=UserRole.ADMIN,
            is_active=True,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)

        print("Admin created successfully!")
        print(f"  Email: {email}")
        print(f"  ID: {user.id}")
        if company_name:
            print(f"  Agency: {company_name}")


if __name__ == "__main__":
    if len(sys.argv) not in (3, 4):
        print("Usage: python3 create_admin.py <email> <password> [agency name]")
        print("Example: python3 create_admin.py admin@agency.com secretpassword 'Acme Agency'")
        sys.exit(1)

    asyncio.run(create_admin(*sys.argv[1:]))
