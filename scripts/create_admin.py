#!/usr/bin/env python3
"""
Promote an existing user to admin, or list admins.
"""

import asyncio
import os
import sys

from sqlalchemy import select

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.db import AsyncSessionLocal
from models.admin import Admin
from models.user import User

ROLES = ("super_admin", "moderator", "support")


async def promote(email: str, role: str) -> int:
    """Create or reactivate the admin row for the user with this email."""
    async with AsyncSessionLocal() as db:
        user = await db.scalar(select(User).where(User.email == email))
        if user is None:
            print(f"❌ No user with email '{email}'")
            return 1

        admin = await db.scalar(select(Admin).where(Admin.user_id == user.id))
        if admin is None:
            db.add(Admin(user_id=user.id, role=role, is_active=True))
        else:
            admin.role = role
            admin.is_active = True
        await db.commit()

        print(f"✅ {user.first_name} {user.last_name} (ID: {user.id}) is now {role}")
        return 0


async def list_admins() -> int:
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(Admin, User).join(User, User.id == Admin.user_id).order_by(Admin.created_at)
        )
        rows = result.all()

        if not rows:
            print("👥 No admins yet")
            return 0

        print(f"👥 Admins ({len(rows)}):")
        for admin, user in rows:
            state = "active" if admin.is_active else "disabled"
            print(f"   • {user.email} (user ID: {user.id}, role: {admin.role}, {state})")
        return 0


async def main() -> int:
    if len(sys.argv) < 2:
        print("Usage:")
        print(f"  {sys.argv[0]} <email> [role]   - promote user (role: {', '.join(ROLES)}; default moderator)")
        print(f"  {sys.argv[0]} --list           - list admins")
        return 1

    if sys.argv[1] == "--list":
        return await list_admins()

    role = sys.argv[2] if len(sys.argv) > 2 else "moderator"
    if role not in ROLES:
        print(f"❌ Unknown role '{role}'. Choose one of: {', '.join(ROLES)}")
        return 1
    return await promote(sys.argv[1], role)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
