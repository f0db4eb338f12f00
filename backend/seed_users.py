"""
Database seeding script for development users.

Creates an ADMIN, an OWNER with one item, and a RENTER, then prints a
bearer token for each. Accounts normally come from the account service;
this is only for running the API locally.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.core.jwt import create_user_token
from backend.app.models.user import User
from backend.app.models.item import Item
from backend.app.models.enums import UserRole
from sqlalchemy import select

# Make sure every table is registered before create_all
import backend.app.main  # noqa: F401


async def seed_users():
    """
    Seed development users.

    Creates:
    - 1 ADMIN user
    - 1 OWNER user with one item
    - 1 RENTER user
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting user seeding...")

        result = await db.execute(
            select(User).where(User.username == "admin")
        )
        if result.scalar_one_or_none():
            print("ℹ️  ADMIN user already exists, skipping seeding")
            return

        admin_user = User(email="admin@rentivo.in", username="admin", role=UserRole.ADMIN)
        owner = User(email="owner@rentivo.in", username="owner", phone="+919000000001", role=UserRole.OWNER)
        renter = User(email="renter@rentivo.in", username="renter", phone="+919000000002", role=UserRole.RENTER)
        db.add_all([admin_user, owner, renter])
        await db.flush()

        item = Item(owner_id=owner.id, title="Canon EOS R6 with 24-105mm lens")
        db.add(item)
        await db.commit()

        print("✅ Created ADMIN, OWNER and RENTER users")
        print(f"✅ Created item {item.id} owned by user {owner.id}")

        print("\n🎉 User seeding completed successfully!")
        print("\nBearer tokens:")
        for user in (admin_user, owner, renter):
            print(f"  - {user.role.value:<6} {create_user_token(user)}")


if __name__ == "__main__":
    asyncio.run(seed_users())
