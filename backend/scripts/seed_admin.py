#!/usr/bin/env python3
"""
Seed script to create the initial admin user.
Run from backend/ with: python -m scripts.seed_admin
"""
import asyncio
import uuid
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dailystatus.core.settings import settings
from dailystatus.core.security import hash_password


async def main():
    print(f"Connecting to MongoDB at {settings.MONGODB_URI}...")
    client = AsyncIOMotorClient(settings.MONGODB_URI, serverSelectionTimeoutMS=5000)
    db = client[settings.MONGODB_DB_NAME]

    try:
        await client.admin.command('ping')
        print("MongoDB connected successfully!")
    except Exception as e:
        print(f"Failed to connect to MongoDB: {e}")
        client.close()
        return

    email = settings.SEED_ADMIN_EMAIL.lower()
    existing = await db["users"].find_one({"email": email})
    if existing:
        print(f"Admin user '{email}' already exists. Skipping.")
        client.close()
        return

    now = datetime.now(timezone.utc)
    doc = {
        "user_id": str(uuid.uuid4()),
        "name": "Administrator",
        "email": email,
        "password_hash": hash_password(settings.SEED_ADMIN_PASSWORD),
        "role": "admin",
        "teams": [],
        "projects": [],
        "created_by": None,
        "created_at": now,
        "updated_at": now,
        "last_login_at": None,
    }
    await db["users"].insert_one(doc)
    print(f"Admin user created: {email}")
    client.close()


if __name__ == "__main__":
    asyncio.run(main())
