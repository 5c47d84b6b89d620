#!/usr/bin/env python3
"""
Recompute users' team / project lists and projects' team lists from the
team and project documents.
Run from backend/ with: python -m scripts.rebuild_memberships
"""
import asyncio
from dailystatus.core.settings import settings
from dailystatus.db.mongo import connect, close
from dailystatus.services.membership import rebuild_membership_index


async def main():
    print(f"Connecting to MongoDB at {settings.MONGODB_URI}...")
    await connect(max_retries=3)
    try:
        result = await rebuild_membership_index()
        print(f"Users updated: {result['users_updated']}")
        print(f"Projects updated: {result['projects_updated']}")
    finally:
        await close()


if __name__ == "__main__":
    asyncio.run(main())
