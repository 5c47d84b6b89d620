import asyncio
import uuid
from datetime import datetime, timezone

import pytest
from mongomock_motor import AsyncMongoMockClient

from dailystatus.db import mongo
from dailystatus.services import membership
from dailystatus.services.access import actor_from_user


class Seeder:
    """Synchronous helpers that put documents into the in-memory store."""

    def __init__(self, database):
        self.db = database

    def _insert(self, collection: str, doc: dict) -> dict:
        asyncio.run(self.db[collection].insert_one(dict(doc)))
        return doc

    def user(self, name: str, role: str = "employee", email: str | None = None, created_by=None) -> dict:
        now = datetime.now(timezone.utc)
        return self._insert("users", {
            "user_id": str(uuid.uuid4()),
            "name": name,
            "email": email or f"{name.lower().replace(' ', '.')}@example.com",
            "password_hash": "",
            "role": role,
            "teams": [],
            "projects": [],
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        })

    def project(self, name: str = "Apollo", managers=()) -> dict:
        now = datetime.now(timezone.utc)
        project = self._insert("projects", {
            "project_id": str(uuid.uuid4()),
            "name": name,
            "description": None,
            "managers": [],
            "teams": [],
            "active": True,
            "created_at": now,
            "updated_at": now,
        })
        asyncio.run(membership.set_project_managers(project, [m["user_id"] for m in managers]))
        return project

    def team(self, project: dict, name: str = "Alpha", members=()) -> dict:
        now = datetime.now(timezone.utc)
        team = self._insert("teams", {
            "team_id": str(uuid.uuid4()),
            "name": name,
            "project_id": project["project_id"],
            "members": [],
            "questions": [],
            "active": True,
            "created_at": now,
            "updated_at": now,
        })
        asyncio.run(membership.attach_team_to_project(team["team_id"], project["project_id"]))
        asyncio.run(membership.add_team_members(team["team_id"], [m["user_id"] for m in members]))
        return team

    def question(self, text: str, is_common: bool = True, teams=(), order: int = 0) -> dict:
        now = datetime.now(timezone.utc)
        question = self._insert("questions", {
            "question_id": str(uuid.uuid4()),
            "text": text,
            "type": "text",
            "options": [],
            "is_common": is_common,
            "teams": [],
            "order": order,
            "active": True,
            "created_at": now,
            "updated_at": now,
        })
        asyncio.run(membership.set_question_teams(question, [t["team_id"] for t in teams]))
        return question

    def reload_user(self, user: dict) -> dict:
        return asyncio.run(self.db["users"].find_one({"user_id": user["user_id"]}, {"_id": 0}))

    def actor(self, user: dict):
        return actor_from_user(self.reload_user(user))

    def count(self, collection: str, query=None) -> int:
        return asyncio.run(self.db[collection].count_documents(query or {}))


@pytest.fixture
def store(monkeypatch):
    database = AsyncMongoMockClient()["daily_status_test"]
    monkeypatch.setattr(mongo, "_db", database)
    asyncio.run(mongo.create_indexes(database))
    return database


@pytest.fixture
def seed(store):
    return Seeder(store)
