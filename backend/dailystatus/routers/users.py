from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import datetime, timezone
from pymongo.errors import DuplicateKeyError
import logging
import re
import uuid
from ..db.mongo import db
from ..dependencies.auth import get_actor, require_admin, require_manager
from ..core.security import hash_password
from ..core.settings import settings
from ..models.user import UserCreate, UserUpdate
from ..services import membership
from ..services.access import (
    Action, Actor, Admin, Manager, Resource, ResourceKind, ensure_access, user_filter, user_resource,
)
from ..services.scopes import managed_team_ids, projects_of_teams

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

PUBLIC_FIELDS = {"_id": 0, "password_hash": 0}

async def _existing_ids(collection: str, key: str, ids: list[str]) -> list[str]:
    ids = list(dict.fromkeys(ids))
    if not ids:
        return []
    found = await db()[collection].distinct(key, {key: {"$in": ids}})
    missing = [i for i in ids if i not in found]
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown {collection}: {', '.join(missing)}")
    return ids

async def _check_team_change(actor: Actor, team_ids: list[str]):
    """A manager may only move users in and out of teams of projects they manage."""
    if isinstance(actor, Admin) or not team_ids:
        return
    projects = await projects_of_teams(team_ids)
    if not isinstance(actor, Manager) or not set(projects) <= actor.managed_projects:
        raise HTTPException(status_code=403, detail="Not authorized to assign these teams")

@router.post("", status_code=201)
async def create_user(body: UserCreate, actor: Actor = Depends(require_manager)):
    """Create a user. Admins create any role, managers create non-admin users for their teams."""
    email = body.email.lower().strip()
    if await db()["users"].find_one({"email": email}, {"_id": 1}):
        raise HTTPException(status_code=400, detail="User already exists")

    teams = await _existing_ids("teams", "team_id", body.teams)
    projects = await _existing_ids("projects", "project_id", body.projects)

    resource = Resource(
        project_ids=frozenset(await projects_of_teams(teams)),
        team_ids=frozenset(teams),
        role=body.role,
    )
    if body.role == "admin" and not isinstance(actor, Admin):
        raise HTTPException(status_code=403, detail="Managers cannot create admin users")
    ensure_access(actor, ResourceKind.USER, resource, Action.CREATE, "Not authorized to create users for these teams")
    if projects and not isinstance(actor, Admin):
        raise HTTPException(status_code=403, detail="Only admins can assign managed projects")

    now = datetime.now(timezone.utc)
    doc = {
        "user_id": str(uuid.uuid4()),
        "name": body.name.strip(),
        "email": email,
        "password_hash": hash_password(body.password or settings.DEFAULT_USER_PASSWORD),
        "role": body.role,
        "teams": [],
        "projects": [],
        "created_by": actor.id,
        "created_at": now,
        "updated_at": now,
        "last_login_at": None,
    }
    try:
        await db()["users"].insert_one(dict(doc))
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")

    await membership.set_user_teams(doc, teams)
    await membership.set_user_projects(doc, projects)
    logger.info("User %s created by %s", doc["user_id"], actor.id)
    return await db()["users"].find_one({"user_id": doc["user_id"]}, PUBLIC_FIELDS)

@router.get("")
async def list_users(role: str | None = None, actor: Actor = Depends(get_actor)):
    """Users visible to the caller: admin all, managers their users and teams, employees teammates."""
    query = user_filter(actor, await managed_team_ids(actor))
    if role:
        query = {**query, "role": role}
    return [u async for u in db()["users"].find(query, PUBLIC_FIELDS).sort("name", 1)]

@router.get("/available")
async def available_users(
    teamId: str | None = None,
    search: str = "",
    actor: Actor = Depends(get_actor),
):
    """Users not yet in a team, for the member picker."""
    query: dict = {}
    if teamId:
        query["teams"] = {"$ne": teamId}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"email": pattern}]
    cursor = db()["users"].find(query, {"_id": 0, "user_id": 1, "name": 1, "email": 1, "role": 1})
    return [u async for u in cursor.sort("name", 1).limit(50)]

@router.post("/rebuild-memberships")
async def rebuild_memberships(actor: Actor = Depends(require_admin)):
    """Recompute user team/project back-references from the team and project documents."""
    return await membership.rebuild_membership_index()

async def _get_user(user_id: str) -> dict:
    u = await db()["users"].find_one({"user_id": user_id}, PUBLIC_FIELDS)
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    return u

@router.get("/{user_id}")
async def get_user(user_id: str, actor: Actor = Depends(get_actor)):
    u = await _get_user(user_id)
    resource = user_resource(u, await projects_of_teams(u.get("teams") or []))
    ensure_access(actor, ResourceKind.USER, resource, Action.READ, "Not authorized to view this user")
    return u

@router.put("/{user_id}")
async def update_user(user_id: str, body: UserUpdate, actor: Actor = Depends(get_actor)):
    u = await _get_user(user_id)
    resource = user_resource(u, await projects_of_teams(u.get("teams") or []))
    ensure_access(actor, ResourceKind.USER, resource, Action.UPDATE, "Not authorized to update this user")

    if body.role is not None and body.role != u.get("role") and not isinstance(actor, Admin):
        raise HTTPException(status_code=403, detail="Not authorized to change user role")
    if body.projects is not None and not isinstance(actor, Admin):
        raise HTTPException(status_code=403, detail="Only admins can assign managed projects")

    update: dict = {}
    if body.name is not None:
        update["name"] = body.name.strip()
    if body.email is not None:
        email = body.email.lower().strip()
        taken = await db()["users"].find_one({"email": email, "user_id": {"$ne": user_id}}, {"_id": 1})
        if taken:
            raise HTTPException(status_code=400, detail=f"Email '{email}' is already used by another user")
        update["email"] = email
    if body.role is not None:
        update["role"] = body.role
    if body.password:
        update["password_hash"] = hash_password(body.password)

    if body.teams is not None:
        teams = await _existing_ids("teams", "team_id", body.teams)
        current = set(u.get("teams") or [])
        await _check_team_change(actor, sorted(current.symmetric_difference(teams)))
        await membership.set_user_teams(u, teams)
    if body.projects is not None:
        projects = await _existing_ids("projects", "project_id", body.projects)
        await membership.set_user_projects(u, projects)

    update["updated_at"] = datetime.now(timezone.utc)
    await db()["users"].update_one({"user_id": user_id}, {"$set": update})
    return await _get_user(user_id)

@router.delete("/{user_id}")
async def delete_user(user_id: str, actor: Actor = Depends(require_admin)):
    if user_id == actor.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    await _get_user(user_id)
    await membership.detach_user(user_id)
    await db()["users"].delete_one({"user_id": user_id})
    logger.info("User %s deleted by %s", user_id, actor.id)
    return {"message": "User removed"}
