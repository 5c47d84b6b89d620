from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timezone
import logging
import uuid
from ..db.mongo import db
from ..dependencies.auth import get_actor, require_manager
from ..models.team import MemberAdd, TeamCreate, TeamUpdate
from ..services import membership
from ..services.access import Action, Actor, Resource, ResourceKind, ensure_access, team_resource
from ..services.scopes import team_scope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/teams", tags=["teams"])

MEMBER_FIELDS = {"_id": 0, "user_id": 1, "name": 1, "email": 1, "role": 1}

async def _get_team(team_id: str) -> dict:
    team = await db()["teams"].find_one({"team_id": team_id}, {"_id": 0})
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team

async def _check_ids(collection: str, key: str, ids: list[str]) -> list[str]:
    ids = list(dict.fromkeys(ids))
    if ids:
        found = await db()[collection].distinct(key, {key: {"$in": ids}})
        missing = [i for i in ids if i not in found]
        if missing:
            raise HTTPException(status_code=400, detail=f"Unknown {collection}: {', '.join(missing)}")
    return ids

@router.post("", status_code=201)
async def create_team(body: TeamCreate, actor: Actor = Depends(require_manager)):
    """Create a team in a project. Admin, or a manager of that project."""
    project = await db()["projects"].find_one({"project_id": body.project_id}, {"_id": 0})
    if not project:
        raise HTTPException(status_code=400, detail="Invalid project ID")
    resource = Resource(project_ids=frozenset([body.project_id]))
    ensure_access(actor, ResourceKind.TEAM, resource, Action.CREATE,
                  "Not authorized to create teams for this project")

    members = await _check_ids("users", "user_id", body.members)
    questions = await _check_ids("questions", "question_id", body.questions)

    now = datetime.now(timezone.utc)
    doc = {
        "team_id": str(uuid.uuid4()),
        "name": body.name.strip(),
        "description": body.description,
        "project_id": body.project_id,
        "members": [],
        "questions": [],
        "active": body.active,
        "created_by": actor.id,
        "created_at": now,
        "updated_at": now,
    }
    await db()["teams"].insert_one(dict(doc))
    await membership.attach_team_to_project(doc["team_id"], body.project_id)
    await membership.add_team_members(doc["team_id"], members)
    await membership.set_team_questions(doc, questions)
    logger.info("Team %s created in project %s by %s", doc["team_id"], body.project_id, actor.id)
    return await _get_team(doc["team_id"])

@router.get("")
async def list_teams(project: str | None = None, actor: Actor = Depends(get_actor)):
    """Teams visible to the caller, optionally within one project."""
    scope = await team_scope(actor)
    if scope.is_empty:
        return []
    query = scope.query()
    if project:
        query["project_id"] = project
    return [t async for t in db()["teams"].find(query, {"_id": 0}).sort("name", 1)]

@router.get("/{team_id}")
async def get_team(team_id: str, actor: Actor = Depends(get_actor)):
    team = await _get_team(team_id)
    ensure_access(actor, ResourceKind.TEAM, team_resource(team), Action.READ, "Not authorized to view this team")
    project = await db()["projects"].find_one({"project_id": team["project_id"]}, {"_id": 0, "project_id": 1, "name": 1})
    team["project"] = project
    team["member_details"] = [
        u async for u in db()["users"].find({"user_id": {"$in": team.get("members") or []}}, MEMBER_FIELDS)
    ]
    team["question_details"] = [
        q async for q in db()["questions"].find(
            {"question_id": {"$in": team.get("questions") or []}},
            {"_id": 0, "question_id": 1, "text": 1, "type": 1, "is_common": 1},
        )
    ]
    return team

@router.put("/{team_id}")
async def update_team(team_id: str, body: TeamUpdate, actor: Actor = Depends(require_manager)):
    team = await _get_team(team_id)
    ensure_access(actor, ResourceKind.TEAM, team_resource(team), Action.UPDATE, "Not authorized to update this team")

    update = {"name": body.name.strip(), "updated_at": datetime.now(timezone.utc)}
    if body.description is not None:
        update["description"] = body.description
    if body.active is not None:
        update["active"] = body.active
    await db()["teams"].update_one({"team_id": team_id}, {"$set": update})

    if body.members is not None:
        await membership.set_team_members(team, await _check_ids("users", "user_id", body.members))
    if body.questions is not None:
        await membership.set_team_questions(team, await _check_ids("questions", "question_id", body.questions))
    return await _get_team(team_id)

@router.delete("/{team_id}")
async def delete_team(team_id: str, actor: Actor = Depends(require_manager)):
    team = await _get_team(team_id)
    ensure_access(actor, ResourceKind.TEAM, team_resource(team), Action.DELETE, "Not authorized to delete this team")
    await membership.detach_team(team)
    await db()["teams"].delete_one({"team_id": team_id})
    logger.info("Team %s deleted by %s", team_id, actor.id)
    return {"message": "Team removed"}

@router.get("/{team_id}/members")
async def list_members(team_id: str, actor: Actor = Depends(get_actor)):
    team = await _get_team(team_id)
    ensure_access(actor, ResourceKind.TEAM, team_resource(team), Action.READ, "Not authorized to view this team")
    cursor = db()["users"].find({"user_id": {"$in": team.get("members") or []}}, MEMBER_FIELDS)
    return [u async for u in cursor.sort("name", 1)]

@router.post("/{team_id}/members")
async def add_member(team_id: str, body: MemberAdd, actor: Actor = Depends(require_manager)):
    team = await _get_team(team_id)
    ensure_access(actor, ResourceKind.TEAM, team_resource(team), Action.UPDATE, "Not authorized to manage this team")
    u = await db()["users"].find_one({"user_id": body.user_id}, {"_id": 1})
    if not u:
        raise HTTPException(status_code=404, detail="User not found")
    if body.user_id in (team.get("members") or []):
        raise HTTPException(status_code=400, detail="User is already a member of this team")
    await membership.add_team_members(team_id, [body.user_id])
    return {"message": "Member added"}

@router.delete("/{team_id}/members/{user_id}")
async def remove_member(team_id: str, user_id: str, actor: Actor = Depends(require_manager)):
    team = await _get_team(team_id)
    ensure_access(actor, ResourceKind.TEAM, team_resource(team), Action.UPDATE, "Not authorized to manage this team")
    if user_id not in (team.get("members") or []):
        raise HTTPException(status_code=404, detail="Member not found in this team")
    await membership.remove_team_members(team_id, [user_id])
    return {"message": "Member removed"}
