from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timezone
import logging
import uuid
from ..db.mongo import db
from ..dependencies.auth import get_actor, require_admin
from ..models.project import ProjectCreate, ProjectUpdate
from ..services import membership
from ..services.access import Action, Actor, ResourceKind, ensure_access, project_filter, project_resource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])

async def _get_project(project_id: str) -> dict:
    project = await db()["projects"].find_one({"project_id": project_id}, {"_id": 0})
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project

async def _check_managers(managers: list[str]) -> list[str]:
    managers = list(dict.fromkeys(managers))
    if managers:
        found = await db()["users"].distinct("user_id", {"user_id": {"$in": managers}})
        missing = [m for m in managers if m not in found]
        if missing:
            raise HTTPException(status_code=400, detail=f"Unknown users: {', '.join(missing)}")
    return managers

async def _member_project_ids(actor: Actor) -> list[str]:
    return await db()["teams"].distinct("project_id", {"members": actor.id})

@router.get("")
async def list_projects(actor: Actor = Depends(get_actor)):
    """Admin sees all projects, managers their managed projects, everyone the projects of their teams."""
    query = project_filter(actor, await _member_project_ids(actor))
    if query is None:
        return []
    return [p async for p in db()["projects"].find(query, {"_id": 0}).sort("name", 1)]

@router.get("/managed")
async def managed_projects(actor: Actor = Depends(get_actor)):
    """Projects the caller manages, with their teams."""
    projects = [p async for p in db()["projects"].find({"managers": actor.id}, {"_id": 0}).sort("name", 1)]
    for p in projects:
        p["team_details"] = [
            t async for t in db()["teams"].find({"project_id": p["project_id"]}, {"_id": 0, "team_id": 1, "name": 1})
        ]
    return projects

@router.post("", status_code=201)
async def create_project(body: ProjectCreate, actor: Actor = Depends(require_admin)):
    """Create a new project. Only admin can create projects."""
    managers = await _check_managers(body.managers)
    now = datetime.now(timezone.utc)
    doc = {
        "project_id": str(uuid.uuid4()),
        "name": body.name.strip(),
        "description": body.description,
        "managers": [],
        "teams": [],
        "active": True,
        "created_by": actor.id,
        "created_at": now,
        "updated_at": now,
    }
    await db()["projects"].insert_one(dict(doc))
    await membership.set_project_managers(doc, managers)
    logger.info("Project %s created by %s", doc["project_id"], actor.id)
    return await _get_project(doc["project_id"])

@router.get("/{project_id}")
async def get_project(project_id: str, actor: Actor = Depends(get_actor)):
    project = await _get_project(project_id)
    ensure_access(actor, ResourceKind.PROJECT, project_resource(project), Action.READ,
                  "Not authorized to view this project")
    return project

@router.put("/{project_id}")
async def update_project(project_id: str, body: ProjectUpdate, actor: Actor = Depends(require_admin)):
    project = await _get_project(project_id)

    update = {"name": body.name.strip(), "updated_at": datetime.now(timezone.utc)}
    if body.description is not None:
        update["description"] = body.description
    if body.active is not None:
        update["active"] = body.active
    await db()["projects"].update_one({"project_id": project_id}, {"$set": update})

    if body.managers is not None:
        await membership.set_project_managers(project, await _check_managers(body.managers))
    return await _get_project(project_id)

@router.delete("/{project_id}")
async def delete_project(project_id: str, actor: Actor = Depends(require_admin)):
    await _get_project(project_id)
    detached = await membership.detach_project(project_id)
    await db()["projects"].delete_one({"project_id": project_id})
    logger.info("Project %s deleted by %s, removed from %d users", project_id, actor.id, detached)
    return {"message": "Project removed"}
