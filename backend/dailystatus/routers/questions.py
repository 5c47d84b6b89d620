from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timezone
import logging
import uuid
from ..db.mongo import db
from ..dependencies.auth import get_actor, require_manager
from ..models.question import QuestionCreate, QuestionUpdate
from ..services import membership
from ..services.access import (
    Action, Actor, Admin, Resource, ResourceKind, ensure_access, question_filter, question_resource,
)
from ..services.questions import merged_question_fields, normalize_options
from ..services.scopes import projects_of_teams, team_scope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/questions", tags=["questions"])

async def _get_question(question_id: str) -> dict:
    question = await db()["questions"].find_one({"question_id": question_id}, {"_id": 0})
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return question

async def _check_teams(team_ids: list[str]) -> list[str]:
    team_ids = list(dict.fromkeys(team_ids))
    if team_ids:
        found = await db()["teams"].distinct("team_id", {"team_id": {"$in": team_ids}})
        missing = [t for t in team_ids if t not in found]
        if missing:
            raise HTTPException(status_code=400, detail=f"Unknown teams: {', '.join(missing)}")
    return team_ids

async def _resource(question: dict) -> Resource:
    return question_resource(question, await projects_of_teams(question.get("teams") or []))

@router.post("", status_code=201)
async def create_question(body: QuestionCreate, actor: Actor = Depends(require_manager)):
    """Create a question, common or scoped to teams the caller manages."""
    teams = await _check_teams(body.teams)
    resource = Resource(
        project_ids=frozenset(await projects_of_teams(teams)),
        team_ids=frozenset(teams),
        is_common=body.is_common,
    )
    ensure_access(actor, ResourceKind.QUESTION, resource, Action.CREATE,
                  "Not authorized to add questions to these teams")

    now = datetime.now(timezone.utc)
    doc = {
        "question_id": str(uuid.uuid4()),
        "text": body.text.strip(),
        "type": body.type,
        "options": normalize_options(body.type, body.options),
        "is_common": body.is_common,
        "teams": [],
        "order": body.order,
        "active": True,
        "created_by": actor.id,
        "created_at": now,
        "updated_at": now,
    }
    await db()["questions"].insert_one(dict(doc))
    await membership.set_question_teams(doc, teams)
    logger.info("Question %s created by %s", doc["question_id"], actor.id)
    return await _get_question(doc["question_id"])

@router.get("")
async def list_questions(
    team: str | None = None,
    type: str | None = None,
    isCommon: bool | None = None,
    actor: Actor = Depends(get_actor),
):
    """Common questions plus the ones scoped to teams the caller can see."""
    query = question_filter(actor, await team_scope(actor), team)
    if type:
        query = {**query, "type": type}
    if isCommon is not None and isinstance(actor, Admin):
        query = {**query, "is_common": isCommon}
    return [q async for q in db()["questions"].find(query, {"_id": 0}).sort([("order", 1), ("text", 1)])]

@router.get("/stats/types")
async def question_type_stats(actor: Actor = Depends(require_manager)):
    """Question counts per type, split by active flag."""
    pipeline = [
        {"$group": {
            "_id": "$type",
            "count": {"$sum": 1},
            "active": {"$sum": {"$cond": ["$active", 1, 0]}},
            "inactive": {"$sum": {"$cond": ["$active", 0, 1]}},
        }},
        {"$sort": {"_id": 1}},
    ]
    stats = []
    async for row in db()["questions"].aggregate(pipeline):
        stats.append({"type": row["_id"], "count": row["count"], "active": row["active"], "inactive": row["inactive"]})
    return stats

@router.get("/{question_id}")
async def get_question(question_id: str, actor: Actor = Depends(get_actor)):
    question = await _get_question(question_id)
    ensure_access(actor, ResourceKind.QUESTION, await _resource(question), Action.READ,
                  "Not authorized to view this question")
    return question

@router.put("/{question_id}")
async def update_question(question_id: str, body: QuestionUpdate, actor: Actor = Depends(require_manager)):
    """Update a question. Creator, a manager of every team it is scoped to, or admin."""
    question = await _get_question(question_id)
    ensure_access(actor, ResourceKind.QUESTION, await _resource(question), Action.UPDATE,
                  "Not authorized to update this question")

    changes = body.model_dump(exclude_unset=True)
    teams = changes.pop("teams", None)
    fields = merged_question_fields(question, changes)
    fields["text"] = fields["text"].strip()
    fields["updated_at"] = datetime.now(timezone.utc)

    if teams is not None:
        teams = await _check_teams(teams)
        added = set(teams) - set(question.get("teams") or [])
        if added:
            target = Resource(project_ids=frozenset(await projects_of_teams(added)), team_ids=frozenset(added))
            ensure_access(actor, ResourceKind.QUESTION, target, Action.CREATE,
                          "Not authorized to add questions to these teams")

    await db()["questions"].update_one({"question_id": question_id}, {"$set": fields})
    if teams is not None:
        await membership.set_question_teams(question, teams)
    return await _get_question(question_id)

@router.delete("/{question_id}")
async def delete_question(question_id: str, actor: Actor = Depends(require_manager)):
    question = await _get_question(question_id)
    ensure_access(actor, ResourceKind.QUESTION, await _resource(question), Action.DELETE,
                  "Not authorized to delete this question")
    await membership.detach_question(question_id)
    await db()["questions"].delete_one({"question_id": question_id})
    logger.info("Question %s deleted by %s", question_id, actor.id)
    return {"message": "Question removed"}
