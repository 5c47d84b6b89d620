"""
Status reconciliation: one status document per (user, team, calendar day).

Writes go through upsert_status(), which keys on the normalized day and
overwrites the mutable fields (last write wins).
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone

from pymongo.errors import DuplicateKeyError

from ..core.errors import NotFoundError, ValidationError
from ..db.mongo import db
from .access import (
    Action, Actor, Resource, ResourceKind, ensure_access, require_role,
    status_resource, team_resource,
)
from .date_ranges import date_query, day_start
from .scopes import team_scope

logger = logging.getLogger(__name__)


@dataclass
class UpsertOutcome:
    status: dict
    created: bool
    modified: bool


def validate_status_payload(is_leave: bool, leave_reason: str | None, responses) -> tuple[str | None, list[dict]]:
    """
    Check the leave / responses invariant and return the cleaned
    (leave_reason, responses) pair that will be stored.
    """
    if is_leave:
        reason = (leave_reason or "").strip()
        if not reason:
            raise ValidationError(
                "Leave reason is required when marking leave",
                {"leave_reason": "required"},
            )
        return reason, []

    if not responses:
        raise ValidationError(
            "Responses are required for status updates",
            {"responses": "required"},
        )
    cleaned = []
    errors = {}
    for index, response in enumerate(responses):
        if not isinstance(response, dict):
            response = response.model_dump()
        question_id = (response.get("question_id") or "").strip()
        answer = (response.get("answer") or "").strip() if isinstance(response.get("answer"), str) else response.get("answer")
        if not question_id:
            errors[f"responses[{index}].question_id"] = "required"
        if answer in (None, ""):
            errors[f"responses[{index}].answer"] = "required"
        cleaned.append({"question_id": question_id, "answer": answer})
    if errors:
        raise ValidationError("Each response needs a question and an answer", errors)
    return None, cleaned


async def get_team(team_id: str) -> dict:
    team = await db()["teams"].find_one({"team_id": team_id}, {"_id": 0})
    if not team:
        raise NotFoundError("Team not found")
    return team


async def get_status(status_id: str) -> dict:
    status = await db()["statuses"].find_one({"status_id": status_id}, {"_id": 0})
    if not status:
        raise NotFoundError("Status not found")
    return status


async def upsert_status(
    *,
    user_id: str,
    team: dict,
    day: date | datetime,
    is_leave: bool,
    leave_reason: str | None,
    responses: list[dict],
    updated_by: str,
) -> UpsertOutcome:
    """Insert or overwrite the status for (user, team, day). Payload must be validated."""
    now = datetime.now(timezone.utc)
    key = {"user_id": user_id, "team_id": team["team_id"], "date": day_start(day)}
    fields = {
        "project_id": team["project_id"],
        "is_leave": is_leave,
        "leave_reason": leave_reason if is_leave else None,
        "responses": [] if is_leave else responses,
        "updated_by": updated_by,
        "updated_at": now,
    }
    collection = db()["statuses"]
    try:
        result = await collection.update_one(
            key,
            {"$set": fields, "$setOnInsert": {"status_id": str(uuid.uuid4()), "created_at": now}},
            upsert=True,
        )
    except DuplicateKeyError:
        # another writer inserted the same day first; overwrite it
        logger.info("Status upsert raced on %s, retrying as update", key)
        result = await collection.update_one(key, {"$set": fields})

    status = await collection.find_one(key, {"_id": 0})
    created = result.upserted_id is not None
    return UpsertOutcome(status=status, created=created, modified=not created and result.modified_count > 0)


async def save_status(actor: Actor, body) -> UpsertOutcome:
    """Create or replace the caller's (or a managed user's) status for a day."""
    team = await get_team(body.team_id)
    target_user_id = body.user_id or actor.id

    resource = Resource(
        project_ids=team_resource(team).project_ids,
        team_ids=frozenset([team["team_id"]]),
        owner_id=target_user_id,
    )
    ensure_access(actor, ResourceKind.STATUS, resource, Action.CREATE,
                  "Not authorized to update status for this user")

    is_member = await db()["users"].find_one({"user_id": target_user_id, "teams": team["team_id"]}, {"_id": 1})
    if not is_member:
        raise ValidationError("User is not a member of this team")

    leave_reason, responses = validate_status_payload(body.is_leave, body.leave_reason, body.responses)
    return await upsert_status(
        user_id=target_user_id,
        team=team,
        day=body.date or date.today(),
        is_leave=body.is_leave,
        leave_reason=leave_reason,
        responses=responses,
        updated_by=actor.id,
    )


async def update_status(actor: Actor, status_id: str, body) -> dict:
    status = await get_status(status_id)
    ensure_access(actor, ResourceKind.STATUS, status_resource(status), Action.UPDATE,
                  "Not authorized to update this status")

    is_leave = status.get("is_leave", False) if body.is_leave is None else body.is_leave
    if is_leave:
        reason = body.leave_reason if body.leave_reason is not None else status.get("leave_reason")
        responses = []
    else:
        reason = None
        if body.responses is not None:
            responses = body.responses
        else:
            responses = [] if status.get("is_leave") else status.get("responses", [])
    leave_reason, responses = validate_status_payload(is_leave, reason, responses)

    update = {
        "is_leave": is_leave,
        "leave_reason": leave_reason,
        "responses": responses,
        "updated_by": actor.id,
        "updated_at": datetime.now(timezone.utc),
    }
    if body.date is not None:
        new_day = day_start(body.date)
        if new_day != status["date"]:
            occupied = await db()["statuses"].find_one({
                "user_id": status["user_id"],
                "team_id": status["team_id"],
                "date": new_day,
            }, {"_id": 1})
            if occupied:
                raise ValidationError("A status already exists for this user, team and date")
        update["date"] = new_day

    await db()["statuses"].update_one({"status_id": status_id}, {"$set": update})
    return await get_status(status_id)


async def delete_status(actor: Actor, status_id: str):
    require_role(actor, "manager", "admin")
    status = await get_status(status_id)
    ensure_access(actor, ResourceKind.STATUS, status_resource(status), Action.DELETE,
                  "Not authorized to delete this status")
    await db()["statuses"].delete_one({"status_id": status_id})


async def read_status(actor: Actor, status_id: str) -> dict:
    status = await get_status(status_id)
    ensure_access(actor, ResourceKind.STATUS, status_resource(status), Action.READ,
                  "Not authorized to view this status")
    return (await populate_statuses([status]))[0]


async def list_statuses(
    actor: Actor,
    *,
    user_id: str | None = None,
    team_ids=None,
    first: date | None = None,
    last: date | None = None,
    include_leave: bool = True,
    skip: int = 0,
    limit: int = 0,
) -> tuple[list[dict], int]:
    """
    Statuses visible to the actor. Teams outside the actor's scope are
    dropped from the request; if nothing is left the result is empty.
    """
    scope = (await team_scope(actor)).restrict(team_ids)
    if scope.is_empty:
        return [], 0

    query = scope.query()
    if user_id:
        query["user_id"] = user_id
    window = date_query(first, last)
    if window:
        query["date"] = window
    if not include_leave:
        query["is_leave"] = False

    total = await db()["statuses"].count_documents(query)
    cursor = db()["statuses"].find(query, {"_id": 0}).sort("date", -1).skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    statuses = [s async for s in cursor]
    return await populate_statuses(statuses), total


async def populate_statuses(statuses: list[dict]) -> list[dict]:
    """Attach user, team and question names for display."""
    if not statuses:
        return statuses
    user_ids = {s["user_id"] for s in statuses} | {s.get("updated_by") for s in statuses if s.get("updated_by")}
    team_ids = {s["team_id"] for s in statuses}
    question_ids = {r.get("question_id") for s in statuses for r in s.get("responses") or []}

    users = {u["user_id"]: u async for u in db()["users"].find(
        {"user_id": {"$in": sorted(user_ids)}}, {"_id": 0, "user_id": 1, "name": 1, "email": 1})}
    teams = {t["team_id"]: t async for t in db()["teams"].find(
        {"team_id": {"$in": sorted(team_ids)}}, {"_id": 0, "team_id": 1, "name": 1})}
    questions = {q["question_id"]: q async for q in db()["questions"].find(
        {"question_id": {"$in": sorted(q for q in question_ids if q)}}, {"_id": 0, "question_id": 1, "text": 1})}

    populated = []
    for status in statuses:
        item = dict(status)
        user = users.get(status["user_id"], {})
        item["user_name"] = user.get("name")
        item["user_email"] = user.get("email")
        item["team_name"] = teams.get(status["team_id"], {}).get("name")
        item["updated_by_name"] = users.get(status.get("updated_by"), {}).get("name")
        item["responses"] = [
            {**r, "question_text": questions.get(r.get("question_id"), {}).get("text")}
            for r in status.get("responses") or []
        ]
        populated.append(item)
    return populated


async def status_summary(actor: Actor, team_id: str, first: date, last: date) -> list[dict]:
    """Per user and day: leave flag, reason and number of answered questions."""
    team = await get_team(team_id)
    ensure_access(actor, ResourceKind.TEAM, team_resource(team), Action.READ,
                  "Not authorized to view this team")

    query = {"team_id": team_id, "date": date_query(first, last)}
    statuses = [s async for s in db()["statuses"].find(query, {"_id": 0})]
    user_ids = sorted({s["user_id"] for s in statuses})
    users = {u["user_id"]: u async for u in db()["users"].find(
        {"user_id": {"$in": user_ids}}, {"_id": 0, "user_id": 1, "name": 1, "email": 1})}

    summary = []
    for status in statuses:
        user = users.get(status["user_id"])
        if not user:
            continue
        summary.append({
            "date": status["date"].date().isoformat(),
            "user": user,
            "is_leave": status.get("is_leave", False),
            "leave_reason": status.get("leave_reason"),
            "response_count": 0 if status.get("is_leave") else len(status.get("responses") or []),
        })
    summary.sort(key=lambda s: (s["date"], s["user"].get("name") or ""))
    return summary
