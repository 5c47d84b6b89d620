"""Loads the documents behind the status spreadsheets and hands them to the grid builders."""
import logging
from datetime import date

from ..core.errors import AuthorizationError, NotFoundError
from ..db.mongo import db
from .access import Actor, Admin, require_role
from .date_ranges import date_query, days_between
from .excel_export import ReportGrid, build_flat_grid, build_report_grid
from .scopes import managed_team_ids

logger = logging.getLogger(__name__)


def split_ids(*values: str | None) -> list[str]:
    """First non-empty comma separated list among values."""
    for value in values:
        if value:
            return [v.strip() for v in value.split(",") if v.strip()]
    return []


async def report_teams(actor: Actor, requested: list[str]) -> list[dict]:
    """
    Teams a report covers. Admin: requested or all. Manager: requested teams
    in managed projects (none left is forbidden) or every managed team.
    """
    query: dict = {}
    if requested:
        query["team_id"] = {"$in": requested}
    if not isinstance(actor, Admin):
        query["project_id"] = {"$in": sorted(actor.managed_projects)}

    teams = [t async for t in db()["teams"].find(query, {"_id": 0}).sort("name", 1)]
    if requested and not teams and not isinstance(actor, Admin):
        raise AuthorizationError("Not authorized to access the requested teams")
    return teams


async def report_users(team_ids: list[str], requested: list[str]) -> list[dict]:
    query: dict = {"teams": {"$in": team_ids}}
    if requested:
        query["user_id"] = {"$in": requested}
    users = [u async for u in db()["users"].find(query, {"_id": 0, "password_hash": 0}).sort("name", 1)]
    if requested and not users:
        raise NotFoundError("No valid users found for the selected teams")
    return users


async def build_status_report(
    actor: Actor,
    team_ids: list[str],
    user_ids: list[str],
    first: date,
    last: date,
) -> ReportGrid:
    require_role(actor, "manager", "admin", message="Only managers and admins can generate reports")

    teams = await report_teams(actor, team_ids)
    accessible = [t["team_id"] for t in teams]
    users = await report_users(accessible, user_ids)
    if not teams and not users:
        raise NotFoundError("No accessible teams or users found")

    questions = [q async for q in db()["questions"].find(
        {"$or": [{"is_common": True}, {"teams": {"$in": accessible}}]}, {"_id": 0}
    ).sort([("order", 1), ("text", 1)])]

    status_query = {
        "team_id": {"$in": accessible},
        "user_id": {"$in": [u["user_id"] for u in users]},
        "date": date_query(first, last),
    }
    statuses = [s async for s in db()["statuses"].find(status_query, {"_id": 0}).sort("date", 1)]
    logger.info(
        "Building status report for %d teams, %d users, %d statuses (%s to %s)",
        len(teams), len(users), len(statuses), first, last,
    )
    return build_report_grid(teams, users, questions, statuses, days_between(first, last))


async def build_status_export(
    actor: Actor,
    team_id: str | None,
    user_id: str | None,
    first: date | None,
    last: date | None,
) -> ReportGrid:
    """Per-cell export of the statuses matching the filters."""
    require_role(actor, "manager", "admin")
    query: dict = {}
    if user_id:
        query["user_id"] = user_id
    window = date_query(first, last)
    if window:
        query["date"] = window

    if team_id:
        team = await db()["teams"].find_one({"team_id": team_id}, {"_id": 0})
        if not team:
            raise NotFoundError("Team not found")
        if not isinstance(actor, Admin) and team["project_id"] not in actor.managed_projects:
            raise AuthorizationError("Not authorized to export data for this team")
        query["team_id"] = team_id
    elif not isinstance(actor, Admin):
        query["team_id"] = {"$in": await managed_team_ids(actor)}

    statuses = [s async for s in db()["statuses"].find(query, {"_id": 0}).sort("date", 1)]

    user_ids = sorted({s["user_id"] for s in statuses})
    team_ids = sorted({s["team_id"] for s in statuses})
    question_ids = sorted({r.get("question_id") for s in statuses for r in s.get("responses") or [] if r.get("question_id")})
    users = {u["user_id"]: u async for u in db()["users"].find({"user_id": {"$in": user_ids}}, {"_id": 0, "user_id": 1, "name": 1})}
    teams = {t["team_id"]: t async for t in db()["teams"].find({"team_id": {"$in": team_ids}}, {"_id": 0, "team_id": 1, "name": 1})}
    questions = {q["question_id"]: q async for q in db()["questions"].find({"question_id": {"$in": question_ids}}, {"_id": 0, "question_id": 1, "text": 1})}
    return build_flat_grid(statuses, users, teams, questions)
