"""
Both sides of every membership relation are written here.

Team.members <-> User.teams, Project.managers <-> User.projects,
Team.questions <-> Question.teams and Project.teams <-> Team.project_id.
The owning side is the team / project document; rebuild_membership_index()
recomputes the user and project back-references from it.
"""
import logging
from datetime import datetime, timezone

from ..db.mongo import db

logger = logging.getLogger(__name__)


def _diff(old, new):
    old, new = list(dict.fromkeys(old or [])), list(dict.fromkeys(new or []))
    removed = [x for x in old if x not in new]
    added = [x for x in new if x not in old]
    return added, removed


async def add_team_members(team_id: str, user_ids):
    user_ids = list(dict.fromkeys(u for u in user_ids if u))
    if not user_ids:
        return
    await db()["teams"].update_one(
        {"team_id": team_id},
        {"$addToSet": {"members": {"$each": user_ids}}}
    )
    await db()["users"].update_many(
        {"user_id": {"$in": user_ids}},
        {"$addToSet": {"teams": team_id}}
    )


async def remove_team_members(team_id: str, user_ids):
    user_ids = list(user_ids)
    if not user_ids:
        return
    await db()["teams"].update_one(
        {"team_id": team_id},
        {"$pullAll": {"members": user_ids}}
    )
    await db()["users"].update_many(
        {"user_id": {"$in": user_ids}},
        {"$pull": {"teams": team_id}}
    )


async def set_team_members(team: dict, members):
    added, removed = _diff(team.get("members"), members)
    await remove_team_members(team["team_id"], removed)
    await add_team_members(team["team_id"], added)


async def set_user_teams(user: dict, teams):
    """Same relation as set_team_members, driven from the user side."""
    added, removed = _diff(user.get("teams"), teams)
    for team_id in removed:
        await remove_team_members(team_id, [user["user_id"]])
    for team_id in added:
        await add_team_members(team_id, [user["user_id"]])


async def set_project_managers(project: dict, managers):
    added, removed = _diff(project.get("managers"), managers)
    project_id = project["project_id"]
    await db()["projects"].update_one(
        {"project_id": project_id},
        {"$set": {"managers": list(dict.fromkeys(managers))}}
    )
    if removed:
        await db()["users"].update_many(
            {"user_id": {"$in": removed}},
            {"$pull": {"projects": project_id}}
        )
    if added:
        await db()["users"].update_many(
            {"user_id": {"$in": added}},
            {"$addToSet": {"projects": project_id}}
        )


async def set_user_projects(user: dict, projects):
    added, removed = _diff(user.get("projects"), projects)
    user_id = user["user_id"]
    if removed:
        await db()["projects"].update_many(
            {"project_id": {"$in": removed}},
            {"$pull": {"managers": user_id}}
        )
    if added:
        await db()["projects"].update_many(
            {"project_id": {"$in": added}},
            {"$addToSet": {"managers": user_id}}
        )
    await db()["users"].update_one(
        {"user_id": user_id},
        {"$set": {"projects": list(dict.fromkeys(projects))}}
    )


async def attach_team_to_project(team_id: str, project_id: str):
    await db()["projects"].update_one(
        {"project_id": project_id},
        {"$addToSet": {"teams": team_id}}
    )


async def set_question_teams(question: dict, teams):
    added, removed = _diff(question.get("teams"), teams)
    question_id = question["question_id"]
    await db()["questions"].update_one(
        {"question_id": question_id},
        {"$set": {"teams": list(dict.fromkeys(teams))}}
    )
    if removed:
        await db()["teams"].update_many(
            {"team_id": {"$in": removed}},
            {"$pull": {"questions": question_id}}
        )
    if added:
        await db()["teams"].update_many(
            {"team_id": {"$in": added}},
            {"$addToSet": {"questions": question_id}}
        )


async def set_team_questions(team: dict, questions):
    added, removed = _diff(team.get("questions"), questions)
    team_id = team["team_id"]
    await db()["teams"].update_one(
        {"team_id": team_id},
        {"$set": {"questions": list(dict.fromkeys(questions))}}
    )
    if removed:
        await db()["questions"].update_many(
            {"question_id": {"$in": removed}},
            {"$pull": {"teams": team_id}}
        )
    if added:
        await db()["questions"].update_many(
            {"question_id": {"$in": added}},
            {"$addToSet": {"teams": team_id}}
        )


async def detach_project(project_id: str):
    """Cascade for project deletion."""
    result = await db()["users"].update_many(
        {"projects": project_id},
        {"$pull": {"projects": project_id}}
    )
    return result.modified_count


async def detach_team(team: dict):
    """Cascade for team deletion."""
    team_id = team["team_id"]
    await db()["users"].update_many({"teams": team_id}, {"$pull": {"teams": team_id}})
    await db()["projects"].update_many({"teams": team_id}, {"$pull": {"teams": team_id}})
    await db()["questions"].update_many({"teams": team_id}, {"$pull": {"teams": team_id}})


async def detach_user(user_id: str):
    """Cascade for user deletion."""
    await db()["teams"].update_many({"members": user_id}, {"$pull": {"members": user_id}})
    await db()["projects"].update_many({"managers": user_id}, {"$pull": {"managers": user_id}})


async def detach_question(question_id: str):
    """Cascade for question deletion."""
    await db()["teams"].update_many({"questions": question_id}, {"$pull": {"questions": question_id}})


async def rebuild_membership_index() -> dict:
    """
    Recompute User.teams, User.projects and Project.teams from the owning
    team and project documents. Returns how many documents changed.
    """
    teams_by_user: dict[str, set] = {}
    teams_by_project: dict[str, set] = {}
    async for team in db()["teams"].find({}, {"_id": 0, "team_id": 1, "project_id": 1, "members": 1}):
        teams_by_project.setdefault(team.get("project_id"), set()).add(team["team_id"])
        for member in team.get("members") or []:
            teams_by_user.setdefault(member, set()).add(team["team_id"])

    projects_by_user: dict[str, set] = {}
    project_ids = []
    async for project in db()["projects"].find({}, {"_id": 0, "project_id": 1, "managers": 1}):
        project_ids.append(project["project_id"])
        for manager in project.get("managers") or []:
            projects_by_user.setdefault(manager, set()).add(project["project_id"])

    now = datetime.now(timezone.utc)
    users_changed = 0
    async for user in db()["users"].find({}, {"_id": 0, "user_id": 1, "teams": 1, "projects": 1}):
        teams = sorted(teams_by_user.get(user["user_id"], set()))
        projects = sorted(projects_by_user.get(user["user_id"], set()))
        if sorted(user.get("teams") or []) != teams or sorted(user.get("projects") or []) != projects:
            await db()["users"].update_one(
                {"user_id": user["user_id"]},
                {"$set": {"teams": teams, "projects": projects, "updated_at": now}}
            )
            users_changed += 1

    projects_changed = 0
    for project_id in project_ids:
        result = await db()["projects"].update_one(
            {"project_id": project_id},
            {"$set": {"teams": sorted(teams_by_project.get(project_id, set()))}}
        )
        projects_changed += result.modified_count

    logger.info("Membership index rebuilt: %d users, %d projects updated", users_changed, projects_changed)
    return {"users_updated": users_changed, "projects_updated": projects_changed}
