"""Store lookups that turn an actor into concrete team / project id sets."""
from ..db.mongo import db
from .access import Actor, Admin, Manager, TeamScope, scope_for


async def managed_team_ids(actor: Actor) -> list[str]:
    """Teams belonging to the projects a manager manages."""
    if not isinstance(actor, Manager) or not actor.managed_projects:
        return []
    return await db()["teams"].distinct(
        "team_id", {"project_id": {"$in": sorted(actor.managed_projects)}}
    )


async def team_scope(actor: Actor) -> TeamScope:
    if isinstance(actor, Admin):
        return scope_for(actor)
    return scope_for(actor, await managed_team_ids(actor))


async def projects_of_teams(team_ids) -> list[str]:
    team_ids = list(team_ids)
    if not team_ids:
        return []
    return await db()["teams"].distinct("project_id", {"team_id": {"$in": team_ids}})
