"""
Access control for every route.

The caller is turned into one of three actor variants once per request
(Admin, Manager, Employee) and every permission question goes through
can_access(). List endpoints use the *_filter helpers instead, which turn the
same rules into MongoDB query predicates.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from ..core.errors import AuthorizationError


class ResourceKind(str, Enum):
    PROJECT = "project"
    TEAM = "team"
    QUESTION = "question"
    USER = "user"
    STATUS = "status"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Admin:
    id: str


@dataclass(frozen=True)
class Manager:
    id: str
    managed_projects: frozenset[str] = frozenset()
    teams: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Employee:
    id: str
    teams: frozenset[str] = frozenset()


Actor = Union[Admin, Manager, Employee]


@dataclass(frozen=True)
class Resource:
    """Facts about a resource that the rules look at."""
    project_ids: frozenset[str] = frozenset()
    team_ids: frozenset[str] = frozenset()
    owner_id: str | None = None
    created_by: str | None = None
    is_common: bool = False
    role: str | None = None  # target role, user management only


def actor_from_user(user: dict) -> Actor:
    """Build the actor variant from a stored user document."""
    role = user.get("role", "employee")
    user_id = user["user_id"]
    teams = frozenset(user.get("teams") or [])
    if role == "admin":
        return Admin(id=user_id)
    if role == "manager":
        return Manager(
            id=user_id,
            managed_projects=frozenset(user.get("projects") or []),
            teams=teams,
        )
    return Employee(id=user_id, teams=teams)


def role_of(actor: Actor) -> str:
    if isinstance(actor, Admin):
        return "admin"
    if isinstance(actor, Manager):
        return "manager"
    return "employee"


# Resource builders: one per stored document type

def project_resource(project: dict) -> Resource:
    return Resource(
        project_ids=frozenset([project["project_id"]]),
        team_ids=frozenset(project.get("teams") or []),
        created_by=project.get("created_by"),
    )


def team_resource(team: dict) -> Resource:
    return Resource(
        project_ids=frozenset([team["project_id"]]),
        team_ids=frozenset([team["team_id"]]),
        created_by=team.get("created_by"),
    )


def question_resource(question: dict, project_ids=()) -> Resource:
    """project_ids are the projects owning the question's teams."""
    return Resource(
        project_ids=frozenset(project_ids),
        team_ids=frozenset(question.get("teams") or []),
        created_by=question.get("created_by"),
        is_common=bool(question.get("is_common")),
    )


def user_resource(user: dict, project_ids=()) -> Resource:
    """project_ids are the projects owning the user's teams."""
    return Resource(
        project_ids=frozenset(project_ids) | frozenset(user.get("projects") or []),
        team_ids=frozenset(user.get("teams") or []),
        owner_id=user.get("user_id"),
        created_by=user.get("created_by"),
        role=user.get("role"),
    )


def status_resource(status: dict) -> Resource:
    return Resource(
        project_ids=frozenset([status["project_id"]]),
        team_ids=frozenset([status["team_id"]]),
        owner_id=status.get("user_id"),
    )


def _employee_allows(actor: Actor, kind: ResourceKind, resource: Resource, action: Action) -> bool:
    own = resource.owner_id is not None and resource.owner_id == actor.id
    in_team = bool(resource.team_ids & actor.teams)

    if kind == ResourceKind.PROJECT:
        return action == Action.READ and in_team
    if kind == ResourceKind.TEAM:
        return action == Action.READ and in_team
    if kind == ResourceKind.QUESTION:
        return action == Action.READ and (resource.is_common or in_team)
    if kind == ResourceKind.USER:
        if action == Action.READ:
            return own or in_team
        # own profile only, and never a role change
        return action == Action.UPDATE and own and resource.role in (None, role_of(actor))
    if kind == ResourceKind.STATUS:
        if action == Action.READ:
            return own or in_team
        if action in (Action.CREATE, Action.UPDATE):
            return own and in_team
        return False
    return False


def _manager_allows(actor: Manager, kind: ResourceKind, resource: Resource, action: Action) -> bool:
    manages = bool(resource.project_ids) and resource.project_ids <= actor.managed_projects
    manages_any = bool(resource.project_ids & actor.managed_projects)

    if kind == ResourceKind.PROJECT:
        return action == Action.READ and manages_any
    if kind == ResourceKind.TEAM:
        return manages
    if kind == ResourceKind.QUESTION:
        if action == Action.READ:
            return resource.is_common or manages_any
        if action == Action.CREATE:
            return resource.is_common or not resource.team_ids or manages
        return resource.created_by == actor.id or manages
    if kind == ResourceKind.USER:
        if resource.role == "admin":
            return False
        if action == Action.DELETE:
            return False
        if action == Action.CREATE:
            return not resource.team_ids or manages
        return resource.created_by == actor.id or manages_any
    if kind == ResourceKind.STATUS:
        return manages
    return False


def can_access(actor: Actor, kind: ResourceKind, resource: Resource, action: Action) -> bool:
    """Decide whether actor may perform action on the resource."""
    if isinstance(actor, Admin):
        return True
    if isinstance(actor, Manager):
        if kind == ResourceKind.USER and action == Action.CREATE:
            # a manager never creates admins, whatever else is in the request
            return _manager_allows(actor, kind, resource, action)
        if _manager_allows(actor, kind, resource, action):
            return True
    return _employee_allows(actor, kind, resource, action)


def ensure_access(actor: Actor, kind: ResourceKind, resource: Resource, action: Action, message: str | None = None):
    if not can_access(actor, kind, resource, action):
        raise AuthorizationError(message or f"Not authorized to {action.value} this {kind.value}")


def require_role(actor: Actor, *roles: str, message: str | None = None):
    if role_of(actor) not in roles:
        raise AuthorizationError(message or f"{' or '.join(r.capitalize() for r in roles)} access required")


@dataclass(frozen=True)
class TeamScope:
    """Teams an actor can see; all_teams means no restriction."""
    all_teams: bool = False
    team_ids: frozenset[str] = field(default_factory=frozenset)

    def restrict(self, requested=None) -> "TeamScope":
        """Intersect a requested team list with the scope."""
        if not requested:
            return self
        requested = frozenset(requested)
        if self.all_teams:
            return TeamScope(team_ids=requested)
        return TeamScope(team_ids=self.team_ids & requested)

    def query(self, field_name: str = "team_id") -> dict:
        if self.all_teams:
            return {}
        return {field_name: {"$in": sorted(self.team_ids)}}

    @property
    def is_empty(self) -> bool:
        return not self.all_teams and not self.team_ids


def scope_for(actor: Actor, managed_team_ids=()) -> TeamScope:
    """
    Team scope of an actor. managed_team_ids are the teams of the manager's
    projects, looked up by the caller.
    """
    if isinstance(actor, Admin):
        return TeamScope(all_teams=True)
    if isinstance(actor, Manager):
        return TeamScope(team_ids=actor.teams | frozenset(managed_team_ids))
    return TeamScope(team_ids=actor.teams)


def project_filter(actor: Actor, member_project_ids=()) -> dict | None:
    """Projects query for an actor; None means nothing is visible."""
    if isinstance(actor, Admin):
        return {}
    visible = frozenset(member_project_ids)
    if isinstance(actor, Manager):
        visible |= actor.managed_projects
    if not visible:
        return None
    return {"project_id": {"$in": sorted(visible)}}


def user_filter(actor: Actor, managed_team_ids=()) -> dict:
    """Users query: admin all, manager own creations/teams, employee teammates and self."""
    if isinstance(actor, Admin):
        return {}
    clauses = [{"user_id": actor.id}]
    teams = set(actor.teams)
    if isinstance(actor, Manager):
        clauses.append({"created_by": actor.id})
        teams |= set(managed_team_ids)
    if teams:
        clauses.append({"teams": {"$in": sorted(teams)}})
    return {"$or": clauses}


def question_filter(actor: Actor, team_scope: TeamScope, team: str | None = None) -> dict:
    """Questions visible to an actor: common ones plus the ones scoped to reachable teams."""
    if isinstance(actor, Admin):
        return {"$or": [{"is_common": True}, {"teams": team}]} if team else {}
    teams = team_scope.restrict([team]).team_ids if team else team_scope.team_ids
    return {"$or": [{"is_common": True}, {"teams": {"$in": sorted(teams)}}]}
