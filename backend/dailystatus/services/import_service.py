"""
Import pipeline: day entries -> resolved users / teams / questions -> status upserts.

Entities are matched by name (users, teams) or text (questions) and created
when missing. The team authorization gate runs before anything is written.
"""
import logging
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone

from ..core.errors import AuthorizationError, DomainError, ImportRejectedError
from ..core.security import hash_password
from ..core.settings import settings
from ..db.mongo import db
from . import membership
from .access import Actor, Admin, require_role
from .excel_import import DayEntry, RowError, fold_rows, group_day_entries, parse_header_date, read_workbook_rows
from .status_service import upsert_status, validate_status_payload

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    total_data_points: int = 0
    status_entries: int = 0
    inserted_count: int = 0
    modified_count: int = 0
    unchanged_count: int = 0
    skipped: list[dict] = field(default_factory=list)
    users_processed: list[str] = field(default_factory=list)
    users_created: list[str] = field(default_factory=list)
    teams_processed: list[str] = field(default_factory=list)
    teams_created: list[str] = field(default_factory=list)
    questions_processed: list[str] = field(default_factory=list)
    questions_created: list[str] = field(default_factory=list)
    row_errors: list[dict] = field(default_factory=list)
    date_fallbacks: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "total_data_points": self.total_data_points,
            "status_entries": self.status_entries,
            "inserted_count": self.inserted_count,
            "modified_count": self.modified_count,
            "unchanged_count": self.unchanged_count,
            "skipped_count": len(self.skipped),
            "skipped": self.skipped,
            "users_processed": self.users_processed,
            "users_created": self.users_created,
            "teams_processed": self.teams_processed,
            "teams_created": self.teams_created,
            "questions_processed": self.questions_processed,
            "questions_created": self.questions_created,
            "row_errors": self.row_errors,
            "date_fallbacks": self.date_fallbacks,
        }


def synthesize_email(name: str, domain: str | None = None) -> str:
    """first@domain for one-word names, first.l@domain otherwise."""
    domain = domain or settings.IMPORT_EMAIL_DOMAIN
    parts = [re.sub(r"[^a-z0-9]", "", p.lower()) for p in name.split()]
    parts = [p for p in parts if p] or ["user"]
    if len(parts) == 1:
        return f"{parts[0]}@{domain}"
    return f"{parts[0]}.{parts[-1][0]}@{domain}"


async def _free_email(name: str) -> str:
    email = synthesize_email(name)
    local, domain = email.split("@")
    suffix = 1
    while await db()["users"].find_one({"email": email}, {"_id": 1}):
        suffix += 1
        email = f"{local}{suffix}@{domain}"
    return email


async def _default_project(create: bool, created_by: str) -> dict | None:
    project = await db()["projects"].find_one(
        {"name": settings.IMPORT_DEFAULT_PROJECT_NAME}, {"_id": 0}
    )
    if project or not create:
        return project

    now = datetime.now(timezone.utc)
    project = {
        "project_id": str(uuid.uuid4()),
        "name": settings.IMPORT_DEFAULT_PROJECT_NAME,
        "description": "Auto-created default project for spreadsheet imports",
        "managers": [],
        "teams": [],
        "active": True,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }
    await db()["projects"].insert_one(dict(project))
    logger.info("Created default import project %s", project["project_id"])
    return project


async def find_existing_teams(actor: Actor, team_names: list[str]) -> dict[str, dict]:
    """
    Existing team for each name. Team names are not unique: a manager gets a
    team from a managed project when one carries the name, otherwise the
    oldest team with that name is used.
    """
    managed = getattr(actor, "managed_projects", frozenset())
    cursor = db()["teams"].find({"name": {"$in": team_names}}, {"_id": 0}).sort([("created_at", 1), ("team_id", 1)])
    found: dict[str, dict] = {}
    async for team in cursor:
        current = found.get(team["name"])
        if current is None or (current["project_id"] not in managed and team["project_id"] in managed):
            found[team["name"]] = team
    return found


async def check_team_gate(actor: Actor, team_names: list[str], existing: dict[str, dict]):
    """
    Reject the batch unless the actor manages the project of every team in it.
    existing holds the resolved team documents the import will write to;
    missing names would land in the default project.
    """
    if isinstance(actor, Admin):
        return
    managed = getattr(actor, "managed_projects", frozenset())

    default_project = None
    if any(name not in existing for name in team_names):
        default_project = await _default_project(create=False, created_by=actor.id)

    unauthorized = []
    for name in team_names:
        team = existing.get(name)
        project_id = team["project_id"] if team else (default_project or {}).get("project_id")
        if project_id not in managed:
            unauthorized.append(name)
    if unauthorized:
        raise AuthorizationError(
            f"Not authorized to upload data for teams: {', '.join(unauthorized)}",
            {"teams": unauthorized},
        )


async def _resolve_users(names: list[str], actor_id: str, summary: ImportSummary) -> dict[str, dict]:
    users = {}
    password_hash = None
    for name in names:
        user = await db()["users"].find_one({"name": name}, {"_id": 0})
        if not user:
            if password_hash is None:
                password_hash = hash_password(settings.DEFAULT_USER_PASSWORD)
            now = datetime.now(timezone.utc)
            user = {
                "user_id": str(uuid.uuid4()),
                "name": name,
                "email": await _free_email(name),
                "password_hash": password_hash,
                "role": "employee",
                "teams": [],
                "projects": [],
                "created_by": actor_id,
                "created_at": now,
                "updated_at": now,
            }
            await db()["users"].insert_one(dict(user))
            summary.users_created.append(name)
            logger.info("Import created user %s <%s>", name, user["email"])
        users[name] = user
        summary.users_processed.append(name)
    return users


async def _resolve_teams(
    names: list[str], existing: dict[str, dict], actor_id: str, summary: ImportSummary
) -> dict[str, dict]:
    teams = {}
    for name in names:
        team = existing.get(name)
        if not team:
            project = await _default_project(create=True, created_by=actor_id)
            now = datetime.now(timezone.utc)
            team = {
                "team_id": str(uuid.uuid4()),
                "name": name,
                "description": f"Auto-created team: {name}",
                "project_id": project["project_id"],
                "members": [],
                "questions": [],
                "active": True,
                "created_by": actor_id,
                "created_at": now,
                "updated_at": now,
            }
            await db()["teams"].insert_one(dict(team))
            await membership.attach_team_to_project(team["team_id"], project["project_id"])
            summary.teams_created.append(name)
            logger.info("Import created team %s", name)
        teams[name] = team
        summary.teams_processed.append(name)
    return teams


async def _resolve_questions(texts: list[str], actor_id: str, summary: ImportSummary) -> dict[str, dict]:
    questions = {}
    for text in texts:
        question = await db()["questions"].find_one({"text": text}, {"_id": 0})
        if not question:
            now = datetime.now(timezone.utc)
            question = {
                "question_id": str(uuid.uuid4()),
                "text": text,
                "type": "text",
                "options": [],
                "is_common": True,
                "teams": [],
                "order": 0,
                "active": True,
                "created_by": actor_id,
                "created_at": now,
                "updated_at": now,
            }
            await db()["questions"].insert_one(dict(question))
            summary.questions_created.append(text)
            logger.info("Import created question %r", text)
        questions[text] = question
        summary.questions_processed.append(text)
    return questions


def _resolve_dates(entries: list[DayEntry], summary: ImportSummary, today: date) -> list[tuple[DayEntry, date]]:
    """
    Convert date labels to days. Entries whose labels land on the same day
    (5-May and 05-May, or two fallbacks to today) are merged into one,
    keeping leave dominance.
    """
    dated: dict[tuple[str, str, date], DayEntry] = {}
    for entry in entries:
        day, fell_back = parse_header_date(entry.date_label, today)
        if fell_back:
            fallback = {
                "team": entry.team,
                "user": entry.employee,
                "date_label": entry.date_label,
                "used_date": day.isoformat(),
            }
            if settings.IMPORT_STRICT_DATES:
                summary.skipped.append({**fallback, "reason": "Unrecognized date"})
                continue
            summary.date_fallbacks.append(fallback)

        key = (entry.team, entry.employee, day)
        merged = dated.get(key)
        if merged is None:
            dated[key] = replace(entry, responses=list(entry.responses))
            continue
        logger.info("Merging %r into %r for %s / %s", entry.date_label, merged.date_label, entry.employee, day)
        if entry.is_leave and not merged.is_leave:
            merged.is_leave = True
            merged.leave_reason = entry.leave_reason
        if merged.is_leave:
            merged.responses = []
        else:
            merged.responses.extend(entry.responses)
    return [(entry, day) for (_, _, day), entry in dated.items()]


async def import_day_entries(
    actor: Actor,
    entries: list[DayEntry],
    *,
    total_data_points: int | None = None,
    row_errors: list[RowError] = (),
    today: date | None = None,
) -> dict:
    """Resolve names, run the authorization gate and upsert one status per entry."""
    require_role(actor, "manager", "admin")
    if not entries:
        raise ImportRejectedError("No valid data provided")

    summary = ImportSummary(
        total_data_points=total_data_points if total_data_points is not None else len(entries),
        status_entries=len(entries),
        row_errors=[e._asdict() for e in row_errors],
    )
    team_names = list(dict.fromkeys(e.team for e in entries))
    user_names = list(dict.fromkeys(e.employee for e in entries))
    question_texts = list(dict.fromkeys(q for e in entries for q, _ in e.responses))

    existing_teams = await find_existing_teams(actor, team_names)
    await check_team_gate(actor, team_names, existing_teams)

    dated = _resolve_dates(entries, summary, today or date.today())

    users = await _resolve_users(user_names, actor.id, summary)
    teams = await _resolve_teams(team_names, existing_teams, actor.id, summary)
    questions = await _resolve_questions(question_texts, actor.id, summary)

    members_by_team: dict[str, list[str]] = {}
    for entry in entries:
        members_by_team.setdefault(entry.team, []).append(users[entry.employee]["user_id"])
    for team_name, user_ids in members_by_team.items():
        await membership.add_team_members(teams[team_name]["team_id"], user_ids)

    for entry, day in dated:
        label = {"team": entry.team, "user": entry.employee, "date": day.isoformat()}
        try:
            responses = [
                {"question_id": questions[q]["question_id"], "answer": a}
                for q, a in entry.responses
            ]
            leave_reason, responses = validate_status_payload(entry.is_leave, entry.leave_reason, responses)
            outcome = await upsert_status(
                user_id=users[entry.employee]["user_id"],
                team=teams[entry.team],
                day=day,
                is_leave=entry.is_leave,
                leave_reason=leave_reason,
                responses=responses,
                updated_by=actor.id,
            )
        except DomainError as e:
            summary.skipped.append({**label, "reason": e.message})
            continue
        except Exception as e:
            logger.exception("Import upsert failed for %s", label)
            summary.skipped.append({**label, "reason": str(e)})
            continue

        if outcome.created:
            summary.inserted_count += 1
        elif outcome.modified:
            summary.modified_count += 1
        else:
            summary.unchanged_count += 1

    logger.info(
        "Import finished: %d entries, %d inserted, %d modified, %d skipped",
        summary.status_entries, summary.inserted_count, summary.modified_count, len(summary.skipped),
    )
    return summary.as_dict()


async def import_workbook(actor: Actor, content: bytes, today: date | None = None) -> dict:
    """Spreadsheet upload: read, fold, group, then import."""
    require_role(actor, "manager", "admin")
    rows = read_workbook_rows(content)
    parsed = fold_rows(rows)
    entries = group_day_entries(parsed.records)
    logger.info("Created %d status entries from %d data points", len(entries), len(parsed.records))
    return await import_day_entries(
        actor,
        entries,
        total_data_points=len(parsed.records),
        row_errors=parsed.row_errors,
        today=today,
    )


def entries_from_json(items) -> list[DayEntry]:
    """Pre-grouped JSON entries; leave entries drop their responses."""
    entries = []
    for item in items:
        entry = DayEntry(
            team=item.team_name.strip(),
            employee=item.user_name.strip(),
            date_label=item.date,
            is_leave=item.is_leave,
            leave_reason=item.leave_reason,
            responses=[(r.question.strip(), r.answer) for r in item.responses if r.question.strip()],
        )
        if entry.is_leave:
            entry.responses = []
        entries.append(entry)
    return entries


async def import_json(actor: Actor, items, today: date | None = None) -> dict:
    return await import_day_entries(actor, entries_from_json(items), today=today)
