import asyncio
from datetime import date, datetime
from io import BytesIO

import pytest
from openpyxl import Workbook

from dailystatus.core.errors import AuthorizationError, ImportRejectedError
from dailystatus.core.settings import settings
from dailystatus.models.imports import ImportEntry
from dailystatus.services import import_service
from dailystatus.services.excel_import import DayEntry
from dailystatus.services.import_service import import_day_entries, import_json, import_workbook, synthesize_email

TODAY = date(2024, 6, 10)


@pytest.fixture(autouse=True)
def fast_hash(monkeypatch):
    monkeypatch.setattr(import_service, "hash_password", lambda password: "hashed:" + password)


def _workbook(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


SHEET = [
    ["Team", "Employee", "Question", "5-May", "6-May"],
    ["Alpha", "Jane Doe", "Done", "Wrote tests", "Shipped"],
    [None, None, "Blockers", "Sick Leave", "None"],
    [None, "John Smith", "Done", "Reviewed", None],
    [None, None, None, None, None],
    [None, None, "Blockers", "None", None],
]


def test_synthesize_email():
    assert synthesize_email("Jane Doe", "corp.com") == "jane.d@corp.com"
    assert synthesize_email("Cher", "corp.com") == "cher@corp.com"
    assert synthesize_email("Mary Ann O'Neil", "corp.com") == "mary.o@corp.com"


def test_admin_import_creates_missing_entities(seed):
    admin = seed.user("Root", role="admin")
    summary = asyncio.run(import_workbook(seed.actor(admin), _workbook(SHEET), today=TODAY))

    assert summary["total_data_points"] == 6
    assert summary["status_entries"] == 3
    assert summary["inserted_count"] == 3
    assert summary["skipped_count"] == 0
    assert summary["users_created"] == ["Jane Doe", "John Smith"]
    assert summary["teams_created"] == ["Alpha"]
    assert summary["questions_created"] == ["Done", "Blockers"]
    assert summary["row_errors"] == []

    project = asyncio.run(seed.db["projects"].find_one({"name": settings.IMPORT_DEFAULT_PROJECT_NAME}))
    team = asyncio.run(seed.db["teams"].find_one({"name": "Alpha"}))
    jane = asyncio.run(seed.db["users"].find_one({"name": "Jane Doe"}))
    assert team["project_id"] == project["project_id"]
    assert team["team_id"] in project["teams"]
    assert jane["user_id"] in team["members"]
    assert jane["teams"] == [team["team_id"]]
    assert jane["email"] == f"jane.d@{settings.IMPORT_EMAIL_DOMAIN}"

    leave = asyncio.run(seed.db["statuses"].find_one({"user_id": jane["user_id"], "date": datetime(2024, 5, 5)}))
    assert leave["is_leave"] is True
    assert leave["leave_reason"] == "Sick Leave"
    assert leave["responses"] == []
    assert leave["updated_by"] == admin["user_id"]


def test_reimport_inserts_nothing(seed):
    actor = seed.actor(seed.user("Root", role="admin"))
    asyncio.run(import_workbook(actor, _workbook(SHEET), today=TODAY))
    summary = asyncio.run(import_workbook(actor, _workbook(SHEET), today=TODAY))

    assert summary["inserted_count"] == 0
    assert summary["users_created"] == []
    assert summary["teams_created"] == []
    assert seed.count("statuses") == 3
    assert seed.count("users", {"name": "Jane Doe"}) == 1


def test_existing_names_are_reused(seed):
    admin = seed.user("Root", role="admin")
    jane = seed.user("Jane Doe")
    project = seed.project("Apollo")
    alpha = seed.team(project, "Alpha")
    entries = [DayEntry("Alpha", "Jane Doe", "5-May", responses=[("Done", "Wrote tests")])]

    summary = asyncio.run(import_day_entries(seed.actor(admin), entries, today=TODAY))

    assert summary["users_created"] == []
    assert summary["teams_created"] == []
    status = asyncio.run(seed.db["statuses"].find_one({}))
    assert status["team_id"] == alpha["team_id"]
    assert status["project_id"] == project["project_id"]
    assert alpha["team_id"] in seed.reload_user(jane)["teams"]


def test_manager_gate_rejects_whole_batch(seed):
    manager = seed.user("Mia Manager", role="manager")
    project = seed.project("Apollo", managers=[manager])
    seed.team(project, "Alpha")
    other = seed.team(seed.project("Zeus"), "Beta")
    entries = [
        DayEntry("Alpha", "Jane Doe", "5-May", responses=[("Done", "a")]),
        DayEntry(other["name"], "Jane Doe", "5-May", responses=[("Done", "b")]),
        DayEntry("Gamma", "Jane Doe", "5-May", responses=[("Done", "c")]),
    ]

    with pytest.raises(AuthorizationError) as exc:
        asyncio.run(import_day_entries(seed.actor(manager), entries, today=TODAY))

    assert exc.value.details == {"teams": ["Beta", "Gamma"]}
    assert seed.count("statuses") == 0
    assert seed.count("users", {"name": "Jane Doe"}) == 0
    assert seed.count("teams", {"name": "Gamma"}) == 0


def test_manager_imports_into_managed_team(seed):
    manager = seed.user("Mia Manager", role="manager")
    project = seed.project("Apollo", managers=[manager])
    seed.team(project, "Alpha")
    entries = [DayEntry("Alpha", "Jane Doe", "5-May", responses=[("Done", "a")])]

    summary = asyncio.run(import_day_entries(seed.actor(manager), entries, today=TODAY))
    assert summary["inserted_count"] == 1
    assert summary["users_created"] == ["Jane Doe"]


def test_employee_cannot_import(seed):
    employee = seed.user("Jane Doe")
    with pytest.raises(AuthorizationError):
        asyncio.run(import_workbook(seed.actor(employee), _workbook(SHEET), today=TODAY))


def test_unparseable_date_falls_back_and_is_reported(seed):
    actor = seed.actor(seed.user("Root", role="admin"))
    entries = [DayEntry("Alpha", "Jane Doe", "31-Feb", responses=[("Done", "a")])]

    summary = asyncio.run(import_day_entries(actor, entries, today=TODAY))

    assert summary["date_fallbacks"] == [
        {"team": "Alpha", "user": "Jane Doe", "date_label": "31-Feb", "used_date": "2024-06-10"},
    ]
    assert asyncio.run(seed.db["statuses"].find_one({}))["date"] == datetime(2024, 6, 10)


def test_strict_dates_skip_unparseable_entries(seed, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_STRICT_DATES", True)
    actor = seed.actor(seed.user("Root", role="admin"))
    entries = [
        DayEntry("Alpha", "Jane Doe", "31-Feb", responses=[("Done", "a")]),
        DayEntry("Alpha", "Jane Doe", "1-Mar", responses=[("Done", "b")]),
    ]

    summary = asyncio.run(import_day_entries(actor, entries, today=TODAY))

    assert summary["inserted_count"] == 1
    assert summary["skipped_count"] == 1
    assert summary["skipped"][0]["reason"] == "Unrecognized date"
    assert summary["date_fallbacks"] == []


def test_leave_without_reason_is_skipped(seed):
    actor = seed.actor(seed.user("Root", role="admin"))
    entries = [
        DayEntry("Alpha", "Jane Doe", "5-May", is_leave=True, leave_reason=" "),
        DayEntry("Alpha", "Jane Doe", "6-May", responses=[("Done", "a")]),
    ]

    summary = asyncio.run(import_day_entries(actor, entries, today=TODAY))

    assert summary["inserted_count"] == 1
    assert summary["skipped"] == [{
        "team": "Alpha", "user": "Jane Doe", "date": "2024-05-05",
        "reason": "Leave reason is required when marking leave",
    }]


def test_row_errors_are_reported(seed):
    actor = seed.actor(seed.user("Root", role="admin"))
    content = _workbook([
        ["Team", "Employee", "Question", "5-May"],
        [None, "Jane Doe", "Done", "orphan"],
        ["Alpha", None, None, "Wrote tests"],
    ])

    summary = asyncio.run(import_workbook(actor, content, today=TODAY))

    assert summary["row_errors"] == [{"row": 2, "missing_fields": ["Team"]}]
    assert summary["inserted_count"] == 1


def test_json_import(seed):
    actor = seed.actor(seed.user("Root", role="admin"))
    items = [
        ImportEntry(teamName="Alpha", userName="Jane Doe", date="2024-05-06",
                    responses=[{"question": "Done", "answer": "Wrote tests"}]),
        ImportEntry(teamName="Alpha", userName="John Smith", date="6-May",
                    isLeave=True, leaveReason="Vacation", responses=[{"question": "Done", "answer": "x"}]),
    ]

    summary = asyncio.run(import_json(actor, items, today=TODAY))

    assert summary["inserted_count"] == 2
    assert summary["questions_created"] == ["Done"]
    john = asyncio.run(seed.db["users"].find_one({"name": "John Smith"}))
    status = asyncio.run(seed.db["statuses"].find_one({"user_id": john["user_id"]}))
    assert status["date"] == datetime(2024, 5, 6)
    assert status["responses"] == []


def test_empty_batch_is_rejected(seed):
    actor = seed.actor(seed.user("Root", role="admin"))
    with pytest.raises(ImportRejectedError):
        asyncio.run(import_day_entries(actor, [], today=TODAY))


def test_same_named_teams_write_where_the_gate_checked(seed):
    manager = seed.user("Mia Manager", role="manager")
    other = seed.team(seed.project("Other"), "Alpha")
    mine = seed.team(seed.project("Mine", managers=[manager]), "Alpha")
    entries = [DayEntry("Alpha", "Jane Doe", "2024-05-06", responses=[("Done", "x")])]

    summary = asyncio.run(import_day_entries(seed.actor(manager), entries, today=TODAY))

    assert summary["inserted_count"] == 1
    status = asyncio.run(seed.db["statuses"].find_one({}))
    assert status["team_id"] == mine["team_id"]
    assert status["project_id"] == mine["project_id"]
    other_team = asyncio.run(seed.db["teams"].find_one({"team_id": other["team_id"]}))
    assert other_team["members"] == []


def test_same_named_unmanaged_teams_are_rejected(seed):
    manager = seed.user("Mia Manager", role="manager")
    seed.project("Mine", managers=[manager])
    seed.team(seed.project("Other"), "Alpha")
    seed.team(seed.project("Another"), "Alpha")
    entries = [DayEntry("Alpha", "Jane Doe", "2024-05-06", responses=[("Done", "x")])]

    with pytest.raises(AuthorizationError):
        asyncio.run(import_day_entries(seed.actor(manager), entries, today=TODAY))
    assert seed.count("statuses") == 0


def test_labels_for_the_same_day_are_merged(seed):
    actor = seed.actor(seed.user("Root", role="admin"))
    entries = [
        DayEntry("Alpha", "Jane Doe", "5-May", responses=[("Done", "Wrote tests")]),
        DayEntry("Alpha", "Jane Doe", "05-May", responses=[("Blockers", "None")]),
        DayEntry("Alpha", "Jane Doe", "6-May", responses=[("Done", "Shipped")]),
        DayEntry("Alpha", "Jane Doe", "06-May", is_leave=True, leave_reason="Sick Leave"),
    ]

    summary = asyncio.run(import_day_entries(actor, entries, today=TODAY))

    assert summary["inserted_count"] == 2
    assert seed.count("statuses") == 2
    fifth = asyncio.run(seed.db["statuses"].find_one({"date": datetime(2024, 5, 5)}))
    assert [r["answer"] for r in fifth["responses"]] == ["Wrote tests", "None"]
    sixth = asyncio.run(seed.db["statuses"].find_one({"date": datetime(2024, 5, 6)}))
    assert sixth["is_leave"] is True
    assert sixth["leave_reason"] == "Sick Leave"
    assert sixth["responses"] == []
