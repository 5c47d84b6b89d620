import asyncio
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from dailystatus.core.security import hash_password
from dailystatus.dependencies.auth import get_current_user
from dailystatus.main import app
from dailystatus.services.excel_export import XLSX_MEDIA_TYPE


@pytest.fixture
def client(store):
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(seed):
    def _login(user):
        app.dependency_overrides[get_current_user] = lambda: seed.reload_user(user)
    return _login


@pytest.fixture
def world(seed):
    manager = seed.user("Mia Manager", role="manager", email="mia@corp.com")
    jane = seed.user("Jane Doe", email="jane@corp.com")
    john = seed.user("John Smith", email="john@corp.com")
    project = seed.project("Apollo", managers=[manager])
    alpha = seed.team(project, "Alpha", members=[jane])
    beta = seed.team(project, "Beta", members=[john])
    done = seed.question("What did you do?")
    return {"manager": manager, "jane": jane, "john": john, "project": project,
            "alpha": alpha, "beta": beta, "done": done}


def test_root(client):
    assert client.get("/").json()["message"] == "Daily Status API running"


def test_requests_without_token_are_rejected(client):
    assert client.get("/status").status_code in (401, 403)


def test_login_then_me(client, seed):
    user = seed.user("Jane Doe", email="jane@corp.com")
    asyncio.run(seed.db["users"].update_one(
        {"user_id": user["user_id"]}, {"$set": {"password_hash": hash_password("s3cret!")}}))

    bad = client.post("/auth/login", json={"email": "jane@corp.com", "password": "nope"})
    assert bad.status_code == 401

    res = client.post("/auth/login", json={"email": "JANE@corp.com", "password": "s3cret!"})
    assert res.status_code == 200
    token = res.json()["access_token"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user_id"] == user["user_id"]
    assert "password_hash" not in me.json()


def test_employee_status_write_and_foreign_team_read(client, login_as, world):
    login_as(world["jane"])
    body = {
        "team_id": world["alpha"]["team_id"],
        "date": "2024-05-06",
        "responses": [{"question_id": world["done"]["question_id"], "answer": "Wrote tests"}],
    }
    first = client.post("/status", json=body)
    assert first.status_code == 201
    assert first.json()["responses"][0]["question_text"] == "What did you do?"

    body["responses"][0]["answer"] = "Wrote more tests"
    again = client.post("/status", json=body)
    assert again.status_code == 200
    assert again.json()["status_id"] == first.json()["status_id"]

    own = client.get("/status", params={"team": world["alpha"]["team_id"]})
    assert len(own.json()) == 1
    foreign = client.get("/status", params={"team": world["beta"]["team_id"]})
    assert foreign.status_code == 200
    assert foreign.json() == []


def test_domain_errors_carry_details(client, login_as, world):
    login_as(world["jane"])
    res = client.post("/status", json={"team_id": world["alpha"]["team_id"], "is_leave": True})
    assert res.status_code == 400
    assert res.json() == {
        "detail": "Leave reason is required when marking leave",
        "errors": {"leave_reason": "required"},
    }


def test_manager_cannot_create_admin(client, login_as, world):
    login_as(world["manager"])
    res = client.post("/users", json={
        "name": "Eve", "email": "eve@corp.com", "password": "password1", "role": "admin",
    })
    assert res.status_code == 403
    assert res.json()["detail"] == "Managers cannot create admin users"


def test_manager_creates_employee_in_managed_team(client, login_as, seed, world):
    login_as(world["manager"])
    res = client.post("/users", json={
        "name": "Eve", "email": "eve@corp.com", "password": "password1",
        "role": "employee", "teams": [world["alpha"]["team_id"]],
    })
    assert res.status_code == 201
    team = asyncio.run(seed.db["teams"].find_one({"team_id": world["alpha"]["team_id"]}))
    assert res.json()["user_id"] in team["members"]


def test_text_question_with_options_is_rejected(client, login_as, world):
    login_as(world["manager"])
    res = client.post("/questions", json={
        "text": "Blockers", "type": "text", "options": [{"text": "Yes"}], "is_common": True,
    })
    assert res.status_code == 400


def test_employee_cannot_download_report(client, login_as, world):
    login_as(world["jane"])
    assert client.get("/reports/excel").status_code == 403


def test_report_download(client, login_as, world):
    login_as(world["manager"])
    res = client.get("/reports/excel", params={
        "team": world["alpha"]["team_id"], "startDate": "2024-05-06", "endDate": "2024-05-08",
    })
    assert res.status_code == 200
    assert res.headers["content-type"] == XLSX_MEDIA_TYPE
    sheet = load_workbook(BytesIO(res.content)).active
    headers = [c.value for c in sheet[1]]
    assert headers == ["Team", "User", "Question", "2024-05-06", "2024-05-07", "2024-05-08"]
    assert sheet["A2"].value == "Alpha"
    assert sheet["B2"].value == "Jane Doe"


def test_upload_rejects_other_extensions(client, login_as, world):
    login_as(world["manager"])
    res = client.post("/import/upload-status", files={"excelFile": ("data.csv", b"a,b", "text/csv")})
    assert res.status_code == 400
    assert res.json()["detail"] == "Only Excel files (.xlsx, .xls) are allowed"


def test_upload_requires_file(client, login_as, world):
    login_as(world["manager"])
    res = client.post("/import/upload-status")
    assert res.status_code == 400
    assert res.json()["detail"] == "No file uploaded"


def test_upload_rejects_broken_workbook(client, login_as, world):
    login_as(world["manager"])
    res = client.post("/import/upload-status", files={"excelFile": ("data.xlsx", b"garbage", XLSX_MEDIA_TYPE)})
    assert res.status_code == 400
    assert res.json()["detail"].startswith("Invalid Excel file format")


def test_imported_status_listing_is_paginated(client, login_as, world):
    login_as(world["jane"])
    for day in ("2024-05-06", "2024-05-07", "2024-05-08"):
        client.post("/status", json={
            "team_id": world["alpha"]["team_id"],
            "date": day,
            "responses": [{"question_id": world["done"]["question_id"], "answer": "x"}],
        })
    res = client.get("/import/status", params={"limit": 2, "page": 2})
    assert res.status_code == 200
    body = res.json()
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
    assert len(body["data"]) == 1


def test_admin_cannot_delete_self(client, login_as, seed):
    admin = seed.user("Root", role="admin", email="root@corp.com")
    login_as(admin)
    res = client.delete(f"/users/{admin['user_id']}")
    assert res.status_code == 400


def test_user_payload_has_public_fields_only(client, login_as, world):
    login_as(world["manager"])
    res = client.get(f"/users/{world['jane']['user_id']}")
    assert res.status_code == 200
    body = res.json()
    assert {"user_id", "name", "email", "role", "teams", "projects", "created_at"} <= set(body)
    assert "password_hash" not in body
    assert "_id" not in body
