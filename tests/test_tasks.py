from classroom.models.team import Team
from tests.conftest import auth_header


def test_faculty_creates_task_for_own_team(client, ids):
    r = client.post(
        "/tasks",
        headers=auth_header(ids.faculty),
        json={
            "title": "T2: Lab report",
            "due_at": "2030-01-01T12:00:00Z",
            "max_points": 20,
            "max_attempts": 2,
            "allowed_file_types": [".PDF", "docx"],
            "team_ids": [ids.team],
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["faculty_id"] == ids.faculty
    assert body["allowed_file_types"] == "pdf,docx"
    assert body["status"] == "active"

    # team members can see it; others cannot
    assert client.get(f"/tasks/{body['id']}", headers=auth_header(ids.student)).status_code == 200
    assert client.get(f"/tasks/{body['id']}", headers=auth_header(ids.outsider)).status_code == 403


def test_students_cannot_create_tasks(client, ids):
    r = client.post("/tasks", headers=auth_header(ids.student), json={"title": "Mine"})
    assert r.status_code == 403


def test_task_for_unknown_team(client, ids):
    r = client.post(
        "/tasks",
        headers=auth_header(ids.faculty),
        json={"title": "T3", "team_ids": ["0" * 24]},
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "Team not found"


def test_task_for_another_faculty_team(client, ids, db):
    db.add(Team(id="e" * 24, name="Team Beta", faculty_id=ids.faculty2))
    db.commit()

    r = client.post(
        "/tasks",
        headers=auth_header(ids.faculty),
        json={"title": "T4", "team_ids": ["e" * 24]},
    )
    assert r.status_code == 403


def test_admin_and_owner_can_read_task(client, ids):
    assert client.get(f"/tasks/{ids.task}", headers=auth_header(ids.admin)).status_code == 200
    assert client.get(f"/tasks/{ids.task}", headers=auth_header(ids.faculty)).status_code == 200
    assert client.get(f"/tasks/{ids.task}", headers=auth_header(ids.faculty2)).status_code == 403


def test_malformed_task_id_in_path(client, ids):
    r = client.get("/tasks/[object Object]", headers=auth_header(ids.admin))
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_identifier"


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
