from datetime import datetime, timedelta, timezone

import pytest

from classroom.core.errors import (
    FeedbackTooShort,
    GradeInvalid,
    GradeOutOfRange,
    GradeRequired,
    InvalidStatus,
    NotAuthorized,
)
from classroom.models.notification import Notification
from classroom.models.submission import Submission
from classroom.models.task import Task
from classroom.models.user import User
from classroom.services import grading, submissions
from classroom.services.notifications import NotificationDispatcher
from tests.conftest import attachment, auth_header, update_task


def create_submission(client, ids, user_id=None) -> str:
    r = client.post(
        "/submissions",
        headers=auth_header(user_id or ids.student),
        json={
            "task_id": ids.task,
            "comment": "Here is my work on the assignment",
            "attachments": [attachment()],
        },
    )
    assert r.status_code == 201, r.text
    return r.json()["id"]


def grade(client, sid, user_id, **payload):
    return client.put(f"/submissions/{sid}/grade", headers=auth_header(user_id), json=payload)


def test_grade_then_regrade_appends_history(client, ids, db, live_push):
    sid = create_submission(client, ids)

    r = grade(client, sid, ids.faculty, grade=85, feedback="Solid analysis, missing citations.")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "graded"
    assert body["grade"] == 85
    assert body["graded_by_id"] == ids.faculty
    assert body["graded_by"]["email"] == "pat.faculty@school.edu"
    assert body["task"] == {"id": ids.task, "title": "T1: Literature review", "max_points": 100}
    assert len(body["review_history"]) == 1
    entry = body["review_history"][0]
    assert entry["action"] == "graded"
    assert entry["comment"] == "Graded with 85/100 points"

    r = grade(client, sid, ids.faculty, grade=90, feedback="Revised after discussion.")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["grade"] == 90
    assert [h["grade"] for h in body["review_history"]] == [85, 90]

    # grading to "graded" completes the task
    assert db.get(Task, ids.task).status == "completed"

    student_events = [e for recipient, e in live_push.events if recipient == ids.student]
    assert len(student_events) == 2
    assert student_events[-1]["message"] == "Your task has been graded: T1: Literature review (90/100 points)"
    assert student_events[-1]["priority"] == "high"


def test_out_of_range_grade_leaves_submission_unchanged(client, ids):
    sid = create_submission(client, ids)

    r = grade(client, sid, ids.faculty, grade=150, feedback="Solid analysis, missing citations.")
    assert r.status_code == 400
    assert r.json()["code"] == "grade_out_of_range"

    body = client.get(f"/submissions/{sid}", headers=auth_header(ids.faculty)).json()
    assert body["status"] == "submitted"
    assert body["grade"] is None
    assert body["review_history"] == []


def test_short_feedback_adds_no_history(client, ids):
    sid = create_submission(client, ids)

    r = grade(client, sid, ids.faculty, grade=70, feedback="ok")
    assert r.status_code == 400
    assert r.json()["code"] == "feedback_too_short"

    body = client.get(f"/submissions/{sid}", headers=auth_header(ids.faculty)).json()
    assert body["review_history"] == []


@pytest.mark.parametrize(
    "payload, code",
    [
        ({"feedback": "Solid analysis, missing citations."}, "grade_required"),
        ({"grade": "", "feedback": "Solid analysis, missing citations."}, "grade_required"),
        ({"grade": "eighty", "feedback": "Solid analysis, missing citations."}, "grade_invalid"),
        ({"grade": True, "feedback": "Solid analysis, missing citations."}, "grade_invalid"),
        ({"grade": -1, "feedback": "Solid analysis, missing citations."}, "grade_out_of_range"),
        ({"grade": 80, "feedback": "x" * 5001}, "feedback_too_long"),
        ({"grade": 80, "feedback": "Solid analysis, missing citations.", "status": "submitted"}, "invalid_status"),
    ],
)
def test_grade_validation_codes(client, ids, payload, code):
    sid = create_submission(client, ids)
    r = grade(client, sid, ids.faculty, **payload)
    assert r.status_code == 400, r.text
    assert r.json()["code"] == code


def test_other_faculty_cannot_grade(client, ids):
    sid = create_submission(client, ids)
    r = grade(client, sid, ids.faculty2, grade=80, feedback="Solid analysis, missing citations.")
    assert r.status_code == 403
    assert r.json()["code"] == "not_authorized"


def test_student_cannot_grade(client, ids):
    sid = create_submission(client, ids)
    r = grade(client, sid, ids.student, grade=100, feedback="I think this deserves full marks.")
    assert r.status_code == 403
    assert r.json()["code"] == "not_authorized"


def test_grading_deleted_submission_is_not_found(client, ids):
    sid = create_submission(client, ids)
    client.delete(f"/submissions/{sid}", headers=auth_header(ids.student))
    r = grade(client, sid, ids.faculty, grade=80, feedback="Solid analysis, missing citations.")
    assert r.status_code == 404


def test_max_points_is_read_at_grading_time(client, ids):
    sid = create_submission(client, ids)
    update_task(max_points=50)

    r = grade(client, sid, ids.faculty, grade=60, feedback="Solid analysis, missing citations.")
    assert r.status_code == 400
    assert r.json()["code"] == "grade_out_of_range"

    r = grade(client, sid, ids.faculty, grade=50, feedback="Solid analysis, missing citations.")
    assert r.status_code == 200
    assert r.json()["review_history"][0]["comment"] == "Graded with 50/50 points"


def test_repeated_grade_call_is_collapsed(client, ids, live_push):
    sid = create_submission(client, ids)
    payload = {"grade": 85, "feedback": "Solid analysis, missing citations."}

    assert grade(client, sid, ids.faculty, **payload).status_code == 200
    r = grade(client, sid, ids.faculty, **payload)
    assert r.status_code == 200
    assert len(r.json()["review_history"]) == 1

    student_events = [e for recipient, e in live_push.events if recipient == ids.student]
    assert len(student_events) == 1


def test_same_grade_after_window_is_recorded(db, ids, client):
    sid = create_submission(client, ids)
    reviewer = db.get(User, ids.faculty)
    dispatcher = NotificationDispatcher()
    first = datetime.now(timezone.utc)

    grading.grade_submission(db, sid, reviewer, 85, "Solid analysis, missing citations.", dispatcher=dispatcher, now=first)
    later = first + timedelta(minutes=5)
    submission = grading.grade_submission(
        db, sid, reviewer, 85, "Solid analysis, missing citations.", dispatcher=dispatcher, now=later
    )
    assert len(submission.reviews) == 2


def test_status_update_keeps_grade(client, ids):
    sid = create_submission(client, ids)
    grade(client, sid, ids.faculty, grade=85, feedback="Solid analysis, missing citations.")

    r = client.patch(
        f"/submissions/{sid}/status",
        headers=auth_header(ids.faculty),
        json={"status": "returned"},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "returned"
    assert body["grade"] == 85
    assert [h["action"] for h in body["review_history"]] == ["graded", "returned"]


def test_status_update_requires_valid_status(client, ids):
    sid = create_submission(client, ids)
    r = client.patch(f"/submissions/{sid}/status", headers=auth_header(ids.faculty), json={})
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_status"


def test_live_push_failure_does_not_undo_grade(db, ids, client):
    sid = create_submission(client, ids)
    reviewer = db.get(User, ids.faculty)

    class BrokenPush:
        def publish(self, recipient_id, event):
            raise ConnectionError("socket gone")

    submission = grading.grade_submission(
        db,
        sid,
        reviewer,
        85,
        "Solid analysis, missing citations.",
        dispatcher=NotificationDispatcher(live_push=BrokenPush()),
    )
    assert submission.status == "graded"

    db.expire_all()
    assert db.get(Submission, sid).grade == 85
    stored = db.query(Notification).filter(Notification.recipient_id == ids.student).count()
    assert stored == 1


class TestRules:
    def test_check_grade(self):
        assert grading.check_grade("42.5", 100) == 42.5
        assert grading.check_grade(0, 100) == 0
        assert grading.check_grade(100, 100) == 100
        with pytest.raises(GradeRequired):
            grading.check_grade(None, 100)
        with pytest.raises(GradeInvalid):
            grading.check_grade(float("nan"), 100)
        with pytest.raises(GradeInvalid):
            grading.check_grade(float("inf"), 100)
        with pytest.raises(GradeOutOfRange):
            grading.check_grade(100.5, 100)

    def test_check_feedback_strips_and_bounds(self):
        assert grading.check_feedback("  Good structure overall.  ") == "Good structure overall."
        assert grading.check_feedback("", required=False) is None
        with pytest.raises(FeedbackTooShort):
            grading.check_feedback("   short   ")

    def test_check_status(self):
        assert grading.check_status(None) == "graded"
        assert grading.check_status("under_review") == "under_review"
        with pytest.raises(InvalidStatus):
            grading.check_status("draft")
        with pytest.raises(InvalidStatus):
            grading.check_status(None, default=None)

    def test_check_reviewer(self, db, ids):
        task = submissions.get_task(db, ids.task)
        grading.check_reviewer(task, db.get(User, ids.faculty))
        with pytest.raises(NotAuthorized):
            grading.check_reviewer(task, db.get(User, ids.faculty2))
        with pytest.raises(NotAuthorized):
            grading.check_reviewer(task, db.get(User, ids.admin))


def test_notifications_are_durable(client, ids, db):
    sid = create_submission(client, ids)
    grade(client, sid, ids.faculty, grade=85, feedback="Solid analysis, missing citations.")

    kinds = {
        (n.recipient_type, n.kind)
        for n in db.query(Notification).all()
    }
    assert kinds == {("faculty", "task_submission"), ("student", "task_status_update")}
