"""
Submission aggregate: creation, lookups, soft delete and restore.

The "one live submission per (student, task)" rule is enforced by the
partial unique index on ``submissions``. The pre-check below only gives a
friendlier error on the common path; a concurrent insert that slips past
it fails on commit and is reported the same way.
"""
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from classroom.core.config import COMMENT_MAX_LENGTH, COMMENT_MIN_LENGTH, MAX_FILENAME_LENGTH
from classroom.core.errors import (
    AccessDenied,
    AlreadySubmitted,
    AttemptLimitReached,
    DeadlinePassed,
    InvalidAttachment,
    InvalidCollaborator,
    InvalidComment,
    MissingFields,
    NotAssigned,
    NotFound,
    TaskNotFound,
)
from classroom.core.identifiers import normalize_id
from classroom.models.submission import (
    DELETE_REASON_SUPERSEDED,
    DELETE_REASON_WITHDRAWN,
    STATUS_RESUBMISSION_REQUIRED,
    STATUS_SUBMITTED,
    Submission,
    SubmissionView,
)
from classroom.models.task import Task, task_teams
from classroom.models.team import TeamMember
from classroom.models.user import ROLE_ADMIN, ROLE_FACULTY, ROLE_STUDENT, User
from classroom.services.blob_store import BlobStore, delete_blobs
from classroom.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

EMAIL_ADAPTER = TypeAdapter(EmailStr)

ATTACHMENT_FIELDS = ("blob_id", "url", "secure_url", "original_name", "size_bytes", "format")


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_late(task: Task, submitted_at: datetime) -> bool:
    if task.due_at is None:
        return False
    return as_utc(submitted_at) > as_utc(task.due_at)


# --- input validation -------------------------------------------------------


def validate_comment(comment: str | None) -> str:
    if comment is None or not comment.strip():
        raise MissingFields("Submission comment is required")
    comment = comment.strip()
    if len(comment) < COMMENT_MIN_LENGTH:
        raise InvalidComment(f"Comment must be at least {COMMENT_MIN_LENGTH} characters")
    if len(comment) > COMMENT_MAX_LENGTH:
        raise InvalidComment(f"Comment cannot exceed {COMMENT_MAX_LENGTH} characters")
    return comment


def normalize_collaborators(collaborators: Iterable[str] | None) -> list[str]:
    """Lower-case, trim, drop blanks and duplicates; reject malformed emails."""
    result: list[str] = []
    for raw in collaborators or []:
        email = (raw or "").strip().lower()
        if not email:
            continue
        try:
            EMAIL_ADAPTER.validate_python(email)
        except ValidationError:
            raise InvalidCollaborator(f"Invalid email format for collaborator: {email}") from None
        if email not in result:
            result.append(email)
    return result


def validate_attachments(attachments: Iterable[dict[str, Any]] | None, now: datetime) -> list[dict[str, Any]]:
    """
    Check each descriptor came out of a completed upload.

    Placeholders (no blob id), entries flagged with a non-completed
    upload status and repeated blob ids are rejected.
    """
    result: list[dict[str, Any]] = []
    seen: set[str] = set()
    for index, item in enumerate(attachments or []):
        status = item.get("status")
        if status is not None and status != "completed":
            raise InvalidAttachment(f"Attachment {index} is not uploaded (status: {status})")

        missing = [f for f in ATTACHMENT_FIELDS if item.get(f) in (None, "")]
        if missing:
            raise InvalidAttachment(f"Attachment {index} is missing {', '.join(missing)}")

        blob_id = str(item["blob_id"])
        if blob_id in seen:
            raise InvalidAttachment(f"Attachment {blob_id} is listed twice")
        seen.add(blob_id)

        name = str(item["original_name"])
        if len(name) > MAX_FILENAME_LENGTH:
            raise InvalidAttachment(f"Attachment {index} has an overlong name")

        size = item["size_bytes"]
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise InvalidAttachment(f"Attachment {index} has an invalid size")

        uploaded_at = item.get("uploaded_at") or now
        if isinstance(uploaded_at, datetime):
            uploaded_at = uploaded_at.isoformat()

        result.append(
            {
                "blob_id": blob_id,
                "url": str(item["url"]),
                "secure_url": str(item["secure_url"]),
                "original_name": name,
                "size_bytes": size,
                "format": str(item["format"]).lower(),
                "uploaded_at": uploaded_at,
            }
        )
    return result


# --- lookups ----------------------------------------------------------------


def get_task(db: Session, task_ref: Any) -> Task:
    task_id = normalize_id(task_ref)
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise TaskNotFound()
    return task


def is_assigned(db: Session, task: Task, student_id: str) -> bool:
    return (
        db.query(TeamMember)
        .join(task_teams, task_teams.c.team_id == TeamMember.team_id)
        .filter(task_teams.c.task_id == task.id, TeamMember.student_id == student_id)
        .first()
        is not None
    )


def find_active(db: Session, student_id: str, task_id: str) -> Submission | None:
    return (
        db.query(Submission)
        .filter(
            Submission.student_id == student_id,
            Submission.task_id == task_id,
            Submission.deleted_at.is_(None),
        )
        .first()
    )


def _last_attempt(db: Session, student_id: str, task_id: str) -> int:
    # soft-deleted attempts still count
    value = (
        db.query(func.max(Submission.attempt_number))
        .filter(Submission.student_id == student_id, Submission.task_id == task_id)
        .scalar()
    )
    return value or 0


def get_submission(db: Session, submission_ref: Any, *, include_deleted: bool = False) -> Submission:
    submission_id = normalize_id(submission_ref)
    q = db.query(Submission).filter(Submission.id == submission_id)
    if not include_deleted:
        q = q.filter(Submission.deleted_at.is_(None))
    submission = q.first()
    if not submission:
        raise NotFound()
    return submission


def ensure_can_view(submission: Submission, user: User) -> None:
    if user.role == ROLE_ADMIN:
        return
    if user.role == ROLE_STUDENT and submission.student_id == user.id:
        return
    if user.role == ROLE_FACULTY and submission.task.faculty_id == user.id:
        return
    raise AccessDenied()


def ensure_task_owner(task: Task, user: User) -> None:
    if user.role != ROLE_FACULTY or task.faculty_id != user.id:
        raise AccessDenied()


def view_submission(
    db: Session,
    submission_ref: Any,
    viewer: User,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Submission:
    """Return a submission visible to ``viewer`` and record the view."""
    submission = get_submission(db, submission_ref)
    ensure_can_view(submission, viewer)

    db.add(
        SubmissionView(
            submission_id=submission.id,
            viewer_id=viewer.id,
            viewer_type=viewer.role,
            viewed_at=datetime.now(timezone.utc),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
        )
    )
    db.commit()
    db.refresh(submission)
    return submission


def list_for_task(db: Session, task_ref: Any, user: User, *, include_deleted: bool = False) -> list[Submission]:
    task = get_task(db, task_ref)
    if include_deleted:
        if user.role != ROLE_ADMIN:
            raise AccessDenied()
    else:
        ensure_task_owner(task, user)

    q = db.query(Submission).filter(Submission.task_id == task.id)
    if not include_deleted:
        q = q.filter(Submission.deleted_at.is_(None))
    return q.order_by(Submission.submitted_at.desc(), Submission.attempt_number.desc()).all()


def task_stats(db: Session, task_ref: Any, user: User) -> dict[str, Any]:
    task = get_task(db, task_ref)
    ensure_task_owner(task, user)

    total, graded, late, average_grade, average_attempts = (
        db.query(
            func.count(Submission.id),
            func.count(Submission.grade),
            func.coalesce(func.sum(case((Submission.is_late.is_(True), 1), else_=0)), 0),
            func.avg(Submission.grade),
            func.avg(Submission.attempt_number),
        )
        .filter(Submission.task_id == task.id, Submission.deleted_at.is_(None))
        .one()
    )
    return {
        "task_id": task.id,
        "total_submissions": total,
        "graded_submissions": graded,
        "late_submissions": int(late or 0),
        "average_grade": float(average_grade) if average_grade is not None else None,
        "average_attempts": float(average_attempts) if average_attempts is not None else None,
    }


# --- lifecycle --------------------------------------------------------------


def submit(
    db: Session,
    student: User,
    task_ref: Any,
    comment: str | None,
    collaborators: Iterable[str] | None = None,
    attachments: Iterable[dict[str, Any]] | None = None,
    *,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> Submission:
    if task_ref in (None, ""):
        raise MissingFields()
    comment = validate_comment(comment)

    task = get_task(db, task_ref)
    if student.role != ROLE_STUDENT or not is_assigned(db, task, student.id):
        raise NotAssigned()

    now = now or datetime.now(timezone.utc)
    collaborators = normalize_collaborators(collaborators)
    attachments = validate_attachments(attachments, now)

    late = is_late(task, now)
    if late and not task.allow_late_submissions:
        raise DeadlinePassed()

    existing = find_active(db, student.id, task.id)
    if existing is not None and existing.status != STATUS_RESUBMISSION_REQUIRED:
        raise AlreadySubmitted()

    attempt_number = _last_attempt(db, student.id, task.id) + 1
    if attempt_number > task.max_attempts:
        raise AttemptLimitReached(f"Attempt limit of {task.max_attempts} reached for this task")

    if existing is not None:
        # resubmission: the previous attempt is retired in the same transaction
        existing.deleted_at = now
        existing.deleted_by_id = student.id
        existing.deleted_by_type = ROLE_STUDENT
        existing.delete_reason = DELETE_REASON_SUPERSEDED

    submission = Submission(
        task_id=task.id,
        student_id=student.id,
        comment=comment,
        collaborators=collaborators,
        attachments=attachments,
        status=STATUS_SUBMITTED,
        attempt_number=attempt_number,
        is_late=late,
        submitted_at=now,
    )

    try:
        if existing is not None:
            db.flush()
        db.add(submission)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Concurrent submission rejected for student %s task %s", student.id, task.id)
        raise AlreadySubmitted() from None

    db.refresh(submission)
    logger.info(
        "Submission %s created: student=%s task=%s attempt=%s late=%s attachments=%s",
        submission.id,
        student.id,
        task.id,
        attempt_number,
        late,
        len(attachments),
    )

    dispatcher.notify_task_submission(db, submission=submission, task=task, student=student)
    return submission


def soft_delete(db: Session, submission_ref: Any, actor: User, blob_store: BlobStore) -> Submission:
    submission = get_submission(db, submission_ref)
    if actor.role != ROLE_ADMIN and not (actor.role == ROLE_STUDENT and submission.student_id == actor.id):
        raise AccessDenied()

    submission.deleted_at = datetime.now(timezone.utc)
    submission.deleted_by_id = actor.id
    submission.deleted_by_type = actor.role
    submission.delete_reason = DELETE_REASON_WITHDRAWN
    db.commit()
    db.refresh(submission)

    blob_ids = [a["blob_id"] for a in submission.attachments or []]
    failed = delete_blobs(blob_store, blob_ids)
    logger.info(
        "Submission %s soft-deleted by %s %s; blobs removed=%s failed=%s",
        submission.id,
        actor.role,
        actor.id,
        len(blob_ids) - len(failed),
        len(failed),
    )
    return submission


def restore(db: Session, submission_ref: Any) -> Submission:
    submission = get_submission(db, submission_ref, include_deleted=True)
    if submission.deleted_at is None:
        return submission

    submission.deleted_at = None
    submission.deleted_by_id = None
    submission.deleted_by_type = None
    submission.delete_reason = None
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadySubmitted("Another submission for this task is active") from None

    db.refresh(submission)
    logger.info("Submission %s restored", submission.id)
    return submission
