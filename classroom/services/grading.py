"""
Grading engine.

The rules (``check_grade``, ``check_feedback``, ``apply_review``) work on
plain values and the ORM entity only. ``grade_submission`` is the
application step around them: it loads the submission, reads the task's
``max_points`` fresh at call time, checks the reviewer, then commits and
notifies.
"""
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.orm import Session

from classroom.core.config import DUPLICATE_GRADE_WINDOW_SECONDS, FEEDBACK_MAX_LENGTH, FEEDBACK_MIN_LENGTH
from classroom.core.errors import (
    FeedbackTooLong,
    FeedbackTooShort,
    GradeInvalid,
    GradeOutOfRange,
    GradeRequired,
    InvalidStatus,
    NotAuthorized,
)
from classroom.models.submission import (
    REVIEW_STATUSES,
    STATUS_GRADED,
    STATUS_UNDER_REVIEW,
    Submission,
    SubmissionReview,
)
from classroom.models.task import TASK_COMPLETED, Task
from classroom.models.user import ROLE_FACULTY, User
from classroom.services.notifications import NotificationDispatcher
from classroom.services.submissions import as_utc, get_submission

logger = logging.getLogger(__name__)

# review-history action recorded for each target status
ACTIONS = {
    STATUS_UNDER_REVIEW: "reviewed",
    STATUS_GRADED: "graded",
    "returned": "returned",
    "resubmission_required": "returned",
}

# grading into these statuses completes the task
COMPLETING_STATUSES = (STATUS_GRADED,)


def check_reviewer(task: Task, reviewer: User) -> None:
    if reviewer.role != ROLE_FACULTY or task.faculty_id != reviewer.id:
        raise NotAuthorized()


def check_grade(value: Any, max_points: float) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise GradeRequired()
    if isinstance(value, bool):
        raise GradeInvalid()
    try:
        grade = float(value)
    except (TypeError, ValueError):
        raise GradeInvalid() from None
    if not math.isfinite(grade):
        raise GradeInvalid()
    if grade < 0:
        raise GradeOutOfRange("Grade cannot be negative")
    if grade > max_points:
        raise GradeOutOfRange(f"Grade cannot exceed {max_points:g} points")
    return grade


def check_feedback(feedback: str | None, *, required: bool = True) -> str | None:
    text = (feedback or "").strip()
    if not text and not required:
        return None
    if len(text) < FEEDBACK_MIN_LENGTH:
        raise FeedbackTooShort(f"Feedback must be at least {FEEDBACK_MIN_LENGTH} characters long")
    if len(text) > FEEDBACK_MAX_LENGTH:
        raise FeedbackTooLong(f"Feedback cannot exceed {FEEDBACK_MAX_LENGTH} characters")
    return text


def check_status(status: str | None, default: str | None = STATUS_GRADED) -> str:
    status = status or default
    if status not in REVIEW_STATUSES:
        raise InvalidStatus(f"Status must be one of: {', '.join(REVIEW_STATUSES)}")
    return status


def is_repeat(submission: Submission, reviewer: User, grade: float | None, feedback: str | None,
              status: str, now: datetime) -> bool:
    """True when the latest review is the same call, made moments ago."""
    if not submission.reviews:
        return False
    last = submission.reviews[-1]
    return (
        last.reviewer_id == reviewer.id
        and last.grade == grade
        and last.feedback == feedback
        and last.status == status
        and now - as_utc(last.created_at) <= timedelta(seconds=DUPLICATE_GRADE_WINDOW_SECONDS)
    )


def apply_review(
    submission: Submission,
    reviewer: User,
    *,
    status: str,
    now: datetime,
    grade: float | None = None,
    feedback: str | None = None,
    comment: str | None = None,
) -> SubmissionReview:
    """Mutate ``submission`` in place and append one review-history entry."""
    if grade is not None:
        submission.grade = grade
        submission.graded_at = now
        submission.graded_by_id = reviewer.id
    if feedback is not None:
        submission.feedback = feedback
    submission.status = status

    entry = SubmissionReview(
        reviewer_id=reviewer.id,
        action=ACTIONS.get(status, "reviewed"),
        status=status,
        grade=grade,
        feedback=feedback,
        comment=comment,
        created_at=now,
    )
    submission.reviews.append(entry)
    return entry


def grade_submission(
    db: Session,
    submission_ref: Any,
    reviewer: User,
    grade: Any,
    feedback: str | None,
    status: str | None = None,
    *,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> Submission:
    submission = get_submission(db, submission_ref)
    task = submission.task
    db.refresh(task)  # max_points is read at grading time, never cached

    check_reviewer(task, reviewer)
    value = check_grade(grade, task.max_points)
    feedback = check_feedback(feedback)
    status = check_status(status)

    now = now or datetime.now(timezone.utc)
    if is_repeat(submission, reviewer, value, feedback, status, now):
        logger.info("Repeated grade call for submission %s ignored", submission.id)
        return submission

    apply_review(
        submission,
        reviewer,
        status=status,
        now=now,
        grade=value,
        feedback=feedback,
        comment=f"Graded with {value:g}/{task.max_points:g} points",
    )
    if status in COMPLETING_STATUSES and task.status != TASK_COMPLETED:
        task.status = TASK_COMPLETED

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(submission)
    logger.info(
        "Submission %s graded %s/%s by %s (status=%s, reviews=%s)",
        submission.id,
        value,
        task.max_points,
        reviewer.id,
        status,
        len(submission.reviews),
    )

    dispatcher.notify_task_status_update(db, submission=submission, task=task, reviewer=reviewer)
    return submission


def update_status(
    db: Session,
    submission_ref: Any,
    reviewer: User,
    status: str | None,
    feedback: str | None = None,
    *,
    dispatcher: NotificationDispatcher,
    now: datetime | None = None,
) -> Submission:
    """Move a submission to another review status without changing its grade."""
    submission = get_submission(db, submission_ref)
    task = submission.task

    check_reviewer(task, reviewer)
    status = check_status(status, default=None)
    feedback = check_feedback(feedback, required=False)

    now = now or datetime.now(timezone.utc)
    if is_repeat(submission, reviewer, None, feedback, status, now):
        logger.info("Repeated status call for submission %s ignored", submission.id)
        return submission

    apply_review(
        submission,
        reviewer,
        status=status,
        now=now,
        feedback=feedback,
        comment=f"Status changed to {status}",
    )

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(submission)
    logger.info("Submission %s moved to %s by %s", submission.id, status, reviewer.id)

    dispatcher.notify_task_status_update(db, submission=submission, task=task, reviewer=reviewer)
    return submission
