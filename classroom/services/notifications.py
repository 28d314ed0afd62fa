"""
Notification dispatch.

``NotificationDispatcher.notify`` is called after the triggering write
has been committed. It stores a durable notification row and then tries
the live channel. Neither step can fail the caller: errors are logged
and ``notify`` returns ``None``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from classroom.core.errors import InvalidIdentifier, NotFound
from classroom.core.identifiers import normalize_id
from classroom.models.notification import (
    KIND_TASK_STATUS_UPDATE,
    KIND_TASK_SUBMISSION,
    RECIPIENT_FACULTY,
    RECIPIENT_STUDENT,
    Notification,
)
from classroom.services.live_push import LivePush, NullLivePush

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    "graded": "Your task has been graded",
    "returned": "Your task has been returned",
    "resubmission_required": "Your task needs revision",
    "under_review": "Your task is under review",
}


@dataclass(frozen=True)
class Recipient:
    kind: str  # RECIPIENT_STUDENT or RECIPIENT_FACULTY
    id: str

    @classmethod
    def student(cls, ref: Any) -> "Recipient":
        return cls(RECIPIENT_STUDENT, normalize_id(ref))

    @classmethod
    def faculty(cls, ref: Any) -> "Recipient":
        return cls(RECIPIENT_FACULTY, normalize_id(ref))


def _event(notification: Notification) -> dict[str, Any]:
    return {
        "type": "new_notification",
        "id": notification.id,
        "kind": notification.kind,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data,
        "priority": notification.priority,
        "created_at": notification.created_at.isoformat(),
    }


class NotificationDispatcher:
    def __init__(self, live_push: LivePush | None = None):
        self.live_push = live_push or NullLivePush()

    def notify(
        self,
        db: Session,
        kind: str,
        recipient: Recipient,
        payload: dict[str, Any],
        *,
        title: str,
        message: str,
        priority: str = "medium",
    ) -> Notification | None:
        notification = Notification(
            recipient_id=recipient.id,
            recipient_type=recipient.kind,
            kind=kind,
            title=title,
            message=message,
            data=payload,
            priority=priority,
            read=False,
            created_at=datetime.now(timezone.utc),
        )
        try:
            db.add(notification)
            db.commit()
            db.refresh(notification)
        except Exception:
            # the triggering write is already committed; only this row is lost
            db.rollback()
            logger.exception("Failed to store %s notification for %s %s", kind, recipient.kind, recipient.id)
            return None

        try:
            pushed = self.live_push.publish(recipient.id, _event(notification))
        except Exception:
            logger.warning("Live push failed for notification %s", notification.id, exc_info=True)
            pushed = False

        logger.info(
            "Notification %s (%s) stored for %s %s, live=%s",
            notification.id,
            kind,
            recipient.kind,
            recipient.id,
            pushed,
        )
        return notification

    def notify_task_submission(self, db: Session, *, submission, task, student) -> Notification | None:
        try:
            recipient = Recipient.faculty(task.faculty_id)
        except InvalidIdentifier:
            logger.error("Task %s has no valid owner; submission notice dropped", task.id)
            return None
        return self.notify(
            db,
            KIND_TASK_SUBMISSION,
            recipient,
            {
                "submission_id": submission.id,
                "task_id": task.id,
                "student_id": student.id,
                "student_name": student.full_name or student.email,
                "task_title": task.title,
                "attempt_number": submission.attempt_number,
                "action": "view_submission",
            },
            title="New Task Submission",
            message=f"{student.full_name or student.email} has submitted task: {task.title}",
        )

    def notify_task_status_update(self, db: Session, *, submission, task, reviewer) -> Notification | None:
        headline = STATUS_MESSAGES.get(submission.status, "Your task status has been updated")
        message = f"{headline}: {task.title}"
        if submission.grade is not None:
            message += f" ({submission.grade:g}/{task.max_points:g} points)"
        try:
            recipient = Recipient.student(submission.student_id)
        except InvalidIdentifier:
            logger.error("Submission %s has no valid student; status notice dropped", submission.id)
            return None
        return self.notify(
            db,
            KIND_TASK_STATUS_UPDATE,
            recipient,
            {
                "submission_id": submission.id,
                "task_id": task.id,
                "task_title": task.title,
                "status": submission.status,
                "grade": submission.grade,
                "max_points": task.max_points,
                "feedback": submission.feedback,
                "reviewer_id": reviewer.id,
                "reviewer_name": reviewer.full_name or reviewer.email,
                "action": "view_task",
            },
            title="Task Status Update",
            message=message,
            priority="high",
        )


# --- inbox ------------------------------------------------------------------


def list_notifications(db: Session, recipient_id: str, *, unread_only: bool = False, limit: int = 50, offset: int = 0):
    q = db.query(Notification).filter(Notification.recipient_id == recipient_id)
    if unread_only:
        q = q.filter(Notification.read.is_(False))
    return q.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()


def unread_count(db: Session, recipient_id: str) -> int:
    return (
        db.query(Notification)
        .filter(Notification.recipient_id == recipient_id, Notification.read.is_(False))
        .count()
    )


def mark_as_read(db: Session, notification_ref: Any, recipient_id: str) -> Notification:
    notification_id = normalize_id(notification_ref)
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.recipient_id == recipient_id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found")

    if not notification.read:
        notification.read = True
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, recipient_id: str) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_id == recipient_id, Notification.read.is_(False))
        .update({"read": True, "read_at": datetime.now(timezone.utc)}, synchronize_session=False)
    )
    db.commit()
    logger.info("Marked %s notifications as read for %s", updated, recipient_id)
    return updated
