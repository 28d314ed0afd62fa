from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from sqlalchemy.orm import Session

from classroom.core.current_user import get_current_user
from classroom.core.deps import get_blob_store, get_db, get_dispatcher
from classroom.core.errors import NotAssigned
from classroom.core.permissions import require_faculty, require_student
from classroom.models.user import User
from classroom.schemas.submission import (
    SubmissionCreate,
    SubmissionGradedRead,
    SubmissionGradeUpdate,
    SubmissionRead,
    SubmissionStats,
    SubmissionStatusUpdate,
    UploadResponse,
)
from classroom.services import grading, submissions
from classroom.services.blob_store import BlobStore
from classroom.services.notifications import NotificationDispatcher
from classroom.services.uploads import IncomingFile, store_batch
from classroom.uploads.policy import UploadPolicy

router = APIRouter()


@router.post(
    "/submissions/uploads",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
)
def upload_attachments(
    files: list[UploadFile] = File(default=[]),
    task_id: Optional[str] = Form(default=None),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    me: User = Depends(require_student),
):
    policy = UploadPolicy()
    if task_id:
        task = submissions.get_task(db, task_id)
        if not submissions.is_assigned(db, task, me.id):
            raise NotAssigned()
        policy = UploadPolicy.for_task(task)

    incoming = [
        IncomingFile(
            filename=f.filename or "",
            content=f.file.read(),
            content_type=f.content_type or "application/octet-stream",
        )
        for f in files
    ]
    return {"images": store_batch(blob_store, incoming, policy)}


@router.post(
    "/submissions",
    response_model=SubmissionRead,
    status_code=status.HTTP_201_CREATED,
)
def submit_task(
    payload: SubmissionCreate,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    me: User = Depends(get_current_user),
):
    return submissions.submit(
        db,
        me,
        payload.task_id,
        payload.comment,
        payload.collaborators,
        [a.model_dump() for a in payload.attachments],
        dispatcher=dispatcher,
    )


@router.get("/submissions/{submission_id}", response_model=SubmissionRead)
def get_submission(
    submission_id: str,
    request: Request,
    db: Session = Depends(get_db),
    me: User = Depends(get_current_user),
):
    return submissions.view_submission(
        db,
        submission_id,
        me,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


@router.put("/submissions/{submission_id}/grade", response_model=SubmissionGradedRead)
def grade_submission(
    submission_id: str,
    payload: SubmissionGradeUpdate,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    me: User = Depends(get_current_user),
):
    return grading.grade_submission(
        db,
        submission_id,
        me,
        payload.grade,
        payload.feedback,
        payload.status,
        dispatcher=dispatcher,
    )


@router.patch("/submissions/{submission_id}/status", response_model=SubmissionRead)
def update_submission_status(
    submission_id: str,
    payload: SubmissionStatusUpdate,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    me: User = Depends(get_current_user),
):
    return grading.update_status(
        db,
        submission_id,
        me,
        payload.status,
        payload.feedback,
        dispatcher=dispatcher,
    )


@router.delete("/submissions/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_submission(
    submission_id: str,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    me: User = Depends(get_current_user),
):
    submissions.soft_delete(db, submission_id, me, blob_store)


@router.get("/tasks/{task_id}/submissions", response_model=list[SubmissionRead])
def list_submissions_for_task(
    task_id: str,
    db: Session = Depends(get_db),
    faculty: User = Depends(require_faculty),
):
    return submissions.list_for_task(db, task_id, faculty)


@router.get("/tasks/{task_id}/submissions/stats", response_model=SubmissionStats)
def submission_stats_for_task(
    task_id: str,
    db: Session = Depends(get_db),
    faculty: User = Depends(require_faculty),
):
    return submissions.task_stats(db, task_id, faculty)
