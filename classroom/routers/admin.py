from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from classroom.core.deps import get_db
from classroom.core.permissions import require_admin
from classroom.models.user import User
from classroom.schemas.submission import SubmissionAuditRead
from classroom.services import submissions

router = APIRouter()


@router.get("/submissions/{submission_id}", response_model=SubmissionAuditRead)
def audit_submission(
    submission_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return submissions.get_submission(db, submission_id, include_deleted=True)


@router.get("/tasks/{task_id}/submissions", response_model=list[SubmissionAuditRead])
def audit_task_submissions(
    task_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return submissions.list_for_task(db, task_id, admin, include_deleted=True)


@router.post("/submissions/{submission_id}/restore", response_model=SubmissionAuditRead)
def restore_submission(
    submission_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return submissions.restore(db, submission_id)
