from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field

from classroom.schemas.task import TaskSummary
from classroom.schemas.user import UserSummary


class AttachmentIn(BaseModel):
    # accept the blob store's own naming as well
    blob_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("blob_id", "public_id"))
    url: Optional[str] = None
    secure_url: Optional[str] = None
    original_name: Optional[str] = None
    size_bytes: Optional[int] = Field(default=None, validation_alias=AliasChoices("size_bytes", "size"))
    format: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    status: Optional[str] = None


class AttachmentRead(BaseModel):
    blob_id: str
    url: str
    secure_url: str
    original_name: str
    size_bytes: int
    format: str
    uploaded_at: datetime


class UploadResponse(BaseModel):
    images: list[AttachmentRead]


class SubmissionCreate(BaseModel):
    task_id: Optional[Any] = None
    comment: Optional[str] = None
    collaborators: list[str] = Field(default_factory=list)
    attachments: list[AttachmentIn] = Field(default_factory=list)


class ReviewEntryRead(BaseModel):
    reviewer_id: str
    action: str
    status: str
    grade: Optional[float] = None
    feedback: Optional[str] = None
    comment: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SubmissionRead(BaseModel):
    id: str
    task_id: str
    student_id: str
    comment: str
    collaborators: list[str]
    attachments: list[AttachmentRead]
    status: str
    attempt_number: int
    is_late: bool
    submitted_at: datetime
    grade: Optional[float] = None
    feedback: Optional[str] = None
    graded_at: Optional[datetime] = None
    graded_by_id: Optional[str] = None
    review_history: list[ReviewEntryRead] = Field(default_factory=list, validation_alias="reviews")
    student: Optional[UserSummary] = None

    class Config:
        from_attributes = True
        populate_by_name = True


class SubmissionAuditRead(SubmissionRead):
    deleted_at: Optional[datetime] = None
    deleted_by_id: Optional[str] = None
    deleted_by_type: Optional[str] = None
    delete_reason: Optional[str] = None


class SubmissionGradeUpdate(BaseModel):
    # left untyped so that missing / non-numeric grades get the grading engine's error codes
    grade: Any = None
    feedback: Optional[str] = None
    status: Optional[str] = None


class SubmissionStatusUpdate(BaseModel):
    status: Optional[str] = None
    feedback: Optional[str] = None


class SubmissionGradedRead(SubmissionRead):
    graded_by: Optional[UserSummary] = None
    task: TaskSummary


class SubmissionStats(BaseModel):
    task_id: str
    total_submissions: int
    graded_submissions: int
    late_submissions: int
    average_grade: Optional[float] = None
    average_attempts: Optional[float] = None
