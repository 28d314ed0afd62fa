from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
    text,
)
from sqlalchemy.orm import relationship

from classroom.core.identifiers import new_id
from classroom.db.base_class import Base

# submission statuses; "draft" exists in the workflow but is never persisted
STATUS_DRAFT = "draft"
STATUS_SUBMITTED = "submitted"
STATUS_UNDER_REVIEW = "under_review"
STATUS_GRADED = "graded"
STATUS_RETURNED = "returned"
STATUS_RESUBMISSION_REQUIRED = "resubmission_required"

SUBMISSION_STATUSES = (
    STATUS_SUBMITTED,
    STATUS_UNDER_REVIEW,
    STATUS_GRADED,
    STATUS_RETURNED,
    STATUS_RESUBMISSION_REQUIRED,
)

# statuses a reviewer may move a submission to
REVIEW_STATUSES = (
    STATUS_UNDER_REVIEW,
    STATUS_GRADED,
    STATUS_RETURNED,
    STATUS_RESUBMISSION_REQUIRED,
)

DELETE_REASON_WITHDRAWN = "withdrawn"
DELETE_REASON_SUPERSEDED = "superseded"


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String(36), primary_key=True, default=new_id)

    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    comment = Column(Text, nullable=False)
    collaborators = Column(JSON, nullable=False, default=list)
    # embedded attachment descriptors, see schemas.submission.AttachmentRead
    attachments = Column(JSON, nullable=False, default=list)

    status = Column(String(32), nullable=False, default=STATUS_SUBMITTED, index=True)
    attempt_number = Column(Integer, nullable=False, default=1)
    is_late = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # Grading fields (nullable until graded)
    grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)
    graded_by_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    # Soft delete
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by_id = Column(String(36), nullable=True)
    deleted_by_type = Column(String(16), nullable=True)
    delete_reason = Column(String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        # one live submission per (student, task); soft-deleted rows are ignored
        Index(
            "uq_submissions_active_student_task",
            "student_id",
            "task_id",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        UniqueConstraint("student_id", "task_id", "attempt_number", name="uq_submissions_student_task_attempt"),
        CheckConstraint("attempt_number >= 1", name="ck_submissions_attempt_positive"),
        CheckConstraint("grade IS NULL OR grade >= 0", name="ck_submissions_grade_non_negative"),
    )

    task = relationship("Task", back_populates="submissions")
    student = relationship("User", foreign_keys=[student_id])
    graded_by = relationship("User", foreign_keys=[graded_by_id])

    reviews = relationship(
        "SubmissionReview",
        back_populates="submission",
        order_by="SubmissionReview.id",
        cascade="all, delete-orphan",
    )
    views = relationship(
        "SubmissionView",
        back_populates="submission",
        order_by="SubmissionView.id",
        cascade="all, delete-orphan",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_graded(self) -> bool:
        return self.grade is not None


class SubmissionReview(Base):
    """One entry of a submission's review history. Rows are insert-only."""

    __tablename__ = "submission_reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    action = Column(String(32), nullable=False)
    status = Column(String(32), nullable=False)
    grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)

    submission = relationship("Submission", back_populates="reviews")


class SubmissionView(Base):
    __tablename__ = "submission_views"

    id = Column(Integer, primary_key=True, autoincrement=True)
    submission_id = Column(String(36), ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    viewer_id = Column(String(36), nullable=False)
    viewer_type = Column(String(16), nullable=False)
    viewed_at = Column(DateTime(timezone=True), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    submission = relationship("Submission", back_populates="views")


@event.listens_for(SubmissionReview, "before_update")
@event.listens_for(SubmissionView, "before_update")
def _history_is_append_only(mapper, connection, target):
    raise ValueError(f"{type(target).__name__} rows are append-only")
