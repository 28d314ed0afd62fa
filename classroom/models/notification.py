from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, Text

from classroom.core.identifiers import new_id
from classroom.db.base_class import Base

KIND_TASK_SUBMISSION = "task_submission"
KIND_TASK_STATUS_UPDATE = "task_status_update"

RECIPIENT_STUDENT = "student"
RECIPIENT_FACULTY = "faculty"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)

    # tagged recipient: the type is stored, never inferred
    recipient_id = Column(String(36), nullable=False)
    recipient_type = Column(String(16), nullable=False)

    kind = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    priority = Column(String(16), nullable=False, default="medium")

    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "read"),
    )
