from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from classroom.core.config import DEFAULT_ALLOWED_FILE_TYPES, DEFAULT_MAX_FILE_SIZE
from classroom.core.identifiers import new_id
from classroom.db.base_class import Base

TASK_ACTIVE = "active"
TASK_COMPLETED = "completed"

task_teams = Table(
    "task_teams",
    Base.metadata,
    Column("task_id", String(36), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("team_id", String(36), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    faculty_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    due_at = Column(DateTime(timezone=True), nullable=True)

    max_points = Column(Float, nullable=False, default=100)
    max_attempts = Column(Integer, nullable=False, default=1)
    allow_late_submissions = Column(Boolean, nullable=False, default=False)
    allowed_file_types = Column(String(255), nullable=False, default=",".join(DEFAULT_ALLOWED_FILE_TYPES))
    max_file_size = Column(Integer, nullable=False, default=DEFAULT_MAX_FILE_SIZE)

    status = Column(String(32), nullable=False, default=TASK_ACTIVE)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    faculty = relationship("User")
    teams = relationship("Team", secondary=task_teams)
    submissions = relationship("Submission", back_populates="task")

    @property
    def allowed_types(self) -> frozenset[str]:
        return frozenset(
            t.strip().lower().lstrip(".") for t in (self.allowed_file_types or "").split(",") if t.strip()
        )
