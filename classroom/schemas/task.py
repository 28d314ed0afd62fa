from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from classroom.core.config import DEFAULT_ALLOWED_FILE_TYPES, DEFAULT_MAX_FILE_SIZE


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    due_at: Optional[datetime] = None
    max_points: float = Field(default=100, gt=0)
    max_attempts: int = Field(default=1, ge=1, le=10)
    allow_late_submissions: bool = False
    allowed_file_types: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_FILE_TYPES))
    max_file_size: int = Field(default=DEFAULT_MAX_FILE_SIZE, gt=0)
    team_ids: list[str] = Field(default_factory=list)


class TaskRead(BaseModel):
    id: str
    faculty_id: str
    title: str
    description: Optional[str]
    due_at: Optional[datetime]
    max_points: float
    max_attempts: int
    allow_late_submissions: bool
    allowed_file_types: str
    max_file_size: int
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class TaskSummary(BaseModel):
    id: str
    title: str
    max_points: float

    class Config:
        from_attributes = True
