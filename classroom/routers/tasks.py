from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from classroom.core.current_user import get_current_user
from classroom.core.deps import get_db
from classroom.core.permissions import require_faculty
from classroom.models.user import User
from classroom.schemas.task import TaskCreate, TaskRead
from classroom.services import tasks

router = APIRouter()


@router.post("/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    faculty: User = Depends(require_faculty),
):
    data = payload.model_dump(exclude={"team_ids", "allowed_file_types"})
    data["allowed_file_types"] = ",".join(t.strip().lower().lstrip(".") for t in payload.allowed_file_types if t.strip())
    return tasks.create_task(db, faculty, data, payload.team_ids)


@router.get("/tasks/{task_id}", response_model=TaskRead)
def get_task(
    task_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return tasks.get_task_for_user(db, task_id, current_user)
