import logging
from typing import Any

from sqlalchemy.orm import Session

from classroom.core.errors import AccessDenied, NotFound
from classroom.core.identifiers import normalize_id
from classroom.models.task import Task
from classroom.models.team import Team
from classroom.models.user import ROLE_ADMIN, ROLE_FACULTY, User
from classroom.services.submissions import get_task, is_assigned

logger = logging.getLogger(__name__)


def create_task(db: Session, faculty: User, data: dict[str, Any], team_refs: list[Any]) -> Task:
    if faculty.role != ROLE_FACULTY:
        raise AccessDenied("Only faculty can create tasks")

    team_ids = [normalize_id(ref) for ref in team_refs]
    teams = db.query(Team).filter(Team.id.in_(team_ids)).all() if team_ids else []
    if len(teams) != len(set(team_ids)):
        raise NotFound("Team not found")
    if any(team.faculty_id != faculty.id for team in teams):
        raise AccessDenied("Tasks can only be assigned to your own teams")

    task = Task(faculty_id=faculty.id, teams=teams, **data)
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("Task %s created by %s for %s team(s)", task.id, faculty.id, len(teams))
    return task


def get_task_for_user(db: Session, task_ref: Any, user: User) -> Task:
    task = get_task(db, task_ref)
    if user.role == ROLE_ADMIN or task.faculty_id == user.id:
        return task
    if is_assigned(db, task, user.id):
        return task
    raise AccessDenied()
