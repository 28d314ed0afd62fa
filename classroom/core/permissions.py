from fastapi import Depends

from classroom.core.current_user import get_current_user
from classroom.core.errors import AccessDenied
from classroom.models.user import ROLE_ADMIN, ROLE_FACULTY, ROLE_STUDENT, User


def require_faculty(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ROLE_FACULTY:
        raise AccessDenied("Faculty role required")
    return current_user


def require_student(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ROLE_STUDENT:
        raise AccessDenied("Only students can do this")
    return current_user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ROLE_ADMIN:
        raise AccessDenied("Admin role required")
    return current_user
