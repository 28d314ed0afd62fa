from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classroom.core.identifiers import new_id
from classroom.db.base_class import Base

ROLE_STUDENT = "student"
ROLE_FACULTY = "faculty"
ROLE_ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    full_name: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(50), nullable=False, default=ROLE_STUDENT)

    memberships = relationship(
        "TeamMember", back_populates="student", cascade="all, delete-orphan"
    )
