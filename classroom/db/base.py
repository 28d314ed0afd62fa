from classroom.db.base_class import Base

# import models so SQLAlchemy registers them on Base.metadata
from classroom.models import notification, submission, task, team, user  # noqa: F401

__all__ = ["Base"]
