"""one active submission per student and task

Revision ID: 8f2d4b6e1a57
Revises: 3c1e7a9d2b40
Create Date: 2026-10-05 11:40:02.918332

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8f2d4b6e1a57'
down_revision: Union[str, Sequence[str], None] = '3c1e7a9d2b40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    duplicates = bind.execute(
        sa.text(
            "SELECT student_id, task_id, COUNT(*) FROM submissions "
            "WHERE deleted_at IS NULL GROUP BY student_id, task_id HAVING COUNT(*) > 1"
        )
    ).fetchall()
    if duplicates:
        raise RuntimeError(
            f"{len(duplicates)} student/task pair(s) have more than one active submission; "
            "soft-delete the extra rows before upgrading"
        )

    op.create_index(
        "uq_submissions_active_student_task",
        "submissions",
        ["student_id", "task_id"],
        unique=True,
        sqlite_where=sa.text("deleted_at IS NULL"),
        postgresql_where=sa.text("deleted_at IS NULL"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("uq_submissions_active_student_task", table_name="submissions")
