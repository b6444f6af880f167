"""Create employees and notifications tables.

Revision ID: 001
Create Date: 2025-12-03 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create employees and notifications tables with their indexes."""

    op.create_table(
        "employees",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("position", sa.String(50), nullable=False),
        sa.Column("salary", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_employees_created_at", "employees", ["created_at"])

    notification_type = sa.Enum(
        "employee_created",
        "employee_failed",
        "employee_updated",
        "employee_deleted",
        "system",
        name="notification_type",
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", notification_type, nullable=False, server_default="system"),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("job_id", sa.String(64), nullable=True, comment="Reference to background job ID"),
        sa.Column("metadata", sa.JSON(), nullable=True, comment="Additional notification data"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_read", "notifications", ["read"])
    op.create_index("ix_notifications_type", "notifications", ["type"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index("ix_notifications_job_id", "notifications", ["job_id"])
    op.create_index(
        "uq_notifications_job_outcome",
        "notifications",
        ["job_id", "type", "title"],
        unique=True,
    )


def downgrade() -> None:
    """Drop notifications and employees tables."""
    op.drop_index("uq_notifications_job_outcome", table_name="notifications")
    op.drop_index("ix_notifications_job_id", table_name="notifications")
    op.drop_index("ix_notifications_created_at", table_name="notifications")
    op.drop_index("ix_notifications_type", table_name="notifications")
    op.drop_index("ix_notifications_read", table_name="notifications")
    op.drop_table("notifications")
    sa.Enum(name="notification_type").drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_employees_created_at", table_name="employees")
    op.drop_table("employees")
