"""Initial timedesk schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

primary_role = postgresql.ENUM("SUPERADMIN", "ADMIN", "EMPLOYEE", name="primary_role", create_type=False)
task_status = postgresql.ENUM("PENDING", "INPROGRESS", "DONE", name="task_status", create_type=False)
leave_type = postgresql.ENUM("PAID", "CASUAL", "SICK", "UNPAID", name="leave_type", create_type=False)
leave_status = postgresql.ENUM("PENDING", "APPROVED", "REJECTED", name="leave_status", create_type=False)
manual_request_status = postgresql.ENUM(
    "PENDING",
    "ACKED",
    "COMPLETED",
    "CANCELLED",
    name="manual_request_status",
    create_type=False,
)
audit_actor_type = postgresql.ENUM("EMPLOYEE", "ADMIN", "SYSTEM", name="audit_actor_type", create_type=False)

ENUMS = (primary_role, task_status, leave_type, leave_status, manual_request_status, audit_actor_type)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("primary_role", primary_role, nullable=False),
        sa.Column("sub_roles", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("attendance_start_date", sa.Date(), nullable=True),
        sa.Column("reporting_person_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["reporting_person_id"], ["employees.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_employees_email", "employees", ["email"], unique=True)

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("first_punch_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_punch_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_punch_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("worked_ms", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("location_label", sa.String(length=255), nullable=True),
        sa.Column("auto_punch_out", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("auto_punch_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_punch_last_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("auto_punch_resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("employee_id", "work_date", name="uq_attendance_employee_day"),
    )
    op.create_index("ix_attendance_records_employee_id", "attendance_records", ["employee_id"], unique=False)
    op.create_index("ix_attendance_records_work_date", "attendance_records", ["work_date"], unique=False)

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("is_personal", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["owner_id"], ["employees.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"], unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("parent_task_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("status", task_status, nullable=False),
        sa.Column("is_meeting_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("time_spent_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["created_by_id"], ["employees.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"], unique=False)
    op.create_index("ix_tasks_parent_task_id", "tasks", ["parent_task_id"], unique=False)

    op.create_table(
        "task_assignees",
        sa.Column("task_id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), primary_key=True, nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "time_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("minutes", sa.Integer(), nullable=False),
        sa.Column("note", sa.String(length=1000), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.CheckConstraint("minutes > 0", name="ck_time_logs_minutes_positive"),
    )
    op.create_index("ix_time_logs_task_id", "time_logs", ["task_id"], unique=False)
    op.create_index("ix_time_logs_employee_id", "time_logs", ["employee_id"], unique=False)
    op.create_index("ix_time_logs_work_date", "time_logs", ["work_date"], unique=False)

    op.create_table(
        "leaves",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("approver_id", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("type", leave_type, nullable=False),
        sa.Column("status", leave_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("reason", sa.String(length=1000), nullable=True),
        sa.Column("admin_message", sa.String(length=1000), nullable=True),
        sa.Column("resolved_issue", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approver_id"], ["employees.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_leaves_employee_id", "leaves", ["employee_id"], unique=False)
    op.create_index("ix_leaves_approver_id", "leaves", ["approver_id"], unique=False)

    op.create_table(
        "manual_attendance_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("note", sa.String(length=1000), nullable=False),
        sa.Column("admin_note", sa.String(length=1000), nullable=False),
        sa.Column("status", manual_request_status, nullable=False),
        sa.Column(
            "requested_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["resolved_by_id"], ["employees.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_manual_attendance_requests_employee_id",
        "manual_attendance_requests",
        ["employee_id"],
        unique=False,
    )
    op.create_index(
        "ix_manual_attendance_requests_work_date",
        "manual_attendance_requests",
        ["work_date"],
        unique=False,
    )
    op.create_index(
        "ix_manual_attendance_requests_status",
        "manual_attendance_requests",
        ["status"],
        unique=False,
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column(
            "ts_utc",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", sa.JSON(), nullable=False),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("manual_attendance_requests")
    op.drop_table("leaves")
    op.drop_table("time_logs")
    op.drop_table("task_assignees")
    op.drop_table("tasks")
    op.drop_table("projects")
    op.drop_table("attendance_records")
    op.drop_index("ix_employees_email", table_name="employees")
    op.drop_table("employees")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
