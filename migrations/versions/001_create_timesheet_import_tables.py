"""Create master data, timesheet, approval and CSV import log tables.

Revision ID: 001
Create Date: 2024-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create all tables with constraints and indexes."""

    employee_role = sa.Enum("LEVEL1", "LEVEL2", "LEVEL3", name="employee_role")
    project_status = sa.Enum("ACTIVE", "COMPLETED", "SUSPENDED", "CANCELLED", name="project_status")
    timesheet_status = sa.Enum("DRAFT", "SUBMITTED", "APPROVED", name="timesheet_status")
    approval_status = sa.Enum("PENDING", "APPROVED", "REJECTED", name="approval_status")
    csv_data_type = sa.Enum("EMPLOYEE", "PROJECT", "STAGE", "TIMESHEET", name="csv_data_type")
    csv_import_status = sa.Enum("PROCESSING", "SUCCESS", "PARTIAL", "FAILED", name="csv_import_status")

    # Master data
    op.create_table(
        "employees",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("employee_id", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("role", employee_role, nullable=False, server_default="LEVEL3"),
        sa.Column("position", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_employees_employee_id", "employees", ["employee_id"], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("nickname", sa.String(100), nullable=True),
        sa.Column("start_date", sa.Date, nullable=True),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("status", project_status, nullable=False, server_default="ACTIVE"),
        *_timestamps(),
    )
    op.create_index("ix_projects_project_code", "projects", ["project_code"], unique=True)

    op.create_table(
        "stages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("task_id", sa.String(20), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(100), nullable=False, server_default="GENERAL"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_stages_task_id", "stages", ["task_id"], unique=True)

    # Timesheets and approvals
    op.create_table(
        "timesheets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "employee_id",
            sa.String(36),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "project_id",
            sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "stage_id",
            sa.String(36),
            sa.ForeignKey("stages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("start_time", sa.Time, nullable=True),
        sa.Column("end_time", sa.Time, nullable=True),
        sa.Column("hours", sa.Float, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", timesheet_status, nullable=False, server_default="DRAFT"),
        *_timestamps(),
    )
    op.create_index("ix_timesheets_employee_date", "timesheets", ["employee_id", "date"])
    # Untimed entries (NULL start_time) must collide too
    op.create_index(
        "uq_timesheets_employee_project_date_start",
        "timesheets",
        [
            "employee_id",
            "project_id",
            "date",
            sa.text("coalesce(CAST(start_time AS VARCHAR), '')"),
        ],
        unique=True,
    )

    op.create_table(
        "approvals",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "timesheet_id",
            sa.String(36),
            sa.ForeignKey("timesheets.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "submitter_id",
            sa.String(36),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "approver_id",
            sa.String(36),
            sa.ForeignKey("employees.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", approval_status, nullable=False, server_default="PENDING"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("comments", sa.Text, nullable=True),
        *_timestamps(),
    )

    # CSV import logs
    op.create_table(
        "csv_import_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("data_type", csv_data_type, nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("total_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("success_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", csv_import_status, nullable=False, server_default="PROCESSING"),
        sa.Column("operator_id", sa.String(100), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_csv_import_logs_status", "csv_import_logs", ["status"])
    op.create_index("ix_csv_import_logs_created_at", "csv_import_logs", ["created_at"])

    op.create_table(
        "csv_import_errors",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "import_log_id",
            sa.String(36),
            sa.ForeignKey("csv_import_logs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("row_number", sa.Integer, nullable=False),
        sa.Column("field", sa.String(100), nullable=True),
        sa.Column("value", sa.Text, nullable=True),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_csv_import_errors_import_log_id", "csv_import_errors", ["import_log_id"])


def downgrade() -> None:
    """Drop all tables and enum types."""

    op.drop_index("ix_csv_import_errors_import_log_id", table_name="csv_import_errors")
    op.drop_table("csv_import_errors")

    op.drop_index("ix_csv_import_logs_created_at", table_name="csv_import_logs")
    op.drop_index("ix_csv_import_logs_status", table_name="csv_import_logs")
    op.drop_table("csv_import_logs")

    op.drop_table("approvals")

    op.drop_index("uq_timesheets_employee_project_date_start", table_name="timesheets")
    op.drop_index("ix_timesheets_employee_date", table_name="timesheets")
    op.drop_table("timesheets")

    op.drop_index("ix_stages_task_id", table_name="stages")
    op.drop_table("stages")
    op.drop_index("ix_projects_project_code", table_name="projects")
    op.drop_table("projects")
    op.drop_index("ix_employees_employee_id", table_name="employees")
    op.drop_table("employees")

    # No-ops on backends without named enum types
    bind = op.get_bind()
    for name in (
        "csv_import_status",
        "csv_data_type",
        "approval_status",
        "timesheet_status",
        "project_status",
        "employee_role",
    ):
        sa.Enum(name=name).drop(bind, checkfirst=True)
