"""Models package for the timesheet portal."""

from timesheet_portal.models.base import Base
from timesheet_portal.models.csv_import import (
    CsvDataType,
    CsvImportError,
    CsvImportLog,
    CsvImportStatus,
)
from timesheet_portal.models.employee import Employee, Role
from timesheet_portal.models.project import Project, ProjectStatus, Stage
from timesheet_portal.models.timesheet import (
    Approval,
    ApprovalStatus,
    Timesheet,
    TimesheetStatus,
)

__all__ = [
    "Base",
    # Master data
    "Employee",
    "Role",
    "Project",
    "ProjectStatus",
    "Stage",
    # Timesheets
    "Timesheet",
    "TimesheetStatus",
    "Approval",
    "ApprovalStatus",
    # CSV import tracking
    "CsvDataType",
    "CsvImportStatus",
    "CsvImportLog",
    "CsvImportError",
]
