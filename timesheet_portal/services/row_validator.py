"""Business-rule validation of mapped CSV records.

Validation is read-only: referential checks go through ``ReferenceLookup``,
which only ever selects.
"""

import logging
import re
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from timesheet_portal.models.csv_import import CsvDataType
from timesheet_portal.models.employee import Employee, Role
from timesheet_portal.models.project import Project, ProjectStatus, Stage
from timesheet_portal.models.timesheet import TimesheetStatus
from timesheet_portal.schemas.csv_import import RowErrorCode, RowFieldError
from timesheet_portal.services.row_mapper import MappedRecord
from timesheet_portal.utils.csv_parser import is_valid_email, parse_iso_date, parse_time

CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$")
TASK_ID_PATTERN = re.compile(r"^TD\.[0-9]{2}\.[0-9]{2}$")

logger = logging.getLogger(__name__)

HOURS_UNIT = 0.25
MAX_HOURS_PER_ENTRY = 24


# =============================================================================
# Reference Lookups
# =============================================================================

class ReferenceLookup:
    """Read-only natural-key lookups used by validation and duplicate checks."""

    def __init__(self, session: Session):
        self.session = session

    def employee(self, employee_id: str) -> Optional[Employee]:
        return self.session.scalar(select(Employee).where(Employee.employee_id == employee_id))

    def employee_by_email(self, email: str) -> Optional[Employee]:
        # Addresses are unique regardless of case
        return self.session.scalar(
            select(Employee).where(func.lower(Employee.email) == email.lower()).limit(1)
        )

    def project(self, project_code: str) -> Optional[Project]:
        return self.session.scalar(select(Project).where(Project.project_code == project_code))

    def stage(self, task_id: str) -> Optional[Stage]:
        return self.session.scalar(select(Stage).where(Stage.task_id == task_id))


# =============================================================================
# Helpers
# =============================================================================

def is_quarter_hour_multiple(hours: float) -> bool:
    units = hours / HOURS_UNIT
    return abs(units - round(units)) < 1e-9


def span_hours(start: str, end: str) -> Optional[float]:
    """Hours between two ``HH:mm`` strings; None if either is malformed."""
    start_time = parse_time(start)
    end_time = parse_time(end)
    if start_time is None or end_time is None:
        return None
    minutes = (end_time.hour * 60 + end_time.minute) - (start_time.hour * 60 + start_time.minute)
    return minutes / 60


def effective_hours(record: MappedRecord) -> Optional[float]:
    """
    Hours a timesheet row stands for.

    When both Start Time and End Time are given the span wins and any Hours
    value is ignored; otherwise the Hours column is used as-is.
    """
    if record.get("start_time") and record.get("end_time"):
        span = span_hours(record["start_time"], record["end_time"])
        if span is not None and span > 0:
            return span
    return record.get("hours")


def _error(field: str, message: str, code: RowErrorCode, value: Any = None) -> RowFieldError:
    return RowFieldError(field=field, message=message, value=value, code=code)


def _missing(field: str, label: str) -> RowFieldError:
    return _error(field, f"{label} is required", RowErrorCode.FIELD_MISSING)


# =============================================================================
# Validator
# =============================================================================

class RowValidator:
    """
    Apply per-entity business rules to mapped records.

    When ``track_batch`` is set the validator also remembers the e-mail
    addresses claimed by rows it has accepted, so two new employees in the
    same file cannot share one address. Execution does not need this: each
    accepted row is committed before the next is validated.
    """

    def __init__(self, session: Session, track_batch: bool = False):
        self.lookup = ReferenceLookup(session)
        self.track_batch = track_batch
        self._batch_emails: Dict[str, str] = {}
        self._rules: Dict[CsvDataType, Callable[[MappedRecord], List[RowFieldError]]] = {
            CsvDataType.EMPLOYEE: self._validate_employee,
            CsvDataType.PROJECT: self._validate_project,
            CsvDataType.STAGE: self._validate_stage,
            CsvDataType.TIMESHEET: self._validate_timesheet,
        }

    def validate(self, record: MappedRecord, data_type: CsvDataType, row_number: int) -> List[RowFieldError]:
        """
        Validate one record.

        Args:
            record: Output of ``map_row``
            data_type: Entity kind being imported
            row_number: 1-based data row number

        Returns:
            Errors in field order; empty when the row is valid
        """
        errors = self._rules[data_type](record)
        if errors:
            logger.debug(f"Row {row_number}: {len(errors)} validation error(s)")
        if not errors and self.track_batch and data_type == CsvDataType.EMPLOYEE:
            self._batch_emails.setdefault(record["email"].lower(), record["employee_id"])
        return errors

    # -------------------------------------------------------------------------
    # Employee
    # -------------------------------------------------------------------------

    def _validate_employee(self, record: MappedRecord) -> List[RowFieldError]:
        errors: List[RowFieldError] = []

        employee_id = record.get("employee_id")
        if employee_id is None:
            errors.append(_missing("employee_id", "Employee ID"))
        elif not CODE_PATTERN.match(employee_id):
            errors.append(_error(
                "employee_id",
                "Employee ID may only contain uppercase letters, digits, '_' and '-'",
                RowErrorCode.FORMAT,
                employee_id,
            ))

        if record.get("name") is None:
            errors.append(_missing("name", "Name"))

        email = record.get("email")
        if email is None:
            errors.append(_missing("email", "Email"))
        elif not is_valid_email(email):
            errors.append(_error("email", "Email is not a valid address", RowErrorCode.FORMAT, email))
        elif employee_id is not None:
            owner = self._email_owner(email)
            if owner is not None and owner != employee_id:
                errors.append(_error(
                    "email",
                    f"Email is already used by employee {owner}",
                    RowErrorCode.DUPLICATE,
                    email,
                ))

        role = record.get("role")
        if role is None:
            errors.append(_missing("role", "Role"))
        elif role not in Role.__members__:
            errors.append(_error(
                "role",
                f"Role must be one of {', '.join(Role.__members__)}",
                RowErrorCode.FORMAT,
                role,
            ))

        return errors

    def _email_owner(self, email: str) -> Optional[str]:
        existing = self.lookup.employee_by_email(email)
        if existing is not None:
            return existing.employee_id
        return self._batch_emails.get(email.lower())

    # -------------------------------------------------------------------------
    # Project
    # -------------------------------------------------------------------------

    def _validate_project(self, record: MappedRecord) -> List[RowFieldError]:
        errors: List[RowFieldError] = []

        project_code = record.get("project_code")
        if project_code is None:
            errors.append(_missing("project_code", "Project Code"))
        elif not CODE_PATTERN.match(project_code):
            errors.append(_error(
                "project_code",
                "Project Code may only contain uppercase letters, digits, '_' and '-'",
                RowErrorCode.FORMAT,
                project_code,
            ))

        if record.get("name") is None:
            errors.append(_missing("name", "Name"))

        status = record.get("status")
        if status is not None and status not in ProjectStatus.__members__:
            errors.append(_error(
                "status",
                f"Status must be one of {', '.join(ProjectStatus.__members__)}",
                RowErrorCode.FORMAT,
                status,
            ))

        start = self._check_date(record, "start_date", "Start Date", errors)
        end = self._check_date(record, "end_date", "End Date", errors)
        if start is not None and end is not None and start >= end:
            errors.append(_error(
                "end_date",
                "End Date must be later than Start Date",
                RowErrorCode.FORMAT,
                record["end_date"],
            ))

        return errors

    # -------------------------------------------------------------------------
    # Stage
    # -------------------------------------------------------------------------

    def _validate_stage(self, record: MappedRecord) -> List[RowFieldError]:
        errors: List[RowFieldError] = []

        task_id = record.get("task_id")
        if task_id is None:
            errors.append(_missing("task_id", "Task ID"))
        elif not TASK_ID_PATTERN.match(task_id):
            errors.append(_error(
                "task_id",
                "Task ID must look like TD.NN.NN",
                RowErrorCode.FORMAT,
                task_id,
            ))

        if record.get("name") is None:
            errors.append(_missing("name", "Name"))

        return errors

    # -------------------------------------------------------------------------
    # Timesheet
    # -------------------------------------------------------------------------

    def _validate_timesheet(self, record: MappedRecord) -> List[RowFieldError]:
        errors: List[RowFieldError] = []

        employee_id = record.get("employee_id")
        if employee_id is None:
            errors.append(_missing("employee_id", "Employee ID"))
        elif self.lookup.employee(employee_id) is None:
            errors.append(_error(
                "employee_id",
                f"Employee {employee_id} does not exist",
                RowErrorCode.REFERENTIAL,
                employee_id,
            ))

        project_code = record.get("project_code")
        if project_code is None:
            errors.append(_missing("project_code", "Project Code"))
        elif self.lookup.project(project_code) is None:
            errors.append(_error(
                "project_code",
                f"Project {project_code} does not exist",
                RowErrorCode.REFERENTIAL,
                project_code,
            ))

        stage_id = record.get("stage_id")
        if stage_id is not None and self.lookup.stage(stage_id) is None:
            errors.append(_error(
                "stage_id",
                f"Stage {stage_id} does not exist",
                RowErrorCode.REFERENTIAL,
                stage_id,
            ))

        if record.get("date") is None:
            errors.append(_missing("date", "Date"))
        else:
            self._check_date(record, "date", "Date", errors)

        start_ok = self._check_time(record, "start_time", "Start Time", errors)
        end_ok = self._check_time(record, "end_time", "End Time", errors)
        span: Optional[float] = None
        if start_ok and end_ok:
            span = span_hours(record["start_time"], record["end_time"])
            if span is not None and span <= 0:
                errors.append(_error(
                    "end_time",
                    "End Time must be after Start Time",
                    RowErrorCode.FORMAT,
                    record["end_time"],
                ))
                span = None

        hours = record.get("hours")
        if span is not None:
            self._check_hours(span, "Hours derived from Start Time and End Time", errors)
        elif hours is not None:
            self._check_hours(hours, "Hours", errors)
        elif not ("start_time" in record and "end_time" in record):
            errors.append(_error(
                "hours",
                "Hours is required unless both Start Time and End Time are given",
                RowErrorCode.FIELD_MISSING,
            ))

        status = record.get("status")
        if status is not None and status not in TimesheetStatus.__members__:
            errors.append(_error(
                "status",
                f"Status must be one of {', '.join(TimesheetStatus.__members__)}",
                RowErrorCode.FORMAT,
                status,
            ))

        return errors

    @staticmethod
    def _check_hours(hours: float, label: str, errors: List[RowFieldError]) -> None:
        if hours < HOURS_UNIT:
            errors.append(_error(
                "hours",
                f"{label} must be at least {HOURS_UNIT} (the minimum unit is 15 minutes)",
                RowErrorCode.FORMAT,
                hours,
            ))
        elif not is_quarter_hour_multiple(hours):
            errors.append(_error(
                "hours",
                f"{label} must be a multiple of {HOURS_UNIT} (the minimum unit is 15 minutes)",
                RowErrorCode.FORMAT,
                hours,
            ))
        elif hours > MAX_HOURS_PER_ENTRY:
            errors.append(_error(
                "hours",
                f"{label} must not exceed {MAX_HOURS_PER_ENTRY}",
                RowErrorCode.FORMAT,
                hours,
            ))

    # -------------------------------------------------------------------------
    # Shared format checks
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_date(
        record: MappedRecord,
        field: str,
        label: str,
        errors: List[RowFieldError],
    ) -> Optional[date]:
        value = record.get(field)
        if value is None:
            return None
        parsed = parse_iso_date(value)
        if parsed is None:
            errors.append(_error(
                field,
                f"{label} must be a valid date in YYYY-MM-DD format",
                RowErrorCode.FORMAT,
                value,
            ))
        return parsed

    @staticmethod
    def _check_time(
        record: MappedRecord,
        field: str,
        label: str,
        errors: List[RowFieldError],
    ) -> bool:
        value = record.get(field)
        if value is None:
            return False
        if parse_time(value) is None:
            errors.append(_error(
                field,
                f"{label} must be in HH:mm format",
                RowErrorCode.FORMAT,
                value,
            ))
            return False
        return True
