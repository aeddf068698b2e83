"""Natural-key conflict detection for CSV imports.

The resolver never decides what happens to a conflicting row. It reports
the conflict; the caller answers with "replace" or "skip".
"""

import logging
from dataclasses import dataclass
from datetime import time
from typing import Any, Dict, Optional, Union

from pydantic.alias_generators import to_camel
from sqlalchemy import and_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from timesheet_portal.models.csv_import import CsvDataType
from timesheet_portal.models.employee import Employee
from timesheet_portal.models.project import Project, Stage
from timesheet_portal.models.timesheet import Timesheet
from timesheet_portal.schemas.csv_import import DuplicateRecord, DuplicateSource
from timesheet_portal.services.row_mapper import MappedRecord, to_wire
from timesheet_portal.services.row_validator import ReferenceLookup
from timesheet_portal.utils.csv_parser import parse_iso_date, parse_time

logger = logging.getLogger(__name__)

ExistingRecord = Union[Employee, Project, Stage, Timesheet]

# Natural-key field for the master-data kinds
NATURAL_KEYS: Dict[CsvDataType, str] = {
    CsvDataType.EMPLOYEE: "employee_id",
    CsvDataType.PROJECT: "project_code",
    CsvDataType.STAGE: "task_id",
}

TIMESHEET_KEY_FIELDS = "employeeId,projectCode,date,startTime"


@dataclass(frozen=True)
class TimesheetKey:
    """
    Composite identity of a timesheet entry.

    ``start_time`` is None when the row has no start time. A missing start
    time is still a value: two entries for the same employee, project and
    day without start times collide.
    """

    employee_id: str
    project_code: str
    work_date: str
    start_time: Optional[str] = None

    @classmethod
    def from_record(cls, record: MappedRecord) -> Optional["TimesheetKey"]:
        if not all(record.get(f) for f in ("employee_id", "project_code", "date")):
            return None
        return cls(
            employee_id=record["employee_id"],
            project_code=record["project_code"],
            work_date=record["date"],
            start_time=_canonical_time(record.get("start_time")),
        )

    def __str__(self) -> str:
        return "|".join([self.employee_id, self.project_code, self.work_date, self.start_time or ""])

    def predicate(self, employee_pk: str, project_pk: str) -> ColumnElement[bool]:
        """
        WHERE clause matching stored timesheets with this key.

        Built from the same four components as ``__str__`` so detection and
        replacement can never disagree about what a duplicate is.
        """
        start = parse_time(self.start_time) if self.start_time else None
        return and_(
            Timesheet.employee_id == employee_pk,
            Timesheet.project_id == project_pk,
            Timesheet.work_date == parse_iso_date(self.work_date),
            Timesheet.start_time.is_(None) if start is None else Timesheet.start_time == start,
        )


def _canonical_time(value: Optional[str]) -> Optional[str]:
    # "9:00" and "09:00" are the same start time
    if not value:
        return None
    parsed = parse_time(value)
    return parsed.strftime("%H:%M") if parsed else value


def natural_key(record: MappedRecord, data_type: CsvDataType) -> Optional[str]:
    """String form of a record's natural key, None if a component is missing."""
    if data_type == CsvDataType.TIMESHEET:
        key = TimesheetKey.from_record(record)
        return str(key) if key else None
    return record.get(NATURAL_KEYS[data_type])


def describe_existing(existing: ExistingRecord) -> Dict[str, Any]:
    """camelCase snapshot of a stored record for side-by-side comparison."""
    if isinstance(existing, Employee):
        return {
            "employeeId": existing.employee_id,
            "name": existing.name,
            "email": existing.email,
            "role": existing.role.value,
            "position": existing.position,
            "isActive": existing.is_active,
        }
    if isinstance(existing, Project):
        return {
            "projectCode": existing.project_code,
            "name": existing.name,
            "description": existing.description,
            "nickname": existing.nickname,
            "startDate": existing.start_date.isoformat() if existing.start_date else None,
            "endDate": existing.end_date.isoformat() if existing.end_date else None,
            "status": existing.status.value,
        }
    if isinstance(existing, Stage):
        return {
            "taskId": existing.task_id,
            "name": existing.name,
            "description": existing.description,
            "category": existing.category,
            "isActive": existing.is_active,
        }
    return {
        "employeeId": existing.employee.employee_id,
        "projectCode": existing.project.project_code,
        "stageId": existing.stage.task_id if existing.stage else None,
        "date": existing.work_date.isoformat(),
        "startTime": _format_time(existing.start_time),
        "endTime": _format_time(existing.end_time),
        "hours": existing.hours,
        "description": existing.description,
        "status": existing.status.value,
    }


def _format_time(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value else None


class DuplicateResolver:
    """
    Find natural-key collisions for one import run.

    Args:
        session: Database session (read-only use)
        data_type: Entity kind being imported
        track_batch: Also report rows that collide with an earlier accepted
            row of the same file. Used by validation; execution commits each
            row before the next one, so the stored check covers it there.
    """

    def __init__(self, session: Session, data_type: CsvDataType, track_batch: bool = False):
        self.session = session
        self.data_type = data_type
        self.track_batch = track_batch
        self.lookup = ReferenceLookup(session)
        self._batch: Dict[str, MappedRecord] = {}

    def find_existing(self, record: MappedRecord) -> Optional[ExistingRecord]:
        """Stored record sharing the incoming row's natural key, if any."""
        if self.data_type == CsvDataType.EMPLOYEE:
            return self.lookup.employee(record["employee_id"])
        if self.data_type == CsvDataType.PROJECT:
            return self.lookup.project(record["project_code"])
        if self.data_type == CsvDataType.STAGE:
            return self.lookup.stage(record["task_id"])
        return self._find_timesheet(record)

    def _find_timesheet(self, record: MappedRecord) -> Optional[Timesheet]:
        key = TimesheetKey.from_record(record)
        if key is None:
            return None
        employee = self.lookup.employee(key.employee_id)
        project = self.lookup.project(key.project_code)
        if employee is None or project is None:
            return None
        return self.session.scalars(
            select(Timesheet).where(key.predicate(employee.id, project.id)).limit(1)
        ).first()

    def check(self, record: MappedRecord, row_number: int) -> Optional[DuplicateRecord]:
        """
        Report a collision for a row that already passed validation.

        Earlier rows of the same file win over stored records when
        ``track_batch`` is on, since the earlier row is what the later one
        would really be compared against after commit.
        """
        key = natural_key(record, self.data_type)
        if key is None:
            return None

        if self.data_type == CsvDataType.TIMESHEET:
            field = TIMESHEET_KEY_FIELDS
        else:
            field = to_camel(NATURAL_KEYS[self.data_type])
        new_data = to_wire(record)

        if self.track_batch and key in self._batch:
            logger.debug(f"Row {row_number} repeats key {key} from earlier in the file")
            return DuplicateRecord(
                row=row_number,
                field=field,
                value=key,
                key=key,
                source=DuplicateSource.FILE,
                existing_data=to_wire(self._batch[key]),
                new_data=new_data,
            )

        if self.track_batch:
            self._batch[key] = record

        existing = self.find_existing(record)
        if existing is None:
            return None

        return DuplicateRecord(
            row=row_number,
            field=field,
            value=key,
            key=key,
            source=DuplicateSource.DATABASE,
            existing_data=describe_existing(existing),
            new_data=new_data,
        )
