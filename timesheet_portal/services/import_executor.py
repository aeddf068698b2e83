"""Commit phase of a CSV import.

Rows are processed in file order, one unit of work each: a row either
commits completely (including a timesheet's approval and any replaced
records) or not at all, and a failed row never undoes an earlier one.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timesheet_portal.config.settings import Settings, get_settings
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
from timesheet_portal.schemas.csv_import import (
    DuplicateDecision,
    DuplicateRecord,
    ExecuteResponse,
    RowErrorCode,
    RowErrors,
    RowFieldError,
)
from timesheet_portal.services.duplicate_resolver import DuplicateResolver, TimesheetKey
from timesheet_portal.services.row_mapper import MappedRecord, map_row
from timesheet_portal.services.row_validator import ReferenceLookup, RowValidator, effective_hours
from timesheet_portal.utils.csv_parser import parse_iso_date, parse_time
from timesheet_portal.utils.errors import DatabaseError
from timesheet_portal.utils.security import hash_password

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def determine_status(total_rows: int, error_rows: int) -> CsvImportStatus:
    """SUCCESS when nothing failed, FAILED when everything did, PARTIAL otherwise."""
    if error_rows == 0:
        return CsvImportStatus.SUCCESS
    if error_rows >= total_rows:
        return CsvImportStatus.FAILED
    return CsvImportStatus.PARTIAL


ROW_DECISION_PREFIX = "row:"


def row_decision_key(row: int) -> str:
    """Decision-map key addressing a single data row, kept apart from natural keys."""
    return f"{ROW_DECISION_PREFIX}{row}"


def decision_for(
    duplicate: DuplicateRecord,
    decisions: Mapping[str, DuplicateDecision],
) -> DuplicateDecision:
    """
    Look up the caller's decision for a duplicate.

    A row entry ("row:3") takes precedence over the natural key. No
    decision means skip.
    """
    decision = decisions.get(row_decision_key(duplicate.row))
    if decision is None:
        decision = decisions.get(duplicate.key)
    return decision or DuplicateDecision.SKIP


class ImportExecutor:
    """Writes validated CSV rows to storage and records the run in an import log."""

    def __init__(self, session: Session, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.lookup = ReferenceLookup(session)

    # =========================================================================
    # Run
    # =========================================================================

    def execute(
        self,
        rows: List[Mapping[Optional[str], Any]],
        data_type: CsvDataType,
        decisions: Mapping[str, DuplicateDecision],
        file_name: str,
        operator_id: str,
    ) -> ExecuteResponse:
        """
        Import every row of a parsed file.

        Args:
            rows: Raw rows as produced by ``read_csv_rows``
            data_type: Entity kind being imported
            decisions: Duplicate decisions keyed by row number or duplicate key
            file_name: Original upload name, recorded on the log
            operator_id: Identity of the user running the import

        Returns:
            Aggregate counters, final status and per-row errors
        """
        import_log = CsvImportLog(
            data_type=data_type,
            file_name=file_name,
            operator_id=operator_id,
            status=CsvImportStatus.PROCESSING,
            total_rows=len(rows),
            start_time=_now(),
        )
        self.session.add(import_log)
        self._commit_or_raise()
        logger.info(
            f"Import {import_log.id} started: {len(rows)} {data_type.value} row(s) "
            f"from '{file_name}' by {operator_id}"
        )

        validator = RowValidator(self.session)
        resolver = DuplicateResolver(self.session, data_type)
        approver = self._resolve_default_approver() if data_type == CsvDataType.TIMESHEET else None

        success_rows = 0
        skipped_rows = 0
        replaced_rows = 0
        failures: List[RowErrors] = []

        for row_number, row in enumerate(rows, start=1):
            record = map_row(row, data_type)

            errors = validator.validate(record, data_type, row_number)
            if errors:
                failures.append(RowErrors(row_number=row_number, errors=errors))
                continue

            duplicate = resolver.check(record, row_number)
            if duplicate is not None and decision_for(duplicate, decisions) != DuplicateDecision.REPLACE:
                skipped_rows += 1
                failures.append(RowErrors(
                    row_number=row_number,
                    errors=[RowFieldError(
                        field=duplicate.field,
                        value=duplicate.key,
                        message=f"Skipped: a record with key {duplicate.key} already exists",
                        code=RowErrorCode.DUPLICATE,
                    )],
                ))
                continue

            try:
                if duplicate is None:
                    self._create(record, data_type, approver)
                else:
                    self._replace(record, data_type, resolver, approver)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                message = str(getattr(e, "orig", None) or e)
                logger.warning(f"Import {import_log.id} row {row_number} failed to store: {message}")
                failures.append(RowErrors(
                    row_number=row_number,
                    errors=[RowFieldError(message=message, code=RowErrorCode.STORAGE)],
                ))
                continue

            success_rows += 1
            if duplicate is not None:
                replaced_rows += 1

        return self._finalize(import_log, success_rows, skipped_rows, replaced_rows, failures)

    def _finalize(
        self,
        import_log: CsvImportLog,
        success_rows: int,
        skipped_rows: int,
        replaced_rows: int,
        failures: List[RowErrors],
    ) -> ExecuteResponse:
        status = determine_status(import_log.total_rows, len(failures))

        for failure in failures:
            first = failure.errors[0]
            import_log.errors.append(CsvImportError(
                row_number=failure.row_number,
                field=first.field,
                value=None if first.value is None else str(first.value),
                message="; ".join(error.message for error in failure.errors),
                code=first.code.value,
            ))

        import_log.success_rows = success_rows
        import_log.error_rows = len(failures)
        import_log.skipped_rows = skipped_rows
        import_log.status = status
        import_log.end_time = _now()
        self._commit_or_raise()

        logger.info(
            f"Import {import_log.id} finished with {status.value}: "
            f"{success_rows} succeeded, {len(failures)} failed "
            f"({skipped_rows} skipped, {replaced_rows} replaced)"
        )

        return ExecuteResponse(
            import_log_id=import_log.id,
            status=status.value,
            total_rows=import_log.total_rows,
            success_rows=success_rows,
            error_rows=len(failures),
            skipped_rows=skipped_rows,
            replaced_rows=replaced_rows,
            errors=failures,
        )

    def _commit_or_raise(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to persist import log: {e}")
            raise DatabaseError("Failed to persist import log") from e

    def _resolve_default_approver(self) -> Optional[Employee]:
        employee_id = self.settings.csv_import.default_approver_employee_id
        approver = self.lookup.employee(employee_id)
        if approver is None:
            logger.warning(
                f"Default approver {employee_id} not found; "
                "imported APPROVED timesheets will have no approver"
            )
        return approver

    # =========================================================================
    # Create
    # =========================================================================

    def _create(self, record: MappedRecord, data_type: CsvDataType, approver: Optional[Employee]) -> None:
        if data_type == CsvDataType.EMPLOYEE:
            self.session.add(Employee(
                employee_id=record["employee_id"],
                password=hash_password(self.settings.csv_import.default_import_password),
                **self._employee_fields(record),
            ))
        elif data_type == CsvDataType.PROJECT:
            self.session.add(Project(project_code=record["project_code"], **self._project_fields(record)))
        elif data_type == CsvDataType.STAGE:
            self.session.add(Stage(task_id=record["task_id"], **self._stage_fields(record)))
        else:
            self._create_timesheet(record, approver)

    def _create_timesheet(self, record: MappedRecord, approver: Optional[Employee]) -> Timesheet:
        employee = self.lookup.employee(record["employee_id"])
        project = self.lookup.project(record["project_code"])
        stage = self.lookup.stage(record["stage_id"]) if record.get("stage_id") else None

        hours = effective_hours(record)

        timesheet = Timesheet(
            employee_id=employee.id,
            project_id=project.id,
            stage_id=stage.id if stage else None,
            work_date=parse_iso_date(record["date"]),
            start_time=parse_time(record["start_time"]) if record.get("start_time") else None,
            end_time=parse_time(record["end_time"]) if record.get("end_time") else None,
            hours=hours,
            description=record.get("description"),
            status=TimesheetStatus[record.get("status", TimesheetStatus.DRAFT.value)],
        )

        if timesheet.status == TimesheetStatus.SUBMITTED:
            timesheet.approval = Approval(
                submitter_id=employee.id,
                status=ApprovalStatus.PENDING,
                submitted_at=_now(),
            )
        elif timesheet.status == TimesheetStatus.APPROVED:
            now = _now()
            timesheet.approval = Approval(
                submitter_id=employee.id,
                approver_id=approver.id if approver else None,
                status=ApprovalStatus.APPROVED,
                submitted_at=now,
                approved_at=now,
            )

        self.session.add(timesheet)
        return timesheet

    # =========================================================================
    # Replace
    # =========================================================================

    def _replace(
        self,
        record: MappedRecord,
        data_type: CsvDataType,
        resolver: DuplicateResolver,
        approver: Optional[Employee],
    ) -> None:
        if data_type == CsvDataType.TIMESHEET:
            self._replace_timesheet(record, approver)
            return

        # Master data is updated in place: employees are never deleted by
        # import and deleting a project would cascade to its timesheets
        existing = resolver.find_existing(record)
        if data_type == CsvDataType.EMPLOYEE:
            fields = self._employee_fields(record)
        elif data_type == CsvDataType.PROJECT:
            fields = self._project_fields(record)
        else:
            fields = self._stage_fields(record)
        for name, value in fields.items():
            setattr(existing, name, value)

    def _replace_timesheet(self, record: MappedRecord, approver: Optional[Employee]) -> None:
        key = TimesheetKey.from_record(record)
        employee = self.lookup.employee(key.employee_id)
        project = self.lookup.project(key.project_code)
        predicate = key.predicate(employee.id, project.id)

        doomed = select(Timesheet.id).where(predicate)
        self.session.execute(
            delete(Approval)
            .where(Approval.timesheet_id.in_(doomed))
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(
            delete(Timesheet).where(predicate).execution_options(synchronize_session="fetch")
        )
        logger.info(f"Replacing {result.rowcount} timesheet(s) with key {key}")

        self._create_timesheet(record, approver)

    # =========================================================================
    # Field mapping
    # =========================================================================

    @staticmethod
    def _employee_fields(record: MappedRecord) -> Dict[str, Any]:
        return {
            "name": record["name"],
            "email": record["email"],
            "role": Role[record["role"]],
            "position": record.get("position"),
            "is_active": record.get("is_active", True),
        }

    @staticmethod
    def _project_fields(record: MappedRecord) -> Dict[str, Any]:
        return {
            "name": record["name"],
            "description": record.get("description"),
            "nickname": record.get("nickname"),
            "start_date": parse_iso_date(record["start_date"]) if record.get("start_date") else None,
            "end_date": parse_iso_date(record["end_date"]) if record.get("end_date") else None,
            "status": ProjectStatus[record.get("status", ProjectStatus.ACTIVE.value)],
        }

    @staticmethod
    def _stage_fields(record: MappedRecord) -> Dict[str, Any]:
        return {
            "name": record["name"],
            "description": record.get("description"),
            "category": record.get("category", "GENERAL"),
            "is_active": record.get("is_active", True),
        }
