"""Tests for the import commit phase."""

from datetime import date, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from timesheet_portal.models import (
    Approval,
    ApprovalStatus,
    CsvImportLog,
    CsvImportStatus,
    Employee,
    Project,
    Stage,
    Timesheet,
    TimesheetStatus,
)
from timesheet_portal.models.csv_import import CsvDataType
from timesheet_portal.schemas.csv_import import DuplicateDecision, DuplicateRecord, DuplicateSource, RowErrorCode
from timesheet_portal.services.import_executor import (
    ImportExecutor,
    decision_for,
    determine_status,
    row_decision_key,
)
from timesheet_portal.utils.security import verify_password


def employee_row(employee_id, name, email, role="LEVEL3", **extra):
    row = {"Employee ID": employee_id, "Name": name, "Email": email, "Role": role}
    row.update(extra)
    return row


def timesheet_row(work_date="2024-03-04", hours="8", status="DRAFT", **extra):
    row = {
        "Employee ID": "EMP001",
        "Project Code": "PROJ001",
        "Date": work_date,
        "Hours": hours,
        "Status": status,
    }
    row.update(extra)
    return row


def count(session, model):
    return session.scalar(select(func.count()).select_from(model))


@pytest.fixture
def executor(db_session, settings, seeded):
    return ImportExecutor(db_session, settings)


def run(executor, rows, data_type, decisions=None):
    return executor.execute(
        rows=rows,
        data_type=data_type,
        decisions=decisions or {},
        file_name="upload.csv",
        operator_id="PSEC-000",
    )


# =============================================================================
# Status and decision helpers
# =============================================================================

class TestHelpers:
    """Test cases for status and decision resolution."""

    @pytest.mark.parametrize(
        "total,errors,expected",
        [
            (5, 0, CsvImportStatus.SUCCESS),
            (5, 2, CsvImportStatus.PARTIAL),
            (5, 5, CsvImportStatus.FAILED),
            (1, 1, CsvImportStatus.FAILED),
        ],
    )
    def test_determine_status(self, total, errors, expected):
        assert determine_status(total, errors) == expected

    def test_row_entry_wins_over_key(self):
        duplicate = DuplicateRecord(row=3, field="employeeId", value="EMP001", key="EMP001",
                                    source=DuplicateSource.DATABASE)
        decisions = {row_decision_key(3): DuplicateDecision.SKIP, "EMP001": DuplicateDecision.REPLACE}

        assert decision_for(duplicate, decisions) == DuplicateDecision.SKIP

    def test_numeric_code_is_not_read_as_row(self):
        """A bare "3" is the natural key of record "3", not row 3."""
        row_three = DuplicateRecord(row=3, field="taskId", value="7", key="7",
                                    source=DuplicateSource.DATABASE)
        record_three = DuplicateRecord(row=1, field="taskId", value="3", key="3",
                                       source=DuplicateSource.DATABASE)
        decisions = {"3": DuplicateDecision.REPLACE}

        assert decision_for(row_three, decisions) == DuplicateDecision.SKIP
        assert decision_for(record_three, decisions) == DuplicateDecision.REPLACE

    def test_key_used_when_row_absent(self):
        duplicate = DuplicateRecord(row=3, field="employeeId", value="EMP001", key="EMP001",
                                    source=DuplicateSource.DATABASE)

        assert decision_for(duplicate, {"EMP001": DuplicateDecision.REPLACE}) == DuplicateDecision.REPLACE

    def test_no_decision_means_skip(self):
        duplicate = DuplicateRecord(row=1, field="taskId", value="TD.01.00", key="TD.01.00",
                                    source=DuplicateSource.DATABASE)

        assert decision_for(duplicate, {}) == DuplicateDecision.SKIP


# =============================================================================
# Master data
# =============================================================================

class TestMasterDataImport:
    """Test cases for employee, project and stage imports."""

    def test_new_employee_gets_default_password(self, executor, db_session, settings):
        """Imported employees can log in with the configured default password."""
        result = run(executor, [employee_row("EMP010", "Chen Wei", "chen@psec.test")], CsvDataType.EMPLOYEE)

        assert result.status == "SUCCESS"
        assert result.success_rows == 1
        employee = db_session.scalar(select(Employee).where(Employee.employee_id == "EMP010"))
        assert employee.password != settings.csv_import.default_import_password
        assert verify_password(settings.csv_import.default_import_password, employee.password)

    def test_replace_updates_employee_in_place(self, executor, db_session, seeded):
        """Replacing keeps the row identity and the stored password."""
        alice = seeded["alice"]
        original_id, original_password = alice.id, alice.password

        result = run(
            executor,
            [employee_row("EMP001", "Alice Tan-Lee", "alice@psec.test", role="LEVEL2")],
            CsvDataType.EMPLOYEE,
            {"row:1": DuplicateDecision.REPLACE},
        )

        assert result.replaced_rows == 1
        db_session.expire_all()
        stored = db_session.scalar(select(Employee).where(Employee.employee_id == "EMP001"))
        assert stored.id == original_id
        assert stored.name == "Alice Tan-Lee"
        assert stored.role.value == "LEVEL2"
        assert stored.password == original_password

    def test_undecided_duplicate_is_skipped(self, executor, db_session):
        result = run(
            executor,
            [{"Project Code": "PROJ001", "Name": "Renamed"}, {"Project Code": "PROJ003", "Name": "Gamma"}],
            CsvDataType.PROJECT,
        )

        assert result.status == "PARTIAL"
        assert result.success_rows == 1
        assert result.skipped_rows == 1
        assert result.error_rows == 1
        assert result.errors[0].row_number == 1
        assert result.errors[0].errors[0].code == RowErrorCode.DUPLICATE
        assert db_session.scalar(select(Project.name).where(Project.project_code == "PROJ001")) == "Alpha Tower"

    def test_stage_defaults(self, executor, db_session):
        result = run(executor, [{"Task ID": "TD.02.00", "Name": "Design Development"}], CsvDataType.STAGE)

        assert result.success_rows == 1
        stage = db_session.scalar(select(Stage).where(Stage.task_id == "TD.02.00"))
        assert stage.category == "GENERAL"
        assert stage.is_active is True


# =============================================================================
# Timesheets
# =============================================================================

class TestTimesheetImport:
    """Test cases for timesheet imports."""

    def test_draft_has_no_approval(self, executor, db_session):
        run(executor, [timesheet_row()], CsvDataType.TIMESHEET)

        assert count(db_session, Timesheet) == 1
        assert count(db_session, Approval) == 0

    def test_submitted_gets_pending_approval(self, executor, db_session, seeded):
        run(executor, [timesheet_row(status="SUBMITTED")], CsvDataType.TIMESHEET)

        approval = db_session.scalar(select(Approval))
        assert approval.status == ApprovalStatus.PENDING
        assert approval.submitter_id == seeded["alice"].id
        assert approval.approver_id is None
        assert approval.approved_at is None

    def test_approved_gets_default_approver(self, executor, db_session, seeded):
        run(executor, [timesheet_row(status="APPROVED")], CsvDataType.TIMESHEET)

        approval = db_session.scalar(select(Approval))
        assert approval.status == ApprovalStatus.APPROVED
        assert approval.approver_id == seeded["approver"].id
        assert approval.approved_at is not None

    def test_hours_derived_from_times(self, executor, db_session):
        run(
            executor,
            [timesheet_row(hours="", **{"Start Time": "09:00", "End Time": "11:45"})],
            CsvDataType.TIMESHEET,
        )

        assert db_session.scalar(select(Timesheet.hours)) == 2.75

    def test_times_take_precedence_over_hours(self, executor, db_session):
        result = run(
            executor,
            [timesheet_row(hours="8", **{"Start Time": "09:00", "End Time": "10:00"})],
            CsvDataType.TIMESHEET,
        )

        assert result.success_rows == 1
        assert db_session.scalar(select(Timesheet.hours)) == 1.0

    def test_unparseable_hours_creates_nothing(self, executor, db_session):
        result = run(executor, [timesheet_row(hours="abc")], CsvDataType.TIMESHEET)

        assert result.status == "FAILED"
        assert result.errors[0].errors[0].field == "hours"
        assert result.errors[0].errors[0].code == RowErrorCode.FIELD_MISSING
        assert count(db_session, Timesheet) == 0

    def test_untimed_repeat_in_file_is_skipped(self, executor, db_session):
        """Two untimed rows for the same day collide even though start time is null."""
        result = run(
            executor,
            [timesheet_row(hours="4"), timesheet_row(hours="3")],
            CsvDataType.TIMESHEET,
            {"row:2": DuplicateDecision.SKIP},
        )

        assert result.success_rows == 1
        assert result.skipped_rows == 1
        assert count(db_session, Timesheet) == 1
        assert db_session.scalar(select(Timesheet.hours)) == 4.0

    def test_untimed_repeat_in_file_can_replace(self, executor, db_session):
        result = run(
            executor,
            [timesheet_row(hours="4"), timesheet_row(hours="3")],
            CsvDataType.TIMESHEET,
            {"EMP001|PROJ001|2024-03-04|": DuplicateDecision.REPLACE},
        )

        assert result.success_rows == 2
        assert result.replaced_rows == 1
        assert count(db_session, Timesheet) == 1
        assert db_session.scalar(select(Timesheet.hours)) == 3.0

    def test_replace_removes_old_approval(self, executor, db_session, seeded):
        run(executor, [timesheet_row(status="SUBMITTED")], CsvDataType.TIMESHEET)
        old_approval_id = db_session.scalar(select(Approval.id))

        result = run(
            executor,
            [timesheet_row(hours="6", status="APPROVED")],
            CsvDataType.TIMESHEET,
            {"row:1": DuplicateDecision.REPLACE},
        )

        assert result.replaced_rows == 1
        approvals = db_session.scalars(select(Approval)).all()
        assert len(approvals) == 1
        assert approvals[0].id != old_approval_id
        assert approvals[0].status == ApprovalStatus.APPROVED

    def test_reimport_with_all_skip_changes_nothing(self, executor, db_session):
        rows = [timesheet_row(work_date=f"2024-03-0{day}") for day in range(1, 6)]
        run(executor, rows, CsvDataType.TIMESHEET)

        result = run(executor, rows, CsvDataType.TIMESHEET, {f"row:{n}": DuplicateDecision.SKIP for n in range(1, 6)})

        assert result.success_rows == 0
        assert result.skipped_rows == 5
        assert result.status == "FAILED"
        assert count(db_session, Timesheet) == 5

    def test_bulk_replace_of_untimed_entries(self, executor, db_session, seeded):
        """586 rows where 40 replace stored untimed entries leave exactly 586 timesheets."""
        first_day = date(2023, 1, 2)
        days = [first_day + timedelta(days=n) for n in range(586)]
        for day in days[:40]:
            db_session.add(Timesheet(
                employee_id=seeded["alice"].id,
                project_id=seeded["alpha"].id,
                work_date=day,
                hours=1.0,
                status=TimesheetStatus.DRAFT,
            ))
        db_session.commit()

        rows = [timesheet_row(work_date=day.isoformat(), hours="7.5") for day in days]
        decisions = {f"row:{n}": DuplicateDecision.REPLACE for n in range(1, 41)}

        result = run(executor, rows, CsvDataType.TIMESHEET, decisions)

        assert result.status == "SUCCESS"
        assert result.success_rows == 586
        assert result.replaced_rows == 40
        assert result.error_rows == 0
        assert count(db_session, Timesheet) == 586
        assert db_session.scalar(select(func.min(Timesheet.hours))) == 7.5


# =============================================================================
# Failure isolation and logging
# =============================================================================

class TestFailureHandling:
    """Test cases for per-row failures and the persisted log."""

    def test_storage_failure_does_not_abort_run(self, executor, db_session):
        original = ImportExecutor._create

        def flaky_create(self, record, data_type, approver):
            if record["employee_id"] == "EMP011":
                raise OperationalError("INSERT INTO employees", {}, Exception("disk I/O error"))
            return original(self, record, data_type, approver)

        rows = [
            employee_row("EMP010", "Chen Wei", "chen@psec.test"),
            employee_row("EMP011", "Dana Koh", "dana@psec.test"),
            employee_row("EMP012", "Eve Ong", "eve@psec.test"),
        ]
        with patch.object(ImportExecutor, "_create", flaky_create):
            result = run(executor, rows, CsvDataType.EMPLOYEE)

        assert result.status == "PARTIAL"
        assert result.success_rows == 2
        assert [e.row_number for e in result.errors] == [2]
        assert result.errors[0].errors[0].code == RowErrorCode.STORAGE
        assert "disk I/O error" in result.errors[0].errors[0].message
        stored = db_session.scalars(select(Employee.employee_id).where(Employee.employee_id.like("EMP01%"))).all()
        assert sorted(stored) == ["EMP010", "EMP012"]

    def test_log_persists_counts_and_errors(self, executor, db_session):
        rows = [
            employee_row("bad id", "X", "not-an-email"),
            employee_row("EMP010", "Chen Wei", "chen@psec.test"),
            employee_row("EMP001", "Alice", "alice@psec.test"),
        ]

        result = run(executor, rows, CsvDataType.EMPLOYEE)

        log = db_session.get(CsvImportLog, result.import_log_id)
        assert log.status == CsvImportStatus.PARTIAL
        assert (log.total_rows, log.success_rows, log.error_rows, log.skipped_rows) == (3, 1, 2, 1)
        assert log.operator_id == "PSEC-000"
        assert log.file_name == "upload.csv"
        assert log.end_time is not None
        assert [e.row_number for e in log.errors] == [1, 3]
        first = log.errors[0]
        assert first.field == "employee_id"
        assert first.value == "bad id"
        assert first.code == "format"
        assert "; " in first.message
        assert log.errors[1].code == "duplicate"

    def test_missing_default_approver_leaves_approver_empty(self, db_session, settings, seeded):
        settings.csv_import.default_approver_employee_id = "NOBODY"
        executor = ImportExecutor(db_session, settings)

        result = run(executor, [timesheet_row(status="APPROVED")], CsvDataType.TIMESHEET)

        assert result.success_rows == 1
        assert db_session.scalar(select(Approval.approver_id)) is None
