"""Tests for natural-key duplicate detection."""

from datetime import date, time

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from timesheet_portal.models import Timesheet, TimesheetStatus
from timesheet_portal.models.csv_import import CsvDataType
from timesheet_portal.schemas.csv_import import DuplicateSource
from timesheet_portal.services.duplicate_resolver import (
    TIMESHEET_KEY_FIELDS,
    DuplicateResolver,
    TimesheetKey,
    describe_existing,
    natural_key,
)


def timesheet_record(**overrides):
    record = {
        "employee_id": "EMP001",
        "project_code": "PROJ001",
        "date": "2024-03-04",
        "hours": 8.0,
    }
    record.update(overrides)
    return record


@pytest.fixture
def stored_entry(db_session, seeded):
    """EMP001 / PROJ001 / 2024-03-04 with no start time."""
    entry = Timesheet(
        employee_id=seeded["alice"].id,
        project_id=seeded["alpha"].id,
        work_date=date(2024, 3, 4),
        hours=8.0,
        status=TimesheetStatus.DRAFT,
    )
    db_session.add(entry)
    db_session.commit()
    return entry


# =============================================================================
# Timesheet Key
# =============================================================================

class TestTimesheetKey:
    """Test cases for the composite timesheet key."""

    def test_string_form_with_missing_start(self):
        key = TimesheetKey.from_record(timesheet_record())

        assert str(key) == "EMP001|PROJ001|2024-03-04|"

    def test_start_time_is_canonicalized(self):
        a = TimesheetKey.from_record(timesheet_record(start_time="9:00"))
        b = TimesheetKey.from_record(timesheet_record(start_time="09:00"))

        assert a == b
        assert str(a).endswith("|09:00")

    def test_incomplete_record_has_no_key(self):
        assert TimesheetKey.from_record({"employee_id": "EMP001"}) is None

    def test_null_start_predicate_matches_stored_entry(self, db_session, seeded, stored_entry):
        key = TimesheetKey.from_record(timesheet_record())

        matches = db_session.scalars(
            select(Timesheet).where(key.predicate(seeded["alice"].id, seeded["alpha"].id))
        ).all()

        assert [m.id for m in matches] == [stored_entry.id]

    def test_timed_predicate_ignores_untimed_entry(self, db_session, seeded, stored_entry):
        key = TimesheetKey.from_record(timesheet_record(start_time="09:00"))

        matches = db_session.scalars(
            select(Timesheet).where(key.predicate(seeded["alice"].id, seeded["alpha"].id))
        ).all()

        assert matches == []

    def test_storage_rejects_second_untimed_entry(self, db_session, seeded, stored_entry):
        db_session.add(Timesheet(
            employee_id=seeded["alice"].id,
            project_id=seeded["alpha"].id,
            work_date=date(2024, 3, 4),
            hours=2.0,
            status=TimesheetStatus.DRAFT,
        ))

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_storage_accepts_timed_entry_beside_untimed(self, db_session, seeded, stored_entry):
        db_session.add(Timesheet(
            employee_id=seeded["alice"].id,
            project_id=seeded["alpha"].id,
            work_date=date(2024, 3, 4),
            start_time=time(9, 0),
            end_time=time(10, 0),
            hours=1.0,
            status=TimesheetStatus.DRAFT,
        ))
        db_session.commit()

        assert len(db_session.scalars(select(Timesheet)).all()) == 2

    def test_natural_key_for_master_data(self):
        assert natural_key({"employee_id": "EMP009"}, CsvDataType.EMPLOYEE) == "EMP009"
        assert natural_key({"name": "no code"}, CsvDataType.PROJECT) is None


# =============================================================================
# Resolver
# =============================================================================

class TestDuplicateResolver:
    """Test cases for stored and within-file collisions."""

    def test_stored_employee_is_duplicate(self, db_session, seeded):
        resolver = DuplicateResolver(db_session, CsvDataType.EMPLOYEE)
        record = {"employee_id": "EMP001", "name": "Alice T", "email": "alice@psec.test", "role": "LEVEL3"}

        duplicate = resolver.check(record, 4)

        assert duplicate.row == 4
        assert duplicate.key == "EMP001"
        assert duplicate.field == "employeeId"
        assert duplicate.source == DuplicateSource.DATABASE
        assert duplicate.existing_data["name"] == "Alice Tan"
        assert duplicate.new_data["name"] == "Alice T"

    def test_new_employee_is_not_duplicate(self, db_session, seeded):
        resolver = DuplicateResolver(db_session, CsvDataType.EMPLOYEE)

        assert resolver.check({"employee_id": "EMP777"}, 1) is None

    def test_stored_untimed_timesheet_is_duplicate(self, db_session, stored_entry):
        resolver = DuplicateResolver(db_session, CsvDataType.TIMESHEET)

        duplicate = resolver.check(timesheet_record(hours=4.0), 1)

        assert duplicate.field == TIMESHEET_KEY_FIELDS
        assert duplicate.key == "EMP001|PROJ001|2024-03-04|"
        assert duplicate.existing_data["hours"] == 8.0
        assert duplicate.existing_data["startTime"] is None

    def test_different_start_time_is_not_duplicate(self, db_session, seeded):
        db_session.add(Timesheet(
            employee_id=seeded["alice"].id,
            project_id=seeded["alpha"].id,
            work_date=date(2024, 3, 4),
            start_time=time(9, 0),
            hours=2.0,
        ))
        db_session.commit()
        resolver = DuplicateResolver(db_session, CsvDataType.TIMESHEET)

        assert resolver.check(timesheet_record(start_time="13:00", hours=2.0), 1) is None
        assert resolver.check(timesheet_record(start_time="09:00", hours=2.0), 2) is not None

    def test_within_file_untimed_repeat(self, db_session, seeded):
        resolver = DuplicateResolver(db_session, CsvDataType.TIMESHEET, track_batch=True)

        first = resolver.check(timesheet_record(hours=4.0), 1)
        second = resolver.check(timesheet_record(hours=3.0), 2)

        assert first is None
        assert second.source == DuplicateSource.FILE
        assert second.row == 2
        assert second.existing_data["hours"] == 4.0

    def test_without_batch_tracking_repeat_is_not_reported(self, db_session, seeded):
        resolver = DuplicateResolver(db_session, CsvDataType.TIMESHEET)

        assert resolver.check(timesheet_record(), 1) is None
        assert resolver.check(timesheet_record(), 2) is None


class TestDescribeExisting:
    def test_stage_snapshot(self, seeded):
        assert describe_existing(seeded["design"]) == {
            "taskId": "TD.01.00",
            "name": "Schematic Design",
            "description": None,
            "category": "DESIGN",
            "isActive": True,
        }
