"""Reshape raw CSV rows into typed candidate records.

The mapper does no validation. It picks the columns relevant to one entity
kind, trims strings, coerces flags and numbers, and leaves anything that is
missing or unparseable out of the record entirely.
"""

import math
from typing import Any, Dict, Mapping, Optional

from pydantic.alias_generators import to_camel

from timesheet_portal.models.csv_import import CsvDataType
from timesheet_portal.utils.csv_parser import get_field_value, reshape_date

# A mapped candidate record, keyed by logical field name
MappedRecord = Dict[str, Any]


# Logical field -> CSV column header, in template order
COLUMNS: Dict[CsvDataType, Dict[str, str]] = {
    CsvDataType.EMPLOYEE: {
        "employee_id": "Employee ID",
        "name": "Name",
        "email": "Email",
        "role": "Role",
        "position": "Position",
        "is_active": "Is Active",
    },
    CsvDataType.PROJECT: {
        "project_code": "Project Code",
        "name": "Name",
        "description": "Description",
        "nickname": "Nickname",
        "start_date": "Start Date",
        "end_date": "End Date",
        "status": "Status",
    },
    CsvDataType.STAGE: {
        "task_id": "Task ID",
        "name": "Name",
        "description": "Description",
        "category": "Category",
        "is_active": "Is Active",
    },
    CsvDataType.TIMESHEET: {
        "employee_id": "Employee ID",
        "project_code": "Project Code",
        "stage_id": "Stage ID",
        "date": "Date",
        "start_time": "Start Time",
        "end_time": "End Time",
        "hours": "Hours",
        "description": "Description",
        "status": "Status",
    },
}

# Accepted in place of "Hours" by files exported from the legacy system
LEGACY_HOURS_COLUMN = "Duration"

DATE_FIELDS = {"start_date", "end_date", "date"}
FLAG_FIELDS = {"is_active"}
NUMERIC_FIELDS = {"hours"}
UPPERCASE_FIELDS = {"role", "status"}

TRUTHY_VALUES = {"true", "1", "yes", "active", "on"}


def parse_flag(value: str) -> bool:
    return value.strip().lower() in TRUTHY_VALUES


def parse_number(value: str) -> Optional[float]:
    """Float parse that reports NaN, infinities and junk as absent."""
    try:
        number = float(value)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _coerce(field: str, text: str) -> Any:
    if field in FLAG_FIELDS:
        return parse_flag(text)
    if field in NUMERIC_FIELDS:
        return parse_number(text)
    if field in DATE_FIELDS:
        return reshape_date(text)
    if field in UPPERCASE_FIELDS:
        return text.upper()
    return text


def map_row(row: Mapping[Optional[str], Any], data_type: CsvDataType) -> MappedRecord:
    """
    Build the candidate record for one CSV row.

    Args:
        row: Raw row as produced by ``read_csv_rows``
        data_type: Entity kind the file is being imported as

    Returns:
        Record holding only the fields that were present and parseable
    """
    record: MappedRecord = {}

    for field, column in COLUMNS[data_type].items():
        raw = get_field_value(row, column)
        if field == "hours" and (raw is None or not raw.strip()):
            raw = get_field_value(row, LEGACY_HOURS_COLUMN)
        if raw is None:
            continue

        text = raw.strip()
        if not text:
            continue

        value = _coerce(field, text)
        if value is None:
            continue
        record[field] = value

    return record


def raw_value(row: Mapping[Optional[str], Any], data_type: CsvDataType, field: str) -> Optional[str]:
    """The untouched cell behind a logical field, for error reporting."""
    column = COLUMNS[data_type].get(field)
    if column is None:
        return None
    value = get_field_value(row, column)
    if field == "hours" and (value is None or not value.strip()):
        value = get_field_value(row, LEGACY_HOURS_COLUMN)
    return value


def to_wire(record: MappedRecord) -> Dict[str, Any]:
    """camelCase copy of a record for JSON responses."""
    return {to_camel(key): value for key, value in record.items()}
