"""Service for CSV import validation and execution."""

import json
import logging
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from timesheet_portal.config.settings import Settings, get_settings
from timesheet_portal.models.csv_import import CsvDataType
from timesheet_portal.schemas.csv_import import (
    DuplicateDecision,
    DuplicateRecord,
    ExecuteResponse,
    RowErrors,
    ValidateResponse,
)
from timesheet_portal.services.duplicate_resolver import DuplicateResolver
from timesheet_portal.services.import_executor import ImportExecutor
from timesheet_portal.services.row_mapper import map_row, to_wire
from timesheet_portal.services.row_validator import RowValidator
from timesheet_portal.utils.auth import CurrentUser
from timesheet_portal.utils.csv_parser import compute_file_checksum, read_csv_rows
from timesheet_portal.utils.errors import ValidationError, create_validation_error

logger = logging.getLogger(__name__)


class ImportRunState(str, Enum):
    """Lifecycle of one import run, as reported in the logs."""

    RECEIVED = "RECEIVED"
    VALIDATING = "VALIDATING"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    AWAITING_DUPLICATE_DECISION = "AWAITING_DUPLICATE_DECISION"
    EXECUTING = "EXECUTING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


def parse_data_type(value: Optional[str]) -> CsvDataType:
    """Resolve the ``dataType`` form field."""
    if not value:
        raise create_validation_error("dataType is required", "dataType", "required")
    try:
        return CsvDataType(value.strip().upper())
    except ValueError:
        raise create_validation_error(
            f"Unsupported dataType '{value}'. Expected one of: "
            f"{', '.join(t.value for t in CsvDataType)}",
            "dataType",
        )


def parse_duplicate_decisions(raw: Optional[str]) -> Dict[str, DuplicateDecision]:
    """
    Parse the ``duplicateDecisions`` form field.

    The field is a JSON object whose keys are "row:N" entries or duplicate keys
    and whose values are "replace" or "skip". Missing or blank means no
    decisions.
    """
    if raw is None or not raw.strip():
        return {}

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise create_validation_error(
            f"duplicateDecisions is not valid JSON: {e.msg}",
            "duplicateDecisions",
        )

    if not isinstance(payload, dict):
        raise create_validation_error(
            "duplicateDecisions must be a JSON object",
            "duplicateDecisions",
        )

    decisions: Dict[str, DuplicateDecision] = {}
    for key, value in payload.items():
        try:
            decisions[str(key)] = DuplicateDecision(str(value).lower())
        except ValueError:
            raise create_validation_error(
                f"Decision for '{key}' must be 'replace' or 'skip', got '{value}'",
                "duplicateDecisions",
            )
    return decisions


class CsvImportService:
    """
    Orchestrates the two request-level operations on an uploaded file.

    ``validate`` is read-only and reports errors, duplicates and a preview.
    ``execute`` re-reads the file from scratch and hands it to the
    ``ImportExecutor``; nothing from an earlier validate call is reused.
    """

    def __init__(self, session: Session, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    # =========================================================================
    # Upload checks
    # =========================================================================

    def check_upload(self, filename: Optional[str], content: bytes) -> None:
        """Reject uploads that are not a non-empty CSV within the size limit."""
        limits = self.settings.csv_import

        if not filename:
            raise create_validation_error("csvFile is required", "csvFile", "required")

        ext = Path(filename).suffix.lower()
        if ext not in limits.allowed_extensions:
            raise create_validation_error(
                f"Only CSV files are accepted (got '{ext or filename}')",
                "csvFile",
                "invalid_extension",
            )

        if len(content) > limits.max_file_size_bytes:
            raise create_validation_error(
                f"File size ({len(content) / 1024 / 1024:.2f} MB) exceeds maximum "
                f"allowed size ({limits.max_file_size_mb} MB)",
                "csvFile",
                "file_too_large",
            )

        if not content:
            raise create_validation_error("File is empty", "csvFile", "empty")

    def _read_rows(self, filename: str, content: bytes, run_id: str) -> List[Mapping[Optional[str], Any]]:
        self.check_upload(filename, content)
        rows = read_csv_rows(content)
        if not rows:
            raise ValidationError(message="CSV file contains no data rows")
        logger.info(
            f"Run {run_id} {ImportRunState.RECEIVED.value}: '{filename}' "
            f"({len(rows)} rows, sha256 {compute_file_checksum(content)[:12]})"
        )
        return rows

    # =========================================================================
    # Validate
    # =========================================================================

    def validate(self, filename: str, content: bytes, data_type: CsvDataType) -> ValidateResponse:
        """
        Validate an uploaded file without writing anything.

        Returns row errors, natural-key duplicates (against storage and
        against earlier rows of the same file) and a preview of the first
        valid mapped rows.
        """
        run_id = uuid.uuid4().hex[:8]
        rows = self._read_rows(filename, content, run_id)
        logger.info(f"Run {run_id} {ImportRunState.VALIDATING.value}: {data_type.value}")

        validator = RowValidator(self.session, track_batch=True)
        resolver = DuplicateResolver(self.session, data_type, track_batch=True)
        preview_limit = self.settings.csv_import.preview_rows

        errors: List[RowErrors] = []
        duplicates: List[DuplicateRecord] = []
        preview: List[Dict[str, Any]] = []

        for row_number, row in enumerate(rows, start=1):
            record = map_row(row, data_type)

            row_errors = validator.validate(record, data_type, row_number)
            if row_errors:
                errors.append(RowErrors(row_number=row_number, errors=row_errors))
                continue

            duplicate = resolver.check(record, row_number)
            if duplicate is not None:
                duplicates.append(duplicate)

            if len(preview) < preview_limit:
                preview.append({"rowNumber": row_number, **to_wire(record)})

        summary = f"{len(rows)} rows, {len(errors)} with errors, {len(duplicates)} duplicate(s)"
        if errors:
            logger.info(f"Run {run_id} {ImportRunState.VALIDATION_FAILED.value}: {summary}")
        elif duplicates:
            logger.info(f"Run {run_id} {ImportRunState.AWAITING_DUPLICATE_DECISION.value}: {summary}")
        else:
            logger.info(f"Run {run_id} ready to execute: {summary}")

        return ValidateResponse(
            data_type=data_type.value,
            total_rows=len(rows),
            valid_rows=len(rows) - len(errors),
            error_rows=len(errors),
            is_valid=not errors,
            errors=errors,
            duplicates=duplicates,
            preview=preview,
        )

    # =========================================================================
    # Execute
    # =========================================================================

    def execute(
        self,
        filename: str,
        content: bytes,
        data_type: CsvDataType,
        decisions: Mapping[str, DuplicateDecision],
        current_user: CurrentUser,
    ) -> ExecuteResponse:
        """Import the file row by row and persist an import log."""
        run_id = uuid.uuid4().hex[:8]
        rows = self._read_rows(filename, content, run_id)
        logger.info(
            f"Run {run_id} {ImportRunState.EXECUTING.value}: {data_type.value} "
            f"with {len(decisions)} duplicate decision(s)"
        )

        executor = ImportExecutor(self.session, self.settings)
        result = executor.execute(
            rows=rows,
            data_type=data_type,
            decisions=decisions,
            file_name=filename,
            operator_id=current_user.id,
        )

        logger.info(f"Run {run_id} {ImportRunState(result.status).value}: import log {result.import_log_id}")
        return result
