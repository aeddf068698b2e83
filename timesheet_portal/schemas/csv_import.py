"""Pydantic models for CSV import, import logs and their API responses.

Python attributes are snake_case; the JSON contract is camelCase.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that serializes field names as camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RowErrorCode(str, Enum):
    """Row-level error taxonomy."""

    FIELD_MISSING = "field_missing"
    FORMAT = "format"
    REFERENTIAL = "referential"
    DUPLICATE = "duplicate"
    STORAGE = "storage"


class DuplicateDecision(str, Enum):
    REPLACE = "replace"
    SKIP = "skip"


class DuplicateSource(str, Enum):
    """Where the conflicting record lives."""

    DATABASE = "database"
    FILE = "file"


# =============================================================================
# Row Results
# =============================================================================

class RowFieldError(CamelModel):
    """A single problem found on one CSV row."""

    field: Optional[str] = Field(None, description="Logical column name, if the error is tied to one")
    message: str = Field(..., description="Human-readable description of the problem")
    value: Optional[Any] = Field(None, description="The offending value as read from the file")
    code: RowErrorCode = Field(..., description="Error category")


class RowErrors(CamelModel):
    """All errors found on one CSV row."""

    row_number: int = Field(..., description="1-based data row number (header excluded)")
    errors: List[RowFieldError] = Field(default_factory=list)


class DuplicateRecord(CamelModel):
    """A natural-key collision awaiting a caller decision."""

    row: int = Field(..., description="Row number of the incoming record")
    field: str = Field(..., description="Natural-key field(s) that collided")
    value: str = Field(..., description="Natural-key value as read from the row")
    key: str = Field(..., description="Key to use in the duplicateDecisions map")
    source: DuplicateSource = Field(..., description="Whether the conflict is stored or earlier in the file")
    existing_data: Dict[str, Any] = Field(default_factory=dict)
    new_data: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Responses
# =============================================================================

class ValidateResponse(CamelModel):
    """Result of a read-only validation pass over an uploaded file."""

    data_type: str = Field(..., description="Entity kind that was validated")
    total_rows: int = Field(..., description="Data rows in the file")
    valid_rows: int = Field(..., description="Rows with no errors")
    error_rows: int = Field(..., description="Rows with one or more errors")
    is_valid: bool = Field(..., description="True when no row has errors")
    errors: List[RowErrors] = Field(default_factory=list)
    duplicates: List[DuplicateRecord] = Field(default_factory=list)
    preview: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="First mapped rows that passed validation",
    )


class ExecuteResponse(CamelModel):
    """Result of executing an import."""

    import_log_id: str = Field(..., description="Identifier of the persisted import log")
    status: str = Field(..., description="SUCCESS, PARTIAL or FAILED")
    total_rows: int
    success_rows: int
    error_rows: int = Field(..., description="Failed rows, skipped duplicates included")
    skipped_rows: int = Field(0, description="Duplicates skipped by decision or by default")
    replaced_rows: int = Field(0, description="Rows that replaced an existing record")
    errors: List[RowErrors] = Field(default_factory=list)


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class ImportErrorDetail(CamelModel):
    """Persisted error row of an import log."""

    id: str
    row_number: int
    field: Optional[str] = None
    value: Optional[str] = None
    message: str
    code: str


class ImportLogSummary(CamelModel):
    """One import log in a listing."""

    id: str
    data_type: str
    file_name: str
    total_rows: int
    success_rows: int
    error_rows: int
    skipped_rows: int
    status: str
    operator_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ImportLogDetail(ImportLogSummary):
    """Import log with its persisted errors ordered by row."""

    errors: List[ImportErrorDetail] = Field(default_factory=list)


class ImportLogListResponse(CamelModel):
    logs: List[ImportLogSummary] = Field(default_factory=list)
    pagination: Pagination
