"""Pydantic schemas for API request/response validation."""

from timesheet_portal.schemas.csv_import import (
    DuplicateDecision,
    DuplicateRecord,
    DuplicateSource,
    ExecuteResponse,
    ImportErrorDetail,
    ImportLogDetail,
    ImportLogListResponse,
    ImportLogSummary,
    Pagination,
    RowErrorCode,
    RowErrors,
    RowFieldError,
    ValidateResponse,
)

__all__ = [
    "DuplicateDecision",
    "DuplicateRecord",
    "DuplicateSource",
    "ExecuteResponse",
    "ImportErrorDetail",
    "ImportLogDetail",
    "ImportLogListResponse",
    "ImportLogSummary",
    "Pagination",
    "RowErrorCode",
    "RowErrors",
    "RowFieldError",
    "ValidateResponse",
]
