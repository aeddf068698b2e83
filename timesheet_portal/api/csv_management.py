"""API endpoints for CSV import, import logs, templates and exports."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from timesheet_portal.database.database import get_db
from timesheet_portal.schemas.csv_import import (
    ExecuteResponse,
    ImportLogDetail,
    ImportLogListResponse,
    ValidateResponse,
)
from timesheet_portal.services.csv_export_service import CsvExportService
from timesheet_portal.services.csv_import_service import (
    CsvImportService,
    parse_data_type,
    parse_duplicate_decisions,
)
from timesheet_portal.services.import_log_service import ImportLogService
from timesheet_portal.utils.auth import CurrentUser, require_import_permission


# =============================================================================
# Dependency Injection
# =============================================================================

def get_import_service(
    session: Annotated[Session, Depends(get_db)],
) -> CsvImportService:
    return CsvImportService(session)


def get_log_service(
    session: Annotated[Session, Depends(get_db)],
) -> ImportLogService:
    return ImportLogService(session)


def get_export_service(
    session: Annotated[Session, Depends(get_db)],
) -> CsvExportService:
    return CsvExportService(session)


# =============================================================================
# Router Setup
# =============================================================================

csv_management_router = APIRouter(
    prefix="/api/csv",
    tags=["CSV Management"],
)


# =============================================================================
# Import Endpoints
# =============================================================================

@csv_management_router.post(
    "/import/validate",
    response_model=ValidateResponse,
    summary="Validate CSV Import",
    description="Check an uploaded CSV file without writing anything.",
)
async def validate_import(
    csv_file: Annotated[UploadFile, File(alias="csvFile", description="CSV file to validate")],
    service: Annotated[CsvImportService, Depends(get_import_service)],
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    data_type: Annotated[Optional[str], Form(alias="dataType")] = None,
) -> ValidateResponse:
    """
    Validate a CSV file for one entity kind.

    - Reports rule violations per row
    - Reports natural-key duplicates against storage and within the file
    - Returns a preview of the first valid rows
    """
    kind = parse_data_type(data_type)
    content = await csv_file.read()
    return service.validate(filename=csv_file.filename, content=content, data_type=kind)


@csv_management_router.post(
    "/import/execute",
    response_model=ExecuteResponse,
    summary="Execute CSV Import",
    description="Import an uploaded CSV file row by row and record an import log.",
)
async def execute_import(
    csv_file: Annotated[UploadFile, File(alias="csvFile", description="CSV file to import")],
    service: Annotated[CsvImportService, Depends(get_import_service)],
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    data_type: Annotated[Optional[str], Form(alias="dataType")] = None,
    duplicate_decisions: Annotated[
        Optional[str],
        Form(
            alias="duplicateDecisions",
            description='JSON object mapping "row:N" entries or duplicate keys to "replace" or "skip"',
        ),
    ] = None,
) -> ExecuteResponse:
    """
    Execute an import.

    Each row is committed on its own. Duplicates without a decision are
    skipped.
    """
    kind = parse_data_type(data_type)
    decisions = parse_duplicate_decisions(duplicate_decisions)
    content = await csv_file.read()
    return service.execute(
        filename=csv_file.filename,
        content=content,
        data_type=kind,
        decisions=decisions,
        current_user=current_user,
    )


# =============================================================================
# Import Log Endpoints
# =============================================================================

@csv_management_router.get(
    "/import/logs",
    response_model=ImportLogListResponse,
    summary="List Import Logs",
)
async def list_import_logs(
    service: Annotated[ImportLogService, Depends(get_log_service)],
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    page: Annotated[int, Query(ge=1, description="Page number (1-based)")] = 1,
    limit: Annotated[Optional[int], Query(ge=1, description="Logs per page")] = None,
) -> ImportLogListResponse:
    return service.list_logs(page=page, limit=limit)


@csv_management_router.get(
    "/import/logs/{log_id}",
    response_model=ImportLogDetail,
    summary="Get Import Log",
)
async def get_import_log(
    log_id: str,
    service: Annotated[ImportLogService, Depends(get_log_service)],
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
) -> ImportLogDetail:
    return service.get_log(log_id)


# =============================================================================
# Template / Export Endpoints
# =============================================================================

def _csv_download(filename: str, content: bytes) -> StreamingResponse:
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@csv_management_router.get(
    "/template/{entity}",
    summary="Download CSV Template",
    description="Header row plus one sample row for employees, projects, stages or timesheets.",
)
async def download_template(
    entity: str,
    service: Annotated[CsvExportService, Depends(get_export_service)],
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
) -> StreamingResponse:
    filename, content = service.template(entity)
    return _csv_download(filename, content)


@csv_management_router.get(
    "/export/{entity}",
    summary="Export Data as CSV",
    description="All stored records of an entity, using the import column headers.",
)
async def export_entity(
    entity: str,
    service: Annotated[CsvExportService, Depends(get_export_service)],
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
) -> StreamingResponse:
    filename, content = service.export(entity)
    return _csv_download(filename, content)
