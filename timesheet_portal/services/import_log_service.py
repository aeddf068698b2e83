"""Read access to persisted import logs."""

import math
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from timesheet_portal.config.settings import Settings, get_settings
from timesheet_portal.models.csv_import import CsvImportLog
from timesheet_portal.schemas.csv_import import (
    ImportErrorDetail,
    ImportLogDetail,
    ImportLogListResponse,
    ImportLogSummary,
    Pagination,
)
from timesheet_portal.utils.errors import create_not_found_error


class ImportLogService:
    """Paginated listing and detail lookup of CSV import logs."""

    def __init__(self, session: Session, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    def list_logs(self, page: int = 1, limit: Optional[int] = None) -> ImportLogListResponse:
        """
        List import logs, newest first.

        ``page`` is 1-based; ``limit`` is clamped to the configured range.
        """
        pagination = self.settings.pagination
        if limit is None:
            limit = pagination.default_page_size
        limit = max(pagination.min_page_size, min(limit, pagination.max_page_size))
        page = max(page, 1)

        total = self.session.execute(select(func.count()).select_from(CsvImportLog)).scalar() or 0

        stmt = (
            select(CsvImportLog)
            .order_by(CsvImportLog.start_time.desc(), CsvImportLog.id)
            .limit(limit)
            .offset((page - 1) * limit)
        )
        logs = list(self.session.scalars(stmt))

        return ImportLogListResponse(
            logs=[self._to_summary(log) for log in logs],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                pages=math.ceil(total / limit) if total else 0,
            ),
        )

    def get_log(self, log_id: str) -> ImportLogDetail:
        """Fetch one log with its errors ordered by row number."""
        log = self.session.scalar(
            select(CsvImportLog)
            .options(selectinload(CsvImportLog.errors))
            .where(CsvImportLog.id == log_id)
        )
        if log is None:
            raise create_not_found_error("Import log", log_id)

        summary = self._to_summary(log)
        return ImportLogDetail(
            **summary.model_dump(),
            errors=[
                ImportErrorDetail(
                    id=error.id,
                    row_number=error.row_number,
                    field=error.field,
                    value=error.value,
                    message=error.message,
                    code=error.code,
                )
                for error in sorted(log.errors, key=lambda e: e.row_number)
            ],
        )

    @staticmethod
    def _to_summary(log: CsvImportLog) -> ImportLogSummary:
        return ImportLogSummary(
            id=log.id,
            data_type=log.data_type.value,
            file_name=log.file_name,
            total_rows=log.total_rows,
            success_rows=log.success_rows,
            error_rows=log.error_rows,
            skipped_rows=log.skipped_rows,
            status=log.status.value,
            operator_id=log.operator_id,
            start_time=log.start_time,
            end_time=log.end_time,
            created_at=log.created_at,
        )
