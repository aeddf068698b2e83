"""CsvImportLog and CsvImportError models for tracking import executions."""

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from timesheet_portal.models.base import Base, generate_uuid


class CsvDataType(enum.Enum):
    """Entity kinds that can be imported from CSV."""

    EMPLOYEE = "EMPLOYEE"
    PROJECT = "PROJECT"
    STAGE = "STAGE"
    TIMESHEET = "TIMESHEET"


class CsvImportStatus(enum.Enum):
    """Status values for an import execution."""

    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class CsvImportLog(Base):
    """
    One row per executed import.

    Created in PROCESSING state when execution starts and finalized with
    aggregate counters once every row of the file has been handled.
    """

    __tablename__ = "csv_import_logs"

    # Primary Key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # File information
    data_type: Mapped[CsvDataType] = mapped_column(
        Enum(CsvDataType, name="csv_data_type"),
        nullable=False,
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Row counters
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Status
    status: Mapped[CsvImportStatus] = mapped_column(
        Enum(CsvImportStatus, name="csv_import_status"),
        nullable=False,
        default=CsvImportStatus.PROCESSING,
        index=True,
    )

    # Operator identity as supplied by the authentication layer
    operator_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Timestamps
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    errors: Mapped[List["CsvImportError"]] = relationship(
        "CsvImportError",
        back_populates="import_log",
        cascade="all, delete-orphan",
        order_by="CsvImportError.row_number",
    )

    __table_args__ = (
        Index("ix_csv_import_logs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CsvImportLog(id={self.id}, data_type={self.data_type.value}, "
            f"status={self.status.value})>"
        )


class CsvImportError(Base):
    """A single failed or skipped row of an import execution."""

    __tablename__ = "csv_import_errors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    import_log_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("csv_import_logs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    field: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # One of field_missing, format, referential, duplicate, storage
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    import_log: Mapped[CsvImportLog] = relationship("CsvImportLog", back_populates="errors")

    def __repr__(self) -> str:
        return f"<CsvImportError(row={self.row_number}, code={self.code})>"
