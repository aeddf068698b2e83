"""SQLAlchemy models for timesheet entries and their approvals."""

import enum
from datetime import date as date_type
from datetime import datetime, time
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Time,
    cast,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from timesheet_portal.models.base import Base, generate_uuid
from timesheet_portal.models.employee import Employee
from timesheet_portal.models.project import Project, Stage


class TimesheetStatus(enum.Enum):
    """Workflow status of a timesheet entry."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"


class ApprovalStatus(enum.Enum):
    """Status of the approval attached to a submitted timesheet."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Timesheet(Base):
    """
    Hours booked by one employee on one project for one day.

    Uniqueness is enforced over (employee, project, date, start time) by a
    unique index on ``coalesce(start_time, '')``, so two untimed entries for
    the same day collide as well.
    """

    __tablename__ = "timesheets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    employee_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("stages.id", ondelete="SET NULL"),
        nullable=True,
    )

    work_date: Mapped[date_type] = mapped_column("date", Date, nullable=False)
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    hours: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[TimesheetStatus] = mapped_column(
        Enum(TimesheetStatus, name="timesheet_status"),
        nullable=False,
        default=TimesheetStatus.DRAFT,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    employee: Mapped[Employee] = relationship("Employee", back_populates="timesheets")
    project: Mapped[Project] = relationship("Project", back_populates="timesheets")
    stage: Mapped[Optional[Stage]] = relationship("Stage")
    approval: Mapped[Optional["Approval"]] = relationship(
        "Approval",
        back_populates="timesheet",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_timesheets_employee_date", "employee_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<Timesheet(id={self.id}, date={self.work_date}, hours={self.hours})>"


# NULL start times are distinct under a plain unique constraint
Index(
    "uq_timesheets_employee_project_date_start",
    Timesheet.employee_id,
    Timesheet.project_id,
    Timesheet.work_date,
    func.coalesce(cast(Timesheet.start_time, String), ""),
    unique=True,
)


class Approval(Base):
    """One-to-one approval record for a SUBMITTED or APPROVED timesheet."""

    __tablename__ = "approvals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    timesheet_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("timesheets.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    submitter_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    approver_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )

    status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, name="approval_status"),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    timesheet: Mapped[Timesheet] = relationship("Timesheet", back_populates="approval")

    def __repr__(self) -> str:
        return f"<Approval(timesheet_id={self.timesheet_id}, status={self.status.value})>"
