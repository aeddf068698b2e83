"""SQLAlchemy Employee model."""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from timesheet_portal.models.base import Base, generate_uuid

if TYPE_CHECKING:
    from timesheet_portal.models.timesheet import Timesheet


class Role(enum.Enum):
    """Role hierarchy. LEVEL1 is the administrator tier."""

    LEVEL1 = "LEVEL1"
    LEVEL2 = "LEVEL2"
    LEVEL3 = "LEVEL3"


class Employee(Base):
    """
    Employee record.

    Identified in business terms by ``employee_id``; ``id`` is the
    internal storage key referenced by timesheets and approvals.
    """

    __tablename__ = "employees"

    # Primary Key
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Natural key and contact
    employee_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)

    # Job
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="employee_role"),
        nullable=False,
        default=Role.LEVEL3,
    )
    position: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    timesheets: Mapped[List["Timesheet"]] = relationship(
        "Timesheet",
        back_populates="employee",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Employee(employee_id={self.employee_id}, role={self.role.value})>"
