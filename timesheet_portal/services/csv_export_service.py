"""CSV templates and exports.

Exports use the same column headers as imports, so an exported file can
be edited and imported again.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from timesheet_portal.models.csv_import import CsvDataType
from timesheet_portal.models.employee import Employee
from timesheet_portal.models.project import Project, Stage
from timesheet_portal.models.timesheet import Timesheet
from timesheet_portal.services.row_mapper import COLUMNS
from timesheet_portal.utils.csv_parser import generate_csv_content
from timesheet_portal.utils.errors import create_validation_error

logger = logging.getLogger(__name__)

ENTITIES: Dict[str, CsvDataType] = {
    "employees": CsvDataType.EMPLOYEE,
    "projects": CsvDataType.PROJECT,
    "stages": CsvDataType.STAGE,
    "timesheets": CsvDataType.TIMESHEET,
}

SAMPLE_ROWS: Dict[CsvDataType, Dict[str, Any]] = {
    CsvDataType.EMPLOYEE: {
        "employee_id": "EMP001",
        "name": "John Doe",
        "email": "john.doe@company.com",
        "role": "LEVEL3",
        "position": "Senior Architect",
        "is_active": True,
    },
    CsvDataType.PROJECT: {
        "project_code": "PROJ001",
        "name": "Sample Project",
        "description": "Project description",
        "nickname": "Sample",
        "start_date": "2024-01-01",
        "end_date": "2024-12-31",
        "status": "ACTIVE",
    },
    CsvDataType.STAGE: {
        "task_id": "TD.01.00",
        "name": "Schematic Design",
        "description": "Concept and schematic drawings",
        "category": "DESIGN",
        "is_active": True,
    },
    CsvDataType.TIMESHEET: {
        "employee_id": "EMP001",
        "project_code": "PROJ001",
        "stage_id": "TD.01.00",
        "date": "2024-01-01",
        "start_time": "09:00",
        "end_time": "17:00",
        "hours": 8,
        "description": "Daily work",
        "status": "DRAFT",
    },
}


def resolve_entity(entity: str) -> CsvDataType:
    """Map a URL entity segment such as ``employees`` to its data type."""
    data_type = ENTITIES.get(entity.lower())
    if data_type is None:
        raise create_validation_error(
            f"Unknown entity '{entity}'. Expected one of: {', '.join(ENTITIES)}",
            "entity",
        )
    return data_type


def _headed(data_type: CsvDataType, record: Dict[str, Any]) -> Dict[str, Any]:
    # logical field names -> CSV headers
    return {COLUMNS[data_type][field]: value for field, value in record.items()}


class CsvExportService:
    """Builds CSV templates and full-table exports."""

    def __init__(self, session: Session):
        self.session = session

    def template(self, entity: str) -> Tuple[str, bytes]:
        """Header row plus one sample row."""
        data_type = resolve_entity(entity)
        headers = list(COLUMNS[data_type].values())
        content = generate_csv_content([_headed(data_type, SAMPLE_ROWS[data_type])], headers)
        return f"{entity.lower()}_template.csv", content

    def export(self, entity: str) -> Tuple[str, bytes]:
        """Every stored record of the entity, one row each."""
        data_type = resolve_entity(entity)
        headers = list(COLUMNS[data_type].values())

        loaders = {
            CsvDataType.EMPLOYEE: self._employee_rows,
            CsvDataType.PROJECT: self._project_rows,
            CsvDataType.STAGE: self._stage_rows,
            CsvDataType.TIMESHEET: self._timesheet_rows,
        }
        records = loaders[data_type]()
        logger.info(f"Exporting {len(records)} {entity.lower()}")

        content = generate_csv_content([_headed(data_type, r) for r in records], headers)
        return f"{entity.lower()}_{date.today().isoformat()}.csv", content

    def _employee_rows(self) -> List[Dict[str, Any]]:
        employees = self.session.scalars(select(Employee).order_by(Employee.employee_id))
        return [
            {
                "employee_id": e.employee_id,
                "name": e.name,
                "email": e.email,
                "role": e.role.value,
                "position": e.position,
                "is_active": e.is_active,
            }
            for e in employees
        ]

    def _project_rows(self) -> List[Dict[str, Any]]:
        projects = self.session.scalars(select(Project).order_by(Project.project_code))
        return [
            {
                "project_code": p.project_code,
                "name": p.name,
                "description": p.description,
                "nickname": p.nickname,
                "start_date": p.start_date,
                "end_date": p.end_date,
                "status": p.status.value,
            }
            for p in projects
        ]

    def _stage_rows(self) -> List[Dict[str, Any]]:
        stages = self.session.scalars(select(Stage).order_by(Stage.task_id))
        return [
            {
                "task_id": s.task_id,
                "name": s.name,
                "description": s.description,
                "category": s.category,
                "is_active": s.is_active,
            }
            for s in stages
        ]

    def _timesheet_rows(self) -> List[Dict[str, Any]]:
        timesheets = self.session.scalars(
            select(Timesheet)
            .options(
                joinedload(Timesheet.employee),
                joinedload(Timesheet.project),
                joinedload(Timesheet.stage),
            )
            .order_by(Timesheet.work_date.desc(), Timesheet.start_time)
        )
        return [
            {
                "employee_id": t.employee.employee_id,
                "project_code": t.project.project_code,
                "stage_id": t.stage.task_id if t.stage else None,
                "date": t.work_date,
                "start_time": t.start_time,
                "end_time": t.end_time,
                "hours": t.hours,
                "description": t.description,
                "status": t.status.value,
            }
            for t in timesheets
        ]
