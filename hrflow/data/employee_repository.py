"""Employee repository for data access operations."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from hrflow.database.database import session_scope
from hrflow.models.employee import Employee


@dataclass
class EmployeeRecord:
    """Validated employee fields ready to be persisted."""

    id: str
    name: str
    age: int
    position: str
    salary: float

    def to_model(self) -> Employee:
        """Build the ORM instance for this record."""
        return Employee(
            id=self.id,
            name=self.name,
            age=self.age,
            position=self.position,
            salary=Decimal(str(self.salary)),
        )


class EmployeeRepository:
    """
    Record store used by the background workers.

    Each call runs in its own unit of work, so a failure in one job never
    rolls back rows written by another.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        """Initialize repository with a session factory."""
        self.session_factory = session_factory

    def create(self, record: EmployeeRecord) -> Dict[str, Any]:
        """
        Persist a single employee.

        Returns:
            Serialized employee as stored, including timestamps.
        """
        with session_scope(self.session_factory) as session:
            employee = record.to_model()
            session.add(employee)
            session.flush()
            return employee.to_dict()

    def bulk_create(self, records: Sequence[EmployeeRecord]) -> int:
        """
        Persist a batch of employees in one transaction.

        Either every row is written or none is; the caller retries the
        whole batch on failure. Records whose ID already exists are
        skipped, so replaying a batch with the same IDs writes nothing new.

        Returns:
            Number of rows inserted.
        """
        if not records:
            return 0

        with session_scope(self.session_factory) as session:
            ids = [record.id for record in records]
            existing = set(session.scalars(select(Employee.id).where(Employee.id.in_(ids))))
            new_records = [record for record in records if record.id not in existing]

            session.add_all([record.to_model() for record in new_records])
            session.flush()

        return len(new_records)

    # =========================================================================
    # Read helpers
    # =========================================================================
    # Employee reads belong to the CRUD service; these back tests and
    # operational checks of what the workers persisted.

    def get(self, employee_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a single employee by ID. Not served over HTTP."""
        with session_scope(self.session_factory) as session:
            employee = session.get(Employee, employee_id)
            return employee.to_dict() if employee else None

    def list_all(self) -> List[Dict[str, Any]]:
        """Return every employee, newest first. Not served over HTTP, and unpaginated."""
        with session_scope(self.session_factory) as session:
            stmt = select(Employee).order_by(Employee.created_at.desc())
            return [employee.to_dict() for employee in session.scalars(stmt)]
