"""SQLAlchemy Employee model for database operations."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from hrflow.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Employee(Base):
    """
    Employee record created by the background workers.

    Identifiers are generated by the caller so that a retried job can be
    correlated with the row it wrote.
    """
    
    __tablename__ = "employees"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[str] = mapped_column(String(50), nullable=False)
    salary: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )
    
    __table_args__ = (
        Index("ix_employees_created_at", "created_at"),
    )
    
    def to_dict(self) -> Dict[str, Any]:
        """Serialize for event payloads."""
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "position": self.position,
            "salary": float(self.salary) if self.salary is not None else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
    
    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, name='{self.name}')>"
