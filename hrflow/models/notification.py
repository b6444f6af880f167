"""SQLAlchemy Notification model for durable job outcome records."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from hrflow.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationType(str, Enum):
    """Kinds of notification a job outcome can produce."""
    
    EMPLOYEE_CREATED = "employee_created"
    EMPLOYEE_FAILED = "employee_failed"
    EMPLOYEE_UPDATED = "employee_updated"
    EMPLOYEE_DELETED = "employee_deleted"
    SYSTEM = "system"


class Notification(Base):
    """
    Durable record of a job outcome.
    
    Written once per job outcome, independent of live delivery. Only the
    read flag is ever updated; rows are never deleted automatically.
    """
    
    __tablename__ = "notifications"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(
            NotificationType,
            name="notification_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=NotificationType.SYSTEM,
    )
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    job_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Reference to background job ID",
    )
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
        comment="Additional notification data",
    )
    
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
        Index("ix_notifications_read", "read"),
        Index("ix_notifications_type", "type"),
        Index("ix_notifications_created_at", "created_at"),
        Index("ix_notifications_job_id", "job_id"),
        # One notification per job outcome
        Index("uq_notifications_job_outcome", "job_id", "type", "title", unique=True),
    )
    
    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses."""
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value if self.type else None,
            "read": self.read,
            "jobId": self.job_id,
            "metadata": self.metadata_,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
