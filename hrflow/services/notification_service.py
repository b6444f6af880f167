"""Service for durable job outcome notifications."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from hrflow.database.database import session_scope
from hrflow.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


@dataclass
class NotificationPage:
    """One page of notifications plus pagination metadata."""

    notifications: List[Dict[str, Any]] = field(default_factory=list)
    page: int = 1
    limit: int = 20
    total: int = 0
    unread_count: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notifications": self.notifications,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
            "unreadCount": self.unread_count,
        }


class NotificationService:
    """
    Stores and queries notifications.

    A notification is written once per job outcome; writing the same
    job/type/title again returns the existing row.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    # =========================================================================
    # Creation
    # =========================================================================

    def create_notification(
        self,
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
        job_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create a notification, or return the existing one for this job outcome."""
        notification_type = NotificationType(type)

        try:
            with session_scope(self.session_factory) as session:
                if job_id is not None:
                    existing = self._find_outcome(session, job_id, notification_type, title)
                    if existing is not None:
                        logger.info(
                            f"Notification for job {job_id} ({notification_type.value}) already exists",
                            extra={"job_id": job_id, "notification_id": existing.id},
                        )
                        return existing.to_dict()

                notification = Notification(
                    title=title,
                    message=message,
                    type=notification_type,
                    job_id=job_id,
                    metadata_=metadata,
                )
                session.add(notification)
                session.flush()

                logger.info(
                    f"Created {notification_type.value} notification {notification.id}",
                    extra={"job_id": job_id, "notification_id": notification.id},
                )
                return notification.to_dict()
        except IntegrityError:
            if job_id is None:
                raise
            # Another writer stored the same outcome between our select and insert
            with session_scope(self.session_factory) as session:
                existing = self._find_outcome(session, job_id, notification_type, title)
                if existing is None:
                    raise
                logger.info(
                    f"Notification for job {job_id} ({notification_type.value}) was stored concurrently",
                    extra={"job_id": job_id, "notification_id": existing.id},
                )
                return existing.to_dict()

    def _find_outcome(
        self,
        session: Session,
        job_id: str,
        notification_type: NotificationType,
        title: str,
    ) -> Optional[Notification]:
        return session.scalars(
            select(Notification).where(
                Notification.job_id == job_id,
                Notification.type == notification_type,
                Notification.title == title,
            )
        ).first()

    # =========================================================================
    # Queries
    # =========================================================================

    def list_notifications(
        self,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> NotificationPage:
        """List notifications newest first."""
        page = max(page, 1)
        limit = max(limit, 1)

        with session_scope(self.session_factory) as session:
            conditions = [Notification.read.is_(False)] if unread_only else []

            total = session.scalar(
                select(func.count()).select_from(Notification).where(*conditions)
            ) or 0

            stmt = (
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc(), Notification.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            items = [notification.to_dict() for notification in session.scalars(stmt)]

            return NotificationPage(
                notifications=items,
                page=page,
                limit=limit,
                total=total,
                unread_count=self._count_unread(session),
            )

    def unread_count(self) -> int:
        """Number of unread notifications."""
        with session_scope(self.session_factory) as session:
            return self._count_unread(session)

    def _count_unread(self, session: Session) -> int:
        return session.scalar(
            select(func.count()).select_from(Notification).where(Notification.read.is_(False))
        ) or 0

    # =========================================================================
    # Updates
    # =========================================================================

    def mark_all_as_read(self) -> int:
        """Mark every unread notification as read; returns how many changed."""
        with session_scope(self.session_factory) as session:
            result = session.execute(
                update(Notification)
                .where(Notification.read.is_(False))
                .values(read=True)
            )
            updated = result.rowcount or 0

        logger.info(f"Marked {updated} notifications as read")
        return updated
