"""Models package for the HR records service."""

from hrflow.models.base import Base
from hrflow.models.employee import Employee
from hrflow.models.notification import Notification, NotificationType

__all__ = [
    "Base",
    "Employee",
    "Notification",
    "NotificationType",
]
