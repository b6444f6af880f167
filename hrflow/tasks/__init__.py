"""Background tasks for asynchronous operations."""

from hrflow.tasks.employee_tasks import create_employee
from hrflow.tasks.import_tasks import process_csv_batch

__all__ = [
    "create_employee",
    "process_csv_batch",
]
