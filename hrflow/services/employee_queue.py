"""
Deferred single-employee creation.

`EmployeeQueue` is the producer used by the HTTP layer; the Celery task
`tasks.create_employee` runs `EmployeeCreationWorker` for each job.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from hrflow.data.employee_repository import EmployeeRecord, EmployeeRepository
from hrflow.models.notification import NotificationType
from hrflow.services.event_bus import JobEvent, RedisPubSubBus
from hrflow.services.job_store import JobOptions, JobStore, Topic
from hrflow.services.notification_service import NotificationService
from hrflow.services.side_effects import best_effort
from hrflow.utils.csv_parser import parse_float, parse_integer
from hrflow.utils.errors import JobValidationError, create_field_error

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "employee-notifications"

# Checked in this order; missing names are reported in the same order
REQUIRED_FIELDS = ("name", "age", "position", "salary")

EVENT_EMPLOYEE_CREATED = "employee_created"


# =============================================================================
# Worker
# =============================================================================

class EmployeeCreationWorker:
    """Validates and persists one employee per `create-employee` job."""

    def __init__(
        self,
        record_store: EmployeeRepository,
        bus: RedisPubSubBus,
        notifications: NotificationService,
        channel: str = DEFAULT_CHANNEL,
    ):
        self.record_store = record_store
        self.bus = bus
        self.notifications = notifications
        self.channel = channel

    def validate(self, employee_data: Any) -> EmployeeRecord:
        """
        Check the submitted fields and coerce them for storage.

        Raises:
            JobValidationError: On the first rule the data breaks.
        """
        if not employee_data or not isinstance(employee_data, dict):
            raise JobValidationError("Employee data is required")

        missing = [name for name in REQUIRED_FIELDS if employee_data.get(name) is None]
        if missing:
            raise JobValidationError(
                f"Missing required fields: {', '.join(missing)}",
                field_errors=[create_field_error(name, "Field is required", "required") for name in missing],
                missing_fields=missing,
            )

        name = employee_data["name"]
        if not isinstance(name, str) or not name.strip():
            raise JobValidationError(
                "Name is required",
                field_errors=[create_field_error("name", "Name is required")],
            )

        age, age_error = parse_integer(employee_data["age"])
        if age_error:
            raise JobValidationError(
                "Age must be a number",
                field_errors=[create_field_error("age", age_error)],
            )

        position = employee_data["position"]
        if not isinstance(position, str) or not position.strip():
            raise JobValidationError(
                "Position is required",
                field_errors=[create_field_error("position", "Position is required")],
            )

        salary, salary_error = parse_float(employee_data["salary"])
        if salary_error or salary <= 0:
            raise JobValidationError(
                "Salary must be a positive number",
                field_errors=[create_field_error("salary", salary_error or "Must be greater than 0")],
            )

        return EmployeeRecord(
            id=str(uuid.uuid4()),
            name=name,
            age=age,
            position=position,
            salary=salary,
        )

    def process(self, job_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create the employee described by a job payload.

        Validation errors and persistence errors propagate to the job
        store; the success event and notification are best-effort.
        """
        job_id = job_data.get("jobId")
        user_id = job_data.get("userId")

        record = self.validate(job_data.get("employeeData"))
        employee = self.record_store.create(record)

        logger.info(
            f"Created employee {employee['id']} for job {job_id}",
            extra={"job_id": job_id, "user_id": user_id, "employee_id": employee["id"]},
        )

        event = JobEvent(
            type=EVENT_EMPLOYEE_CREATED,
            user_id=user_id,
            job_id=job_id,
            status="success",
            data={"employee": employee},
        )
        best_effort("publish employee created event", self.bus.publish, self.channel, event)
        best_effort(
            "create employee created notification",
            self.notifications.create_notification,
            title="Employee Created Successfully",
            message=f'Employee "{employee["name"]}" has been created successfully.',
            type=NotificationType.EMPLOYEE_CREATED,
            job_id=job_id,
            metadata={
                "employeeId": employee["id"],
                "employeeName": employee["name"],
                "position": employee["position"],
            },
        )

        return {"success": True, "employee": employee}

    def report_failure(self, job_data: Dict[str, Any], error: BaseException) -> None:
        """Publish the error event and failure notification for a job that will not be retried."""
        job_id = job_data.get("jobId")
        message = getattr(error, "message", None) or str(error)

        event = JobEvent(
            type=EVENT_EMPLOYEE_CREATED,
            user_id=job_data.get("userId"),
            job_id=job_id,
            status="error",
            error=message,
        )
        best_effort("publish employee error event", self.bus.publish, self.channel, event)
        best_effort(
            "create employee failed notification",
            self.notifications.create_notification,
            title="Employee Creation Failed",
            message=f"Failed to create employee: {message}",
            type=NotificationType.EMPLOYEE_FAILED,
            job_id=job_id,
            metadata={"error": message, "employeeData": job_data.get("employeeData")},
        )


# =============================================================================
# Producer
# =============================================================================

class EmployeeQueue:
    """Submits employee creation jobs."""

    def __init__(self, job_store: JobStore, options: Optional[JobOptions] = None):
        self.job_store = job_store
        self.options = options

    def enqueue_employee_creation(self, employee_data: Dict[str, Any], user_id: Optional[str]) -> str:
        """
        Submit one employee for background creation.

        Returns:
            The job ID the outcome events and notification will carry.

        Raises:
            JobStoreUnavailableError: The job could not be enqueued.
        """
        job_id = str(uuid.uuid4())
        payload = {"employeeData": employee_data, "jobId": job_id, "userId": user_id}
        return self.job_store.enqueue(
            Topic.CREATE_EMPLOYEE,
            payload,
            options=self.options,
            job_id=job_id,
        )
