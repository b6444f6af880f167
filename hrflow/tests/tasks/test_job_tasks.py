"""Tests for the Celery job tasks, run eagerly."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from hrflow.models.notification import NotificationType
from hrflow.services.job_store import JobLeaseHeld, JobState, Topic
from hrflow.services.progress_store import ProgressStatus
from hrflow.tasks import create_employee, process_csv_batch
from hrflow.tasks.base import JobTask
from hrflow.tasks.celery_app import set_worker_container


@pytest.fixture(autouse=True)
def worker_container(container):
    set_worker_container(container)
    yield container
    set_worker_container(None)


def last_sent(celery_app):
    call = celery_app.send_task.call_args
    return call.kwargs["task_id"], call.kwargs["kwargs"]["payload"]


def run_task(task, job_id, payload):
    return task.apply(kwargs={"payload": payload}, task_id=job_id, retries=0)


# =============================================================================
# Employee Creation Task Tests
# =============================================================================

class TestCreateEmployeeTask:
    """Test cases for tasks.create_employee."""

    def test_creates_employee(self, container, celery_app):
        """Test a queued employee is created and the job completed."""
        container.employee_queue.enqueue_employee_creation(
            {"name": "Ann", "age": 30, "position": "Dev", "salary": 1000}, "user-1"
        )
        job_id, payload = last_sent(celery_app)

        result = run_task(create_employee, job_id, payload)

        assert result.successful()
        assert result.result["success"] is True
        assert len(container.employees.list_all()) == 1
        assert container.job_store.get_job(job_id).state == JobState.COMPLETED

    def test_invalid_employee_fails_once(self, container, celery_app):
        """Test validation failures are not retried and reported once."""
        container.employee_queue.enqueue_employee_creation(
            {"name": "Ann", "age": 30, "position": "Dev", "salary": 0}, "user-1"
        )
        job_id, payload = last_sent(celery_app)

        result = run_task(create_employee, job_id, payload)

        assert result.failed()
        job = container.job_store.get_job(job_id)
        assert job.state == JobState.FAILED
        assert job.attempt == 1
        page = container.notifications.list_notifications()
        assert page.total == 1
        assert page.notifications[0]["type"] == NotificationType.EMPLOYEE_FAILED.value

    def test_retries_until_exhausted(self, container, celery_app, monkeypatch):
        """Test a persistent storage error is retried up to the attempt limit."""
        calls = []

        def broken_create(record):
            calls.append(record)
            raise ConnectionError("db down")

        monkeypatch.setattr(container.employees, "create", broken_create)
        container.employee_queue.enqueue_employee_creation(
            {"name": "Ann", "age": 30, "position": "Dev", "salary": 1000}, "user-1"
        )
        job_id, payload = last_sent(celery_app)

        result = run_task(create_employee, job_id, payload)

        assert result.failed()
        assert len(calls) == 3
        job = container.job_store.get_job(job_id)
        assert job.state == JobState.FAILED
        assert job.attempt == 3
        assert container.notifications.list_notifications().total == 1

    def test_crashed_job_is_redelivered(self, container, celery_app, monkeypatch):
        """Test a job whose worker died mid-attempt runs again on redelivery."""
        container.employee_queue.enqueue_employee_creation(
            {"name": "Ann", "age": 30, "position": "Dev", "salary": 1000}, "user-1"
        )
        job_id, payload = last_sent(celery_app)
        # The first worker claims the job and dies without ack or fail
        container.job_store.dequeue(Topic.CREATE_EMPLOYEE, job_id, payload, attempt=1, owner="worker-a")
        monkeypatch.setattr(JobTask, "is_redelivery", lambda self: True)

        result = run_task(create_employee, job_id, payload)

        assert result.successful()
        assert result.result["success"] is True
        assert len(container.employees.list_all()) == 1
        assert container.job_store.get_job(job_id).state == JobState.COMPLETED

    def test_leased_job_is_deferred(self, container, celery_app, monkeypatch):
        """Test a delivery that finds a live worker on the job is retried, not acknowledged."""
        container.employee_queue.enqueue_employee_creation(
            {"name": "Ann", "age": 30, "position": "Dev", "salary": 1000}, "user-1"
        )
        job_id, payload = last_sent(celery_app)
        store = container.job_store
        holder = store.dequeue(Topic.CREATE_EMPLOYEE, job_id, payload, attempt=1, owner="worker-a")
        deferrals = []
        original_dequeue = store.dequeue

        def dequeue(*args, **kwargs):
            try:
                return original_dequeue(*args, **kwargs)
            except JobLeaseHeld:
                deferrals.append(kwargs["attempt"])
                # The live worker finishes before the deferred delivery runs
                store.ack(holder)
                raise

        monkeypatch.setattr(store, "dequeue", dequeue)

        result = run_task(create_employee, job_id, payload)

        assert deferrals == [1]
        assert result.result == {"skipped": True, "jobId": job_id}
        assert container.employees.list_all() == []
        assert store.get_job(job_id).state == JobState.COMPLETED

    def test_unrecorded_failure_is_retried(self, container, celery_app, monkeypatch):
        """Test a failure Redis could not record still retries and reports once."""
        calls = []
        fail_errors = [RedisConnectionError("redis down")]
        original_fail = container.job_store.fail

        def broken_create(record):
            calls.append(record)
            raise ConnectionError("db down")

        def flaky_fail(*args, **kwargs):
            if fail_errors:
                raise fail_errors.pop()
            return original_fail(*args, **kwargs)

        monkeypatch.setattr(container.employees, "create", broken_create)
        monkeypatch.setattr(container.job_store, "fail", flaky_fail)
        container.employee_queue.enqueue_employee_creation(
            {"name": "Ann", "age": 30, "position": "Dev", "salary": 1000}, "user-1"
        )
        job_id, payload = last_sent(celery_app)

        result = run_task(create_employee, job_id, payload)

        assert result.failed()
        assert len(calls) == 3
        job = container.job_store.get_job(job_id)
        assert job.state == JobState.FAILED
        assert job.attempt == 3
        page = container.notifications.list_notifications()
        assert page.total == 1
        assert page.notifications[0]["type"] == NotificationType.EMPLOYEE_FAILED.value


# =============================================================================
# Import Batch Task Tests
# =============================================================================

class TestProcessCsvBatchTask:
    """Test cases for tasks.process_csv_batch."""

    def test_import_runs_to_completion(self, container, celery_app):
        """Test every batch task completes the import."""
        rows = "\n".join(f"Emp {i},{30},Dev,{1000 + i}" for i in range(75))
        submission = container.import_queue.submit_csv(
            f"name,age,position,salary\n{rows}\n".encode("utf-8"), user_id="user-1"
        )

        for call in celery_app.send_task.call_args_list:
            result = run_task(process_csv_batch, call.kwargs["task_id"], call.kwargs["kwargs"]["payload"])
            assert result.successful()

        progress = container.import_queue.get_import_progress(submission.job_id)
        assert progress.processed == 2
        assert progress.progress == 100
        assert progress.status == ProgressStatus.COMPLETED
        assert len(container.employees.list_all()) == 75
