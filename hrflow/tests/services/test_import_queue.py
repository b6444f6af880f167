"""Tests for batched CSV import."""

from unittest.mock import MagicMock

import pytest
from kombu.exceptions import OperationalError

from hrflow.data.employee_repository import EmployeeRepository
from hrflow.services.import_queue import ImportBatchWorker, ImportQueue, row_id_for
from hrflow.services.job_store import Topic
from hrflow.services.notification_service import NotificationService
from hrflow.services.progress_store import ProgressStatus, ProgressStore
from hrflow.utils.errors import JobStoreUnavailableError, JobValidationError, NoValidDataError


def make_csv(count: int) -> bytes:
    lines = ["name,age,position,salary"]
    lines += [f"Employee {i},{20 + i % 40},Engineer,{50000 + i}" for i in range(count)]
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def progress_store(redis_client):
    return ProgressStore(redis_client)


@pytest.fixture
def employees(session_factory):
    return EmployeeRepository(session_factory)


@pytest.fixture
def notifications(session_factory):
    return NotificationService(session_factory)


@pytest.fixture
def bus():
    return MagicMock(name="bus")


@pytest.fixture
def import_queue(job_store, progress_store):
    return ImportQueue(job_store, progress_store, batch_size=50)


@pytest.fixture
def worker(employees, progress_store, bus, notifications):
    return ImportBatchWorker(employees, progress_store, bus, notifications)


def sent_payloads(celery_app):
    return [c.kwargs["kwargs"]["payload"] for c in celery_app.send_task.call_args_list]


# =============================================================================
# Submission Tests
# =============================================================================

class TestSubmitCsv:
    """Test cases for ImportQueue.submit_csv."""

    def test_splits_into_batches(self, import_queue, celery_app, progress_store):
        """Test 120 rows become batch jobs of 50, 50 and 20."""
        submission = import_queue.submit_csv(make_csv(120), user_id="user-1")

        assert submission.total_rows == 120
        assert submission.total_batches == 3
        assert submission.batch_size == 50

        payloads = sent_payloads(celery_app)
        assert [len(p["batch"]) for p in payloads] == [50, 50, 20]
        assert [p["currentBatch"] for p in payloads] == [0, 1, 2]
        assert all(p["jobId"] == submission.job_id for p in payloads)
        assert all(p["totalBatches"] == 3 for p in payloads)
        assert all(p["userId"] == "user-1" for p in payloads)

        task_ids = [c.kwargs["task_id"] for c in celery_app.send_task.call_args_list]
        assert task_ids == [f"{submission.job_id}:batch:{i}" for i in range(3)]

        record = progress_store.get(submission.job_id)
        assert record.total_batches == 3
        assert record.processed == 0

    def test_progress_exists_before_first_batch(self, import_queue, celery_app, progress_store):
        """Test workers never see a batch without a progress record."""
        seen = []

        def check_progress(*args, **kwargs):
            payload = kwargs["kwargs"]["payload"]
            seen.append(progress_store.get(payload["jobId"]) is not None)

        celery_app.send_task.side_effect = check_progress

        import_queue.submit_csv(make_csv(60))

        assert seen == [True, True]

    def test_response_shape(self, import_queue):
        """Test the uploader summary."""
        data = import_queue.submit_csv(make_csv(3)).to_dict()

        assert set(data) == {"jobId", "totalRows", "totalBatches", "batchSize"}
        assert data["totalBatches"] == 1

    def test_no_valid_rows(self, import_queue, celery_app, redis_client):
        """Test a file without importable rows enqueues nothing."""
        content = b"name,age,position,salary\n,abc,,\nBob,,Chef,\n"

        with pytest.raises(NoValidDataError):
            import_queue.submit_csv(content)

        celery_app.send_task.assert_not_called()
        assert redis_client.keys("import-progress:*") == []

    def test_header_only(self, import_queue, celery_app):
        """Test a header without rows is rejected."""
        with pytest.raises(NoValidDataError):
            import_queue.submit_csv(b"name,age,position,salary\n")

        celery_app.send_task.assert_not_called()

    def test_enqueue_failure_marks_import_failed(self, import_queue, celery_app, progress_store):
        """Test a broker failure partway through is recorded on the import."""
        celery_app.send_task.side_effect = [None, OperationalError("down")]

        with pytest.raises(JobStoreUnavailableError):
            import_queue.enqueue_import_batches([[{"name": "a"}], [{"name": "b"}]], "import-9")

        record = progress_store.get("import-9")
        assert record.status == ProgressStatus.ERROR
        assert record.error == "Failed to enqueue batch 2 of 2"


# =============================================================================
# Batch Worker Tests
# =============================================================================

class TestImportBatchWorker:
    """Test cases for ImportBatchWorker."""

    def _process_all(self, import_queue, celery_app, worker, job_store, content):
        submission = import_queue.submit_csv(content, user_id="user-1")
        for call in celery_app.send_task.call_args_list:
            job_id = call.kwargs["task_id"]
            payload = call.kwargs["kwargs"]["payload"]
            job = job_store.dequeue(Topic.PROCESS_CSV_BATCH, job_id, payload, attempt=1)
            worker.process(job.payload)
            job_store.ack(job)
        return submission

    def test_full_import_completes(
        self, import_queue, celery_app, worker, job_store, progress_store, employees, bus
    ):
        """Test all batches processed leaves the import complete."""
        submission = self._process_all(import_queue, celery_app, worker, job_store, make_csv(120))

        record = progress_store.get(submission.job_id)
        assert record.processed == 3
        assert record.total_batches == 3
        assert record.progress == 100
        assert record.status == ProgressStatus.COMPLETED
        assert len(employees.list_all()) == 120

        completed = [c[0][1] for c in bus.publish.call_args_list if c[0][1].type == "import_completed"]
        assert len(completed) == 1
        assert completed[0].job_id == submission.job_id
        assert completed[0].user_id == "user-1"

    def test_redelivered_batch_is_idempotent(
        self, import_queue, celery_app, worker, progress_store, employees, bus, notifications
    ):
        """Test processing a batch twice writes its rows and counts it once."""
        submission = import_queue.submit_csv(make_csv(60), user_id="user-1")
        payloads = sent_payloads(celery_app)

        worker.process(payloads[0])
        worker.process(payloads[1])
        result = worker.process(payloads[1])

        assert result["inserted"] == 0
        record = progress_store.get(submission.job_id)
        assert record.processed == 2
        assert record.status == ProgressStatus.COMPLETED
        assert len(employees.list_all()) == 60
        assert notifications.list_notifications().total == 1

    def test_invalid_rows_are_skipped(self, worker, progress_store, employees):
        """Test unimportable rows are dropped without failing the batch."""
        progress_store.initialize("import-1", 1)
        payload = {
            "batch": [
                {"name": "Ann", "age": "30", "position": "Dev", "salary": "1000"},
                {"name": "", "age": "30", "position": "Dev", "salary": "1000"},
                {"name": "Ben", "age": "n/a", "position": "Dev", "salary": "1000"},
            ],
            "jobId": "import-1",
            "totalBatches": 1,
            "currentBatch": 0,
            "userId": "user-1",
        }

        result = worker.process(payload)

        assert result == {"success": True, "processed": 1, "inserted": 1, "skipped": 2}
        assert employees.get(row_id_for("import-1", 0, 0))["name"] == "Ann"

    def test_out_of_range_batch(self, worker):
        """Test a batch index outside the import is rejected."""
        payload = {"batch": [], "jobId": "import-1", "totalBatches": 2, "currentBatch": 2}

        with pytest.raises(JobValidationError):
            worker.process(payload)

    def test_report_failure(self, worker, progress_store, bus, notifications):
        """Test a terminally failed batch marks the import as failed."""
        progress_store.initialize("import-1", 2)
        payload = {"batch": [], "jobId": "import-1", "totalBatches": 2, "currentBatch": 1, "userId": "u"}

        worker.report_failure(payload, ConnectionError("db down"))

        record = progress_store.get("import-1")
        assert record.status == ProgressStatus.ERROR
        assert record.error == "db down"
        event = bus.publish.call_args[0][1]
        assert event.type == "import_failed"
        assert event.user_id == "u"
        assert notifications.list_notifications().total == 1

    def test_row_ids_are_stable(self):
        """Test the same row position always maps to the same ID."""
        assert row_id_for("import-1", 0, 3) == row_id_for("import-1", 0, 3)
        assert row_id_for("import-1", 0, 3) != row_id_for("import-1", 1, 3)
