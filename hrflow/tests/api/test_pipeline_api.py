"""Tests for the async employee, import, job and notification endpoints."""

import pytest
from fastapi.testclient import TestClient
from kombu.exceptions import OperationalError

from hrflow.main import create_app


HEADERS = {"X-User-ID": "user-1"}


def make_csv(count: int) -> bytes:
    lines = ["name,age,position,salary"]
    lines += [f"Employee {i},30,Engineer,{50000 + i}" for i in range(count)]
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def client(container):
    # Not used as a context manager, so the notification bridge stays stopped
    return TestClient(create_app(container))


# =============================================================================
# Async Employee Creation Tests
# =============================================================================

class TestCreateEmployeeAsync:
    """Test cases for POST /api/employees/async."""

    def test_queues_job(self, client, celery_app):
        """Test the job is accepted with its ID."""
        response = client.post(
            "/api/employees/async",
            json={"name": "Ann", "age": 30, "position": "Dev", "salary": 1000},
            headers=HEADERS,
        )

        assert response.status_code == 202
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Employee creation queued"
        assert body["data"]["status"] == "queued"
        job_id = body["data"]["jobId"]

        payload = celery_app.send_task.call_args.kwargs["kwargs"]["payload"]
        assert payload["jobId"] == job_id
        assert payload["userId"] == "user-1"

    def test_requires_user(self, client, celery_app):
        """Test requests without a user are rejected."""
        response = client.post("/api/employees/async", json={"name": "Ann"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"
        celery_app.send_task.assert_not_called()

    def test_queue_unavailable(self, client, celery_app):
        """Test a broker outage is reported as 503."""
        celery_app.send_task.side_effect = OperationalError("down")

        response = client.post("/api/employees/async", json={"name": "Ann"}, headers=HEADERS)

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "service_unavailable"


# =============================================================================
# CSV Import Tests
# =============================================================================

class TestCsvImport:
    """Test cases for the import endpoints."""

    def test_upload_starts_import(self, client, celery_app):
        """Test a CSV upload is split into batch jobs."""
        response = client.post(
            "/api/import/employees",
            files={"file": ("employees.csv", make_csv(120), "text/csv")},
            headers=HEADERS,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "CSV import started successfully"
        assert body["data"]["totalRows"] == 120
        assert body["data"]["totalBatches"] == 3
        assert body["data"]["batchSize"] == 50
        assert celery_app.send_task.call_count == 3

        status = client.get(f"/api/import/status/{body['data']['jobId']}", headers=HEADERS)
        assert status.status_code == 200
        assert status.json()["data"]["status"] == "processing"
        assert status.json()["data"]["totalBatches"] == 3

    def test_rejects_non_csv(self, client):
        """Test other file types are rejected."""
        response = client.post(
            "/api/import/employees",
            files={"file": ("employees.xlsx", b"data", "application/octet-stream")},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Only CSV files are allowed"

    def test_no_valid_rows(self, client, celery_app):
        """Test a file with no importable rows is rejected before enqueueing."""
        response = client.post(
            "/api/import/employees",
            files={"file": ("employees.csv", b"name,age,position,salary\n,,,x\n", "text/csv")},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "no_valid_data"
        celery_app.send_task.assert_not_called()

    def test_empty_file(self, client):
        """Test an empty upload is rejected."""
        response = client.post(
            "/api/import/employees",
            files={"file": ("employees.csv", b"", "text/csv")},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "no_valid_data"

    def test_unknown_import(self, client):
        """Test polling an unknown import returns 404."""
        response = client.get("/api/import/status/missing", headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Import job not found"


# =============================================================================
# Job State Tests
# =============================================================================

class TestJobs:
    """Test cases for the job endpoints."""

    def test_get_job(self, client, container):
        """Test a queued job can be looked up."""
        job_id = container.employee_queue.enqueue_employee_creation({"name": "Ann"}, "user-1")

        response = client.get(f"/api/jobs/{job_id}", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["jobId"] == job_id
        assert data["state"] == "waiting"
        assert data["topic"] == "create-employee"

    def test_unknown_job(self, client):
        """Test an unknown job returns 404."""
        assert client.get("/api/jobs/missing", headers=HEADERS).status_code == 404

    def test_stats(self, client, container):
        """Test counts are reported per topic."""
        container.employee_queue.enqueue_employee_creation({"name": "Ann"}, "user-1")

        data = client.get("/api/jobs/stats", headers=HEADERS).json()["data"]

        assert data["create-employee"]["waiting"] == 1
        assert data["process-csv-batch"]["waiting"] == 0


# =============================================================================
# Notification Tests
# =============================================================================

class TestNotifications:
    """Test cases for the notification endpoints."""

    def test_list_and_mark_read(self, client, container):
        """Test listing notifications and marking them read."""
        for i in range(3):
            container.notifications.create_notification(f"Title {i}", "message", job_id=f"job-{i}")

        listing = client.get("/api/notifications?page=1&limit=2", headers=HEADERS).json()["data"]
        assert len(listing["notifications"]) == 2
        assert listing["pagination"]["total"] == 3
        assert listing["pagination"]["totalPages"] == 2
        assert listing["unreadCount"] == 3

        marked = client.patch("/api/notifications/read-all", headers=HEADERS).json()["data"]
        assert marked["updated"] == 3

        unread = client.get("/api/notifications?unreadOnly=true", headers=HEADERS).json()["data"]
        assert unread["pagination"]["total"] == 0

    def test_limit_is_capped(self, client):
        """Test page sizes above 100 are rejected."""
        assert client.get("/api/notifications?limit=101", headers=HEADERS).status_code == 422

    def test_connection_status(self, client):
        """Test live connection counts."""
        data = client.get("/api/notifications/status", headers=HEADERS).json()["data"]

        assert data["userId"] == "user-1"
        assert data["activeConnections"] == 0
        assert data["totalActiveConnections"] == 0


class TestHealth:
    """Test cases for the health endpoint."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
