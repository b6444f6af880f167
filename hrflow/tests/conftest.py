"""Shared fixtures: fake Redis, in-memory database and a recording Celery app."""

from unittest.mock import MagicMock

import fakeredis
import pytest

from hrflow.config.settings import ImportSettings, QueueSettings, Settings
from hrflow.container import AppContainer
from hrflow.database.database import (
    DatabaseConfig,
    create_db_engine,
    create_session_factory,
    init_db,
)
from hrflow.services.job_store import JobOptions, JobStore


@pytest.fixture
def redis_client():
    """Isolated fake Redis server per test."""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_db_engine(DatabaseConfig(url_override="sqlite://"))
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def celery_app():
    """Celery stand-in that records `send_task` calls."""
    return MagicMock(name="celery_app")


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        queue=QueueSettings(backoff_delay_seconds=0.01),
        imports=ImportSettings(batch_size=50),
    )


@pytest.fixture
def job_store(celery_app, redis_client):
    return JobStore(celery_app, redis_client, default_options=JobOptions(backoff_delay=0.01))


@pytest.fixture
def container(settings, redis_client, session_factory, celery_app):
    return AppContainer(
        settings=settings,
        redis=redis_client,
        session_factory=session_factory,
        celery_app=celery_app,
    )
