"""
Celery Application Entry Point

Run a worker with:

    celery -A hrflow.tasks.celery_app worker -Q employees,imports
"""

import logging
import threading
from typing import List, Optional

from hrflow.config.settings import get_settings
from hrflow.container import AppContainer
from hrflow.infrastructure.redis.celery_config import CeleryConfig, create_celery_app

logger = logging.getLogger(__name__)

# =============================================================================
# Celery Application
# =============================================================================

TASK_MODULES: List[str] = [
    "hrflow.tasks.employee_tasks",
    "hrflow.tasks.import_tasks",
]

celery_app = create_celery_app(config=CeleryConfig.from_settings(get_settings().queue))
celery_app.conf.update(
    include=TASK_MODULES,
    task_track_started=True,
)

logger.info(f"Celery app configured with task modules: {TASK_MODULES}")


# =============================================================================
# Worker Dependencies
# =============================================================================

_container: Optional[AppContainer] = None
_container_lock = threading.Lock()


def get_worker_container() -> AppContainer:
    """Dependencies for tasks in this worker process, built on first use."""
    global _container
    if _container is None:
        with _container_lock:
            if _container is None:
                _container = AppContainer.from_settings(celery_app=celery_app)
    return _container


def set_worker_container(container: Optional[AppContainer]) -> None:
    """Replace the worker dependencies (for testing)."""
    global _container
    with _container_lock:
        _container = container
