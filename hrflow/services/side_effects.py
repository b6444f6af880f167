"""Non-critical side effects of job processing."""

import logging
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def best_effort(description: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
    """
    Run a side effect whose failure must not fail the job.

    Event publishing and notification writes happen after the record is
    persisted; an error here is logged and the job still succeeds.
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        logger.error(
            f"Failed to {description}: {str(e)}",
            exc_info=True,
            extra={"side_effect": description},
        )
        return None
