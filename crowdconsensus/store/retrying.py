"""
Retrying wrapper around a stage store.

Consensus algorithms never retry; the calling layer wraps its store in
RetryingStageStore so transient read failures are retried before they
reach an algorithm.
"""

from typing import Callable, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config.settings import settings
from ..models import Answer, StageConfig, Task, Worker
from .base import StageStore, StoreReadError

logger = structlog.get_logger()

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "store_read_retry",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


class RetryingStageStore(StageStore):
    """Delegates to another store, retrying reads that raise StoreReadError."""

    def __init__(
        self,
        inner: StageStore,
        attempts: int | None = None,
        wait_min: float | None = None,
        wait_max: float | None = None,
    ):
        """
        Initialize retrying store.

        Args:
            inner: The store to delegate to
            attempts: Total read attempts (default from settings)
            wait_min: Minimum backoff in seconds
            wait_max: Maximum backoff in seconds
        """
        self.inner = inner
        self.name = f"retrying:{inner.name}"
        self.attempts = attempts or settings.store_read_attempts
        self.wait_min = settings.store_read_wait_min if wait_min is None else wait_min
        self.wait_max = settings.store_read_wait_max if wait_max is None else wait_max

    def _read(self, fn: Callable[..., T], *args) -> T:
        retrying = Retrying(
            retry=retry_if_exception_type(StoreReadError),
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=1, min=self.wait_min, max=self.wait_max),
            before_sleep=_log_retry,
            reraise=True,
        )
        return retrying(fn, *args)

    def list_tasks_for_stage(self, stage_id: str) -> list[Task]:
        return self._read(self.inner.list_tasks_for_stage, stage_id)

    def list_answers_for_stage(self, stage_id: str) -> list[Answer]:
        return self._read(self.inner.list_answers_for_stage, stage_id)

    def list_workers_for_stage(self, stage_id: str) -> list[Worker]:
        return self._read(self.inner.list_workers_for_stage, stage_id)

    def list_answers_for_task(self, stage_id: str, task_id: int) -> list[Answer]:
        return self._read(self.inner.list_answers_for_task, stage_id, task_id)

    def find_stage(self, stage_id: str) -> StageConfig | None:
        return self._read(self.inner.find_stage, stage_id)

    def list_stages(self) -> list[StageConfig]:
        return self._read(self.inner.list_stages)

    def insert_stage(self, config: StageConfig) -> str:
        return self.inner.insert_stage(config)

    def update_stage(self, config: StageConfig) -> None:
        self.inner.update_stage(config)
