"""
In-memory stage store.

Keeps stages, tasks, workers and answers in process memory. Writes are
serialized with a lock; reads return snapshots, so concurrent consensus
computations never observe a half-applied write.
"""

import threading
from collections import defaultdict
from typing import Iterable, TypeVar

import structlog
from pydantic import BaseModel

from ..models import Answer, StageConfig, Task, Worker
from .base import StageConflictError, StageNotFoundError, StageStore

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", bound=BaseModel)


class InMemoryStageStore(StageStore):
    """Stage store backed by dictionaries; identifiers are assigned on insert."""

    name = "memory"

    def __init__(self):
        """Initialize an empty store."""
        self._lock = threading.Lock()
        self._stages: dict[str, StageConfig] = {}
        self._tasks: dict[str, list[Task]] = defaultdict(list)
        self._workers: dict[str, list[Worker]] = defaultdict(list)
        self._answers: dict[str, list[Answer]] = defaultdict(list)
        self._sequences: dict[str, int] = defaultdict(int)

    # ---- stages ----

    def find_stage(self, stage_id: str) -> StageConfig | None:
        return self._stages.get(stage_id)

    def list_stages(self) -> list[StageConfig]:
        return list(self._stages.values())

    def insert_stage(self, config: StageConfig) -> str:
        with self._lock:
            if config.id in self._stages:
                raise StageConflictError(config.id)
            self._stages[config.id] = config
        logger.info("stage_inserted", stage=config.id)
        return config.id

    def update_stage(self, config: StageConfig) -> None:
        with self._lock:
            if config.id not in self._stages:
                raise StageNotFoundError(config.id)
            self._stages[config.id] = config
        logger.info("stage_updated", stage=config.id)

    # ---- reads ----

    def list_tasks_for_stage(self, stage_id: str) -> list[Task]:
        self._require_stage(stage_id)
        return list(self._tasks[stage_id])

    def list_workers_for_stage(self, stage_id: str) -> list[Worker]:
        self._require_stage(stage_id)
        return list(self._workers[stage_id])

    def list_answers_for_stage(self, stage_id: str) -> list[Answer]:
        self._require_stage(stage_id)
        return list(self._answers[stage_id])

    # ---- writes ----

    def add_tasks(self, stage_id: str, tasks: Iterable[Task]) -> list[Task]:
        """Insert tasks, assigning identifiers to those without one."""
        return self._insert(stage_id, "tasks", self._tasks, tasks)

    def add_workers(self, stage_id: str, workers: Iterable[Worker]) -> list[Worker]:
        """Insert workers, assigning identifiers to those without one."""
        return self._insert(stage_id, "workers", self._workers, workers)

    def add_answers(self, stage_id: str, answers: Iterable[Answer]) -> list[Answer]:
        """Insert answers, assigning identifiers to those without one."""
        return self._insert(stage_id, "answers", self._answers, answers)

    def _insert(
        self,
        stage_id: str,
        kind: str,
        table: dict[str, list[RecordT]],
        records: Iterable[RecordT],
    ) -> list[RecordT]:
        self._require_stage(stage_id)
        stored: list[RecordT] = []
        with self._lock:
            sequence_key = f"{stage_id}:{kind}"
            for record in records:
                if getattr(record, "stage") != stage_id:
                    raise ValueError(
                        f"{kind} record belongs to stage {getattr(record, 'stage')!r}, not {stage_id!r}"
                    )
                record_id = getattr(record, "id")
                if record_id is None:
                    self._sequences[sequence_key] += 1
                    record = record.model_copy(update={"id": self._sequences[sequence_key]})
                else:
                    self._sequences[sequence_key] = max(self._sequences[sequence_key], record_id)
                table[stage_id].append(record)
                stored.append(record)

        logger.debug("records_inserted", stage=stage_id, kind=kind, count=len(stored))
        return stored

    def _require_stage(self, stage_id: str) -> None:
        if stage_id not in self._stages:
            raise StageNotFoundError(stage_id)
