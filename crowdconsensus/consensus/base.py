"""
Consensus contracts.

Defines the interfaces every aggregation and ranking algorithm implements,
and the errors raised when a stage selects an algorithm that does not exist.
"""

from abc import ABC, abstractmethod
from typing import Iterable

import structlog

from ..models import AnswerAggregation, StageConfig, Task, Worker, WorkerRanking
from ..store.base import StageStore

logger = structlog.get_logger()


class StageProcessor:
    """Common state of algorithms bound to one stage."""

    name: str = "base"

    def __init__(self, stage: StageConfig, store: StageStore):
        """
        Bind the algorithm to a stage.

        Args:
            stage: Stage definition (options are read on every call)
            store: Store the algorithm reads its snapshot from
        """
        self.stage = stage
        self.store = store


def persisted_workers(workers: Iterable[Worker]) -> list[Worker]:
    """Workers that have an identifier; rankings are keyed by worker id."""
    workers = list(workers)
    persisted = [worker for worker in workers if worker.id is not None]
    if len(persisted) < len(workers):
        logger.warning("unpersisted_workers_skipped", count=len(workers) - len(persisted))
    return persisted


class AnswerAggregator(ABC):
    """
    Fuses worker answers into a consensus answer per task.

    Batch results contain an entry for every requested task; the entry is
    EMPTY-typed when nothing can be computed for it.
    """

    @abstractmethod
    def aggregate(self, tasks: Iterable[Task]) -> dict[Task, AnswerAggregation]:
        """
        Aggregate answers for a collection of tasks.

        Args:
            tasks: Tasks to aggregate

        Returns:
            Mapping of task to its aggregation; empty for empty input
        """
        pass

    def aggregate_one(self, task: Task) -> AnswerAggregation | None:
        """
        Aggregate a single task.

        Returns:
            The aggregation, or None when the task is absent from the batch
            result or its aggregation is EMPTY
        """
        aggregation = self.aggregate([task]).get(task)
        if aggregation is None or aggregation.is_empty:
            return None
        return aggregation


class WorkerRanker(ABC):
    """Estimates the reliability of workers."""

    @abstractmethod
    def rank(self, workers: Iterable[Worker]) -> dict[int, WorkerRanking]:
        """
        Rank a collection of workers.

        Args:
            workers: Workers to rank

        Returns:
            Mapping of worker id to ranking; empty for empty input. Workers
            without an id are skipped
        """
        pass

    def rank_one(self, worker: Worker) -> WorkerRanking | None:
        """Rank a single worker, or None if the batch result has no entry."""
        return self.rank([worker]).get(worker.id)


class TaskPerformanceEstimator(ABC):
    """Optional capability: a worker's expected performance, possibly per task."""

    @abstractmethod
    def estimate_performance(self, worker: Worker, task: Task | None = None) -> float:
        """Estimate performance of a worker, optionally conditioned on a task."""
        pass


class ConsensusError(Exception):
    """Base exception for consensus errors."""

    pass


class ConfigurationError(ConsensusError):
    """Raised when a stage configuration cannot be activated."""

    def __init__(self, message: str, stage_id: str | None = None):
        self.message = message
        self.stage_id = stage_id
        super().__init__(f"[{stage_id}] {message}" if stage_id else message)


class UnknownAlgorithmError(ConfigurationError):
    """Raised when a stage names an algorithm that is not registered."""

    def __init__(self, kind: str, algorithm: str, stage_id: str | None = None):
        self.kind = kind
        self.algorithm = algorithm
        super().__init__(f"Unknown {kind} '{algorithm}'", stage_id)
