"""
Stage management.

Creates and updates stage definitions, and activates them by resolving
their algorithm names once. An activated Stage serves aggregation and
ranking requests.
"""

import threading
from dataclasses import dataclass
from typing import Any, Iterable

import structlog

from ..consensus.base import AnswerAggregator, WorkerRanker
from ..consensus.registry import AlgorithmRegistry, get_algorithm_registry
from ..models import AnswerAggregation, StageConfig, Task, Worker, WorkerRanking
from ..store.base import StageConflictError, StageNotFoundError, StageStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class Stage:
    """A stage definition with its resolved algorithms."""

    config: StageConfig
    aggregator: AnswerAggregator
    ranker: WorkerRanker

    @property
    def id(self) -> str:
        return self.config.id

    def aggregate(self, tasks: Iterable[Task]) -> dict[Task, AnswerAggregation]:
        return self.aggregator.aggregate(tasks)

    def aggregate_one(self, task: Task) -> AnswerAggregation | None:
        return self.aggregator.aggregate_one(task)

    def rank(self, workers: Iterable[Worker]) -> dict[int, WorkerRanking]:
        return self.ranker.rank(workers)

    def rank_one(self, worker: Worker) -> WorkerRanking | None:
        return self.ranker.rank_one(worker)


class StageService:
    """
    Admin operations on stages and the entry point for consensus requests.

    A stage whose configuration names an unknown algorithm is rejected
    before it is stored, so every stored stage can be activated.
    """

    def __init__(
        self,
        store: StageStore,
        registry: AlgorithmRegistry | None = None,
    ):
        """
        Initialize stage service.

        Args:
            store: Stage store holding definitions and data
            registry: Algorithm registry (default: built-in algorithms)
        """
        self.store = store
        self.registry = registry or get_algorithm_registry()
        self._lock = threading.Lock()
        self._active: dict[str, Stage] = {}

    def activate(self, config: StageConfig) -> Stage:
        """
        Resolve a stage's algorithms.

        Raises:
            UnknownAlgorithmError: If an algorithm name is not registered
        """
        stage = Stage(
            config=config,
            aggregator=self.registry.create_aggregator(config, self.store),
            ranker=self.registry.create_ranker(config, self.store),
        )
        logger.info(
            "stage_activated",
            stage=config.id,
            answer_aggregator=config.answer_aggregator,
            worker_ranker=config.worker_ranker,
        )
        return stage

    def create_stage(
        self,
        stage_id: str,
        description: str = "",
        worker_ranker: str | None = None,
        task_allocator: str | None = None,
        answer_aggregator: str | None = None,
        options: dict[str, Any] | str | None = None,
    ) -> Stage:
        """
        Create and activate a stage.

        Args:
            stage_id: New stage identifier
            description: Human description
            worker_ranker: Ranker name (default from settings)
            task_allocator: Allocator name (default from settings)
            answer_aggregator: Aggregator name (default from settings)
            options: Algorithm tunables as a mapping or JSON text

        Returns:
            The activated Stage

        Raises:
            StageConflictError: If the stage already exists
            UnknownAlgorithmError: If an algorithm name is not registered
        """
        if self.store.find_stage(stage_id) is not None:
            raise StageConflictError(stage_id)

        fields = {
            "worker_ranker": worker_ranker,
            "task_allocator": task_allocator,
            "answer_aggregator": answer_aggregator,
            "options": options,
        }
        config = StageConfig(
            id=stage_id,
            description=description,
            **{key: value for key, value in fields.items() if value is not None},
        )

        stage = self.activate(config)
        self.store.insert_stage(config)
        with self._lock:
            self._active[stage_id] = stage
        return stage

    def update_stage(
        self,
        stage_id: str,
        description: str | None = None,
        worker_ranker: str | None = None,
        task_allocator: str | None = None,
        answer_aggregator: str | None = None,
        options: dict[str, Any] | str | None = None,
    ) -> Stage:
        """
        Change fields of an existing stage and re-activate it.

        Fields left as None keep their current value.

        Raises:
            StageNotFoundError: If the stage is unknown
            UnknownAlgorithmError: If an algorithm name is not registered
        """
        current = self.store.find_stage(stage_id)
        if current is None:
            raise StageNotFoundError(stage_id)

        config = current.with_changes(
            description=description,
            worker_ranker=worker_ranker,
            task_allocator=task_allocator,
            answer_aggregator=answer_aggregator,
            options=options,
        )

        stage = self.activate(config)
        self.store.update_stage(config)
        with self._lock:
            self._active[stage_id] = stage
        return stage

    def get_stage(self, stage_id: str) -> Stage:
        """
        Get an activated stage.

        Raises:
            StageNotFoundError: If the stage is unknown
        """
        with self._lock:
            stage = self._active.get(stage_id)
        if stage is not None:
            return stage

        config = self.store.find_stage(stage_id)
        if config is None:
            raise StageNotFoundError(stage_id)

        stage = self.activate(config)
        with self._lock:
            self._active.setdefault(stage_id, stage)
            return self._active[stage_id]

    def list_stages(self) -> list[Stage]:
        """All stored stages, activated."""
        return [self.get_stage(config.id) for config in self.store.list_stages()]

    def bootstrap(self, configs: Iterable[StageConfig]) -> list[Stage]:
        """
        Create or update stages from definitions (e.g. load_stage_configs()).

        Returns:
            The activated stages in input order
        """
        stages = []
        for config in configs:
            if self.store.find_stage(config.id) is None:
                stage = self.activate(config)
                self.store.insert_stage(config)
            else:
                stage = self.activate(config)
                self.store.update_stage(config)
            with self._lock:
                self._active[config.id] = stage
            stages.append(stage)

        logger.info("stages_bootstrapped", count=len(stages))
        return stages

    def aggregate_stage(self, stage_id: str) -> dict[Task, AnswerAggregation]:
        """Aggregate every task of a stage."""
        stage = self.get_stage(stage_id)
        return stage.aggregate(self.store.list_tasks_for_stage(stage_id))

    def rank_stage(self, stage_id: str) -> dict[int, WorkerRanking]:
        """Rank every worker of a stage."""
        stage = self.get_stage(stage_id)
        return stage.rank(self.store.list_workers_for_stage(stage_id))
