"""
Algorithm registry.

Resolves the algorithm names chosen in a stage definition to aggregator
and ranker instances bound to that stage.
"""

from typing import Callable

import structlog

from ..models import StageConfig
from ..store.base import StageStore
from .base import AnswerAggregator, UnknownAlgorithmError, WorkerRanker
from .baseline import MajorityAggregator, RandomAggregator, RandomRanker
from .dawid_skene import DawidSkeneProcessor
from .zencrowd import ZenCrowdProcessor

logger = structlog.get_logger()

AggregatorFactory = Callable[[StageConfig, StageStore], AnswerAggregator]
RankerFactory = Callable[[StageConfig, StageStore], WorkerRanker]


class AlgorithmRegistry:
    """
    Name -> factory tables for aggregators and rankers.

    Unknown names raise UnknownAlgorithmError; there is no fallback to a
    baseline.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._aggregators: dict[str, AggregatorFactory] = {}
        self._rankers: dict[str, RankerFactory] = {}

    def register_aggregator(self, name: str, factory: AggregatorFactory) -> None:
        """Register an answer aggregator under a name, replacing any previous one."""
        self._aggregators[name] = factory
        logger.debug("aggregator_registered", algorithm=name)

    def register_ranker(self, name: str, factory: RankerFactory) -> None:
        """Register a worker ranker under a name, replacing any previous one."""
        self._rankers[name] = factory
        logger.debug("ranker_registered", algorithm=name)

    def aggregator_names(self) -> list[str]:
        return sorted(self._aggregators)

    def ranker_names(self) -> list[str]:
        return sorted(self._rankers)

    def create_aggregator(self, stage: StageConfig, store: StageStore) -> AnswerAggregator:
        """
        Build the answer aggregator a stage selects.

        Args:
            stage: Stage definition
            store: Store the aggregator will read from

        Returns:
            Aggregator bound to the stage

        Raises:
            UnknownAlgorithmError: If the name is not registered
        """
        factory = self._aggregators.get(stage.answer_aggregator)
        if factory is None:
            raise UnknownAlgorithmError("answer aggregator", stage.answer_aggregator, stage.id)
        return factory(stage, store)

    def create_ranker(self, stage: StageConfig, store: StageStore) -> WorkerRanker:
        """
        Build the worker ranker a stage selects.

        Raises:
            UnknownAlgorithmError: If the name is not registered
        """
        factory = self._rankers.get(stage.worker_ranker)
        if factory is None:
            raise UnknownAlgorithmError("worker ranker", stage.worker_ranker, stage.id)
        return factory(stage, store)


def create_default_registry() -> AlgorithmRegistry:
    """Registry holding every built-in algorithm."""
    registry = AlgorithmRegistry()

    registry.register_aggregator("random", RandomAggregator)
    registry.register_aggregator("majority", MajorityAggregator)
    registry.register_aggregator("dawid_skene", DawidSkeneProcessor)
    registry.register_aggregator("zencrowd", ZenCrowdProcessor)

    registry.register_ranker("random", RandomRanker)
    registry.register_ranker("dawid_skene", DawidSkeneProcessor)
    registry.register_ranker("zencrowd", ZenCrowdProcessor)

    return registry


# Singleton instance
_registry: AlgorithmRegistry | None = None


def get_algorithm_registry() -> AlgorithmRegistry:
    """Get the singleton algorithm registry instance."""
    global _registry
    if _registry is None:
        _registry = create_default_registry()
    return _registry
