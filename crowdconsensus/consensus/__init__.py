"""
Consensus algorithms for crowdsourced labels.

Provides the aggregation and ranking contracts, the baseline algorithms,
Dawid-Skene and ZenCrowd inference, and the registry that selects them by
name.
"""

from .base import (
    AnswerAggregator,
    ConfigurationError,
    ConsensusError,
    StageProcessor,
    TaskPerformanceEstimator,
    UnknownAlgorithmError,
    WorkerRanker,
)
from .baseline import MajorityAggregator, RandomAggregator, RandomRanker
from .dawid_skene import DawidSkeneProcessor, DawidSkeneResult, WorkerModel
from .registry import AlgorithmRegistry, create_default_registry, get_algorithm_registry
from .zencrowd import ZenCrowdProcessor, ZenCrowdResult

__all__ = [
    # Contracts
    "AnswerAggregator",
    "WorkerRanker",
    "TaskPerformanceEstimator",
    "StageProcessor",
    # Errors
    "ConsensusError",
    "ConfigurationError",
    "UnknownAlgorithmError",
    # Baselines
    "RandomAggregator",
    "MajorityAggregator",
    "RandomRanker",
    # EM
    "DawidSkeneProcessor",
    "DawidSkeneResult",
    "WorkerModel",
    "ZenCrowdProcessor",
    "ZenCrowdResult",
    # Registry
    "AlgorithmRegistry",
    "create_default_registry",
    "get_algorithm_registry",
]
