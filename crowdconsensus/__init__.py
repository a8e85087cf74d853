"""
Crowd consensus engine.

Fuses conflicting worker labels into consensus answers and estimates
worker reliability, with the algorithm chosen per stage.
"""

from .models import (
    AggregationType,
    Answer,
    AnswerAggregation,
    AnswerType,
    StageConfig,
    Task,
    Worker,
    WorkerRanking,
)

__version__ = "0.1.0"

__all__ = [
    "AggregationType",
    "Answer",
    "AnswerAggregation",
    "AnswerType",
    "StageConfig",
    "Task",
    "Worker",
    "WorkerRanking",
]
