"""
Baseline algorithms.

Reference implementations that need no model: random and majority
aggregation, and random ranking.
"""

import random
from collections import Counter, defaultdict
from typing import Iterable

import structlog

from ..models import Answer, AnswerAggregation, StageConfig, Task, Worker, WorkerRanking
from ..store.base import StageStore
from .base import (
    AnswerAggregator,
    StageProcessor,
    TaskPerformanceEstimator,
    WorkerRanker,
    persisted_workers,
)

logger = structlog.get_logger()


def group_answer_labels(answers: Iterable[Answer]) -> dict[int, list[str]]:
    """Collect the labels of ANSWER-typed answers per task id."""
    grouped: dict[int, list[str]] = defaultdict(list)
    for answer in answers:
        if not answer.is_answer:
            continue
        grouped[answer.task_id].extend(answer.labels)
    return grouped


class RandomAggregator(StageProcessor, AnswerAggregator):
    """Picks one of the submitted labels uniformly at random."""

    name = "random"

    def __init__(
        self,
        stage: StageConfig,
        store: StageStore,
        rng: random.Random | None = None,
    ):
        super().__init__(stage, store)
        self.rng = rng or random.Random()

    def aggregate(self, tasks: Iterable[Task]) -> dict[Task, AnswerAggregation]:
        tasks = list(tasks)
        if not tasks:
            return {}

        labels_by_task = group_answer_labels(self.store.list_answers_for_stage(self.stage.id))
        results: dict[Task, AnswerAggregation] = {}
        for task in tasks:
            candidates = sorted(set(labels_by_task.get(task.id, ())))
            if not candidates:
                results[task] = AnswerAggregation.empty(task)
                continue
            results[task] = AnswerAggregation(task=task, labels=(self.rng.choice(candidates),))

        logger.debug("random_aggregation", stage=self.stage.id, tasks=len(tasks))
        return results


class MajorityAggregator(StageProcessor, AnswerAggregator):
    """Scores every submitted label by its share of the votes."""

    name = "majority"

    def aggregate(self, tasks: Iterable[Task]) -> dict[Task, AnswerAggregation]:
        tasks = list(tasks)
        if not tasks:
            return {}

        labels_by_task = group_answer_labels(self.store.list_answers_for_stage(self.stage.id))
        results: dict[Task, AnswerAggregation] = {}
        for task in tasks:
            votes = Counter(labels_by_task.get(task.id, ()))
            total = sum(votes.values())
            if total == 0:
                results[task] = AnswerAggregation.empty(task)
                continue
            shares = {label: count / total for label, count in votes.items()}
            results[task] = AnswerAggregation.from_confidences(task, shares)

        logger.debug("majority_aggregation", stage=self.stage.id, tasks=len(tasks))
        return results


class RandomRanker(StageProcessor, WorkerRanker, TaskPerformanceEstimator):
    """Ranks workers with uniform random values in [0, 1)."""

    name = "random"

    def __init__(
        self,
        stage: StageConfig,
        store: StageStore,
        rng: random.Random | None = None,
    ):
        super().__init__(stage, store)
        self.rng = rng or random.Random()

    def rank(self, workers: Iterable[Worker]) -> dict[int, WorkerRanking]:
        return {
            worker.id: WorkerRanking(worker=worker, reputation=self.rng.random())
            for worker in persisted_workers(workers)
        }

    def estimate_performance(self, worker: Worker, task: Task | None = None) -> float:
        return self.rng.random()
