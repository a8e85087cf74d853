"""
ZenCrowd inference.

A one-coin EM model: each worker has a single reliability, the
probability that the label they submit is the true one. Reliabilities are
a public output of the estimation.

References:
    Demartini, Difallah & Cudré-Mauroux (2013), Large-scale linked data
    integration using probabilistic reasoning and crowdsourcing.
    doi:10.1007/s00778-013-0324-z
"""

import math
from dataclasses import dataclass, field
from typing import Iterable

import structlog

from ..config.settings import settings
from ..models import Answer, AnswerAggregation, Task, Worker, WorkerRanking
from .base import AnswerAggregator, StageProcessor, WorkerRanker, persisted_workers
from .em import (
    Assignment,
    collect_assignments,
    collect_categories,
    group_by_task,
    group_by_worker,
    initial_posteriors,
    normalize_log_scores,
    safe_log,
)

logger = structlog.get_logger()


@dataclass
class ZenCrowdResult:
    """Outcome of one ZenCrowd estimation."""

    categories: tuple[str, ...]
    posteriors: dict[int, dict[str, float]]
    answered: frozenset[int]
    reliability: dict[int, float] = field(default_factory=dict)
    iterations: int = 0
    converged: bool = True


def estimate_reliability(
    assignments: list[Assignment],
    posteriors: dict[int, dict[str, float]],
) -> float:
    """Mean posterior mass of the labels a worker submitted."""
    return sum(posteriors[a.task_id][a.label] for a in assignments) / len(assignments)


def update_posteriors(
    by_task: dict[int, list[Assignment]],
    reliability: dict[int, float],
    previous: dict[int, dict[str, float]],
    categories: tuple[str, ...],
) -> dict[int, dict[str, float]]:
    """Combine r for the submitted label and 1 - r for every other category."""
    posteriors = dict(previous)
    for task_id, received in by_task.items():
        scores = {}
        for candidate in categories:
            score = 0.0
            for assignment in received:
                r = reliability[assignment.worker_id]
                score += safe_log(r if assignment.label == candidate else 1.0 - r)
            scores[candidate] = score

        posterior, log_mass = normalize_log_scores(scores)
        if math.isinf(log_mass):
            logger.warning("zencrowd_degenerate_task", task_id=task_id)
            continue
        posteriors[task_id] = posterior
    return posteriors


def estimate(
    tasks: Iterable[Task],
    answers: Iterable[Answer],
    max_iterations: int | None = None,
    precision: float | None = None,
) -> ZenCrowdResult:
    """
    Run ZenCrowd on a stage snapshot.

    Posteriors start from the empirical label distribution; the loop
    alternates reliability (M) and posterior (E) updates until the largest
    reliability change drops below precision or the budget of
    max(max_iterations, number of tasks) iterations is spent.

    Args:
        tasks: All tasks of the stage
        answers: All answers of the stage
        max_iterations: Iteration budget floor (default from settings)
        precision: Reliability change that counts as converged

    Returns:
        ZenCrowdResult with posteriors and worker reliabilities
    """
    tasks = list(tasks)
    max_iterations = max_iterations or settings.default_max_iterations
    precision = settings.default_precision if precision is None else precision

    categories = collect_categories(tasks)
    task_ids = sorted({task.id for task in tasks if task.id is not None})
    budget = max(max_iterations, len(task_ids))

    assignments = collect_assignments(answers, set(task_ids), categories, "zencrowd")
    if not assignments:
        logger.info("zencrowd_no_assignments", tasks=len(task_ids))
        return ZenCrowdResult(
            categories=categories,
            posteriors=initial_posteriors(task_ids, {}, categories) if categories else {},
            answered=frozenset(),
        )

    by_task = group_by_task(assignments)
    by_worker = group_by_worker(assignments)
    posteriors = initial_posteriors(task_ids, by_task, categories)

    reliability: dict[int, float] = {}
    converged = False
    iterations = 0

    for iteration in range(1, budget + 1):
        iterations = iteration
        updated = {
            worker_id: estimate_reliability(worker_assignments, posteriors)
            for worker_id, worker_assignments in by_worker.items()
        }
        shift = max(abs(updated[w] - reliability.get(w, math.inf)) for w in updated)
        reliability = updated
        posteriors = update_posteriors(by_task, reliability, posteriors, categories)

        logger.debug("zencrowd_iteration", iteration=iteration, shift=shift)

        if shift < precision:
            converged = True
            break

    if not converged:
        logger.warning("zencrowd_not_converged", iterations=iterations, precision=precision)

    logger.info(
        "zencrowd_estimated",
        tasks=len(task_ids),
        workers=len(reliability),
        assignments=len(assignments),
        iterations=iterations,
        converged=converged,
    )

    return ZenCrowdResult(
        categories=categories,
        posteriors=posteriors,
        answered=frozenset(by_task),
        reliability=reliability,
        iterations=iterations,
        converged=converged,
    )


class ZenCrowdProcessor(StageProcessor, AnswerAggregator, WorkerRanker):
    """ZenCrowd aggregator and ranker bound to a stage."""

    name = "zencrowd"

    def compute(self) -> ZenCrowdResult:
        """Estimate the model for the stage's current snapshot."""
        tasks = self.store.list_tasks_for_stage(self.stage.id)
        answers = self.store.list_answers_for_stage(self.stage.id)
        return estimate(
            tasks,
            answers,
            max_iterations=self.stage.max_iterations,
            precision=self.stage.precision,
        )

    def aggregate(self, tasks: Iterable[Task]) -> dict[Task, AnswerAggregation]:
        tasks = list(tasks)
        if not tasks:
            return {}

        result = self.compute()
        aggregations: dict[Task, AnswerAggregation] = {}
        for task in tasks:
            if task.id not in result.answered:
                aggregations[task] = AnswerAggregation.empty(task)
                continue
            aggregations[task] = AnswerAggregation.from_confidences(
                task, result.posteriors[task.id], ignore_zeros=True
            )
        return aggregations

    def rank(self, workers: Iterable[Worker]) -> dict[int, WorkerRanking]:
        workers = persisted_workers(workers)
        if not workers:
            return {}

        result = self.compute()
        return {
            worker.id: WorkerRanking(
                worker=worker,
                reputation=result.reliability.get(worker.id, math.nan),
            )
            for worker in workers
        }
