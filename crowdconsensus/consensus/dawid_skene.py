"""
Dawid-Skene inference.

Expectation-Maximization over (worker, task, label) assignments: every
worker is modelled by a confusion matrix (probability of emitting a label
given the true one) and every task by a posterior over true labels.

References:
    Dawid & Skene (1979), Maximum Likelihood Estimation of Observer
    Error-Rates Using the EM Algorithm. doi:10.2307/2346806
    Ipeirotis, Provost & Wang (2010), Quality Management on Amazon
    Mechanical Turk. doi:10.1145/1837885.1837906
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
    uniform,
)

logger = structlog.get_logger()

ConfusionMatrix = dict[str, dict[str, float]]


@dataclass
class WorkerModel:
    """Fitted model of one worker."""

    worker_id: int
    confusion: ConfusionMatrix
    assignments: int
    accuracy: float
    quality: float


@dataclass
class DawidSkeneResult:
    """Outcome of one Dawid-Skene estimation."""

    categories: tuple[str, ...]
    priors: dict[str, float]
    posteriors: dict[int, dict[str, float]]
    answered: frozenset[int]
    workers: dict[int, WorkerModel] = field(default_factory=dict)
    iterations: int = 0
    converged: bool = True
    log_likelihood: float = 0.0


def estimate_priors(
    posteriors: dict[int, dict[str, float]],
    answered: list[int],
    categories: tuple[str, ...],
) -> dict[str, float]:
    """Class priors as the mean posterior of answered tasks."""
    if not answered:
        return uniform(categories)
    return {
        category: sum(posteriors[task_id][category] for task_id in answered) / len(answered)
        for category in categories
    }


def estimate_confusion(
    assignments: list[Assignment],
    posteriors: dict[int, dict[str, float]],
    categories: tuple[str, ...],
) -> ConfusionMatrix:
    """
    M-step for one worker.

    Each assignment adds the task's posterior mass of every true label to
    the emitted label's column. Rows without any mass carry no evidence and
    stay uniform.
    """
    counts = {true: {emitted: 0.0 for emitted in categories} for true in categories}
    for assignment in assignments:
        posterior = posteriors[assignment.task_id]
        for true in categories:
            counts[true][assignment.label] += posterior[true]

    confusion: ConfusionMatrix = {}
    for true in categories:
        total = sum(counts[true].values())
        if total > 0.0:
            confusion[true] = {emitted: counts[true][emitted] / total for emitted in categories}
        else:
            confusion[true] = uniform(categories)
    return confusion


def update_posteriors(
    task_ids: list[int],
    by_task: dict[int, list[Assignment]],
    priors: dict[str, float],
    confusion: dict[int, ConfusionMatrix],
    previous: dict[int, dict[str, float]],
    categories: tuple[str, ...],
) -> tuple[dict[int, dict[str, float]], float]:
    """
    E-step.

    Returns:
        Tuple of (posteriors, data log-likelihood)
    """
    log_priors = {category: safe_log(priors[category]) for category in categories}
    posteriors: dict[int, dict[str, float]] = {}
    log_likelihood = 0.0

    for task_id in task_ids:
        received = by_task.get(task_id)
        if not received:
            posteriors[task_id] = dict(priors)
            continue

        scores = {}
        for true in categories:
            score = log_priors[true]
            for assignment in received:
                score += safe_log(confusion[assignment.worker_id][true][assignment.label])
            scores[true] = score

        posterior, log_mass = normalize_log_scores(scores)
        if math.isinf(log_mass):
            logger.warning("dawid_skene_degenerate_task", task_id=task_id)
            posteriors[task_id] = previous[task_id]
            continue

        posteriors[task_id] = posterior
        log_likelihood += log_mass

    return posteriors, log_likelihood


def worker_quality(
    confusion: ConfusionMatrix,
    priors: dict[str, float],
    categories: tuple[str, ...],
) -> tuple[float, float]:
    """
    Score a worker from its confusion matrix.

    Accuracy is the prior-weighted diagonal. Quality compares the expected
    misclassification cost of the soft labels implied by the worker's
    answers with the cost of a spammer who reveals nothing beyond the
    priors; the cost of a soft label s under 0/1 loss is 1 - sum(s^2).
    Quality is 1 for a perfect worker and 0 for a spammer.

    Returns:
        Tuple of (accuracy, quality)
    """
    accuracy = sum(priors[category] * confusion[category][category] for category in categories)
    spammer_cost = 1.0 - sum(priors[category] ** 2 for category in categories)

    worker_cost = 0.0
    for emitted in categories:
        joint = {true: priors[true] * confusion[true][emitted] for true in categories}
        emitted_mass = sum(joint.values())
        if emitted_mass <= 0.0:
            continue
        purity = sum((mass / emitted_mass) ** 2 for mass in joint.values())
        worker_cost += emitted_mass * (1.0 - purity)

    if spammer_cost <= 1e-12:
        quality = 1.0 - worker_cost
    else:
        quality = 1.0 - worker_cost / spammer_cost
    return accuracy, max(0.0, min(1.0, quality))


def estimate(
    tasks: Iterable[Task],
    answers: Iterable[Answer],
    max_iterations: int | None = None,
    precision: float | None = None,
) -> DawidSkeneResult:
    """
    Run Dawid-Skene on a stage snapshot.

    The iteration budget is max(max_iterations, number of tasks). Running
    out of budget is not an error: the last estimate is returned with
    converged=False.

    Args:
        tasks: All tasks of the stage
        answers: All answers of the stage
        max_iterations: Iteration budget floor (default from settings)
        precision: Log-likelihood change that counts as converged

    Returns:
        DawidSkeneResult with posteriors and worker models
    """
    tasks = list(tasks)
    max_iterations = max_iterations or settings.default_max_iterations
    precision = settings.default_precision if precision is None else precision

    categories = collect_categories(tasks)
    task_ids = sorted({task.id for task in tasks if task.id is not None})
    budget = max(max_iterations, len(task_ids))

    if not categories:
        logger.info("dawid_skene_no_categories", tasks=len(task_ids))
        return DawidSkeneResult(
            categories=(),
            priors={},
            posteriors={task_id: {} for task_id in task_ids},
            answered=frozenset(),
        )

    assignments = collect_assignments(answers, set(task_ids), categories, "dawid_skene")
    by_task = group_by_task(assignments)
    by_worker = group_by_worker(assignments)
    answered = [task_id for task_id in task_ids if task_id in by_task]

    posteriors = initial_posteriors(task_ids, by_task, categories)
    if not assignments:
        logger.info("dawid_skene_no_assignments", tasks=len(task_ids))
        return DawidSkeneResult(
            categories=categories,
            priors=uniform(categories),
            posteriors=posteriors,
            answered=frozenset(),
        )

    priors = uniform(categories)
    confusion: dict[int, ConfusionMatrix] = {}
    log_likelihood = -math.inf
    previous_log_likelihood: float | None = None
    converged = False
    iterations = 0

    for iteration in range(1, budget + 1):
        iterations = iteration
        priors = estimate_priors(posteriors, answered, categories)
        confusion = {
            worker_id: estimate_confusion(worker_assignments, posteriors, categories)
            for worker_id, worker_assignments in by_worker.items()
        }
        posteriors, log_likelihood = update_posteriors(
            task_ids, by_task, priors, confusion, posteriors, categories
        )

        logger.debug(
            "dawid_skene_iteration",
            iteration=iteration,
            log_likelihood=log_likelihood,
        )

        if (
            previous_log_likelihood is not None
            and abs(log_likelihood - previous_log_likelihood) < precision
        ):
            converged = True
            break
        previous_log_likelihood = log_likelihood

    if not converged:
        logger.warning(
            "dawid_skene_not_converged",
            iterations=iterations,
            precision=precision,
            log_likelihood=log_likelihood,
        )

    workers = {}
    for worker_id, matrix in confusion.items():
        accuracy, quality = worker_quality(matrix, priors, categories)
        workers[worker_id] = WorkerModel(
            worker_id=worker_id,
            confusion=matrix,
            assignments=len(by_worker[worker_id]),
            accuracy=accuracy,
            quality=quality,
        )

    logger.info(
        "dawid_skene_estimated",
        tasks=len(task_ids),
        workers=len(workers),
        assignments=len(assignments),
        categories=len(categories),
        iterations=iterations,
        converged=converged,
        log_likelihood=round(log_likelihood, 6),
    )

    return DawidSkeneResult(
        categories=categories,
        priors=priors,
        posteriors=posteriors,
        answered=frozenset(answered),
        workers=workers,
        iterations=iterations,
        converged=converged,
        log_likelihood=log_likelihood,
    )


class DawidSkeneProcessor(StageProcessor, AnswerAggregator, WorkerRanker):
    """
    Dawid-Skene aggregator and ranker bound to a stage.

    Every call reads a fresh snapshot (tasks, then answers) and re-runs the
    estimation; nothing is cached between calls.
    """

    name = "dawid_skene"

    def compute(self) -> DawidSkeneResult:
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
        rankings: dict[int, WorkerRanking] = {}
        for worker in workers:
            model = result.workers.get(worker.id)
            reputation = model.quality if model is not None else math.nan
            rankings[worker.id] = WorkerRanking(worker=worker, reputation=reputation)
        return rankings
