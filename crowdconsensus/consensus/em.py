"""
Shared building blocks of the EM-style estimators.

Categories, tasks and workers are always visited in sorted order so that
identical snapshots produce identical estimates.
"""

import math
from collections import Counter, defaultdict
from typing import Iterable, NamedTuple

import structlog

from ..models import Answer, Task

logger = structlog.get_logger()


class Assignment(NamedTuple):
    """One label submitted by one worker for one task."""

    worker_id: int
    task_id: int
    label: str


def collect_categories(tasks: Iterable[Task]) -> tuple[str, ...]:
    """Union of the tasks' label vocabularies, sorted lexicographically."""
    return tuple(sorted({label for task in tasks for label in task.labels}))


def collect_assignments(
    answers: Iterable[Answer],
    task_ids: set[int],
    categories: tuple[str, ...],
    algorithm: str,
) -> list[Assignment]:
    """
    Flatten ANSWER-typed answers into assignments.

    A multi-label answer contributes one assignment per label. Answers for
    tasks outside the snapshot and labels outside the category set are
    skipped.

    Returns:
        Assignments sorted by (task, worker, label)
    """
    known = set(categories)
    assignments: list[Assignment] = []
    skipped = Counter()

    for answer in answers:
        if not answer.is_answer:
            continue
        if answer.task_id not in task_ids:
            skipped["unknown_task"] += len(answer.labels)
            continue
        for label in answer.labels:
            if label not in known:
                skipped["unknown_label"] += 1
                continue
            assignments.append(Assignment(answer.worker_id, answer.task_id, label))

    if skipped:
        logger.warning(f"{algorithm}_assignments_skipped", **skipped)

    assignments.sort(key=lambda a: (a.task_id, a.worker_id, a.label))
    return assignments


def group_by_task(assignments: Iterable[Assignment]) -> dict[int, list[Assignment]]:
    grouped: dict[int, list[Assignment]] = defaultdict(list)
    for assignment in assignments:
        grouped[assignment.task_id].append(assignment)
    return dict(grouped)


def group_by_worker(assignments: Iterable[Assignment]) -> dict[int, list[Assignment]]:
    grouped: dict[int, list[Assignment]] = defaultdict(list)
    for assignment in assignments:
        grouped[assignment.worker_id].append(assignment)
    return dict(sorted(grouped.items()))


def uniform(categories: tuple[str, ...]) -> dict[str, float]:
    return {category: 1.0 / len(categories) for category in categories}


def initial_posteriors(
    task_ids: list[int],
    by_task: dict[int, list[Assignment]],
    categories: tuple[str, ...],
) -> dict[int, dict[str, float]]:
    """Empirical label distribution per task; uniform for unanswered tasks."""
    posteriors: dict[int, dict[str, float]] = {}
    for task_id in task_ids:
        received = by_task.get(task_id)
        if not received:
            posteriors[task_id] = uniform(categories)
            continue
        counts = Counter(assignment.label for assignment in received)
        total = len(received)
        posteriors[task_id] = {category: counts[category] / total for category in categories}
    return posteriors


def safe_log(value: float) -> float:
    return math.log(value) if value > 0.0 else -math.inf


def normalize_log_scores(scores: dict[str, float]) -> tuple[dict[str, float], float]:
    """
    Turn unnormalized log scores into a distribution (log-sum-exp).

    Returns:
        Tuple of (distribution, log of the normalizing mass); the mass is
        -inf when every score is -inf, in which case the distribution is
        all zeros
    """
    top = max(scores.values())
    if math.isinf(top):
        return {category: 0.0 for category in scores}, -math.inf
    weights = {category: math.exp(score - top) for category, score in scores.items()}
    total = sum(weights.values())
    return {category: weight / total for category, weight in weights.items()}, top + math.log(total)
