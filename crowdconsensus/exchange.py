"""
CSV import and export of answers, tasks and workers.

Multi-valued fields (tags, labels) are packed into one column joined by
``|``; timestamps are integer Unix seconds; an empty ``id`` means the
identifier is assigned on insert. Exporting and re-importing preserves
labels, tags and whole-second timestamps exactly.
"""

import csv
from typing import Iterable, Iterator, TextIO

import structlog

from .models import Answer, Task, Worker
from .utils import from_epoch_seconds, join_values, split_values, to_epoch_seconds

logger = structlog.get_logger()

ANSWER_HEADER = ["id", "tags", "stage", "task_id", "worker_id", "answers", "datetime", "type"]
TASK_HEADER = ["id", "tags", "stage", "datetime", "type", "description", "answers"]
WORKER_HEADER = ["id", "tags", "stage", "datetime"]


def _optional_id(row: dict[str, str], key: str = "id") -> int | None:
    value = (row.get(key) or "").strip()
    return int(value) if value else None


def _required_int(row: dict[str, str], key: str, line: int) -> int:
    value = (row.get(key) or "").strip()
    if not value:
        raise ValueError(f"line {line}: column '{key}' is required")
    return int(value)


def _format_id(value: int | None) -> str:
    return "" if value is None else str(value)


def _rows(lines: Iterable[str]) -> Iterator[tuple[int, dict[str, str]]]:
    reader = csv.DictReader(lines)
    for row in reader:
        yield reader.line_num, row


# ===========================================
# Answers
# ===========================================


def parse_answers(stage_id: str, lines: Iterable[str]) -> list[Answer]:
    """
    Read answers from CSV into the given stage.

    Args:
        stage_id: Stage the answers are imported into
        lines: CSV text lines (e.g. an open file) with a header row

    Returns:
        Parsed answers in file order
    """
    answers = [
        Answer(
            id=_optional_id(row),
            stage=stage_id,
            tags=split_values(row.get("tags")),
            task_id=_required_int(row, "task_id", line),
            worker_id=_required_int(row, "worker_id", line),
            labels=split_values(row.get("answers")),
            created_at=from_epoch_seconds(row.get("datetime")),
            type=(row.get("type") or "answer"),
        )
        for line, row in _rows(lines)
    ]
    logger.info("answers_parsed", stage=stage_id, count=len(answers))
    return answers


def write_answers(answers: Iterable[Answer], output: TextIO) -> None:
    writer = csv.writer(output)
    writer.writerow(ANSWER_HEADER)
    for answer in answers:
        writer.writerow(
            [
                _format_id(answer.id),
                join_values(answer.tags),
                answer.stage,
                answer.task_id,
                answer.worker_id,
                join_values(answer.labels),
                to_epoch_seconds(answer.created_at),
                answer.type,
            ]
        )


# ===========================================
# Tasks
# ===========================================


def parse_tasks(stage_id: str, lines: Iterable[str]) -> list[Task]:
    """Read tasks from CSV into the given stage."""
    tasks = [
        Task(
            id=_optional_id(row),
            stage=stage_id,
            tags=split_values(row.get("tags")),
            created_at=from_epoch_seconds(row.get("datetime")),
            type=(row.get("type") or "single"),
            description=row.get("description") or "",
            labels=split_values(row.get("answers")),
        )
        for _, row in _rows(lines)
    ]
    logger.info("tasks_parsed", stage=stage_id, count=len(tasks))
    return tasks


def write_tasks(tasks: Iterable[Task], output: TextIO) -> None:
    writer = csv.writer(output)
    writer.writerow(TASK_HEADER)
    for task in tasks:
        writer.writerow(
            [
                _format_id(task.id),
                join_values(task.tags),
                task.stage,
                to_epoch_seconds(task.created_at),
                task.type,
                task.description,
                join_values(task.labels),
            ]
        )


# ===========================================
# Workers
# ===========================================


def parse_workers(stage_id: str, lines: Iterable[str]) -> list[Worker]:
    """Read workers from CSV into the given stage."""
    workers = [
        Worker(
            id=_optional_id(row),
            stage=stage_id,
            tags=split_values(row.get("tags")),
            created_at=from_epoch_seconds(row.get("datetime")),
        )
        for _, row in _rows(lines)
    ]
    logger.info("workers_parsed", stage=stage_id, count=len(workers))
    return workers


def write_workers(workers: Iterable[Worker], output: TextIO) -> None:
    writer = csv.writer(output)
    writer.writerow(WORKER_HEADER)
    for worker in workers:
        writer.writerow(
            [
                _format_id(worker.id),
                join_values(worker.tags),
                worker.stage,
                to_epoch_seconds(worker.created_at),
            ]
        )
