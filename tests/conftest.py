"""
Shared fixtures: an in-memory store holding stage "1" with two tasks and
two workers, plus a factory for answers.
"""
from datetime import datetime, timezone

import pytest

from crowdconsensus.models import Answer, StageConfig, Task, Worker
from crowdconsensus.store import InMemoryStageStore

STAGE_ID = "1"


@pytest.fixture
def stage_config():
    return StageConfig(
        id=STAGE_ID,
        description="Two-label stage",
        answer_aggregator="dawid_skene",
        worker_ranker="dawid_skene",
        task_allocator="random",
    )


@pytest.fixture
def store(stage_config):
    store = InMemoryStageStore()
    store.insert_stage(stage_config)
    return store


@pytest.fixture
def tasks(store):
    return store.add_tasks(STAGE_ID, [
        Task(stage=STAGE_ID, description="Task 1", labels=("1", "2")),
        Task(stage=STAGE_ID, description="Task 2", labels=("1", "2")),
    ])


@pytest.fixture
def workers(store):
    return store.add_workers(STAGE_ID, [
        Worker(stage=STAGE_ID, tags=("first",)),
        Worker(stage=STAGE_ID, tags=("second",)),
    ])


@pytest.fixture
def answer():
    """Build an answer of worker for task with the given labels."""
    def build(worker, task, *labels, type="answer"):
        return Answer(
            stage=STAGE_ID,
            worker_id=worker.id,
            task_id=task.id,
            labels=labels,
            type=type,
            created_at=datetime(2015, 6, 1, 12, 0, 0, tzinfo=timezone.utc),
        )
    return build


@pytest.fixture
def two_task_answers(store, tasks, workers, answer):
    """Both workers say "1" on task 1; on task 2 they disagree."""
    task1, task2 = tasks
    worker1, worker2 = workers
    return store.add_answers(STAGE_ID, [
        answer(worker1, task1, "1"),
        answer(worker2, task1, "1"),
        answer(worker1, task2, "1"),
        answer(worker2, task2, "2"),
    ])
