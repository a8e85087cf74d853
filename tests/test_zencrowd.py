"""
Tests for ZenCrowd inference.
"""
import math

import pytest

from crowdconsensus.consensus import ZenCrowdProcessor
from crowdconsensus.consensus.zencrowd import estimate
from crowdconsensus.models import Answer, StageConfig, Task, Worker

from .conftest import STAGE_ID


@pytest.fixture
def processor(store):
    config = StageConfig(id=STAGE_ID, answer_aggregator="zencrowd", worker_ranker="zencrowd")
    return ZenCrowdProcessor(config, store)


class TestZenCrowdProcessor:
    """Tests for the stage-bound aggregator and ranker."""

    def test_two_workers_two_tasks(self, processor, tasks, workers, two_task_answers):
        task1, task2 = tasks

        assert processor.aggregate_one(task1).top_label == "1"
        assert processor.aggregate_one(task2).top_label == "1"

        rankings = processor.rank(workers)
        for ranking in rankings.values():
            assert 0.0 <= ranking.reputation <= 1.0

    def test_no_answers(self, processor, tasks, workers):
        assert processor.aggregate_one(tasks[0]) is None
        assert all(result.is_empty for result in processor.aggregate(tasks).values())
        assert all(math.isnan(r.reputation) for r in processor.rank(workers).values())

    def test_unpersisted_worker_skipped(self, processor, workers, two_task_answers):
        rankings = processor.rank([Worker(stage=STAGE_ID), *workers])
        assert None not in rankings
        assert set(rankings) == {worker.id for worker in workers}

    def test_empty_input(self, processor):
        assert processor.aggregate([]) == {}
        assert processor.rank([]) == {}


class TestEstimate:
    """Tests for the one-coin EM engine."""

    def test_spammer_gets_lower_reliability(self):
        """Accurate workers outvote a worker who always says "a"."""
        truth = {1: "a", 2: "b", 3: "a", 4: "b", 5: "b", 6: "b"}
        tasks = [Task(id=task_id, stage=STAGE_ID, labels=("a", "b")) for task_id in truth]
        answers = []
        for task_id, label in truth.items():
            answers.append(Answer(stage=STAGE_ID, task_id=task_id, worker_id=1, labels=(label,)))
            answers.append(Answer(stage=STAGE_ID, task_id=task_id, worker_id=2, labels=(label,)))
            answers.append(Answer(stage=STAGE_ID, task_id=task_id, worker_id=3, labels=("a",)))

        result = estimate(tasks, answers)

        for task_id, label in truth.items():
            posterior = result.posteriors[task_id]
            assert max(posterior, key=posterior.get) == label
        assert result.reliability[1] > result.reliability[3]
        assert result.reliability[1] == pytest.approx(result.reliability[2])

    def test_budget_exhausted(self):
        tasks = [Task(id=task_id, stage=STAGE_ID, labels=("a", "b")) for task_id in (1, 2)]
        answers = [
            Answer(stage=STAGE_ID, task_id=1, worker_id=1, labels=("a",)),
            Answer(stage=STAGE_ID, task_id=1, worker_id=2, labels=("b",)),
            Answer(stage=STAGE_ID, task_id=2, worker_id=1, labels=("a",)),
        ]

        result = estimate(tasks, answers, max_iterations=1, precision=0.0)

        assert result.iterations == 2
        assert not result.converged

    def test_unanswered_tasks_not_reported_as_answered(self):
        tasks = [Task(id=task_id, stage=STAGE_ID, labels=("a", "b")) for task_id in (1, 2)]
        answers = [Answer(stage=STAGE_ID, task_id=1, worker_id=1, labels=("b",))]

        result = estimate(tasks, answers)

        assert result.answered == frozenset({1})
        assert result.posteriors[2] == {"a": 0.5, "b": 0.5}
