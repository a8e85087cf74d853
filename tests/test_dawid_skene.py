"""
Tests for Dawid-Skene inference.
"""
import math

import pytest

from crowdconsensus.consensus import DawidSkeneProcessor
from crowdconsensus.consensus.dawid_skene import estimate, estimate_confusion, worker_quality
from crowdconsensus.consensus.em import Assignment
from crowdconsensus.models import AggregationType, Answer, Task, Worker

from .conftest import STAGE_ID


@pytest.fixture
def processor(stage_config, store):
    return DawidSkeneProcessor(stage_config, store)


def _spammer_snapshot():
    """Two accurate workers and one who always says "a"."""
    truth = {1: "a", 2: "b", 3: "a", 4: "b", 5: "b", 6: "b"}
    tasks = [Task(id=task_id, stage=STAGE_ID, labels=("a", "b")) for task_id in truth]
    answers = []
    for task_id, label in truth.items():
        answers.append(Answer(stage=STAGE_ID, task_id=task_id, worker_id=1, labels=(label,)))
        answers.append(Answer(stage=STAGE_ID, task_id=task_id, worker_id=2, labels=(label,)))
        answers.append(Answer(stage=STAGE_ID, task_id=task_id, worker_id=3, labels=("a",)))
    return truth, tasks, answers


class TestDawidSkeneProcessor:
    """Tests for the stage-bound aggregator and ranker."""

    def test_two_workers_two_tasks(self, processor, tasks, workers, two_task_answers):
        """Agreement wins task 1; the tie on task 2 resolves to "1"."""
        task1, task2 = tasks

        assert processor.aggregate_one(task1).top_label == "1"
        assert processor.aggregate_one(task2).top_label == "1"

        rankings = processor.rank(workers)
        assert set(rankings) == {worker.id for worker in workers}
        for ranking in rankings.values():
            assert ranking.has_estimate
            assert 0.0 <= ranking.reputation <= 1.0

    def test_disagreeing_worker_ranks_higher(self, processor, workers, two_task_answers):
        """The worker who always says "1" reveals nothing beyond the priors."""
        worker1, worker2 = workers
        rankings = processor.rank(workers)

        assert rankings[worker1.id].reputation == pytest.approx(0.0, abs=1e-9)
        assert rankings[worker2.id].reputation == pytest.approx(1 / 3)

    def test_zero_posteriors_dropped(self, processor, tasks, two_task_answers):
        """Labels without posterior mass are not reported."""
        aggregation = processor.aggregate_one(tasks[0])
        assert aggregation.labels == ("1",)
        assert aggregation.confidences == pytest.approx((1.0,))

    def test_no_answers(self, processor, tasks, workers):
        """Without answers every task is empty and every reputation NaN."""
        for task in tasks:
            assert processor.aggregate_one(task) is None

        results = processor.aggregate(tasks)
        assert set(results) == set(tasks)
        assert all(result.type == AggregationType.EMPTY for result in results.values())

        rankings = processor.rank(workers)
        assert all(math.isnan(ranking.reputation) for ranking in rankings.values())

    def test_unanswered_task_is_empty(self, processor, store, tasks, workers, answer):
        task1, task2 = tasks
        store.add_answers(STAGE_ID, [answer(workers[0], task1, "2")])

        results = processor.aggregate(tasks)
        assert results[task1].top_label == "2"
        assert results[task2].is_empty

    def test_unknown_worker_has_no_estimate(self, processor, two_task_answers):
        stranger = Worker(id=999, stage=STAGE_ID)
        assert not processor.rank_one(stranger).has_estimate

    def test_unpersisted_worker_skipped(self, processor, workers, two_task_answers):
        """Rankings are keyed by real worker ids only."""
        rankings = processor.rank([*workers, Worker(stage=STAGE_ID)])

        assert set(rankings) == {worker.id for worker in workers}
        assert processor.rank_one(Worker(stage=STAGE_ID)) is None

    def test_empty_input(self, processor, two_task_answers):
        assert processor.aggregate([]) == {}
        assert processor.rank([]) == {}

    def test_deterministic(self, processor, tasks, workers, two_task_answers):
        """Repeated calls on the same snapshot agree exactly."""
        assert processor.aggregate(tasks) == processor.aggregate(tasks)
        assert processor.rank(workers) == processor.rank(workers)

    def test_control_answers_ignored(self, processor, store, tasks, workers, answer):
        task1, _ = tasks
        store.add_answers(STAGE_ID, [
            answer(workers[0], task1, "1"),
            answer(workers[1], task1, "2", type="skip"),
        ])
        aggregation = processor.aggregate_one(task1)
        assert aggregation.labels == ("1",)


class TestEstimate:
    """Tests for the EM engine."""

    def test_recovers_truth_despite_spammer(self):
        truth, tasks, answers = _spammer_snapshot()

        result = estimate(tasks, answers)

        assert result.converged
        for task_id, label in truth.items():
            posterior = result.posteriors[task_id]
            assert max(posterior, key=posterior.get) == label
        assert result.workers[1].quality > result.workers[3].quality
        assert result.workers[3].quality == pytest.approx(0.0, abs=1e-6)
        assert result.workers[1].accuracy > 0.99

    def test_budget_is_at_least_task_count(self):
        """An exhausted budget returns the last estimate, flagged unconverged."""
        _, tasks, answers = _spammer_snapshot()
        tasks = tasks[:3]

        result = estimate(tasks, answers, max_iterations=1, precision=0.0)

        assert result.iterations == 3
        assert not result.converged
        assert set(result.posteriors) == {1, 2, 3}

    def test_off_vocabulary_labels_skipped(self):
        tasks = [Task(id=1, stage=STAGE_ID, labels=("a", "b"))]
        answers = [
            Answer(stage=STAGE_ID, task_id=1, worker_id=1, labels=("z",)),
            Answer(stage=STAGE_ID, task_id=1, worker_id=2, labels=("b",)),
        ]

        result = estimate(tasks, answers)

        assert set(result.workers) == {2}
        assert result.posteriors[1]["b"] == pytest.approx(1.0)

    def test_no_categories(self):
        result = estimate([Task(id=1, stage=STAGE_ID)], [])
        assert result.categories == ()
        assert result.answered == frozenset()

    def test_answers_for_unknown_tasks_skipped(self):
        tasks = [Task(id=1, stage=STAGE_ID, labels=("a", "b"))]
        answers = [Answer(stage=STAGE_ID, task_id=2, worker_id=1, labels=("a",))]

        result = estimate(tasks, answers)

        assert result.answered == frozenset()
        assert result.workers == {}


class TestWorkerQuality:

    def test_perfect_worker(self):
        confusion = {"a": {"a": 1.0, "b": 0.0}, "b": {"a": 0.0, "b": 1.0}}
        accuracy, quality = worker_quality(confusion, {"a": 0.5, "b": 0.5}, ("a", "b"))
        assert accuracy == pytest.approx(1.0)
        assert quality == pytest.approx(1.0)

    def test_spammer(self):
        """A worker whose answer does not depend on the truth scores zero."""
        confusion = {"a": {"a": 0.7, "b": 0.3}, "b": {"a": 0.7, "b": 0.3}}
        accuracy, quality = worker_quality(confusion, {"a": 0.5, "b": 0.5}, ("a", "b"))
        assert accuracy == pytest.approx(0.5)
        assert quality == pytest.approx(0.0, abs=1e-12)

    def test_empty_confusion_rows_are_uniform(self):
        assignments = [Assignment(worker_id=1, task_id=1, label="a")]
        posteriors = {1: {"a": 1.0, "b": 0.0}}

        confusion = estimate_confusion(assignments, posteriors, ("a", "b"))

        assert confusion["a"] == {"a": 1.0, "b": 0.0}
        assert confusion["b"] == {"a": 0.5, "b": 0.5}
