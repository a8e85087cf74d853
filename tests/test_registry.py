"""
Tests for algorithm selection by name.
"""
import pytest

from crowdconsensus.consensus import (
    AlgorithmRegistry,
    DawidSkeneProcessor,
    MajorityAggregator,
    RandomAggregator,
    RandomRanker,
    UnknownAlgorithmError,
    ZenCrowdProcessor,
    create_default_registry,
    get_algorithm_registry,
)
from crowdconsensus.models import StageConfig


@pytest.fixture
def registry():
    return create_default_registry()


def _config(aggregator="majority", ranker="random"):
    return StageConfig(id="s", answer_aggregator=aggregator, worker_ranker=ranker)


class TestAlgorithmRegistry:
    """Tests for the name -> factory tables."""

    def test_builtin_names(self, registry):
        assert registry.aggregator_names() == ["dawid_skene", "majority", "random", "zencrowd"]
        assert registry.ranker_names() == ["dawid_skene", "random", "zencrowd"]

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("random", RandomAggregator),
            ("majority", MajorityAggregator),
            ("dawid_skene", DawidSkeneProcessor),
            ("zencrowd", ZenCrowdProcessor),
        ],
    )
    def test_create_aggregator(self, registry, store, name, expected):
        aggregator = registry.create_aggregator(_config(aggregator=name), store)
        assert isinstance(aggregator, expected)
        assert aggregator.stage.id == "s"

    def test_create_ranker(self, registry, store):
        assert isinstance(registry.create_ranker(_config(ranker="random"), store), RandomRanker)
        assert isinstance(
            registry.create_ranker(_config(ranker="dawid_skene"), store), DawidSkeneProcessor
        )

    def test_unknown_aggregator(self, registry, store):
        """Unknown names fail instead of falling back to a baseline."""
        with pytest.raises(UnknownAlgorithmError) as exc_info:
            registry.create_aggregator(_config(aggregator="mystery"), store)
        assert exc_info.value.algorithm == "mystery"
        assert exc_info.value.stage_id == "s"

    def test_unknown_ranker(self, registry, store):
        with pytest.raises(UnknownAlgorithmError):
            registry.create_ranker(_config(ranker="majority"), store)

    def test_register_custom(self, store):
        registry = AlgorithmRegistry()
        registry.register_aggregator("custom", MajorityAggregator)

        assert registry.aggregator_names() == ["custom"]
        assert isinstance(
            registry.create_aggregator(_config(aggregator="custom"), store), MajorityAggregator
        )

    def test_singleton(self):
        assert get_algorithm_registry() is get_algorithm_registry()
