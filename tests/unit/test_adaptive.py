# tests/unit/test_adaptive.py
import pytest

from hpsearch.config import (
    AdaptiveASHAConfig,
    AdaptiveConfig,
    AdaptiveMode,
    AdaptiveSimpleConfig,
    SearcherConfig,
)
from hpsearch.errors import SearcherConfigError, SearcherError
from hpsearch.searcher.adaptive import (
    AdaptiveASHASearch,
    AdaptiveSearch,
    AdaptiveSimpleSearch,
    bracket_rungs,
    split_by_weight,
)
from hpsearch.searcher.hyperparameters import HyperparameterSpace
from hpsearch.searcher.operations import Shutdown
from hpsearch.searcher.rungs import max_rungs_for
from hpsearch.searcher.scheduler_factory import new_search_method
from hpsearch.searcher.searcher import Searcher
from hpsearch.searcher.simulate import Simulator, simulate

SPACE = {"x": {"type": "double", "minval": 0.0, "maxval": 1.0}}


def _metric_is_x(request_id, hparams, units):
    return hparams["x"]


@pytest.mark.parametrize(
    "mode,max_rungs,expected",
    [
        (AdaptiveMode.AGGRESSIVE, 5, [5]),
        (AdaptiveMode.STANDARD, 5, [5, 4, 3]),
        (AdaptiveMode.STANDARD, 4, [4, 3]),
        (AdaptiveMode.CONSERVATIVE, 3, [3, 2, 1]),
    ],
)
def test_bracket_rungs_by_mode(mode, max_rungs, expected):
    assert bracket_rungs(mode, max_rungs) == expected


def test_split_by_weight_gives_remainder_to_heaviest():
    assert split_by_weight(10, [2, 1]) == [7, 3]
    assert sum(split_by_weight(100, [9.0, 1.5, 1 / 3])) == 100


def test_split_by_weight_never_exceeds_the_total():
    assert split_by_weight(3, [9, 1, 1]) == [1, 1, 1]
    assert split_by_weight(4, [9, 1, 1]) == [2, 1, 1]
    with pytest.raises(SearcherConfigError):
        split_by_weight(2, [9, 1, 1])


@pytest.mark.parametrize(
    "max_length,divisor,limit,expected",
    [(100, 4, 5, 4), (81, 3, 4, 4), (10, 3, 5, 3), (1, 4, 3, 1)],
)
def test_max_rungs_for_keeps_rung_lengths_distinct(max_length, divisor, limit, expected):
    assert max_rungs_for(max_length, divisor, limit) == expected


@pytest.mark.parametrize(
    "config",
    [
        SearcherConfig(adaptive=AdaptiveConfig()),
        SearcherConfig(adaptive_simple=AdaptiveSimpleConfig()),
        SearcherConfig(adaptive_asha=AdaptiveASHAConfig()),
    ],
)
def test_default_adaptive_configs_build(config):
    config.validate()
    method = new_search_method(config, HyperparameterSpace.from_dict(SPACE))

    assert [len(b.rungs) for b in method.brackets] == [4, 3]
    assert [r.units_needed for r in method.brackets[0].rungs] == [1, 6, 25, 100]


def test_adaptive_simple_splits_trials_across_brackets():
    method = AdaptiveSimpleSearch(
        max_length=81, max_trials=30, mode=AdaptiveMode.STANDARD, divisor=3, max_rungs=3
    )

    assert [b.rungs[0].start_trials for b in method.brackets] == [20, 10]
    assert [[r.units_needed for r in b.rungs] for b in method.brackets] == [[9, 27, 81], [27, 81]]

    results = simulate(Searcher(method, SPACE, seed=0), metric_fn=_metric_is_x, seed=1)

    assert len(results.creates()) == (20 + 7 + 3) + (10 + 4)
    assert results.shutdown == Shutdown(failure=False)
    assert results.progress == 1.0
    assert results.total_units() == sum(b.expected_units for b in method.brackets)


def test_adaptive_sizes_each_bracket_from_its_budget_share():
    aggressive = AdaptiveSearch(
        max_length=90, budget=1000, mode=AdaptiveMode.AGGRESSIVE, divisor=3, max_rungs=3
    )
    assert len(aggressive.brackets) == 1
    assert aggressive.brackets[0].rungs[0].start_trials == 42
    assert aggressive.brackets[0].expected_units == 1000

    standard = AdaptiveSearch(
        max_length=90, budget=1000, mode=AdaptiveMode.STANDARD, divisor=3, max_rungs=3
    )
    assert len(standard.brackets) == 2
    assert all(b.expected_units <= 500 for b in standard.brackets)


def test_adaptive_completes():
    method = AdaptiveSearch(max_length=16, budget=200, divisor=2, max_rungs=3)
    results = simulate(Searcher(method, SPACE, seed=2), seed=3)

    assert results.shutdown == Shutdown(failure=False)
    assert results.progress_history == sorted(results.progress_history)
    assert results.progress_history[-1] == 1.0


def test_adaptive_asha_splits_concurrency():
    method = AdaptiveASHASearch(
        max_length=27,
        max_trials=18,
        mode=AdaptiveMode.STANDARD,
        divisor=3,
        max_rungs=3,
        max_concurrent_trials=6,
    )
    assert [b.max_trials for b in method.brackets] == [12, 6]
    assert [b.max_concurrent_trials for b in method.brackets] == [4, 2]

    searcher = Searcher(method, SPACE, seed=5)
    sim = Simulator(searcher, metric_fn=_metric_is_x, seed=5)
    while sim.step():
        assert len(searcher.open_trials) <= 6

    assert sim.results.shutdown == Shutdown(failure=False)
    assert len([c for c in sim.results.creates() if c.parent_id is None]) == 18


def test_events_for_unknown_trials_are_rejected():
    method = AdaptiveSimpleSearch(max_length=81, max_trials=30, divisor=3, max_rungs=3)
    searcher = Searcher(method, SPACE, seed=0)
    searcher.initial_operations()

    with pytest.raises(SearcherError):
        method.trial_closed(searcher.ctx, "not-a-trial")


def test_every_trial_is_routed_to_its_bracket():
    method = AdaptiveSimpleSearch(max_length=81, max_trials=30, divisor=3, max_rungs=3)
    searcher = Searcher(method, SPACE, seed=0)
    searcher.initial_operations()

    routed = [method.routes[rid] for rid in searcher.known_trials]
    assert routed == [0] * 20 + [1] * 10


def test_adaptive_simple_keeps_the_trial_cap():
    method = AdaptiveSimpleSearch(
        max_length=81, max_trials=2, mode=AdaptiveMode.CONSERVATIVE, divisor=3, max_rungs=4
    )
    assert [len(b.rungs) for b in method.brackets] == [4, 3]
    assert [b.rungs[0].start_trials for b in method.brackets] == [1, 1]

    results = simulate(Searcher(method, SPACE, seed=0), metric_fn=_metric_is_x, seed=1)

    assert len([c for c in results.creates() if c.parent_id is None]) == 2
    assert results.shutdown == Shutdown(failure=False)


def test_adaptive_asha_keeps_the_concurrency_cap():
    method = AdaptiveASHASearch(
        max_length=81,
        max_trials=20,
        mode=AdaptiveMode.CONSERVATIVE,
        divisor=3,
        max_rungs=4,
        max_concurrent_trials=2,
    )
    assert len(method.brackets) == 2
    assert [b.max_concurrent_trials for b in method.brackets] == [1, 1]
    assert sum(b.max_trials for b in method.brackets) == 20

    searcher = Searcher(method, SPACE, seed=3)
    sim = Simulator(searcher, metric_fn=_metric_is_x, seed=3)
    sim.step()
    assert len(sim.results.creates()) == 2
    while sim.step():
        assert len(searcher.open_trials) <= 2

    assert sim.results.shutdown == Shutdown(failure=False)
    assert len([c for c in sim.results.creates() if c.parent_id is None]) == 20
