# tests/unit/test_basic_searchers.py
import pytest

from hpsearch.config import GridConfig, RandomConfig, SearcherConfig, SingleConfig
from hpsearch.errors import SearcherConfigError, SearcherError
from hpsearch.searcher.operations import (
    Checkpoint,
    Close,
    Create,
    ExitedReason,
    Shutdown,
    Train,
    Validate,
)
from hpsearch.searcher.searcher import Searcher
from hpsearch.searcher.simulate import simulate

SPACE = {
    "lr": {"type": "log", "minval": -4, "maxval": -1},
    "layers": {"type": "int", "minval": 1, "maxval": 4},
}


def _creates(ops):
    return [op for op in ops if isinstance(op, Create)]


# =============================================================================
# Single
# =============================================================================


def test_single_uses_fixed_values_and_samples_the_rest():
    config = SearcherConfig(single=SingleConfig(max_length=10, hyperparameters={"lr": 0.01}))
    searcher = Searcher.from_config(config, SPACE, seed=3)

    ops = searcher.initial_operations()

    create = ops[0]
    assert isinstance(create, Create)
    assert create.hparams["lr"] == 0.01
    assert 1 <= create.hparams["layers"] <= 4
    rid = create.request_id
    assert ops[1:] == [Train(rid, 10), Checkpoint(rid), Validate(rid), Close(rid)]


def test_single_rejects_unknown_fixed_hyperparameter():
    config = SearcherConfig(single=SingleConfig(max_length=10, hyperparameters={"momentum": 0.9}))
    searcher = Searcher.from_config(config, SPACE)
    with pytest.raises(SearcherConfigError):
        searcher.initial_operations()


def test_single_completes():
    config = SearcherConfig(single=SingleConfig(max_length=10))
    results = simulate(Searcher.from_config(config, SPACE, seed=0))

    assert results.shutdown == Shutdown(failure=False)
    assert results.progress == 1.0
    assert len(results.trials) == 1
    assert results.total_units() == 10


# =============================================================================
# Random
# =============================================================================


def test_random_three_trials_seed_42_ends_cleanly_in_any_order():
    config = SearcherConfig(random=RandomConfig(max_trials=3, max_length=20))
    searcher = Searcher.from_config(config, SPACE, seed=42)
    twin = Searcher.from_config(config, SPACE, seed=42)

    creates = _creates(searcher.initial_operations())
    assert len(creates) == 3
    assert [c.hparams for c in creates] == [c.hparams for c in _creates(twin.initial_operations())]

    progress = [searcher.progress()]
    final_ops = []
    for i in (2, 0, 1):
        rid = creates[i].request_id
        assert searcher.trial_created(rid) == []
        assert searcher.train_completed(rid, Train(rid, 20)) == []
        progress.append(searcher.progress())
        assert searcher.checkpoint_completed(rid, Checkpoint(rid)) == []
        assert searcher.validation_completed(rid, Validate(rid), {"validation_loss": i / 10}) == []
        final_ops = searcher.trial_closed(rid)
        progress.append(searcher.progress())

    assert final_ops == [Shutdown(failure=False)]
    assert searcher.progress() == 1.0
    assert progress == sorted(progress)


def test_random_draws_differ_across_seeds():
    config = SearcherConfig(random=RandomConfig(max_trials=4, max_length=5))
    first = _creates(Searcher.from_config(config, SPACE, seed=1).initial_operations())
    second = _creates(Searcher.from_config(config, SPACE, seed=2).initial_operations())

    assert [c.hparams for c in first] != [c.hparams for c in second]
    assert len({c.request_id for c in first + second}) == 8


def test_random_aborts_on_early_exit():
    config = SearcherConfig(random=RandomConfig(max_trials=2, max_length=5))
    searcher = Searcher.from_config(config, SPACE, seed=0)
    rid = _creates(searcher.initial_operations())[0].request_id

    searcher.trial_created(rid)
    assert searcher.trial_exited_early(rid, ExitedReason.ERRORED) == [Shutdown(failure=True)]
    assert searcher.finished
    assert searcher.progress() == 1.0
    with pytest.raises(SearcherError):
        searcher.trial_closed(rid)


def test_random_is_stateless():
    config = SearcherConfig(random=RandomConfig(max_trials=2, max_length=5))
    searcher = Searcher.from_config(config, SPACE, seed=0)
    searcher.initial_operations()
    assert searcher.method.snapshot() is None


# =============================================================================
# Grid
# =============================================================================

GRID_SPACE = {
    "dropout": {"type": "double", "minval": 0.0, "maxval": 0.4, "count": 3},
    "layers": {"type": "int", "minval": 1, "maxval": 4, "count": 2},
    "activation": {"type": "categorical", "vals": ["relu", "tanh"]},
}


def test_grid_emits_one_distinct_create_per_point():
    config = SearcherConfig(grid=GridConfig(max_length=8))
    creates = _creates(Searcher.from_config(config, GRID_SPACE, seed=0).initial_operations())

    assert len(creates) == 3 * 2 * 2
    assert len({tuple(sorted(c.hparams.items())) for c in creates}) == 12


def test_grid_order_is_stable_across_runs_and_seeds():
    config = SearcherConfig(grid=GridConfig(max_length=8, divisions={"dropout": 2}))
    first = _creates(Searcher.from_config(config, GRID_SPACE, seed=0).initial_operations())
    second = _creates(Searcher.from_config(config, GRID_SPACE, seed=99).initial_operations())

    assert len(first) == 2 * 2 * 2
    assert [c.hparams for c in first] == [c.hparams for c in second]


def test_grid_completes_with_full_progress():
    config = SearcherConfig(grid=GridConfig(max_length=8))
    results = simulate(Searcher.from_config(config, GRID_SPACE, seed=0), seed=5)

    assert results.shutdown == Shutdown(failure=False)
    assert results.progress == 1.0
    assert results.total_units() == 12 * 8
    assert results.progress_history == sorted(results.progress_history)


def test_grid_requires_divisions_for_numeric_dimensions():
    config = SearcherConfig(grid=GridConfig(max_length=8))
    with pytest.raises(SearcherConfigError):
        Searcher.from_config(config, SPACE)
