# tests/unit/test_pbt.py
import pytest

from hpsearch.searcher.context import SearchContext
from hpsearch.searcher.hyperparameters import HyperparameterSpace
from hpsearch.searcher.operations import Close, Create, ExitedReason, Shutdown, Train
from hpsearch.searcher.pbt import PBTMember, PBTSearch
from hpsearch.searcher.searcher import Searcher
from hpsearch.searcher.simulate import simulate

SPACE = {"lr": {"type": "double", "minval": 0.0, "maxval": 1.0}}

EXPLORE_SPACE = HyperparameterSpace.from_dict(
    {
        "lr": {"type": "double", "minval": 0.1, "maxval": 1.0},
        "layers": {"type": "int", "minval": 1, "maxval": 8},
        "activation": {"type": "categorical", "vals": ["relu", "tanh"]},
        "batch_size": 32,
    }
)


def _metric_is_lr(request_id, hparams, units):
    return hparams["lr"]


def _run_pbt(**kwargs):
    method = PBTSearch(**kwargs)
    results = simulate(Searcher(method, SPACE, seed=0), metric_fn=_metric_is_lr, seed=1)
    return method, results


def test_pbt_replaces_the_worst_member_each_round():
    method, results = _run_pbt(
        population_size=4, num_rounds=3, checkpoint_interval=10, truncate_fraction=0.25
    )

    creates = results.creates()
    assert len(creates) == 4 + 2
    assert results.shutdown == Shutdown(failure=False)
    assert results.progress == 1.0
    assert method.round == 3
    assert method.num_exploits == 2

    for i, op in enumerate(results.operations):
        if isinstance(op, Create) and op.parent_id is not None:
            closed = results.operations[i - 1]
            assert isinstance(closed, Close)
            parent_lr = results.trials[op.parent_id].hparams["lr"]
            assert parent_lr < results.trials[closed.request_id].hparams["lr"]
            assert method.ancestry[op.request_id] == op.parent_id


def test_pbt_children_train_one_interval_per_round():
    _, results = _run_pbt(population_size=4, num_rounds=3, checkpoint_interval=10)

    assert results.total_units() == 4 * 3 * 10
    for trial in results.trials.values():
        assert trial.closed
        assert all(w == "train(10)" for w in trial.workloads if w.startswith("train"))


def test_pbt_records_best_configuration():
    method, results = _run_pbt(population_size=4, num_rounds=2, checkpoint_interval=5)

    best_hparams, best_fitness = method.get_best()
    lowest = min(t.hparams["lr"] for t in results.trials.values())
    assert best_fitness == pytest.approx(lowest)
    assert best_hparams["lr"] == pytest.approx(lowest)


def test_pbt_perturb_interval_skips_exploit_rounds():
    method, results = _run_pbt(
        population_size=4, num_rounds=3, checkpoint_interval=10, perturb_interval=5
    )
    assert len(results.creates()) == 4
    assert method.num_exploits == 0


# =============================================================================
# Explore
# =============================================================================


def _explorer(**kwargs):
    return PBTSearch(population_size=4, **kwargs), SearchContext.from_seed(0, EXPLORE_SPACE)


def test_explore_jitters_numeric_values_and_keeps_categoricals():
    method, ctx = _explorer(resample_probability=0.0, perturb_factor=0.2)
    parent = {"lr": 0.5, "layers": 4, "activation": "relu", "batch_size": 32}

    for _ in range(20):
        child = method._explore(ctx, parent)
        assert child["lr"] in (pytest.approx(0.4), pytest.approx(0.6))
        assert child["layers"] in (3, 5)
        assert isinstance(child["layers"], int)
        assert child["activation"] == "relu"
        assert child["batch_size"] == 32


def test_explore_clips_to_bounds():
    method, ctx = _explorer(resample_probability=0.0, perturb_factor=0.5)
    parent = {"lr": 1.0, "layers": 8, "activation": "tanh", "batch_size": 32}

    for _ in range(20):
        child = method._explore(ctx, parent)
        assert 0.1 <= child["lr"] <= 1.0
        assert child["layers"] in (4, 8)


def test_explore_resample_keeps_constants():
    method, ctx = _explorer(resample_probability=1.0)
    parent = {"lr": 0.5, "layers": 4, "activation": "relu", "batch_size": 32}

    for _ in range(20):
        child = method._explore(ctx, parent)
        assert 0.1 <= child["lr"] <= 1.0
        assert 1 <= child["layers"] <= 8
        assert child["activation"] in ("relu", "tanh")
        assert child["batch_size"] == 32


# =============================================================================
# Early exits
# =============================================================================


def test_pbt_replaces_exited_member_with_best():
    trains = []

    def exit_on_second_train(request_id, op):
        if isinstance(op, Train):
            trains.append(request_id)
            if len(trains) == 2:
                return ExitedReason.ERRORED
        return None

    method = PBTSearch(population_size=4, num_rounds=2, checkpoint_interval=10)
    results = simulate(
        Searcher(method, SPACE, seed=0),
        metric_fn=_metric_is_lr,
        exit_fn=exit_on_second_train,
        seed=2,
    )

    exited = trains[1]
    assert results.trials[exited].exited
    assert results.shutdown == Shutdown(failure=False)
    assert exited not in [m.request_id for m in method.members]
    assert exited not in {c.parent_id for c in results.creates()}


def test_pbt_fails_when_every_member_exits():
    method = PBTSearch(population_size=3, num_rounds=2, checkpoint_interval=10)
    results = simulate(
        Searcher(method, SPACE, seed=0), exit_fn=lambda rid, op: ExitedReason.ERRORED
    )
    assert results.shutdown == Shutdown(failure=True)


def test_member_roundtrips_through_dict():
    member = PBTMember(request_id="a", hparams={"lr": 0.1}, parent_id="b", fitness=0.3)
    assert PBTMember.from_dict(member.to_dict()) == member
