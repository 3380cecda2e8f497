# tests/unit/test_searcher.py
import json
import logging

import pytest

from hpsearch.config import (
    AdaptiveASHAConfig,
    AdaptiveConfig,
    AdaptiveSimpleConfig,
    AsyncHalvingConfig,
    GridConfig,
    PBTConfig,
    RandomConfig,
    SearcherConfig,
    SingleConfig,
    SyncHalvingConfig,
)
from hpsearch.errors import SearcherError, SnapshotError
from hpsearch.searcher.async_halving import AsyncHalvingSearch
from hpsearch.searcher.context import RequestID
from hpsearch.searcher.hyperparameters import HyperparameterSpace
from hpsearch.searcher.operations import (
    Checkpoint,
    Create,
    ExitedReason,
    Operation,
    Shutdown,
    Train,
    Validate,
)
from hpsearch.searcher.pbt import PBTSearch
from hpsearch.searcher.random_search import RandomSearch
from hpsearch.searcher.scheduler_factory import new_search_method
from hpsearch.searcher.search_method import SearchMethod, SearchMethodType
from hpsearch.searcher.searcher import Searcher
from hpsearch.searcher.simulate import Simulator
from hpsearch.searcher.sync_halving import SyncHalvingSearch

SPACE = HyperparameterSpace.from_dict(
    {
        "x": {"type": "double", "minval": 0.0, "maxval": 1.0, "count": 3},
        "layers": {"type": "int", "minval": 1, "maxval": 4, "count": 2},
    }
)

CONFIGS = {
    "single": SearcherConfig(single=SingleConfig(max_length=10)),
    "random": SearcherConfig(random=RandomConfig(max_trials=4, max_length=10)),
    "grid": SearcherConfig(grid=GridConfig(max_length=10)),
    "sync_halving": SearcherConfig(
        sync_halving=SyncHalvingConfig(num_rungs=3, max_length=27, divisor=3, max_trials=9)
    ),
    "async_halving": SearcherConfig(
        async_halving=AsyncHalvingConfig(
            num_rungs=3, max_length=27, divisor=3, max_trials=9, max_concurrent_trials=3
        )
    ),
    "adaptive": SearcherConfig(
        adaptive=AdaptiveConfig(max_length=27, budget=300, divisor=3, max_rungs=3)
    ),
    "adaptive_simple": SearcherConfig(
        adaptive_simple=AdaptiveSimpleConfig(max_length=27, max_trials=12, divisor=3, max_rungs=3)
    ),
    "adaptive_asha": SearcherConfig(
        adaptive_asha=AdaptiveASHAConfig(
            max_length=27, max_trials=12, divisor=3, max_rungs=3, max_concurrent_trials=4
        )
    ),
    "pbt": SearcherConfig(pbt=PBTConfig(population_size=4, num_rounds=3, checkpoint_interval=10)),
}


def _searcher(name, seed=7):
    return Searcher.from_config(CONFIGS[name], SPACE, seed=seed)


def _started_random():
    searcher = Searcher(RandomSearch(max_trials=2, max_length=5), SPACE, seed=0)
    creates = [op for op in searcher.initial_operations() if isinstance(op, Create)]
    return searcher, creates[0].request_id


class GhostTrainMethod(SearchMethod):
    """Emits work for a trial it never created."""

    method_type = SearchMethodType.SINGLE

    def initial_operations(self, ctx):
        return [Train(RequestID("ghost"), 1)]

    def progress(self, total_units_completed):
        return 0.0


class OrphanCreateMethod(SearchMethod):
    """Warm-starts from a trial that does not exist."""

    method_type = SearchMethodType.SINGLE

    def initial_operations(self, ctx):
        return [Create.new(ctx, ctx.sample(), parent_id=RequestID("nobody"))]

    def progress(self, total_units_completed):
        return 0.0


# =============================================================================
# Lifecycle contract
# =============================================================================


def test_initial_operations_only_once():
    searcher, _ = _started_random()
    with pytest.raises(SearcherError):
        searcher.initial_operations()


def test_events_before_start_are_rejected():
    searcher = Searcher(RandomSearch(max_trials=2, max_length=5), SPACE)
    with pytest.raises(SearcherError):
        searcher.trial_created(RequestID("early"))


def test_events_for_unknown_trials_are_rejected():
    searcher, _ = _started_random()
    with pytest.raises(SearcherError):
        searcher.trial_created(RequestID("stranger"))


def test_operations_for_unknown_trials_are_rejected():
    with pytest.raises(SearcherError):
        Searcher(GhostTrainMethod(), SPACE).initial_operations()
    with pytest.raises(SearcherError):
        Searcher(OrphanCreateMethod(), SPACE).initial_operations()


def test_missing_metric_is_an_error():
    searcher, rid = _started_random()
    searcher.trial_created(rid)
    searcher.train_completed(rid, Train(rid, 5))
    with pytest.raises(SearcherError, match="validation_loss"):
        searcher.validation_completed(rid, Validate(rid), {"accuracy": 0.9})


def test_closed_trials_accept_no_events():
    searcher, rid = _started_random()
    searcher.trial_created(rid)
    searcher.trial_closed(rid)
    with pytest.raises(SearcherError):
        searcher.train_completed(rid, Train(rid, 5))
    with pytest.raises(SearcherError):
        searcher.trial_closed(rid)


def test_exited_trials_only_accept_close():
    method = PBTSearch(population_size=2, num_rounds=2, checkpoint_interval=5)
    searcher = Searcher(method, SPACE, seed=0)
    rid = [op for op in searcher.initial_operations() if isinstance(op, Create)][0].request_id
    searcher.trial_created(rid)

    assert searcher.trial_exited_early(rid, "errored") == []
    with pytest.raises(SearcherError):
        searcher.checkpoint_completed(rid, Checkpoint(rid))
    assert searcher.trial_closed(rid) == []
    assert rid not in searcher.open_trials


def test_exit_reasons_are_validated():
    searcher, rid = _started_random()
    with pytest.raises(ValueError):
        searcher.trial_exited_early(rid, "bored")
    assert searcher.trial_exited_early(rid, ExitedReason.CANCELLED) == [
        Shutdown(failure=True)
    ]


def test_statistics_reflect_bookkeeping():
    searcher, rid = _started_random()
    searcher.trial_created(rid)
    searcher.train_completed(rid, Train(rid, 5))

    stats = searcher.get_statistics()
    assert stats["num_trials"] == 2
    assert stats["open_trials"] == 2
    assert stats["total_units"] == 5
    assert stats["progress"] == pytest.approx(0.5)
    assert stats["method"]["type"] == "random"


def test_operation_base_class_is_abstract():
    with pytest.raises(TypeError):
        Operation()


# =============================================================================
# Every search method
# =============================================================================


@pytest.mark.parametrize("name", sorted(CONFIGS))
def test_search_runs_to_clean_shutdown(name):
    sim = Simulator(_searcher(name), seed=3)
    results = sim.run()

    assert results.shutdown == Shutdown(failure=False)
    assert results.progress_history == sorted(results.progress_history)
    assert results.progress_history[-1] == 1.0
    assert all(trial.closed for trial in results.trials.values())


@pytest.mark.parametrize("name", sorted(CONFIGS))
def test_restored_searcher_continues_identically(name):
    reference = Simulator(_searcher(name), seed=3).run()
    expected = [op.to_dict() for op in reference.operations]

    sim = Simulator(_searcher(name), seed=3)
    for _ in range(max(1, reference.steps // 2)):
        sim.step()

    blob = sim.searcher.snapshot()
    restored = Searcher.restore(blob, new_search_method(CONFIGS[name], SPACE), SPACE)
    assert restored.snapshot() == blob

    sim.searcher = restored
    results = sim.run()

    assert [op.to_dict() for op in results.operations] == expected
    assert results.shutdown == Shutdown(failure=False)


# =============================================================================
# Snapshot errors
# =============================================================================


def test_restore_rejects_unknown_version():
    searcher = _searcher("random")
    searcher.initial_operations()
    payload = json.loads(searcher.snapshot())
    payload["version"] = 2

    with pytest.raises(SnapshotError, match="version"):
        Searcher.restore(json.dumps(payload), new_search_method(CONFIGS["random"], SPACE), SPACE)


def test_restore_rejects_other_method_type():
    searcher = _searcher("sync_halving")
    searcher.initial_operations()
    blob = searcher.snapshot()

    with pytest.raises(SnapshotError):
        Searcher.restore(blob, new_search_method(CONFIGS["async_halving"], SPACE), SPACE)

    sha_blob = searcher.method.snapshot()
    asha = AsyncHalvingSearch(num_rungs=3, max_length=27, divisor=3, max_trials=9)
    with pytest.raises(SnapshotError):
        asha.restore(sha_blob)


def test_stateful_methods_need_a_snapshot():
    with pytest.raises(SnapshotError):
        PBTSearch().restore(None)
    with pytest.raises(SnapshotError):
        SyncHalvingSearch(num_rungs=2, max_length=8, divisor=2, max_trials=4).restore(None)


def test_stateless_methods_reject_a_state():
    with pytest.raises(SnapshotError):
        RandomSearch(max_trials=2, max_length=5).load_state_dict({"trials": []})


def test_restore_rejects_invalid_json():
    with pytest.raises(SnapshotError):
        Searcher.restore(b"{not json", new_search_method(CONFIGS["random"], SPACE), SPACE)
    with pytest.raises(SnapshotError):
        Searcher.restore(
            b'{"type": "tournament"}', new_search_method(CONFIGS["random"], SPACE), SPACE
        )


def test_restore_keeps_the_original_seed(caplog):
    searcher = _searcher("random", seed=11)
    searcher.initial_operations()
    blob = searcher.snapshot()

    caplog.clear()
    with caplog.at_level(logging.INFO, logger="hpsearch.searcher.searcher"):
        restored = Searcher.restore(blob, new_search_method(CONFIGS["random"], SPACE), SPACE)

    assert restored.seed == 11
    messages = [r.getMessage() for r in caplog.records if r.name == "hpsearch.searcher.searcher"]
    assert len(messages) == 1
    assert "Restored random search (seed=11)" in messages[0]
