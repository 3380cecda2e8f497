# tests/unit/test_config.py
import pytest

from hpsearch.config import (
    AdaptiveASHAConfig,
    AdaptiveMode,
    AsyncHalvingConfig,
    Config,
    GridConfig,
    PBTConfig,
    RandomConfig,
    SearcherConfig,
    SyncHalvingConfig,
    Unit,
)
from hpsearch.errors import SearcherConfigError
from hpsearch.searcher.adaptive import AdaptiveASHASearch
from hpsearch.searcher.async_halving import AsyncHalvingSearch
from hpsearch.searcher.hyperparameters import HyperparameterSpace
from hpsearch.searcher.pbt import PBTSearch
from hpsearch.searcher.random_search import RandomSearch
from hpsearch.searcher.scheduler_factory import new_search_method

SPACE = HyperparameterSpace.from_dict({"lr": {"type": "double", "minval": 0.0, "maxval": 1.0}})


def test_dispatcher_rejects_missing_variant():
    with pytest.raises(SearcherConfigError, match="Exactly one"):
        new_search_method(SearcherConfig(), SPACE)


def test_dispatcher_rejects_several_variants():
    config = SearcherConfig(random=RandomConfig(), pbt=PBTConfig())
    with pytest.raises(SearcherConfigError, match="Exactly one"):
        new_search_method(config, SPACE)


def test_dispatcher_builds_the_populated_variant():
    method = new_search_method(SearcherConfig(random=RandomConfig(max_trials=5)), SPACE)
    assert isinstance(method, RandomSearch)
    assert method.max_trials == 5

    method = new_search_method(
        SearcherConfig(
            metric="accuracy",
            smaller_is_better=False,
            async_halving=AsyncHalvingConfig(num_rungs=3, max_length=90, divisor=3, max_trials=9),
        ),
        SPACE,
    )
    assert isinstance(method, AsyncHalvingSearch)
    assert method.metric == "accuracy"
    assert method.smaller_is_better is False
    assert [r.units_needed for r in method.rungs] == [10, 30, 90]


def test_from_dict_parses_variant_and_mode():
    config = SearcherConfig.from_dict(
        {
            "metric": "accuracy",
            "smaller_is_better": False,
            "unit": "epochs",
            "adaptive_asha": {"max_trials": 10, "mode": "aggressive", "max_rungs": 3, "bogus": 1},
        }
    )

    name, variant = config.variant()
    assert name == "adaptive_asha"
    assert isinstance(variant, AdaptiveASHAConfig)
    assert variant.mode == AdaptiveMode.AGGRESSIVE
    assert variant.max_trials == 10
    assert config.unit == Unit.EPOCHS

    method = new_search_method(config, SPACE)
    assert isinstance(method, AdaptiveASHASearch)
    assert len(method.brackets) == 1


def test_from_dict_rejects_unknown_mode_and_unit():
    with pytest.raises(SearcherConfigError):
        SearcherConfig.from_dict({"adaptive": {"mode": "reckless"}})
    with pytest.raises(SearcherConfigError):
        SearcherConfig.from_dict({"unit": "fortnights", "random": {}})


@pytest.mark.parametrize(
    "config",
    [
        SearcherConfig(random=RandomConfig(max_trials=0)),
        SearcherConfig(grid=GridConfig(max_length=-1)),
        SearcherConfig(sync_halving=SyncHalvingConfig(divisor=1.0, max_trials=4)),
        SearcherConfig(sync_halving=SyncHalvingConfig()),
        SearcherConfig(async_halving=AsyncHalvingConfig(max_trials=8, max_concurrent_trials=0)),
        SearcherConfig(pbt=PBTConfig(truncate_fraction=0.6)),
        SearcherConfig(pbt=PBTConfig(perturb_factor=1.0)),
        SearcherConfig(pbt=PBTConfig(resample_probability=1.5)),
        SearcherConfig(metric="", random=RandomConfig()),
    ],
)
def test_invalid_settings_fail_before_construction(config):
    with pytest.raises(SearcherConfigError):
        new_search_method(config, SPACE)


def test_pbt_config_reaches_search_method():
    config = SearcherConfig(pbt=PBTConfig(population_size=6, num_rounds=4, checkpoint_interval=25))
    method = new_search_method(config, SPACE)
    assert isinstance(method, PBTSearch)
    assert method.population_size == 6
    assert method.progress(6 * 4 * 25) == 1.0


def test_config_save_load_roundtrip(tmp_path):
    config = Config(
        searcher=SearcherConfig(
            metric="loss",
            adaptive_asha=AdaptiveASHAConfig(max_trials=12, mode=AdaptiveMode.CONSERVATIVE),
        ),
        hyperparameters={"lr": {"type": "log", "minval": -4, "maxval": -1}},
        seed=11,
    )
    path = tmp_path / "experiment.json"

    config.save(str(path))
    loaded = Config.load(str(path))

    assert loaded.to_dict() == config.to_dict()
    assert loaded.searcher.adaptive_asha.mode == AdaptiveMode.CONSERVATIVE
    assert loaded.seed == 11
