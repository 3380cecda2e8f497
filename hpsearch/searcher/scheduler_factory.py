"""Search Method Factory.

Creates the search method selected by a searcher configuration. Exactly
one algorithm variant of the configuration may be populated; zero or
several populated variants are rejected before anything is built.

Copyright 2025 Verso Industries
"""

from __future__ import annotations

import logging

from hpsearch.config import SearcherConfig
from hpsearch.errors import SearcherConfigError
from hpsearch.searcher.adaptive import AdaptiveASHASearch, AdaptiveSearch, AdaptiveSimpleSearch
from hpsearch.searcher.async_halving import AsyncHalvingSearch
from hpsearch.searcher.grid import GridSearch
from hpsearch.searcher.hyperparameters import HyperparameterSpace
from hpsearch.searcher.pbt import PBTSearch
from hpsearch.searcher.random_search import RandomSearch
from hpsearch.searcher.search_method import SearchMethod
from hpsearch.searcher.single import SingleSearch
from hpsearch.searcher.sync_halving import SyncHalvingSearch

logger = logging.getLogger(__name__)


def new_search_method(config: SearcherConfig, hparams: HyperparameterSpace) -> SearchMethod:
    """Create the search method for a searcher configuration.

    Args:
        config: Searcher configuration with exactly one variant set
        hparams: Declared search space (grid search enumerates it up front)

    Returns:
        Configured search method instance

    Raises:
        SearcherConfigError: If zero or several variants are set, or the
            populated variant is invalid.
    """
    config.validate()
    name, variant = config.variant()
    common = {"metric": config.metric, "smaller_is_better": config.smaller_is_better}
    logger.info(f"[Searcher] Creating {name} search method (metric={config.metric})")

    if name == "single":
        return SingleSearch(
            max_length=variant.max_length, hyperparameters=variant.hyperparameters, **common
        )
    elif name == "random":
        return RandomSearch(max_trials=variant.max_trials, max_length=variant.max_length, **common)
    elif name == "grid":
        return GridSearch(
            hparams, max_length=variant.max_length, divisions=variant.divisions, **common
        )
    elif name == "sync_halving":
        return SyncHalvingSearch(
            num_rungs=variant.num_rungs,
            max_length=variant.max_length,
            divisor=variant.divisor,
            budget=variant.budget,
            max_trials=variant.max_trials,
            **common,
        )
    elif name == "async_halving":
        return AsyncHalvingSearch(
            num_rungs=variant.num_rungs,
            max_length=variant.max_length,
            divisor=variant.divisor,
            budget=variant.budget,
            max_trials=variant.max_trials,
            max_concurrent_trials=variant.max_concurrent_trials,
            **common,
        )
    elif name == "adaptive":
        return AdaptiveSearch(
            max_length=variant.max_length,
            budget=variant.budget,
            mode=variant.mode,
            divisor=variant.divisor,
            max_rungs=variant.max_rungs,
            **common,
        )
    elif name == "adaptive_simple":
        return AdaptiveSimpleSearch(
            max_length=variant.max_length,
            max_trials=variant.max_trials,
            mode=variant.mode,
            divisor=variant.divisor,
            max_rungs=variant.max_rungs,
            **common,
        )
    elif name == "adaptive_asha":
        return AdaptiveASHASearch(
            max_length=variant.max_length,
            max_trials=variant.max_trials,
            mode=variant.mode,
            divisor=variant.divisor,
            max_rungs=variant.max_rungs,
            max_concurrent_trials=variant.max_concurrent_trials,
            **common,
        )
    elif name == "pbt":
        return PBTSearch(
            population_size=variant.population_size,
            num_rounds=variant.num_rounds,
            checkpoint_interval=variant.checkpoint_interval,
            perturb_interval=variant.perturb_interval,
            truncate_fraction=variant.truncate_fraction,
            resample_probability=variant.resample_probability,
            perturb_factor=variant.perturb_factor,
            **common,
        )
    raise SearcherConfigError(f"No search method for searcher variant {name!r}")


__all__ = ["new_search_method"]
