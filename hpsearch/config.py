# hpsearch/config.py
# Copyright 2025 Verso Industries (Author: Michael B. Zimmerman)
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Configuration system for hpsearch.

This module defines the searcher configuration dataclasses. Exactly one
algorithm variant of :class:`SearcherConfig` may be populated; the
dispatcher in :mod:`hpsearch.searcher.scheduler_factory` selects the search
method from whichever variant is set.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from hpsearch.errors import SearcherConfigError

log = logging.getLogger(__name__)

# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_METRIC = os.getenv("HPSEARCH_DEFAULT_METRIC", "validation_loss")
DEFAULT_DIVISOR = 4.0
DEFAULT_MAX_RUNGS = 5
DEFAULT_MAX_CONCURRENT_TRIALS = int(os.getenv("HPSEARCH_MAX_CONCURRENT_TRIALS", "16"))


class Unit(str, Enum):
    """Unit in which training lengths are expressed."""

    RECORDS = "records"
    BATCHES = "batches"
    EPOCHS = "epochs"


class AdaptiveMode(str, Enum):
    """Trade-off between bracket count and bracket depth."""

    AGGRESSIVE = "aggressive"
    STANDARD = "standard"
    CONSERVATIVE = "conservative"


def _require_positive(name: str, value: Any, allow_zero: bool = False) -> None:
    if value is None:
        raise SearcherConfigError(f"{name} is required")
    if value < 0 or (value == 0 and not allow_zero):
        raise SearcherConfigError(f"{name} must be {'>= 0' if allow_zero else '> 0'}, got {value}")


def _require_divisor(divisor: float) -> None:
    if divisor is None or divisor <= 1:
        raise SearcherConfigError(f"divisor must be > 1, got {divisor}")


def _require_budget_or_trials(budget: int | None, max_trials: int | None) -> None:
    if budget is None and max_trials is None:
        raise SearcherConfigError("one of budget or max_trials is required")
    if budget is not None:
        _require_positive("budget", budget)
    if max_trials is not None:
        _require_positive("max_trials", max_trials)


# =============================================================================
# BASELINE SEARCHERS
# =============================================================================


@dataclass
class SingleConfig:
    """Train one trial to completion.

    Attributes:
        max_length: Units of training for the trial.
        hyperparameters: Fixed values; dimensions not listed are sampled.
    """

    max_length: int = 100
    hyperparameters: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        _require_positive("single.max_length", self.max_length)


@dataclass
class RandomConfig:
    """Independent random samples of the search space.

    Attributes:
        max_trials: Number of trials to create.
        max_length: Units of training per trial.
    """

    max_trials: int = 16
    max_length: int = 100

    def validate(self) -> None:
        _require_positive("random.max_trials", self.max_trials)
        _require_positive("random.max_length", self.max_length)


@dataclass
class GridConfig:
    """Exhaustive enumeration of the discretized search space.

    Attributes:
        max_length: Units of training per trial.
        divisions: Per-hyperparameter division counts overriding declared counts.
    """

    max_length: int = 100
    divisions: dict[str, int] = field(default_factory=dict)

    def validate(self) -> None:
        _require_positive("grid.max_length", self.max_length)
        for name, count in self.divisions.items():
            _require_positive(f"grid.divisions[{name}]", count)


# =============================================================================
# SUCCESSIVE HALVING
# =============================================================================


@dataclass
class SyncHalvingConfig:
    """Synchronous successive halving (one bracket).

    Attributes:
        num_rungs: Number of rungs in the bracket.
        max_length: Units of training a trial reaches at the top rung.
        divisor: Reduction factor (eta).
        budget: Total units of training; sizes rung 0 when max_trials is unset.
        max_trials: Explicit rung-0 population.
    """

    num_rungs: int = 4
    max_length: int = 100
    divisor: float = DEFAULT_DIVISOR
    budget: int | None = None
    max_trials: int | None = None

    def validate(self) -> None:
        _require_positive("sync_halving.num_rungs", self.num_rungs)
        _require_positive("sync_halving.max_length", self.max_length)
        _require_divisor(self.divisor)
        _require_budget_or_trials(self.budget, self.max_trials)


@dataclass
class AsyncHalvingConfig:
    """Asynchronous successive halving (ASHA).

    Attributes:
        num_rungs: Number of rungs.
        max_length: Units of training a trial reaches at the top rung.
        divisor: Reduction factor (eta).
        budget: Total units of training; sizes max_trials when unset.
        max_trials: Number of rung-0 trials to create.
        max_concurrent_trials: Cap on simultaneously open trials.
    """

    num_rungs: int = 4
    max_length: int = 100
    divisor: float = DEFAULT_DIVISOR
    budget: int | None = None
    max_trials: int | None = None
    max_concurrent_trials: int = DEFAULT_MAX_CONCURRENT_TRIALS

    def validate(self) -> None:
        _require_positive("async_halving.num_rungs", self.num_rungs)
        _require_positive("async_halving.max_length", self.max_length)
        _require_divisor(self.divisor)
        _require_budget_or_trials(self.budget, self.max_trials)
        _require_positive("async_halving.max_concurrent_trials", self.max_concurrent_trials)


# =============================================================================
# ADAPTIVE (HYPERBAND-STYLE) SEARCHERS
# =============================================================================


@dataclass
class AdaptiveConfig:
    """Hyperband over synchronous halving brackets sharing a total budget.

    Attributes:
        max_length: Units of training at the top rung of every bracket.
        budget: Total units of training, split equally across brackets.
        mode: Bracket count versus depth trade-off.
        divisor: Reduction factor (eta).
        max_rungs: Rungs in the deepest bracket.
    """

    max_length: int = 100
    budget: int = 10_000
    mode: AdaptiveMode = AdaptiveMode.STANDARD
    divisor: float = DEFAULT_DIVISOR
    max_rungs: int = DEFAULT_MAX_RUNGS

    def validate(self) -> None:
        _require_positive("adaptive.max_length", self.max_length)
        _require_positive("adaptive.budget", self.budget)
        _require_divisor(self.divisor)
        _require_positive("adaptive.max_rungs", self.max_rungs)


@dataclass
class AdaptiveSimpleConfig:
    """Hyperband over synchronous halving brackets sharing a trial count.

    Attributes:
        max_length: Units of training at the top rung of every bracket.
        max_trials: Rung-0 trials, split across brackets.
        mode: Bracket count versus depth trade-off.
        divisor: Reduction factor (eta).
        max_rungs: Rungs in the deepest bracket.
    """

    max_length: int = 100
    max_trials: int = 64
    mode: AdaptiveMode = AdaptiveMode.STANDARD
    divisor: float = DEFAULT_DIVISOR
    max_rungs: int = DEFAULT_MAX_RUNGS

    def validate(self) -> None:
        _require_positive("adaptive_simple.max_length", self.max_length)
        _require_positive("adaptive_simple.max_trials", self.max_trials)
        _require_divisor(self.divisor)
        _require_positive("adaptive_simple.max_rungs", self.max_rungs)


@dataclass
class AdaptiveASHAConfig:
    """Hyperband over asynchronous halving brackets.

    Attributes:
        max_length: Units of training at the top rung of every bracket.
        max_trials: Rung-0 trials, split across brackets.
        mode: Bracket count versus depth trade-off.
        divisor: Reduction factor (eta).
        max_rungs: Rungs in the deepest bracket.
        max_concurrent_trials: Open-trial cap, split across brackets.
    """

    max_length: int = 100
    max_trials: int = 64
    mode: AdaptiveMode = AdaptiveMode.STANDARD
    divisor: float = DEFAULT_DIVISOR
    max_rungs: int = DEFAULT_MAX_RUNGS
    max_concurrent_trials: int = DEFAULT_MAX_CONCURRENT_TRIALS

    def validate(self) -> None:
        _require_positive("adaptive_asha.max_length", self.max_length)
        _require_positive("adaptive_asha.max_trials", self.max_trials)
        _require_divisor(self.divisor)
        _require_positive("adaptive_asha.max_rungs", self.max_rungs)
        _require_positive("adaptive_asha.max_concurrent_trials", self.max_concurrent_trials)


# =============================================================================
# POPULATION-BASED TRAINING
# =============================================================================


@dataclass
class PBTConfig:
    """Population-based training.

    Attributes:
        population_size: Number of concurrently training members.
        num_rounds: Training rounds before the search ends.
        checkpoint_interval: Units of training per round (each round ends
            with a checkpoint and a validation).
        perturb_interval: Rounds between exploit/explore steps.
        truncate_fraction: Bottom (and top) fraction used by exploit.
        resample_probability: Chance that explore resamples a value.
        perturb_factor: Multiplicative jitter applied by explore.
    """

    population_size: int = 8
    num_rounds: int = 10
    checkpoint_interval: int = 100
    perturb_interval: int = 1
    truncate_fraction: float = 0.25
    resample_probability: float = 0.25
    perturb_factor: float = 0.2

    def validate(self) -> None:
        _require_positive("pbt.population_size", self.population_size)
        _require_positive("pbt.num_rounds", self.num_rounds)
        _require_positive("pbt.checkpoint_interval", self.checkpoint_interval)
        _require_positive("pbt.perturb_interval", self.perturb_interval)
        if not 0.0 <= self.truncate_fraction <= 0.5:
            raise SearcherConfigError(
                f"pbt.truncate_fraction must be in [0, 0.5], got {self.truncate_fraction}"
            )
        if not 0.0 <= self.resample_probability <= 1.0:
            raise SearcherConfigError(
                f"pbt.resample_probability must be in [0, 1], got {self.resample_probability}"
            )
        if not 0.0 <= self.perturb_factor < 1.0:
            raise SearcherConfigError(
                f"pbt.perturb_factor must be in [0, 1), got {self.perturb_factor}"
            )


# =============================================================================
# SEARCHER CONFIGURATION
# =============================================================================

VARIANT_TYPES: dict[str, type] = {
    "single": SingleConfig,
    "random": RandomConfig,
    "grid": GridConfig,
    "sync_halving": SyncHalvingConfig,
    "async_halving": AsyncHalvingConfig,
    "adaptive": AdaptiveConfig,
    "adaptive_simple": AdaptiveSimpleConfig,
    "adaptive_asha": AdaptiveASHAConfig,
    "pbt": PBTConfig,
}


def _variant_from_dict(name: str, data: dict[str, Any]) -> Any:
    variant_type = VARIANT_TYPES[name]
    if not isinstance(data, dict):
        raise SearcherConfigError(f"searcher.{name} must be a mapping, got {type(data).__name__}")
    kwargs = {k: v for k, v in data.items() if k in variant_type.__dataclass_fields__}
    ignored = sorted(set(data) - set(kwargs))
    if ignored:
        log.warning(f"[Config] Ignoring unknown {name} settings: {ignored}")
    if "mode" in kwargs:
        try:
            kwargs["mode"] = AdaptiveMode(kwargs["mode"])
        except ValueError as e:
            raise SearcherConfigError(f"Unknown adaptive mode {kwargs['mode']!r}") from e
    return variant_type(**kwargs)


@dataclass
class SearcherConfig:
    """Searcher configuration: shared settings plus exactly one algorithm variant.

    Attributes:
        metric: Validation metric that drives decisions.
        smaller_is_better: Whether lower metric values are better.
        unit: Unit of every training length.
    """

    metric: str = DEFAULT_METRIC
    smaller_is_better: bool = True
    unit: Unit = Unit.BATCHES

    single: SingleConfig | None = None
    random: RandomConfig | None = None
    grid: GridConfig | None = None
    sync_halving: SyncHalvingConfig | None = None
    async_halving: AsyncHalvingConfig | None = None
    adaptive: AdaptiveConfig | None = None
    adaptive_simple: AdaptiveSimpleConfig | None = None
    adaptive_asha: AdaptiveASHAConfig | None = None
    pbt: PBTConfig | None = None

    def populated_variants(self) -> list[str]:
        """Names of the algorithm variants that are set."""
        return [name for name in VARIANT_TYPES if getattr(self, name) is not None]

    def variant(self) -> tuple[str, Any]:
        """Return the single populated variant.

        Raises:
            SearcherConfigError: If zero or several variants are set.
        """
        populated = self.populated_variants()
        if len(populated) != 1:
            raise SearcherConfigError(
                f"Exactly one searcher variant must be set, got {populated or 'none'}"
            )
        name = populated[0]
        return name, getattr(self, name)

    def validate(self) -> None:
        if not self.metric:
            raise SearcherConfigError("searcher.metric is required")
        _, variant = self.variant()
        variant.validate()

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        from dataclasses import asdict

        data: dict[str, Any] = {
            "metric": self.metric,
            "smaller_is_better": self.smaller_is_better,
            "unit": self.unit.value,
        }
        for name in self.populated_variants():
            variant = asdict(getattr(self, name))
            if "mode" in variant:
                variant["mode"] = variant["mode"].value
            data[name] = variant
        return data

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "SearcherConfig":
        """Create configuration from dictionary."""
        try:
            unit = Unit(config_dict.get("unit", Unit.BATCHES.value))
        except ValueError as e:
            raise SearcherConfigError(f"Unknown unit {config_dict.get('unit')!r}") from e

        variants = {
            name: _variant_from_dict(name, config_dict[name])
            for name in VARIANT_TYPES
            if config_dict.get(name) is not None
        }
        return cls(
            metric=config_dict.get("metric", DEFAULT_METRIC),
            smaller_is_better=bool(config_dict.get("smaller_is_better", True)),
            unit=unit,
            **variants,
        )


# =============================================================================
# UNIFIED CONFIGURATION
# =============================================================================


@dataclass
class Config:
    """Searcher configuration together with its search space and seed.

    Attributes:
        searcher: Searcher configuration.
        hyperparameters: Search space declarations (see HyperparameterSpace).
        seed: Seed of the searcher's random stream.
    """

    searcher: SearcherConfig = field(default_factory=SearcherConfig)
    hyperparameters: dict[str, Any] = field(default_factory=dict)
    seed: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to nested dictionary."""
        return {
            "searcher": self.searcher.to_dict(),
            "hyperparameters": self.hyperparameters,
            "seed": self.seed,
        }

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "Config":
        """Create configuration from nested dictionary."""
        return cls(
            searcher=SearcherConfig.from_dict(config_dict.get("searcher", {})),
            hyperparameters=dict(config_dict.get("hyperparameters", {})),
            seed=int(config_dict.get("seed", 0)),
        )

    def save(self, path: str) -> None:
        """Save configuration to JSON file."""
        import json

        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        log.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: str) -> "Config":
        """Load configuration from JSON file."""
        import json

        with open(path) as f:
            config_dict = json.load(f)
        log.info(f"Configuration loaded from {path}")
        return cls.from_dict(config_dict)
