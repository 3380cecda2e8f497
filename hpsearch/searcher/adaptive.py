# hpsearch/searcher/adaptive.py
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

"""Hyperband-style adaptive searchers.

Hyperband hedges over how aggressively to early-stop by running several
successive halving brackets at once. Bracket ``s`` has ``s + 1`` rungs; a
deep bracket starts many configurations at a small budget, a shallow one
starts few configurations near the full budget.

The three searchers differ in which halving variant runs each bracket and
in how the work is divided:

    - AdaptiveSearch: synchronous brackets, total budget split equally
    - AdaptiveSimpleSearch: synchronous brackets, trial count split
    - AdaptiveASHASearch: asynchronous brackets, trial count and
      concurrency split

Trial counts are split in proportion to ``eta^s / (s + 1)``, the rung-0
population of Hyperband bracket ``s``.

Reference: Li et al., "Hyperband: A Novel Bandit-Based Approach to
Hyperparameter Optimization" (JMLR 2018)
"""

from __future__ import annotations

import logging
import math
from hpsearch.config import AdaptiveMode
from hpsearch.errors import SearcherConfigError
from hpsearch.searcher.async_halving import AsyncHalvingSearch
from hpsearch.searcher.rungs import max_rungs_for
from hpsearch.searcher.search_method import SearchMethodType
from hpsearch.searcher.sync_halving import SyncHalvingSearch
from hpsearch.searcher.tournament import TournamentSearch

logger = logging.getLogger(__name__)


def bracket_rungs(mode: AdaptiveMode, max_rungs: int) -> list[int]:
    """Number of rungs of each bracket, deepest first.

    Args:
        mode: aggressive runs only the deepest bracket, conservative runs
            every depth down to a single rung, standard runs half of them.
        max_rungs: Rungs of the deepest bracket.

    Returns:
        List of rung counts, one per bracket.
    """
    if mode == AdaptiveMode.AGGRESSIVE:
        num_brackets = 1
    elif mode == AdaptiveMode.CONSERVATIVE:
        num_brackets = max_rungs
    else:
        num_brackets = math.ceil(max_rungs / 2)
    return [max_rungs - i for i in range(num_brackets)]


def split_by_weight(total: int, weights: list[float]) -> list[int]:
    """Split ``total`` proportionally to ``weights``; every share is at least 1.

    The remainder left by flooring goes to the heaviest share. Shares that
    were raised to 1 are paid for by the largest shares, so the result always
    sums to ``total``.

    Raises:
        SearcherConfigError: If ``total`` is smaller than the number of shares.
    """
    if total < len(weights):
        raise SearcherConfigError(f"Cannot split {total} into {len(weights)} non-empty shares")
    weight_sum = sum(weights)
    shares = [max(1, int(total * w / weight_sum)) for w in weights]
    remainder = total - sum(shares)
    if remainder > 0:
        heaviest = max(range(len(weights)), key=lambda i: weights[i])
        shares[heaviest] += remainder
    while remainder < 0:
        largest = max(range(len(shares)), key=lambda i: shares[i])
        shares[largest] -= 1
        remainder += 1
    return shares


def hyperband_weights(rungs: list[int], divisor: float) -> list[float]:
    return [divisor ** (r - 1) / r for r in rungs]


def plan_brackets(
    tag: str,
    mode: AdaptiveMode,
    max_rungs: int,
    max_length: int,
    divisor: float,
    max_brackets: int | None = None,
) -> list[int]:
    """Rung counts of the brackets to run, deepest first.

    The deepest bracket is limited to the rungs ``max_length`` can hold with
    distinct lengths. When ``max_brackets`` is given, only that many of the
    deepest brackets are kept so every bracket gets at least one trial.
    """
    depth = max_rungs_for(max_length, divisor, max_rungs)
    if depth < max_rungs:
        logger.warning(
            f"[{tag}] max_length={max_length} holds only {depth} rungs with divisor "
            f"{divisor}; deepest bracket reduced from {max_rungs}"
        )
    rungs = bracket_rungs(mode, depth)
    if max_brackets is not None and max_brackets < len(rungs):
        logger.warning(
            f"[{tag}] Trial caps allow {max_brackets} of {len(rungs)} brackets; "
            f"keeping the deepest"
        )
        rungs = rungs[:max_brackets]
    return rungs


class AdaptiveSearch(TournamentSearch):
    """Hyperband over synchronous halving brackets sharing a total budget."""

    method_type = SearchMethodType.ADAPTIVE

    def __init__(
        self,
        max_length: int,
        budget: int,
        mode: AdaptiveMode = AdaptiveMode.STANDARD,
        divisor: float = 4.0,
        max_rungs: int = 5,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        rungs = plan_brackets("Adaptive", mode, max_rungs, max_length, divisor)
        bracket_budget = max(1, budget // len(rungs))
        brackets = [
            SyncHalvingSearch(
                num_rungs=r,
                max_length=max_length,
                divisor=divisor,
                budget=bracket_budget,
                metric=metric,
                smaller_is_better=smaller_is_better,
            )
            for r in rungs
        ]
        super().__init__(brackets, metric, smaller_is_better)
        self.mode = mode
        logger.info(
            f"[Adaptive] {len(brackets)} brackets ({mode.value}), rungs={rungs}, "
            f"budget per bracket={bracket_budget}"
        )


class AdaptiveSimpleSearch(TournamentSearch):
    """Hyperband over synchronous halving brackets sharing a trial count."""

    method_type = SearchMethodType.ADAPTIVE_SIMPLE

    def __init__(
        self,
        max_length: int,
        max_trials: int,
        mode: AdaptiveMode = AdaptiveMode.STANDARD,
        divisor: float = 4.0,
        max_rungs: int = 5,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        rungs = plan_brackets(
            "AdaptiveSimple", mode, max_rungs, max_length, divisor, max_brackets=max_trials
        )
        trials = split_by_weight(max_trials, hyperband_weights(rungs, divisor))
        brackets = [
            SyncHalvingSearch(
                num_rungs=r,
                max_length=max_length,
                divisor=divisor,
                max_trials=n,
                metric=metric,
                smaller_is_better=smaller_is_better,
            )
            for r, n in zip(rungs, trials)
        ]
        super().__init__(brackets, metric, smaller_is_better)
        self.mode = mode
        logger.info(
            f"[AdaptiveSimple] {len(brackets)} brackets ({mode.value}), rungs={rungs}, "
            f"trials={trials}"
        )


class AdaptiveASHASearch(TournamentSearch):
    """Hyperband over asynchronous halving brackets."""

    method_type = SearchMethodType.ADAPTIVE_ASHA

    def __init__(
        self,
        max_length: int,
        max_trials: int,
        mode: AdaptiveMode = AdaptiveMode.STANDARD,
        divisor: float = 4.0,
        max_rungs: int = 5,
        max_concurrent_trials: int = 16,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        rungs = plan_brackets(
            "AdaptiveASHA",
            mode,
            max_rungs,
            max_length,
            divisor,
            max_brackets=min(max_trials, max_concurrent_trials),
        )
        weights = hyperband_weights(rungs, divisor)
        trials = split_by_weight(max_trials, weights)
        concurrency = split_by_weight(max_concurrent_trials, weights)
        brackets = [
            AsyncHalvingSearch(
                num_rungs=r,
                max_length=max_length,
                divisor=divisor,
                max_trials=n,
                max_concurrent_trials=c,
                metric=metric,
                smaller_is_better=smaller_is_better,
            )
            for r, n, c in zip(rungs, trials, concurrency)
        ]
        super().__init__(brackets, metric, smaller_is_better)
        self.mode = mode
        logger.info(
            f"[AdaptiveASHA] {len(brackets)} brackets ({mode.value}), rungs={rungs}, "
            f"trials={trials}, concurrency={concurrency}"
        )


__all__ = [
    "AdaptiveSearch",
    "AdaptiveSimpleSearch",
    "AdaptiveASHASearch",
    "bracket_rungs",
    "plan_brackets",
    "split_by_weight",
]
