# hpsearch/searcher/rungs.py
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

"""Rung bookkeeping shared by the successive halving searchers.

A bracket of ``R`` rungs trains trials to geometrically increasing lengths:
rung ``k`` ends after ``max_length / eta^(R-1-k)`` units, so the top rung
ends at ``max_length``. Promoted trials are warm-started from their
checkpoint and only train the difference between consecutive rungs.

Reference: Li et al., "A System for Massively Parallel Hyperparameter
Tuning" (MLSys 2020)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from hpsearch.errors import SearcherConfigError
from hpsearch.searcher.context import RequestID


@dataclass
class Rung:
    """One training-budget tier of a halving bracket.

    Attributes:
        units_needed: Cumulative units a trial has trained when it reports here.
        start_trials: Expected population (synchronous halving barrier size).
        metrics: (request_id, metric) in arrival order.
        promoted: Request IDs promoted out of this rung, in decision order.
    """

    units_needed: int
    start_trials: int = 0
    metrics: list[tuple[RequestID, float]] = field(default_factory=list)
    promoted: list[RequestID] = field(default_factory=list)

    def ranked(self, sort_key) -> list[tuple[RequestID, float]]:
        """Metrics best first; ties keep arrival order."""
        return sorted(self.metrics, key=lambda item: sort_key(item[1]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "units_needed": self.units_needed,
            "start_trials": self.start_trials,
            "metrics": [[str(rid), metric] for rid, metric in self.metrics],
            "promoted": [str(rid) for rid in self.promoted],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rung:
        return cls(
            units_needed=data["units_needed"],
            start_trials=data["start_trials"],
            metrics=[(RequestID(rid), metric) for rid, metric in data["metrics"]],
            promoted=[RequestID(rid) for rid in data["promoted"]],
        )


def _lengths(num_rungs: int, max_length: int, divisor: float) -> list[int]:
    return [max(1, int(max_length / divisor ** (num_rungs - k - 1))) for k in range(num_rungs)]


def rung_lengths(num_rungs: int, max_length: int, divisor: float) -> list[int]:
    """Cumulative training length at each rung.

    Raises:
        SearcherConfigError: If two rungs would end at the same length.
    """
    lengths = _lengths(num_rungs, max_length, divisor)
    if len(set(lengths)) != len(lengths):
        raise SearcherConfigError(
            f"max_length={max_length} is too small for {num_rungs} rungs with divisor {divisor}"
        )
    return lengths


def max_rungs_for(max_length: int, divisor: float, limit: int) -> int:
    """Deepest bracket, at most ``limit`` rungs, whose rung lengths are all distinct."""
    num_rungs = limit
    while num_rungs > 1 and len(set(_lengths(num_rungs, max_length, divisor))) != num_rungs:
        num_rungs -= 1
    return num_rungs


def rung_sizes(max_trials: int, num_rungs: int, divisor: float, synchronous: bool) -> list[int]:
    """Expected population of each rung when every trial reports.

    Synchronous halving promotes ``ceil(n / eta)`` from a full rung; the
    asynchronous variant can only promote ``floor(n / eta)``.
    """
    sizes = [max_trials]
    for _ in range(1, num_rungs):
        prev = sizes[-1]
        sizes.append(math.ceil(prev / divisor) if synchronous else int(prev / divisor))
    return sizes


def expected_units(lengths: list[int], sizes: list[int]) -> int:
    """Total units trained when each rung holds ``sizes[k]`` trials."""
    total = 0
    prev = 0
    for length, size in zip(lengths, sizes):
        total += size * (length - prev)
        prev = length
    return total


def trials_for_budget(budget: int, lengths: list[int], divisor: float, synchronous: bool) -> int:
    """Largest rung-0 population whose expected work fits in ``budget`` (at least 1)."""
    num_rungs = len(lengths)

    def cost(n: int) -> int:
        return expected_units(lengths, rung_sizes(n, num_rungs, divisor, synchronous))

    prev = 0
    per_trial = 0.0
    for k, length in enumerate(lengths):
        per_trial += (length - prev) / divisor**k
        prev = length

    n = max(1, int(budget / per_trial))
    while n > 1 and cost(n) > budget:
        n -= 1
    while cost(n + 1) <= budget:
        n += 1
    return n


__all__ = [
    "Rung",
    "rung_lengths",
    "max_rungs_for",
    "rung_sizes",
    "expected_units",
    "trials_for_budget",
]
