# hpsearch/searcher/sync_halving.py
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

"""Synchronous successive halving (one bracket).

Rung 0 holds ``N`` trials trained to the base length; each rung above
trains ``eta`` times longer. A rung only advances once every one of its
trials has validated: the top ``ceil(n / eta)`` are then promoted by
creating warm-started children, and nobody else from that rung continues.
Each trial is closed as soon as it has validated, since its checkpoint is
all a promotion needs.

Example:
    >>> sha = SyncHalvingSearch(num_rungs=3, max_length=90, divisor=3, max_trials=9)
    >>> [r.start_trials for r in sha.rungs]
    [9, 3, 1]
"""

from __future__ import annotations

import logging
import math
from typing import Any

from hpsearch.errors import SearcherError
from hpsearch.searcher.context import RequestID, SearchContext
from hpsearch.searcher.operations import (
    Checkpoint,
    CheckpointMetrics,
    Close,
    Create,
    Operation,
    Validate,
    ValidationMetrics,
    trial_plan,
)
from hpsearch.searcher.rungs import (
    Rung,
    expected_units,
    rung_lengths,
    rung_sizes,
    trials_for_budget,
)
from hpsearch.searcher.search_method import (
    SearchMethod,
    SearchMethodType,
    TrialRecord,
    require_state,
    require_trial,
)

logger = logging.getLogger(__name__)


class SyncHalvingSearch(SearchMethod):
    """Successive halving with a synchronization barrier at every rung.

    Attributes:
        num_rungs: Number of rungs.
        max_length: Units trained by a trial that reaches the top rung.
        divisor: Reduction factor (eta).
        rungs: Rung bookkeeping, lowest fidelity first.
        trials: Scheduling metadata by request ID.
        expected_units: Total units the bracket trains when it runs to the end.
    """

    method_type = SearchMethodType.SYNC_HALVING

    def __init__(
        self,
        num_rungs: int,
        max_length: int,
        divisor: float = 4.0,
        budget: int | None = None,
        max_trials: int | None = None,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        """Initialize synchronous halving.

        Args:
            num_rungs: Number of rungs
            max_length: Units of training at the top rung
            divisor: Reduction factor (eta)
            budget: Total units of training, used when max_trials is None
            max_trials: Explicit rung-0 population
            metric: Validation metric name
            smaller_is_better: Metric direction
        """
        super().__init__(metric, smaller_is_better)
        self.num_rungs = num_rungs
        self.max_length = max_length
        self.divisor = divisor

        lengths = rung_lengths(num_rungs, max_length, divisor)
        if max_trials is None:
            max_trials = trials_for_budget(budget, lengths, divisor, synchronous=True)
        sizes = rung_sizes(max_trials, num_rungs, divisor, synchronous=True)

        self.rungs = [
            Rung(units_needed=length, start_trials=size) for length, size in zip(lengths, sizes)
        ]
        self.trials: dict[RequestID, TrialRecord] = {}
        self.expected_units = expected_units(lengths, sizes)

        logger.info(
            f"[SyncHalving] Initialized: eta={divisor}, rungs={lengths}, "
            f"trials={sizes}, expected_units={self.expected_units}"
        )

    def _create_trial(
        self,
        ctx: SearchContext,
        rung: int,
        hparams: dict[str, Any],
        parent_id: RequestID | None = None,
    ) -> list[Operation]:
        create = Create.new(ctx, hparams, parent_id=parent_id)
        self.trials[create.request_id] = TrialRecord(
            request_id=create.request_id, hparams=create.hparams, rung=rung, parent_id=parent_id
        )
        prev_units = self.rungs[rung - 1].units_needed if rung > 0 else 0
        return [create, *trial_plan(create.request_id, self.rungs[rung].units_needed - prev_units)]

    def initial_operations(self, ctx: SearchContext) -> list[Operation]:
        ops: list[Operation] = []
        for _ in range(self.rungs[0].start_trials):
            ops.extend(self._create_trial(ctx, 0, ctx.sample()))
        return ops

    def checkpoint_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        checkpoint: Checkpoint,
        metrics: CheckpointMetrics,
    ) -> list[Operation]:
        require_trial(self.trials, request_id, "SyncHalving").checkpointed = True
        return []

    def validation_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        validate: Validate,
        metrics: ValidationMetrics,
    ) -> list[Operation]:
        trial = require_trial(self.trials, request_id, "SyncHalving")
        if trial.metric is not None:
            raise SearcherError(
                f"[SyncHalving] Trial {request_id} already validated at rung {trial.rung}"
            )

        trial.metric = metrics.metric(self.metric)
        rung = self.rungs[trial.rung]
        rung.metrics.append((request_id, trial.metric))
        logger.debug(
            f"[SyncHalving] Rung {trial.rung}: {len(rung.metrics)}/{rung.start_trials} "
            f"reported ({request_id}={trial.metric})"
        )

        ops: list[Operation] = [Close(request_id)]
        if trial.rung < self.num_rungs - 1 and len(rung.metrics) == rung.start_trials:
            ops.extend(self._promote(ctx, trial.rung))
        return ops

    def _promote(self, ctx: SearchContext, rung_idx: int) -> list[Operation]:
        """Promote the top ``ceil(n / eta)`` of a full rung."""
        rung = self.rungs[rung_idx]
        num_promote = max(1, math.ceil(len(rung.metrics) / self.divisor))
        ops: list[Operation] = []

        for request_id, metric in rung.ranked(self.sort_key)[:num_promote]:
            parent = self.trials[request_id]
            if not parent.checkpointed:
                raise SearcherError(
                    f"[SyncHalving] Cannot promote {request_id}: no completed checkpoint"
                )
            rung.promoted.append(request_id)
            ops.extend(self._create_trial(ctx, rung_idx + 1, parent.hparams, parent_id=request_id))
            logger.info(f"[SyncHalving] Promoted {request_id} ({metric}) to rung {rung_idx + 1}")

        self.rungs[rung_idx + 1].start_trials = num_promote
        return ops

    def progress(self, total_units_completed: float) -> float:
        return min(1.0, total_units_completed / self.expected_units)

    def state_dict(self) -> dict[str, Any]:
        return {
            "rungs": [rung.to_dict() for rung in self.rungs],
            "trials": {rid: trial.to_dict() for rid, trial in self.trials.items()},
        }

    def load_state_dict(self, state: dict[str, Any] | None) -> None:
        state = require_state(self, state)
        self.rungs = [Rung.from_dict(r) for r in state["rungs"]]
        self.trials = {
            RequestID(rid): TrialRecord.from_dict(t) for rid, t in state["trials"].items()
        }

    def get_statistics(self) -> dict[str, Any]:
        stats = super().get_statistics()
        stats.update(
            {
                "divisor": self.divisor,
                "rungs": [r.units_needed for r in self.rungs],
                "reported": [len(r.metrics) for r in self.rungs],
                "promoted": [len(r.promoted) for r in self.rungs],
                "num_trials": len(self.trials),
            }
        )
        return stats


__all__ = ["SyncHalvingSearch"]
