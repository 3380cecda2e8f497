# hpsearch/searcher/async_halving.py
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

"""Asynchronous Successive Halving Algorithm (ASHA).

Unlike synchronous halving, ASHA makes promotion decisions as soon as a
result arrives:

    - No rung barrier, so stragglers never block other trials
    - A rung promotes its top ``floor(n / eta)`` results among the ``n``
      reported so far, so nothing is promoted before ``eta`` results exist
    - Promotions are final; later results only add promotions

Every trial is checkpointed before it validates and closed right after, so
a trial that only enters the top fraction later can still be promoted by
warm-starting a child from its checkpoint.

References:
    - Li et al., "A System for Massively Parallel Hyperparameter Tuning" (MLSys 2020)

Example:
    >>> asha = AsyncHalvingSearch(num_rungs=3, max_length=90, divisor=3, max_trials=27)
    >>> [r.units_needed for r in asha.rungs]
    [10, 30, 90]
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
    ExitedReason,
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


class AsyncHalvingSearch(SearchMethod):
    """Asynchronous successive halving with a cap on concurrently open trials.

    Attributes:
        num_rungs: Number of rungs.
        max_length: Units trained by a trial that reaches the top rung.
        divisor: Reduction factor (eta).
        max_trials: Number of rung-0 trials to create.
        max_concurrent_trials: Open-trial cap.
        rungs: Rung bookkeeping, lowest fidelity first.
        trials: Scheduling metadata by request ID.
        promotion_queue: (request_id, target rung) promotions waiting for a slot.
    """

    method_type = SearchMethodType.ASYNC_HALVING

    def __init__(
        self,
        num_rungs: int,
        max_length: int,
        divisor: float = 4.0,
        budget: int | None = None,
        max_trials: int | None = None,
        max_concurrent_trials: int = 16,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        """Initialize ASHA.

        Args:
            num_rungs: Number of rungs
            max_length: Units of training at the top rung
            divisor: Reduction factor (eta)
            budget: Total units of training, used when max_trials is None
            max_trials: Number of rung-0 trials
            max_concurrent_trials: Maximum simultaneously open trials
            metric: Validation metric name
            smaller_is_better: Metric direction
        """
        super().__init__(metric, smaller_is_better)
        self.num_rungs = num_rungs
        self.max_length = max_length
        self.divisor = divisor
        self.max_concurrent_trials = max_concurrent_trials

        lengths = rung_lengths(num_rungs, max_length, divisor)
        if max_trials is None:
            max_trials = trials_for_budget(budget, lengths, divisor, synchronous=False)
        self.max_trials = max_trials
        self.planned_sizes = rung_sizes(max_trials, num_rungs, divisor, synchronous=False)

        self.rungs = [Rung(units_needed=length) for length in lengths]
        self.trials: dict[RequestID, TrialRecord] = {}
        self.promotion_queue: list[tuple[RequestID, int]] = []
        self.trials_created = 0
        self.open_trials = 0

        logger.info(
            f"[ASHA] Initialized: eta={divisor}, rungs={lengths}, max_trials={max_trials}, "
            f"max_concurrent={max_concurrent_trials}, expected_units={self.expected_units}"
        )

    @property
    def expected_units(self) -> int:
        """Units the bracket is expected to train, given the results so far.

        Every rung holds at least its planned population. Promotions already
        made count in full, and the results still outstanding below a rung
        may add up to ``ceil(outstanding / eta)`` more.
        """
        sizes = [self.max_trials]
        for k in range(1, self.num_rungs):
            below = self.rungs[k - 1]
            outstanding = sizes[-1] - len(below.metrics)
            possible = len(below.promoted) + math.ceil(outstanding / self.divisor)
            sizes.append(max(self.planned_sizes[k], possible))
        return expected_units([rung.units_needed for rung in self.rungs], sizes)

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
        self.open_trials += 1
        prev_units = self.rungs[rung - 1].units_needed if rung > 0 else 0
        return [create, *trial_plan(create.request_id, self.rungs[rung].units_needed - prev_units)]

    def _next_promotion(self) -> tuple[RequestID, int]:
        """Pop the queued promotion targeting the highest rung, oldest first."""
        best = 0
        for i, (_, target) in enumerate(self.promotion_queue):
            if target > self.promotion_queue[best][1]:
                best = i
        return self.promotion_queue.pop(best)

    def _fill_slots(self, ctx: SearchContext) -> list[Operation]:
        """Use free slots for queued promotions first, then for new rung-0 trials."""
        ops: list[Operation] = []
        while self.open_trials < self.max_concurrent_trials:
            if self.promotion_queue:
                parent_id, target = self._next_promotion()
                parent = self.trials[parent_id]
                ops.extend(self._create_trial(ctx, target, parent.hparams, parent_id=parent_id))
            elif self.trials_created < self.max_trials:
                self.trials_created += 1
                ops.extend(self._create_trial(ctx, 0, ctx.sample()))
            else:
                break
        return ops

    def _record_result(self, rung_idx: int, request_id: RequestID, metric: float) -> None:
        """Add a result to its rung and queue any promotions it unlocks."""
        rung = self.rungs[rung_idx]
        rung.metrics.append((request_id, metric))
        num_promote = int(len(rung.metrics) / self.divisor)

        for candidate_id, candidate_metric in rung.ranked(self.sort_key)[:num_promote]:
            if candidate_id in rung.promoted:
                continue
            candidate = self.trials[candidate_id]
            if candidate.exited:
                continue
            if not candidate.checkpointed:
                raise SearcherError(
                    f"[ASHA] Cannot promote {candidate_id}: no completed checkpoint"
                )
            rung.promoted.append(candidate_id)
            self.promotion_queue.append((candidate_id, rung_idx + 1))
            logger.info(
                f"[ASHA] Promoting {candidate_id} ({candidate_metric}) to rung {rung_idx + 1} "
                f"({len(rung.promoted)}/{len(rung.metrics)} promoted)"
            )

    def initial_operations(self, ctx: SearchContext) -> list[Operation]:
        return self._fill_slots(ctx)

    def checkpoint_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        checkpoint: Checkpoint,
        metrics: CheckpointMetrics,
    ) -> list[Operation]:
        require_trial(self.trials, request_id, "ASHA").checkpointed = True
        return []

    def validation_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        validate: Validate,
        metrics: ValidationMetrics,
    ) -> list[Operation]:
        trial = require_trial(self.trials, request_id, "ASHA")
        if trial.metric is not None:
            raise SearcherError(f"[ASHA] Trial {request_id} already validated at rung {trial.rung}")

        trial.metric = metrics.metric(self.metric)
        if trial.rung < self.num_rungs - 1:
            self._record_result(trial.rung, request_id, trial.metric)
        else:
            self.rungs[trial.rung].metrics.append((request_id, trial.metric))
            logger.info(f"[ASHA] Trial {request_id} completed top rung ({trial.metric})")
        return [Close(request_id), *self._fill_slots(ctx)]

    def trial_closed(self, ctx: SearchContext, request_id: RequestID) -> list[Operation]:
        require_trial(self.trials, request_id, "ASHA")
        self.open_trials -= 1
        return self._fill_slots(ctx)

    def trial_exited_early(
        self, ctx: SearchContext, request_id: RequestID, reason: ExitedReason
    ) -> list[Operation]:
        """Record the trial as the worst result at its rung and keep searching."""
        trial = require_trial(self.trials, request_id, "ASHA")
        trial.exited = True
        logger.warning(
            f"[ASHA] Trial {request_id} exited early at rung {trial.rung} ({reason.value})"
        )
        if trial.metric is None and trial.rung < self.num_rungs - 1:
            self._record_result(trial.rung, request_id, self.worst_metric())
        return self._fill_slots(ctx)

    def progress(self, total_units_completed: float) -> float:
        return min(1.0, total_units_completed / self.expected_units)

    def state_dict(self) -> dict[str, Any]:
        return {
            "rungs": [rung.to_dict() for rung in self.rungs],
            "trials": {rid: trial.to_dict() for rid, trial in self.trials.items()},
            "promotion_queue": [[str(rid), target] for rid, target in self.promotion_queue],
            "trials_created": self.trials_created,
            "open_trials": self.open_trials,
        }

    def load_state_dict(self, state: dict[str, Any] | None) -> None:
        state = require_state(self, state)
        self.rungs = [Rung.from_dict(r) for r in state["rungs"]]
        self.trials = {
            RequestID(rid): TrialRecord.from_dict(t) for rid, t in state["trials"].items()
        }
        self.promotion_queue = [
            (RequestID(rid), target) for rid, target in state["promotion_queue"]
        ]
        self.trials_created = state["trials_created"]
        self.open_trials = state["open_trials"]

    def get_statistics(self) -> dict[str, Any]:
        stats = super().get_statistics()
        stats.update(
            {
                "divisor": self.divisor,
                "rungs": [r.units_needed for r in self.rungs],
                "reported": [len(r.metrics) for r in self.rungs],
                "promoted": [len(r.promoted) for r in self.rungs],
                "num_trials": len(self.trials),
                "open_trials": self.open_trials,
                "queued_promotions": len(self.promotion_queue),
                "expected_units": self.expected_units,
            }
        )
        return stats


__all__ = ["AsyncHalvingSearch"]
