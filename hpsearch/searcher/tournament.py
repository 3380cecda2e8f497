# hpsearch/searcher/tournament.py
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

"""Run several independent search methods side by side.

The tournament forwards each lifecycle event to the sub-method that
created the trial, and remembers which sub-method every new ``Create``
came from. Sub-methods never see each other's trials.
"""

from __future__ import annotations

import logging
from typing import Any

from hpsearch.errors import SearcherError, SnapshotError
from hpsearch.searcher.context import RequestID, SearchContext
from hpsearch.searcher.operations import (
    Checkpoint,
    CheckpointMetrics,
    Create,
    ExitedReason,
    Operation,
    Train,
    Validate,
    ValidationMetrics,
)
from hpsearch.searcher.search_method import SearchMethod, require_state

logger = logging.getLogger(__name__)


class TournamentSearch(SearchMethod):
    """Multiplex independent sub-methods (brackets) behind one interface.

    Subclasses set ``method_type`` and build ``brackets``. Every bracket must
    expose ``expected_units`` so that overall progress can be measured
    against the sum of all bracket budgets.
    """

    def __init__(
        self,
        brackets: list[SearchMethod],
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        super().__init__(metric, smaller_is_better)
        if not brackets:
            raise SearcherError("A tournament needs at least one bracket")
        self.brackets = brackets
        self.routes: dict[RequestID, int] = {}

    @property
    def expected_units(self) -> int:
        return sum(b.expected_units for b in self.brackets)

    def _track(self, bracket: int, ops: list[Operation]) -> list[Operation]:
        for op in ops:
            if isinstance(op, Create):
                self.routes[op.request_id] = bracket
        return ops

    def _bracket_for(self, request_id: RequestID) -> int:
        if request_id not in self.routes:
            raise SearcherError(f"[{self.method_type.value}] Unknown request ID {request_id}")
        return self.routes[request_id]

    def initial_operations(self, ctx: SearchContext) -> list[Operation]:
        ops: list[Operation] = []
        for i, bracket in enumerate(self.brackets):
            ops.extend(self._track(i, bracket.initial_operations(ctx)))
        return ops

    def trial_created(self, ctx: SearchContext, request_id: RequestID) -> list[Operation]:
        i = self._bracket_for(request_id)
        return self._track(i, self.brackets[i].trial_created(ctx, request_id))

    def train_completed(
        self, ctx: SearchContext, request_id: RequestID, train: Train
    ) -> list[Operation]:
        i = self._bracket_for(request_id)
        return self._track(i, self.brackets[i].train_completed(ctx, request_id, train))

    def checkpoint_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        checkpoint: Checkpoint,
        metrics: CheckpointMetrics,
    ) -> list[Operation]:
        i = self._bracket_for(request_id)
        return self._track(
            i, self.brackets[i].checkpoint_completed(ctx, request_id, checkpoint, metrics)
        )

    def validation_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        validate: Validate,
        metrics: ValidationMetrics,
    ) -> list[Operation]:
        i = self._bracket_for(request_id)
        return self._track(
            i, self.brackets[i].validation_completed(ctx, request_id, validate, metrics)
        )

    def trial_closed(self, ctx: SearchContext, request_id: RequestID) -> list[Operation]:
        i = self._bracket_for(request_id)
        return self._track(i, self.brackets[i].trial_closed(ctx, request_id))

    def trial_exited_early(
        self, ctx: SearchContext, request_id: RequestID, reason: ExitedReason
    ) -> list[Operation]:
        i = self._bracket_for(request_id)
        return self._track(i, self.brackets[i].trial_exited_early(ctx, request_id, reason))

    def progress(self, total_units_completed: float) -> float:
        return min(1.0, total_units_completed / self.expected_units)

    def state_dict(self) -> dict[str, Any]:
        return {
            "brackets": [bracket.wrap_state() for bracket in self.brackets],
            "routes": {str(rid): i for rid, i in self.routes.items()},
        }

    def load_state_dict(self, state: dict[str, Any] | None) -> None:
        state = require_state(self, state)
        if len(state["brackets"]) != len(self.brackets):
            raise SnapshotError(
                f"Snapshot holds {len(state['brackets'])} brackets, "
                f"configuration builds {len(self.brackets)}"
            )
        for bracket, payload in zip(self.brackets, state["brackets"]):
            bracket.load_state_dict(bracket.unwrap_state(payload))
        self.routes = {RequestID(rid): i for rid, i in state["routes"].items()}

    def get_statistics(self) -> dict[str, Any]:
        stats = super().get_statistics()
        stats["brackets"] = [bracket.get_statistics() for bracket in self.brackets]
        stats["expected_units"] = self.expected_units
        return stats


__all__ = ["TournamentSearch"]
