# hpsearch/searcher/grid.py
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

"""Grid search over the discretized cartesian product of the search space."""

from __future__ import annotations

import logging
from typing import Any

from hpsearch.searcher.context import SearchContext
from hpsearch.searcher.hyperparameters import HyperparameterSpace
from hpsearch.searcher.operations import Close, Create, Operation, trial_plan
from hpsearch.searcher.search_method import SearchMethod, SearchMethodType

logger = logging.getLogger(__name__)


class GridSearch(SearchMethod):
    """One trial per grid point, enumerated in a fixed order.

    The grid is computed from the search space at construction so that
    progress() knows the total amount of work without keeping state.
    """

    method_type = SearchMethodType.GRID

    def __init__(
        self,
        hparams: HyperparameterSpace,
        max_length: int,
        divisions: dict[str, int] | None = None,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        super().__init__(metric, smaller_is_better)
        self.max_length = max_length
        self.points = hparams.grid(divisions)
        logger.info(f"[Grid] {len(self.points)} grid points over {len(hparams)} hyperparameters")

    def initial_operations(self, ctx: SearchContext) -> list[Operation]:
        ops: list[Operation] = []
        for point in self.points:
            create = Create.new(ctx, point)
            ops.append(create)
            ops.extend(trial_plan(create.request_id, self.max_length))
            ops.append(Close(create.request_id))
        return ops

    def progress(self, total_units_completed: float) -> float:
        return min(1.0, total_units_completed / (len(self.points) * self.max_length))

    def get_statistics(self) -> dict[str, Any]:
        stats = super().get_statistics()
        stats.update({"grid_points": len(self.points), "max_length": self.max_length})
        return stats
