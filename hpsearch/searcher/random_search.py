# hpsearch/searcher/random_search.py
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

"""Random search: independent samples of the search space."""

from __future__ import annotations

import logging
from typing import Any

from hpsearch.searcher.context import SearchContext
from hpsearch.searcher.operations import Close, Create, Operation, trial_plan
from hpsearch.searcher.search_method import SearchMethod, SearchMethodType

logger = logging.getLogger(__name__)


class RandomSearch(SearchMethod):
    """Draw ``max_trials`` configurations up front and train each for ``max_length``.

    All draws come from the context generator, in trial order and then in
    declaration order within a trial, so a fixed seed reproduces the exact
    same configurations.
    """

    method_type = SearchMethodType.RANDOM

    def __init__(
        self,
        max_trials: int,
        max_length: int,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        super().__init__(metric, smaller_is_better)
        self.max_trials = max_trials
        self.max_length = max_length

    def initial_operations(self, ctx: SearchContext) -> list[Operation]:
        ops: list[Operation] = []
        for _ in range(self.max_trials):
            create = Create.new(ctx, ctx.sample())
            ops.append(create)
            ops.extend(trial_plan(create.request_id, self.max_length))
            ops.append(Close(create.request_id))

        logger.info(f"[Random] Generated {self.max_trials} trial configs")
        return ops

    def progress(self, total_units_completed: float) -> float:
        return min(1.0, total_units_completed / (self.max_trials * self.max_length))

    def get_statistics(self) -> dict[str, Any]:
        stats = super().get_statistics()
        stats.update({"max_trials": self.max_trials, "max_length": self.max_length})
        return stats
