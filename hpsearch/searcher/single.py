# hpsearch/searcher/single.py
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

"""Single-trial search: train one configuration to completion."""

from __future__ import annotations

import logging
from typing import Any

from hpsearch.errors import SearcherConfigError
from hpsearch.searcher.context import SearchContext
from hpsearch.searcher.operations import Close, Create, Operation, trial_plan
from hpsearch.searcher.search_method import SearchMethod, SearchMethodType

logger = logging.getLogger(__name__)


class SingleSearch(SearchMethod):
    """Create one trial with fixed hyperparameters and train it for ``max_length``.

    Hyperparameters given explicitly are used as-is; any remaining dimension
    of the search space is sampled once from the context.
    """

    method_type = SearchMethodType.SINGLE

    def __init__(
        self,
        max_length: int,
        hyperparameters: dict[str, Any] | None = None,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        super().__init__(metric, smaller_is_better)
        self.max_length = max_length
        self.hyperparameters = dict(hyperparameters or {})

    def initial_operations(self, ctx: SearchContext) -> list[Operation]:
        unknown = set(self.hyperparameters) - set(ctx.hparams.names())
        if ctx.hparams.params and unknown:
            raise SearcherConfigError(f"Unknown fixed hyperparameters: {sorted(unknown)}")

        hparams: dict[str, Any] = {}
        for param in ctx.hparams:
            if param.name in self.hyperparameters:
                hparams[param.name] = self.hyperparameters[param.name]
            else:
                hparams[param.name] = param.sample(ctx.rng)
        for name, value in self.hyperparameters.items():
            hparams.setdefault(name, value)

        create = Create.new(ctx, hparams)
        logger.info(f"[Single] Creating trial {create.request_id} for {self.max_length} units")
        return [
            create,
            *trial_plan(create.request_id, self.max_length),
            Close(create.request_id),
        ]

    def progress(self, total_units_completed: float) -> float:
        return min(1.0, total_units_completed / self.max_length)

    def get_statistics(self) -> dict[str, Any]:
        stats = super().get_statistics()
        stats["max_length"] = self.max_length
        return stats
