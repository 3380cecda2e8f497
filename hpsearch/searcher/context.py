# hpsearch/searcher/context.py
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

"""Per-call search context and trial identifiers.

The context bundles the deterministic random stream with the declared
search space. It is passed explicitly to every lifecycle call so that two
searches seeded identically and fed the same events emit identical
operations.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

import numpy as np

from hpsearch.searcher.hyperparameters import HyperparameterSpace


class RequestID(str):
    """Opaque, globally unique identifier of one trial."""

    __slots__ = ()

    @classmethod
    def new(cls, rng: np.random.Generator) -> RequestID:
        """Draw a UUID4 from the given generator."""
        return cls(uuid.UUID(bytes=rng.bytes(16), version=4))


@dataclass(frozen=True)
class SearchContext:
    """Random stream and search space handed to each lifecycle call.

    Attributes:
        rng: Deterministic generator; the only randomness source for search methods.
        hparams: Declared hyperparameter space.
    """

    rng: np.random.Generator
    hparams: HyperparameterSpace

    @classmethod
    def from_seed(cls, seed: int, hparams: HyperparameterSpace) -> SearchContext:
        return cls(rng=np.random.default_rng(seed), hparams=hparams)

    def new_request_id(self) -> RequestID:
        return RequestID.new(self.rng)

    def sample(self) -> dict[str, Any]:
        return self.hparams.sample(self.rng)

    def rng_state(self) -> dict[str, Any]:
        """Return the bit generator state for snapshots."""
        return self.rng.bit_generator.state

    def set_rng_state(self, state: dict[str, Any]) -> None:
        self.rng.bit_generator.state = state


__all__ = ["RequestID", "SearchContext"]
