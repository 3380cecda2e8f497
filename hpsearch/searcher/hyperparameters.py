# hpsearch/searcher/hyperparameters.py
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

"""Hyperparameter search space definitions.

A search space is an ordered mapping from hyperparameter names to one of
five declared kinds:

    - const: a single fixed value
    - int: integers in a closed range
    - double: floats in a closed range
    - log: ``base ** x`` with the exponent ``x`` in a closed range
    - categorical: one of an explicit list of values

Every draw takes the generator explicitly; nothing in this module reads a
process-wide random source.

Example:
    >>> space = HyperparameterSpace.from_dict({
    ...     "lr": {"type": "log", "minval": -4, "maxval": -1},
    ...     "layers": {"type": "int", "minval": 1, "maxval": 4},
    ... })
    >>> params = space.sample(np.random.default_rng(0))
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from hpsearch.errors import SearcherConfigError
from hpsearch.searcher.hpo_utils import convert_numpy_types

logger = logging.getLogger(__name__)


class HyperparameterType(str, Enum):
    """Declared kind of a hyperparameter."""

    CONST = "const"
    INT = "int"
    DOUBLE = "double"
    LOG = "log"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class Hyperparameter:
    """A single dimension of the search space.

    Attributes:
        name: Hyperparameter name.
        type: Declared kind.
        minval: Lower bound (exponent lower bound for ``log``).
        maxval: Upper bound (exponent upper bound for ``log``).
        base: Logarithm base for ``log`` dimensions.
        count: Default number of grid divisions for numeric dimensions.
        val: Value of a ``const`` dimension.
        vals: Values of a ``categorical`` dimension.
    """

    name: str
    type: HyperparameterType
    minval: float | None = None
    maxval: float | None = None
    base: float = 10.0
    count: int | None = None
    val: Any = None
    vals: tuple[Any, ...] = ()

    @property
    def is_numeric(self) -> bool:
        return self.type in (
            HyperparameterType.INT,
            HyperparameterType.DOUBLE,
            HyperparameterType.LOG,
        )

    def validate(self) -> None:
        """Check that the declared bounds are usable.

        Raises:
            SearcherConfigError: If the dimension is malformed.
        """
        if self.is_numeric:
            if self.minval is None or self.maxval is None:
                raise SearcherConfigError(f"Hyperparameter '{self.name}' needs minval and maxval")
            if self.minval > self.maxval:
                raise SearcherConfigError(
                    f"Hyperparameter '{self.name}' has minval {self.minval} > maxval {self.maxval}"
                )
            if self.type == HyperparameterType.LOG and self.base <= 0:
                raise SearcherConfigError(f"Hyperparameter '{self.name}' needs a positive base")
            if self.count is not None and self.count < 1:
                raise SearcherConfigError(f"Hyperparameter '{self.name}' needs count >= 1")
        elif self.type == HyperparameterType.CATEGORICAL and not self.vals:
            raise SearcherConfigError(f"Categorical hyperparameter '{self.name}' has no vals")

    def bounds(self) -> tuple[float, float]:
        """Return the value range (not the exponent range for ``log``)."""
        if self.type == HyperparameterType.LOG:
            return self.base**self.minval, self.base**self.maxval
        return self.minval, self.maxval

    def sample(self, rng: np.random.Generator) -> Any:
        """Draw one value from this dimension.

        Args:
            rng: Generator to draw from.

        Returns:
            A native Python value.
        """
        if self.type == HyperparameterType.CONST:
            return self.val
        if self.type == HyperparameterType.INT:
            return int(rng.integers(int(self.minval), int(self.maxval) + 1))
        if self.type == HyperparameterType.DOUBLE:
            return float(rng.uniform(self.minval, self.maxval))
        if self.type == HyperparameterType.LOG:
            return float(self.base ** rng.uniform(self.minval, self.maxval))
        return convert_numpy_types(self.vals[int(rng.integers(len(self.vals)))])

    def grid_axis(self, count: int | None = None) -> list[Any]:
        """Discretize this dimension for grid search.

        Args:
            count: Number of divisions; defaults to the declared ``count``.

        Returns:
            Ordered, duplicate-free list of values.

        Raises:
            SearcherConfigError: If a numeric dimension has no division count.
        """
        if self.type == HyperparameterType.CONST:
            return [self.val]
        if self.type == HyperparameterType.CATEGORICAL:
            return list(self.vals)

        count = count if count is not None else self.count
        if count is None or count < 1:
            raise SearcherConfigError(
                f"Grid search needs a division count for hyperparameter '{self.name}'"
            )
        if count == 1:
            points = np.array([self.minval], dtype=float)
        else:
            points = np.linspace(self.minval, self.maxval, count)

        if self.type == HyperparameterType.DOUBLE:
            return [float(p) for p in points]
        if self.type == HyperparameterType.LOG:
            return [float(self.base**p) for p in points]

        axis: list[int] = []
        for p in points:
            value = int(round(float(p)))
            if value not in axis:
                axis.append(value)
        return axis

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON-like declaration form."""
        data: dict[str, Any] = {"type": self.type.value}
        if self.type == HyperparameterType.CONST:
            data["val"] = self.val
        elif self.type == HyperparameterType.CATEGORICAL:
            data["vals"] = list(self.vals)
        else:
            data["minval"] = self.minval
            data["maxval"] = self.maxval
            if self.type == HyperparameterType.LOG:
                data["base"] = self.base
            if self.count is not None:
                data["count"] = self.count
        return data

    @classmethod
    def from_dict(cls, name: str, spec: Any) -> Hyperparameter:
        """Parse one declaration.

        A bare (non-mapping) value declares a ``const`` hyperparameter.
        """
        if not isinstance(spec, dict):
            return cls(name=name, type=HyperparameterType.CONST, val=spec)

        try:
            kind = HyperparameterType(spec.get("type", "const"))
        except ValueError as e:
            raise SearcherConfigError(
                f"Hyperparameter '{name}' has unknown type {spec.get('type')!r}"
            ) from e

        param = cls(
            name=name,
            type=kind,
            minval=spec.get("minval"),
            maxval=spec.get("maxval"),
            base=float(spec.get("base", 10.0)),
            count=spec.get("count"),
            val=spec.get("val"),
            vals=tuple(spec.get("vals", ())),
        )
        param.validate()
        return param


@dataclass(frozen=True)
class HyperparameterSpace:
    """Ordered collection of hyperparameter dimensions."""

    params: tuple[Hyperparameter, ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.params)

    def __len__(self) -> int:
        return len(self.params)

    def __contains__(self, name: str) -> bool:
        return any(p.name == name for p in self.params)

    def __getitem__(self, name: str) -> Hyperparameter:
        for param in self.params:
            if param.name == name:
                return param
        raise KeyError(name)

    def names(self) -> list[str]:
        return [p.name for p in self.params]

    def sample(self, rng: np.random.Generator) -> dict[str, Any]:
        """Draw a full configuration, one dimension at a time in declaration order."""
        return {param.name: param.sample(rng) for param in self.params}

    def grid(self, divisions: dict[str, int] | None = None) -> list[dict[str, Any]]:
        """Enumerate the discretized cartesian product of all dimensions.

        Args:
            divisions: Per-name division counts overriding each declared ``count``.

        Returns:
            Grid points in a fixed order (last dimension varies fastest).
        """
        divisions = divisions or {}
        unknown = set(divisions) - set(self.names())
        if unknown:
            raise SearcherConfigError(
                f"Grid divisions for unknown hyperparameters: {sorted(unknown)}"
            )

        axes = [param.grid_axis(divisions.get(param.name)) for param in self.params]
        names = self.names()
        return [dict(zip(names, values)) for values in itertools.product(*axes)]

    def to_dict(self) -> dict[str, Any]:
        return {param.name: param.to_dict() for param in self.params}

    @classmethod
    def from_dict(cls, spec: dict[str, Any] | None) -> HyperparameterSpace:
        """Parse a ``{name: declaration}`` mapping, keeping its order."""
        if not spec:
            return cls()
        return cls(params=tuple(Hyperparameter.from_dict(name, s) for name, s in spec.items()))


__all__ = ["Hyperparameter", "HyperparameterSpace", "HyperparameterType"]
