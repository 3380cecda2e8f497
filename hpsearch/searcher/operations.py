# hpsearch/searcher/operations.py
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

"""Operations emitted by search methods and the events that answer them.

Search methods never act on trials directly. They return operations that
the trial executor carries out, and the executor reports completion back
through the corresponding lifecycle event:

    Create      -> trial_created
    Train       -> train_completed
    Checkpoint  -> checkpoint_completed
    Validate    -> validation_completed
    Close       -> trial_closed
    Shutdown    -> (no further events)
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from hpsearch.errors import SearcherError
from hpsearch.searcher.context import RequestID, SearchContext


class OperationType(str, Enum):
    """Discriminant of the operation vocabulary."""

    CREATE = "create"
    TRAIN = "train"
    VALIDATE = "validate"
    CHECKPOINT = "checkpoint"
    CLOSE = "close"
    SHUTDOWN = "shutdown"


class ExitedReason(str, Enum):
    """Why a trial stopped before the searcher closed it."""

    ERRORED = "errored"
    INVALID_METRIC = "invalid_metric"
    USER_REQUESTED = "user_requested"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Operation(ABC):
    """Base class of all operations."""

    type: ClassVar[OperationType]

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form, tagged with the operation type."""


@dataclass(frozen=True)
class Create(Operation):
    """Request a new trial, optionally warm-started from ``parent_id``'s checkpoint."""

    type: ClassVar[OperationType] = OperationType.CREATE

    request_id: RequestID
    hparams: dict[str, Any] = field(hash=False)
    parent_id: RequestID | None = None

    @classmethod
    def new(
        cls,
        ctx: SearchContext,
        hparams: dict[str, Any],
        parent_id: RequestID | None = None,
    ) -> Create:
        """Build a Create with a fresh RequestID drawn from the context."""
        return cls(request_id=ctx.new_request_id(), hparams=dict(hparams), parent_id=parent_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "request_id": str(self.request_id),
            "hparams": dict(self.hparams),
            "parent_id": str(self.parent_id) if self.parent_id else None,
        }

    def __str__(self) -> str:
        parent = f", parent={self.parent_id}" if self.parent_id else ""
        return f"Create({self.request_id}{parent})"


@dataclass(frozen=True)
class Train(Operation):
    """Request ``length`` further units of training."""

    type: ClassVar[OperationType] = OperationType.TRAIN

    request_id: RequestID
    length: int

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "request_id": str(self.request_id), "length": self.length}

    def __str__(self) -> str:
        return f"Train({self.request_id}, {self.length})"


@dataclass(frozen=True)
class Validate(Operation):
    """Request a validation pass."""

    type: ClassVar[OperationType] = OperationType.VALIDATE

    request_id: RequestID

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "request_id": str(self.request_id)}

    def __str__(self) -> str:
        return f"Validate({self.request_id})"


@dataclass(frozen=True)
class Checkpoint(Operation):
    """Request a checkpoint; required before the trial can be a warm-start parent."""

    type: ClassVar[OperationType] = OperationType.CHECKPOINT

    request_id: RequestID

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "request_id": str(self.request_id)}

    def __str__(self) -> str:
        return f"Checkpoint({self.request_id})"


@dataclass(frozen=True)
class Close(Operation):
    """Request orderly teardown of a trial."""

    type: ClassVar[OperationType] = OperationType.CLOSE

    request_id: RequestID

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "request_id": str(self.request_id)}

    def __str__(self) -> str:
        return f"Close({self.request_id})"


@dataclass(frozen=True)
class Shutdown(Operation):
    """Terminate the whole search; ``failure`` marks an abort."""

    type: ClassVar[OperationType] = OperationType.SHUTDOWN

    failure: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "failure": self.failure}

    def __str__(self) -> str:
        return f"Shutdown(failure={self.failure})"


@dataclass(frozen=True)
class ValidationMetrics:
    """Metrics reported by a completed validation."""

    metrics: dict[str, float] = field(default_factory=dict, hash=False)

    def metric(self, name: str) -> float:
        """Return the named metric.

        Raises:
            SearcherError: If the metric was not reported.
        """
        if name not in self.metrics:
            raise SearcherError(
                f"Validation metrics do not include searcher metric '{name}' "
                f"(got {sorted(self.metrics)})"
            )
        value = self.metrics[name]
        return math.nan if value is None else float(value)


@dataclass(frozen=True)
class CheckpointMetrics:
    """Description of a completed checkpoint."""

    uuid: str = ""
    resources: dict[str, int] = field(default_factory=dict, hash=False)


def trial_plan(request_id: RequestID, length: int, checkpoint: bool = True) -> list[Operation]:
    """Standard per-trial work plan: train, optionally checkpoint, then validate."""
    ops: list[Operation] = [Train(request_id, length)]
    if checkpoint:
        ops.append(Checkpoint(request_id))
    ops.append(Validate(request_id))
    return ops


__all__ = [
    "OperationType",
    "ExitedReason",
    "Operation",
    "Create",
    "Train",
    "Validate",
    "Checkpoint",
    "Close",
    "Shutdown",
    "ValidationMetrics",
    "CheckpointMetrics",
    "trial_plan",
]
