"""Search method contract for hpsearch.

This module defines the state-machine interface every search algorithm
implements. The executor drives one SearchMethod instance through its
lifecycle calls, strictly one at a time, and carries out the operations
each call returns:

- initial_operations(): opening batch, called exactly once
- trial_created() / train_completed() / checkpoint_completed() /
  validation_completed() / trial_closed(): completion of earlier operations
- trial_exited_early(): abnormal trial termination
- progress(): completion estimate from cumulative units of work
- snapshot() / restore(): exact capture and rebuild of internal state

Copyright 2025 Verso Industries
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from hpsearch.errors import SearcherError, SnapshotError
from hpsearch.searcher.context import RequestID, SearchContext
from hpsearch.searcher.hpo_utils import dumps_state, loads_state, metric_sort_key
from hpsearch.searcher.operations import (
    Checkpoint,
    CheckpointMetrics,
    ExitedReason,
    Operation,
    Shutdown,
    Train,
    Validate,
    ValidationMetrics,
)

logger = logging.getLogger(__name__)


class SearchMethodType(str, Enum):
    """Discriminant of the closed family of search methods."""

    SINGLE = "single"
    RANDOM = "random"
    GRID = "grid"
    SYNC_HALVING = "sync_halving"
    ASYNC_HALVING = "async_halving"
    ADAPTIVE = "adaptive"
    ADAPTIVE_SIMPLE = "adaptive_simple"
    ADAPTIVE_ASHA = "adaptive_asha"
    PBT = "pbt"


@dataclass
class TrialRecord:
    """Scheduling metadata the halving family keeps per trial.

    Attributes:
        request_id: Trial identifier.
        hparams: Hyperparameters the trial was created with.
        rung: Rung index the trial trains towards.
        parent_id: Trial whose checkpoint this one was warm-started from.
        metric: Validation metric reported at ``rung``, if any.
        checkpointed: Whether a checkpoint has completed.
        exited: Whether the trial exited early.
    """

    request_id: RequestID
    hparams: dict[str, Any]
    rung: int = 0
    parent_id: RequestID | None = None
    metric: float | None = None
    checkpointed: bool = False
    exited: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": str(self.request_id),
            "hparams": self.hparams,
            "rung": self.rung,
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "metric": self.metric,
            "checkpointed": self.checkpointed,
            "exited": self.exited,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrialRecord:
        return cls(
            request_id=RequestID(data["request_id"]),
            hparams=data["hparams"],
            rung=data["rung"],
            parent_id=RequestID(data["parent_id"]) if data.get("parent_id") else None,
            metric=data.get("metric"),
            checkpointed=data.get("checkpointed", False),
            exited=data.get("exited", False),
        )


class SearchMethod(ABC):
    """Abstract base class for search methods.

    Subclasses must implement:
    - initial_operations(): Opening batch of operations
    - progress(): Completion estimate

    The remaining lifecycle calls default to emitting nothing, except
    trial_exited_early(), which aborts the whole search unless overridden.
    Stateful subclasses override state_dict() and load_state_dict().
    """

    method_type: ClassVar[SearchMethodType]
    SNAPSHOT_VERSION: ClassVar[int] = 1

    def __init__(self, metric: str = "validation_loss", smaller_is_better: bool = True):
        """Initialize search method.

        Args:
            metric: Name of the validation metric that drives decisions
            smaller_is_better: Whether lower metric values are better
        """
        self.metric = metric
        self.smaller_is_better = smaller_is_better

    @abstractmethod
    def initial_operations(self, ctx: SearchContext) -> list[Operation]:
        """Return the opening batch of operations.

        Args:
            ctx: Search context

        Returns:
            Create/Train/Checkpoint/Validate operations
        """
        pass

    def trial_created(self, ctx: SearchContext, request_id: RequestID) -> list[Operation]:
        return []

    def train_completed(
        self, ctx: SearchContext, request_id: RequestID, train: Train
    ) -> list[Operation]:
        return []

    def checkpoint_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        checkpoint: Checkpoint,
        metrics: CheckpointMetrics,
    ) -> list[Operation]:
        return []

    def validation_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        validate: Validate,
        metrics: ValidationMetrics,
    ) -> list[Operation]:
        return []

    def trial_closed(self, ctx: SearchContext, request_id: RequestID) -> list[Operation]:
        return []

    def trial_exited_early(
        self, ctx: SearchContext, request_id: RequestID, reason: ExitedReason
    ) -> list[Operation]:
        """Abort the search; only methods that can replace a trial override this."""
        logger.error(
            f"[{self.method_type.value}] Trial {request_id} exited early ({reason.value}), "
            "shutting down search"
        )
        return [Shutdown(failure=True)]

    @abstractmethod
    def progress(self, total_units_completed: float) -> float:
        """Estimate completion in [0, 1] from cumulative completed units.

        Args:
            total_units_completed: Units of training completed so far

        Returns:
            Fraction of the known total budget
        """
        pass

    def sort_key(self, value: float | None) -> float:
        """Ascending sort key for a metric value (lower ranks better)."""
        return metric_sort_key(value, self.smaller_is_better)

    def worst_metric(self) -> float:
        return float("inf") if self.smaller_is_better else float("-inf")

    # ------------------------------------------------------------------
    # Snapshot / restore
    # ------------------------------------------------------------------

    def state_dict(self) -> dict[str, Any] | None:
        """Return the JSON-compatible internal state, or None when stateless."""
        return None

    def load_state_dict(self, state: dict[str, Any] | None) -> None:
        """Rebuild internal state from :meth:`state_dict` output.

        Raises:
            SnapshotError: If the state cannot be interpreted.
        """
        if state is not None:
            raise SnapshotError(f"{type(self).__name__} is stateless but was given a snapshot")

    def snapshot(self) -> bytes | None:
        """Capture the complete internal state as a versioned blob."""
        state = self.state_dict()
        if state is None:
            return None
        return dumps_state(
            {"type": self.method_type.value, "version": self.SNAPSHOT_VERSION, "state": state}
        )

    def restore(self, blob: bytes | str | None) -> None:
        """Rebuild internal state from :meth:`snapshot` output.

        Raises:
            SnapshotError: If the blob's type or version is not this method's.
        """
        if blob is None:
            self.load_state_dict(None)
            return
        try:
            payload = loads_state(blob)
        except ValueError as e:
            raise SnapshotError(f"Snapshot for {self.method_type.value} is not valid JSON") from e
        self.load_state_dict(self.unwrap_state(payload))

    def wrap_state(self) -> dict[str, Any]:
        """State with its type/version envelope, for embedding in other snapshots."""
        return {
            "type": self.method_type.value,
            "version": self.SNAPSHOT_VERSION,
            "state": self.state_dict(),
        }

    def unwrap_state(self, payload: Any) -> dict[str, Any] | None:
        """Check a type/version envelope and return its state."""
        if not isinstance(payload, dict) or "version" not in payload:
            raise SnapshotError(f"Snapshot for {self.method_type.value} has no version tag")
        if payload.get("type") != self.method_type.value:
            raise SnapshotError(
                f"Snapshot is for search method {payload.get('type')!r}, "
                f"not {self.method_type.value!r}"
            )
        if payload["version"] != self.SNAPSHOT_VERSION:
            raise SnapshotError(
                f"Unsupported {self.method_type.value} snapshot version {payload['version']!r} "
                f"(expected {self.SNAPSHOT_VERSION})"
            )
        return payload.get("state")

    def get_statistics(self) -> dict[str, Any]:
        """Get search method statistics."""
        return {
            "type": self.method_type.value,
            "metric": self.metric,
            "smaller_is_better": self.smaller_is_better,
        }


def require_state(method: SearchMethod, state: dict[str, Any] | None) -> dict[str, Any]:
    """Reject an absent state for a stateful method."""
    if state is None:
        raise SnapshotError(
            f"{method.method_type.value} search keeps state and cannot restore "
            "from an empty snapshot"
        )
    return state


def require_trial(trials: dict[str, Any], request_id: RequestID, tag: str) -> Any:
    """Look up a trial this method created."""
    if request_id not in trials:
        raise SearcherError(f"[{tag}] Unknown request ID {request_id}")
    return trials[request_id]


__all__ = [
    "SearchMethod",
    "SearchMethodType",
    "TrialRecord",
    "require_state",
    "require_trial",
]
