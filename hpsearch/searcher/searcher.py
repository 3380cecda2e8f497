# hpsearch/searcher/searcher.py
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

"""Searcher: the executor-facing driver of one search method.

The Searcher owns the deterministic random stream and the search
context, delivers lifecycle events to its search method, and checks every
operation the method emits before handing it to the executor:

    - Train/Checkpoint/Validate/Close must name a trial created earlier
    - events for unknown or closed trials, or after Shutdown, are rejected
    - when the last open trial closes and the method has nothing more to
      do, the search ends with ``Shutdown(failure=False)``

Example:
    >>> searcher = Searcher(RandomSearch(max_trials=3, max_length=10), space, seed=42)
    >>> ops = searcher.initial_operations()
"""

from __future__ import annotations

import logging
from typing import Any

from hpsearch.config import SearcherConfig
from hpsearch.errors import SearcherError, SnapshotError
from hpsearch.searcher.context import RequestID, SearchContext
from hpsearch.searcher.hpo_utils import dumps_state, loads_state
from hpsearch.searcher.hyperparameters import HyperparameterSpace
from hpsearch.searcher.operations import (
    Checkpoint,
    CheckpointMetrics,
    Create,
    ExitedReason,
    Operation,
    Shutdown,
    Train,
    Validate,
    ValidationMetrics,
)
from hpsearch.searcher.scheduler_factory import new_search_method
from hpsearch.searcher.search_method import SearchMethod

logger = logging.getLogger(__name__)


class Searcher:
    """Drive a search method and enforce the trial lifecycle contract.

    Attributes:
        method: The search method being driven.
        seed: Seed the random stream started from.
        ctx: Search context (random stream and search space).
        total_units: Units of training reported so far.
        max_progress: Highest progress reported so far.
        shutdown: The Shutdown that ended the search, if any.
    """

    SNAPSHOT_VERSION = 1

    def __init__(
        self,
        method: SearchMethod,
        hparams: HyperparameterSpace | dict[str, Any] | None = None,
        seed: int = 0,
    ) -> None:
        """Initialize the searcher.

        Args:
            method: Search method to drive
            hparams: Search space, or its ``{name: declaration}`` form
            seed: Seed of the random stream
        """
        if not isinstance(hparams, HyperparameterSpace):
            hparams = HyperparameterSpace.from_dict(hparams)
        self.method = method
        self.seed = seed
        self.ctx = SearchContext.from_seed(seed, hparams)
        self.started = False
        self.total_units = 0.0
        self.max_progress = 0.0
        self.shutdown: Shutdown | None = None

        # Creation order is kept so snapshots list trials deterministically.
        self._trials: dict[RequestID, str] = {}

    @classmethod
    def from_config(
        cls,
        config: SearcherConfig,
        hparams: HyperparameterSpace | dict[str, Any] | None = None,
        seed: int = 0,
    ) -> Searcher:
        """Build a Searcher for the search method a configuration selects."""
        if not isinstance(hparams, HyperparameterSpace):
            hparams = HyperparameterSpace.from_dict(hparams)
        return cls(new_search_method(config, hparams), hparams, seed)

    # ------------------------------------------------------------------
    # Trial bookkeeping
    # ------------------------------------------------------------------

    @property
    def open_trials(self) -> list[RequestID]:
        return [rid for rid, status in self._trials.items() if status != "closed"]

    @property
    def known_trials(self) -> list[RequestID]:
        return list(self._trials)

    @property
    def finished(self) -> bool:
        return self.shutdown is not None

    def _record(self, ops: list[Operation]) -> list[Operation]:
        """Check the method's operations and update trial bookkeeping."""
        recorded: list[Operation] = []
        for op in ops:
            if self.shutdown is not None:
                raise SearcherError(f"[Searcher] {op} emitted after {self.shutdown}")

            if isinstance(op, Shutdown):
                self.shutdown = op
                log = logger.error if op.failure else logger.info
                log(f"[Searcher] Search shut down (failure={op.failure})")
            elif isinstance(op, Create):
                if op.request_id in self._trials:
                    raise SearcherError(f"[Searcher] Duplicate Create for {op.request_id}")
                if op.parent_id is not None and op.parent_id not in self._trials:
                    raise SearcherError(
                        f"[Searcher] {op} warm-starts from unknown trial {op.parent_id}"
                    )
                self._trials[op.request_id] = "open"
            elif op.request_id not in self._trials:
                raise SearcherError(f"[Searcher] {op} references a trial that was never created")

            logger.debug(f"[Searcher] -> {op}")
            recorded.append(op)
        return recorded

    def _check_event(self, request_id: RequestID, event: str, allow_exited: bool = False) -> None:
        if not self.started:
            raise SearcherError(f"[Searcher] {event} before initial_operations")
        if self.shutdown is not None:
            raise SearcherError(f"[Searcher] {event} for {request_id} after shutdown")
        status = self._trials.get(request_id)
        if status is None:
            raise SearcherError(f"[Searcher] {event} for unknown trial {request_id}")
        if status == "closed":
            raise SearcherError(f"[Searcher] {event} for closed trial {request_id}")
        if status == "exited" and not allow_exited:
            raise SearcherError(f"[Searcher] {event} for trial {request_id} that exited early")
        logger.debug(f"[Searcher] <- {event}({request_id})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initial_operations(self) -> list[Operation]:
        if self.started:
            raise SearcherError("[Searcher] initial_operations may only be called once")
        self.started = True
        logger.info(
            f"[Searcher] Starting {self.method.method_type.value} search (seed={self.seed})"
        )
        return self._record(self.method.initial_operations(self.ctx))

    def trial_created(self, request_id: RequestID) -> list[Operation]:
        self._check_event(request_id, "trial_created")
        return self._record(self.method.trial_created(self.ctx, request_id))

    def train_completed(self, request_id: RequestID, train: Train) -> list[Operation]:
        self._check_event(request_id, "train_completed")
        self.total_units += train.length
        return self._record(self.method.train_completed(self.ctx, request_id, train))

    def checkpoint_completed(
        self,
        request_id: RequestID,
        checkpoint: Checkpoint,
        metrics: CheckpointMetrics | None = None,
    ) -> list[Operation]:
        self._check_event(request_id, "checkpoint_completed")
        metrics = metrics if metrics is not None else CheckpointMetrics()
        return self._record(
            self.method.checkpoint_completed(self.ctx, request_id, checkpoint, metrics)
        )

    def validation_completed(
        self,
        request_id: RequestID,
        validate: Validate,
        metrics: ValidationMetrics | dict[str, float],
    ) -> list[Operation]:
        self._check_event(request_id, "validation_completed")
        if not isinstance(metrics, ValidationMetrics):
            metrics = ValidationMetrics(dict(metrics))
        # Required even by methods that never rank on it.
        metrics.metric(self.method.metric)
        return self._record(
            self.method.validation_completed(self.ctx, request_id, validate, metrics)
        )

    def trial_closed(self, request_id: RequestID) -> list[Operation]:
        self._check_event(request_id, "trial_closed", allow_exited=True)
        self._trials[request_id] = "closed"
        ops = self._record(self.method.trial_closed(self.ctx, request_id))
        if not ops and self.shutdown is None and not self.open_trials:
            ops = self._record([Shutdown(failure=False)])
        return ops

    def trial_exited_early(
        self, request_id: RequestID, reason: ExitedReason | str
    ) -> list[Operation]:
        self._check_event(request_id, "trial_exited_early")
        reason = ExitedReason(reason)
        self._trials[request_id] = "exited"
        return self._record(self.method.trial_exited_early(self.ctx, request_id, reason))

    def progress(self) -> float:
        """Completion estimate in [0, 1]; exactly 1.0 once the search has shut down.

        The highest estimate reported so far is kept, so progress never goes
        back when a method discovers work it did not plan for.
        """
        if self.shutdown is not None:
            return 1.0
        estimate = min(1.0, max(0.0, self.method.progress(self.total_units)))
        self.max_progress = max(self.max_progress, estimate)
        return self.max_progress

    # ------------------------------------------------------------------
    # Snapshot / restore
    # ------------------------------------------------------------------

    def snapshot(self) -> bytes:
        """Capture the random stream, trial bookkeeping and method state."""
        return dumps_state(
            {
                "type": "searcher",
                "version": self.SNAPSHOT_VERSION,
                "state": {
                    "seed": self.seed,
                    "rng": self.ctx.rng_state(),
                    "method": self.method.wrap_state(),
                    "trials": [[str(rid), status] for rid, status in self._trials.items()],
                    "started": self.started,
                    "total_units": self.total_units,
                    "max_progress": self.max_progress,
                    "shutdown": None if self.shutdown is None else self.shutdown.failure,
                },
            }
        )

    @classmethod
    def restore(
        cls,
        blob: bytes | str,
        method: SearchMethod,
        hparams: HyperparameterSpace | dict[str, Any] | None = None,
    ) -> Searcher:
        """Rebuild a Searcher from :meth:`snapshot` output.

        Args:
            blob: Snapshot produced by :meth:`snapshot`
            method: Freshly constructed method with the original configuration
            hparams: Search space the original searcher used

        Returns:
            A Searcher that continues exactly where the snapshot was taken

        Raises:
            SnapshotError: If the blob is not a searcher snapshot of a
                supported version, or was taken from a different method type.
        """
        try:
            payload = loads_state(blob)
        except ValueError as e:
            raise SnapshotError("Searcher snapshot is not valid JSON") from e
        if not isinstance(payload, dict) or payload.get("type") != "searcher":
            raise SnapshotError("Blob is not a searcher snapshot")
        if payload.get("version") != cls.SNAPSHOT_VERSION:
            raise SnapshotError(
                f"Unsupported searcher snapshot version {payload.get('version')!r} "
                f"(expected {cls.SNAPSHOT_VERSION})"
            )

        state = payload["state"]
        searcher = cls(method, hparams, state["seed"])
        method.load_state_dict(method.unwrap_state(state["method"]))
        searcher.ctx.set_rng_state(state["rng"])
        searcher._trials = {RequestID(rid): status for rid, status in state["trials"]}
        searcher.started = state["started"]
        searcher.total_units = state["total_units"]
        searcher.max_progress = state["max_progress"]
        if state["shutdown"] is not None:
            searcher.shutdown = Shutdown(failure=state["shutdown"])

        logger.info(
            f"[Searcher] Restored {method.method_type.value} search (seed={searcher.seed}): "
            f"{len(searcher._trials)} trials, {len(searcher.open_trials)} open, "
            f"{searcher.total_units} units"
        )
        return searcher

    def get_statistics(self) -> dict[str, Any]:
        """Get searcher statistics."""
        return {
            "method": self.method.get_statistics(),
            "num_trials": len(self._trials),
            "open_trials": len(self.open_trials),
            "total_units": self.total_units,
            "progress": self.progress(),
            "finished": self.finished,
        }


__all__ = ["Searcher"]
