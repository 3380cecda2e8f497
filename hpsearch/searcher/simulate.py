# hpsearch/searcher/simulate.py
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

"""In-process trial executor for previewing and testing searches.

The simulator stands in for the external executor. It keeps a FIFO of
pending operations per trial, repeatedly picks a trial with pending work,
performs that trial's next operation and reports the matching event to
the Searcher. Trials are picked at random (from the simulator's own
generator) so that events from different trials interleave arbitrarily,
while each trial's own events stay in causal order.

Example:
    >>> sim = Simulator(searcher, seed=0)
    >>> results = sim.run()
    >>> results.shutdown
    Shutdown(failure=False)
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from hpsearch.searcher.context import RequestID
from hpsearch.searcher.operations import (
    Checkpoint,
    CheckpointMetrics,
    Close,
    Create,
    ExitedReason,
    Operation,
    Shutdown,
    Train,
    Validate,
)
from hpsearch.searcher.searcher import Searcher

logger = logging.getLogger(__name__)

MetricFn = Callable[[RequestID, dict[str, Any], float], float]
ExitFn = Callable[[RequestID, Operation], ExitedReason | None]

DEFAULT_MAX_STEPS = 1_000_000


@dataclass
class TrialSummary:
    """What happened to one simulated trial.

    Attributes:
        request_id: Trial identifier.
        hparams: Hyperparameters the trial was created with.
        parent_id: Trial it was warm-started from.
        workloads: Operations performed, in order (e.g. ``"train(10)"``).
        units: Units of training including those inherited from the parent.
        trained: Units of training performed by this trial itself.
        metrics: Validation metrics reported.
        exited: Whether the trial exited early.
        closed: Whether the trial was torn down.
    """

    request_id: RequestID
    hparams: dict[str, Any]
    parent_id: RequestID | None = None
    workloads: list[str] = field(default_factory=list)
    units: float = 0.0
    trained: float = 0.0
    metrics: list[float] = field(default_factory=list)
    exited: bool = False
    closed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": str(self.request_id),
            "hparams": self.hparams,
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "workloads": list(self.workloads),
            "units": self.units,
            "trained": self.trained,
            "metrics": list(self.metrics),
            "exited": self.exited,
            "closed": self.closed,
        }


@dataclass
class SimulationResults:
    """Outcome of a simulated search.

    Attributes:
        trials: Per-trial summaries in creation order.
        operations: Every operation the searcher emitted, in emission order.
        shutdown: The Shutdown that ended the search, if any.
        progress: Searcher progress when the simulation stopped.
        progress_history: Progress after every simulated step.
        steps: Number of simulated steps.
    """

    trials: dict[RequestID, TrialSummary] = field(default_factory=dict)
    operations: list[Operation] = field(default_factory=list)
    shutdown: Shutdown | None = None
    progress: float = 0.0
    progress_history: list[float] = field(default_factory=list)
    steps: int = 0

    def creates(self) -> list[Create]:
        return [op for op in self.operations if isinstance(op, Create)]

    def total_units(self) -> float:
        return sum(trial.trained for trial in self.trials.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "trials": [trial.to_dict() for trial in self.trials.values()],
            "shutdown": None if self.shutdown is None else self.shutdown.to_dict(),
            "progress": self.progress,
            "steps": self.steps,
        }

    def summary(self, unit: str = "units") -> str:
        """Human-readable per-trial workload listing, totals counted in ``unit``."""
        lines = []
        for trial in self.trials.values():
            parent = f" <- {trial.parent_id}" if trial.parent_id else ""
            lines.append(f"{trial.request_id}{parent}: {' '.join(trial.workloads)}")
        lines.append(
            f"{len(self.trials)} trials, {self.total_units():g} {unit}, "
            f"progress={self.progress:.3f}, shutdown={self.shutdown}"
        )
        return "\n".join(lines)


class Simulator:
    """Executes a Searcher's operations against simulated trials.

    The Searcher can be swapped out between steps (for example for one
    restored from a snapshot); the simulator's own queues and random
    stream carry over.
    """

    def __init__(
        self,
        searcher: Searcher,
        metric_fn: MetricFn | None = None,
        exit_fn: ExitFn | None = None,
        seed: int = 0,
        shuffle: bool = True,
    ) -> None:
        """Initialize the simulator.

        Args:
            searcher: Searcher to drive
            metric_fn: ``(request_id, hparams, units) -> metric``; defaults to
                a uniform draw from the simulator's generator
            exit_fn: ``(request_id, op) -> reason or None``; a reason makes the
                trial exit early instead of performing ``op``
            seed: Seed of the simulator's generator
            shuffle: Pick trials at random instead of in creation order
        """
        self.searcher = searcher
        self.metric_fn = metric_fn
        self.exit_fn = exit_fn
        self.rng = np.random.default_rng(seed)
        self.shuffle = shuffle

        self.queues: dict[RequestID, deque[Operation]] = {}
        self.results = SimulationResults()
        self.started = False

    def _dispatch(self, ops: list[Operation]) -> None:
        for op in ops:
            self.results.operations.append(op)
            if isinstance(op, Shutdown):
                self.results.shutdown = op
            elif isinstance(op, Create):
                self.queues[op.request_id] = deque([op])
            else:
                self.queues.setdefault(op.request_id, deque()).append(op)

    def _metric(self, trial: TrialSummary) -> float:
        if self.metric_fn is None:
            return float(self.rng.random())
        return float(self.metric_fn(trial.request_id, trial.hparams, trial.units))

    def _perform(self, request_id: RequestID, op: Operation) -> list[Operation]:
        if isinstance(op, Create):
            parent = self.results.trials.get(op.parent_id) if op.parent_id else None
            self.results.trials[request_id] = TrialSummary(
                request_id=request_id,
                hparams=dict(op.hparams),
                parent_id=op.parent_id,
                units=parent.units if parent else 0.0,
            )
            return self.searcher.trial_created(request_id)

        trial = self.results.trials[request_id]
        reason = None
        if self.exit_fn is not None and not isinstance(op, Close):
            reason = self.exit_fn(request_id, op)
        if reason is not None:
            trial.exited = True
            trial.workloads.append(f"exit({ExitedReason(reason).value})")
            self.queues[request_id].clear()
            ops = self.searcher.trial_exited_early(request_id, reason)
            if self.searcher.finished:
                return ops
            trial.closed = True
            return ops + self.searcher.trial_closed(request_id)

        if isinstance(op, Train):
            trial.units += op.length
            trial.trained += op.length
            trial.workloads.append(f"train({op.length})")
            return self.searcher.train_completed(request_id, op)
        if isinstance(op, Checkpoint):
            trial.workloads.append("checkpoint")
            metrics = CheckpointMetrics(uuid=f"{request_id}-{len(trial.workloads)}")
            return self.searcher.checkpoint_completed(request_id, op, metrics)
        if isinstance(op, Validate):
            value = self._metric(trial)
            trial.metrics.append(value)
            trial.workloads.append(f"validate({value:.4g})")
            return self.searcher.validation_completed(
                request_id, op, {self.searcher.method.metric: value}
            )
        if isinstance(op, Close):
            trial.closed = True
            trial.workloads.append("close")
            self.queues[request_id].clear()
            return self.searcher.trial_closed(request_id)
        raise TypeError(f"Cannot simulate operation {op!r}")

    def step(self) -> bool:
        """Perform one pending operation.

        Returns:
            False once the search has shut down or no work is pending.
        """
        if not self.started:
            self.started = True
            self._dispatch(self.searcher.initial_operations())
            return self.results.shutdown is None

        if self.results.shutdown is not None:
            return False
        pending = [rid for rid, queue in self.queues.items() if queue]
        if not pending:
            logger.warning("[Simulate] No pending operations and no shutdown")
            return False

        if self.shuffle:
            request_id = pending[int(self.rng.integers(len(pending)))]
        else:
            request_id = pending[0]
        op = self.queues[request_id].popleft()
        self._dispatch(self._perform(request_id, op))

        self.results.steps += 1
        self.results.progress = self.searcher.progress()
        self.results.progress_history.append(self.results.progress)
        return self.results.shutdown is None

    def run(self, max_steps: int = DEFAULT_MAX_STEPS) -> SimulationResults:
        """Step until the search shuts down, stalls, or ``max_steps`` is reached."""
        for _ in range(max_steps):
            if not self.step():
                break
        self.results.progress = self.searcher.progress()
        logger.info(
            f"[Simulate] {len(self.results.trials)} trials in {self.results.steps} steps, "
            f"progress={self.results.progress:.3f}, shutdown={self.results.shutdown}"
        )
        return self.results


def simulate(
    searcher: Searcher,
    metric_fn: MetricFn | None = None,
    seed: int = 0,
    shuffle: bool = True,
    max_steps: int = DEFAULT_MAX_STEPS,
    exit_fn: ExitFn | None = None,
) -> SimulationResults:
    """Run a search to completion against simulated trials.

    Args:
        searcher: Searcher to drive (not yet started)
        metric_fn: ``(request_id, hparams, units) -> metric``
        seed: Seed of the simulator's generator
        shuffle: Interleave trials randomly
        max_steps: Safety cap on simulated steps
        exit_fn: Early-exit injector, see :class:`Simulator`

    Returns:
        SimulationResults
    """
    sim = Simulator(searcher, metric_fn=metric_fn, exit_fn=exit_fn, seed=seed, shuffle=shuffle)
    return sim.run(max_steps)


__all__ = ["SimulationResults", "Simulator", "TrialSummary", "simulate"]
