"""Population-Based Training search.

PBT keeps a fixed population training in lock-step rounds. Each round
every member trains for ``checkpoint_interval`` units, checkpoints and
validates. Once the whole population has reported:

    - exploit: the bottom fraction is closed and replaced by children
      warm-started from the checkpoints of top-fraction members
    - explore: each child's inherited hyperparameters are resampled or
      jittered before it trains
    - members that exited early are replaced by a child of the best member

Children record the member they were cloned from as ``parent_id``, so the
full ancestry of every trial can be rebuilt from the Create stream.

Reference: Jaderberg et al., "Population Based Training of Neural Networks" (2017)

Copyright 2025 Verso Industries
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from hpsearch.errors import SearcherError
from hpsearch.searcher.context import RequestID, SearchContext
from hpsearch.searcher.hyperparameters import HyperparameterType
from hpsearch.searcher.operations import (
    Checkpoint,
    CheckpointMetrics,
    Close,
    Create,
    ExitedReason,
    Operation,
    Shutdown,
    Validate,
    ValidationMetrics,
    trial_plan,
)
from hpsearch.searcher.search_method import SearchMethod, SearchMethodType, require_state

logger = logging.getLogger(__name__)


@dataclass
class PBTMember:
    """One slot of the population.

    Attributes:
        request_id: Trial currently occupying the slot.
        hparams: Hyperparameters of that trial.
        parent_id: Member the trial was cloned from, if any.
        fitness: Metric reported this round.
        checkpointed: Whether the trial has checkpointed this round.
        exited: Whether the trial exited early.
    """

    request_id: RequestID
    hparams: dict[str, Any]
    parent_id: RequestID | None = None
    fitness: float | None = None
    checkpointed: bool = False
    exited: bool = False

    @property
    def reported(self) -> bool:
        return self.fitness is not None or self.exited

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": str(self.request_id),
            "hparams": self.hparams,
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "fitness": self.fitness,
            "checkpointed": self.checkpointed,
            "exited": self.exited,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PBTMember:
        return cls(
            request_id=RequestID(data["request_id"]),
            hparams=data["hparams"],
            parent_id=RequestID(data["parent_id"]) if data.get("parent_id") else None,
            fitness=data.get("fitness"),
            checkpointed=data.get("checkpointed", False),
            exited=data.get("exited", False),
        )


class PBTSearch(SearchMethod):
    """Population-Based Training with synchronous rounds.

    Early exits do not abort the search: the exited member is replaced by
    a clone of the best surviving member when the round ends. The search
    only fails when no member survives a round.
    """

    method_type = SearchMethodType.PBT

    def __init__(
        self,
        population_size: int = 8,
        num_rounds: int = 10,
        checkpoint_interval: int = 100,
        perturb_interval: int = 1,
        truncate_fraction: float = 0.25,
        resample_probability: float = 0.25,
        perturb_factor: float = 0.2,
        metric: str = "validation_loss",
        smaller_is_better: bool = True,
    ) -> None:
        """Initialize PBT.

        Args:
            population_size: Number of concurrently training members
            num_rounds: Rounds before the search ends
            checkpoint_interval: Units of training per round
            perturb_interval: Rounds between exploit/explore steps
            truncate_fraction: Fraction of the population replaced per exploit
            resample_probability: Chance that explore resamples a value
            perturb_factor: Multiplicative jitter applied by explore
            metric: Validation metric name
            smaller_is_better: Metric direction
        """
        super().__init__(metric, smaller_is_better)
        self.population_size = population_size
        self.num_rounds = num_rounds
        self.checkpoint_interval = checkpoint_interval
        self.perturb_interval = perturb_interval
        self.truncate_fraction = truncate_fraction
        self.resample_probability = resample_probability
        self.perturb_factor = perturb_factor

        self.members: list[PBTMember] = []
        self.ancestry: dict[RequestID, RequestID | None] = {}
        self.round = 0
        self.finished = False
        self.num_exploits = 0
        self.best_hparams: dict[str, Any] | None = None
        self.best_fitness: float | None = None

        logger.info(
            f"[PBT] Initialized: population={population_size}, rounds={num_rounds}, "
            f"interval={checkpoint_interval}, perturb_interval={perturb_interval}"
        )

    # ------------------------------------------------------------------
    # Population helpers
    # ------------------------------------------------------------------

    def _member(self, request_id: RequestID) -> PBTMember | None:
        for member in self.members:
            if member.request_id == request_id:
                return member
        if request_id not in self.ancestry:
            raise SearcherError(f"[PBT] Unknown request ID {request_id}")
        return None

    def _spawn(
        self,
        ctx: SearchContext,
        hparams: dict[str, Any],
        parent_id: RequestID | None = None,
    ) -> tuple[PBTMember, list[Operation]]:
        create = Create.new(ctx, hparams, parent_id=parent_id)
        member = PBTMember(
            request_id=create.request_id, hparams=create.hparams, parent_id=parent_id
        )
        self.ancestry[create.request_id] = parent_id
        return member, [create, *trial_plan(create.request_id, self.checkpoint_interval)]

    def _explore(self, ctx: SearchContext, hparams: dict[str, Any]) -> dict[str, Any]:
        """Resample or jitter inherited hyperparameters.

        Args:
            ctx: Search context (source of randomness and bounds)
            hparams: Inherited hyperparameters

        Returns:
            New hyperparameters within the declared bounds
        """
        explored = dict(hparams)
        # Declaration order, not dict order, fixes the sequence of draws.
        for param in ctx.hparams:
            if param.name not in hparams or param.type == HyperparameterType.CONST:
                continue

            if ctx.rng.random() < self.resample_probability:
                explored[param.name] = param.sample(ctx.rng)
            elif param.is_numeric:
                factor = float(ctx.rng.choice([1 - self.perturb_factor, 1 + self.perturb_factor]))
                low, high = param.bounds()
                new_value = min(max(hparams[param.name] * factor, low), high)
                if param.type == HyperparameterType.INT:
                    new_value = int(min(max(round(new_value), int(low)), int(high)))
                explored[param.name] = new_value
        return explored

    def _exploit_targets(
        self, ctx: SearchContext, survivors: list[PBTMember]
    ) -> dict[int, PBTMember]:
        """Pick the clone source for each replaced slot.

        Returns:
            Mapping of member slot index to the member it will be cloned from
        """
        ranked = sorted(survivors, key=lambda m: self.sort_key(m.fitness))
        best = ranked[0]
        targets: dict[int, PBTMember] = {}

        for slot, member in enumerate(self.members):
            if member.exited:
                targets[slot] = best

        if self.round % self.perturb_interval == 0:
            k = min(int(self.truncate_fraction * self.population_size), len(ranked) // 2)
            top = ranked[:k]
            for member in ranked[len(ranked) - k :] if k else []:
                source = top[int(ctx.rng.integers(k))]
                if self.sort_key(source.fitness) < self.sort_key(member.fitness):
                    targets[self.members.index(member)] = source
        return targets

    def _end_round(self, ctx: SearchContext) -> list[Operation]:
        self.round += 1
        survivors = [m for m in self.members if not m.exited]
        if not survivors:
            logger.error(f"[PBT] Every member exited early in round {self.round}, aborting")
            return [Shutdown(failure=True)]

        best = min(survivors, key=lambda m: self.sort_key(m.fitness))
        best_key = self.sort_key(best.fitness)
        if self.best_fitness is None or best_key < self.sort_key(self.best_fitness):
            self.best_hparams = dict(best.hparams)
            self.best_fitness = best.fitness

        if self.round >= self.num_rounds:
            self.finished = True
            logger.info(
                f"[PBT] Finished {self.num_rounds} rounds, best member {best.request_id} "
                f"({best.fitness})"
            )
            return [Close(m.request_id) for m in survivors]

        targets = self._exploit_targets(ctx, survivors)
        for source in targets.values():
            if not source.checkpointed:
                raise SearcherError(
                    f"[PBT] Cannot clone {source.request_id}: no completed checkpoint"
                )

        ops: list[Operation] = []
        for slot, member in enumerate(list(self.members)):
            source = targets.get(slot)
            if source is None:
                ops.extend(trial_plan(member.request_id, self.checkpoint_interval))
                continue

            if not member.exited:
                ops.append(Close(member.request_id))
            child, child_ops = self._spawn(
                ctx, self._explore(ctx, source.hparams), parent_id=source.request_id
            )
            self.members[slot] = child
            ops.extend(child_ops)
            self.num_exploits += 1
            logger.info(
                f"[PBT] Round {self.round}: {member.request_id} ({member.fitness}) replaced by "
                f"{child.request_id}, cloned from {source.request_id} ({source.fitness})"
            )

        for member in self.members:
            member.fitness = None
            member.checkpointed = False
        return ops

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initial_operations(self, ctx: SearchContext) -> list[Operation]:
        ops: list[Operation] = []
        for _ in range(self.population_size):
            member, member_ops = self._spawn(ctx, ctx.sample())
            self.members.append(member)
            ops.extend(member_ops)
        return ops

    def checkpoint_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        checkpoint: Checkpoint,
        metrics: CheckpointMetrics,
    ) -> list[Operation]:
        member = self._member(request_id)
        if member is not None:
            member.checkpointed = True
        return []

    def validation_completed(
        self,
        ctx: SearchContext,
        request_id: RequestID,
        validate: Validate,
        metrics: ValidationMetrics,
    ) -> list[Operation]:
        member = self._member(request_id)
        if member is None:
            raise SearcherError(f"[PBT] Validation from retired trial {request_id}")
        if member.fitness is not None:
            raise SearcherError(f"[PBT] Trial {request_id} already validated in round {self.round}")

        member.fitness = metrics.metric(self.metric)
        logger.debug(f"[PBT] Round {self.round}: {request_id} reported {member.fitness}")
        if all(m.reported for m in self.members):
            return self._end_round(ctx)
        return []

    def trial_closed(self, ctx: SearchContext, request_id: RequestID) -> list[Operation]:
        self._member(request_id)
        return []

    def trial_exited_early(
        self, ctx: SearchContext, request_id: RequestID, reason: ExitedReason
    ) -> list[Operation]:
        """Mark the member for replacement at the end of the round."""
        member = self._member(request_id)
        if member is None or self.finished:
            return []

        member.exited = True
        logger.warning(
            f"[PBT] Member {request_id} exited early in round {self.round} ({reason.value}), "
            "it will be replaced by a clone of the best member"
        )
        if all(m.reported for m in self.members):
            return self._end_round(ctx)
        return []

    def progress(self, total_units_completed: float) -> float:
        total = self.population_size * self.num_rounds * self.checkpoint_interval
        return min(1.0, total_units_completed / total)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def state_dict(self) -> dict[str, Any]:
        return {
            "members": [member.to_dict() for member in self.members],
            "ancestry": {
                str(rid): str(parent) if parent else None for rid, parent in self.ancestry.items()
            },
            "round": self.round,
            "finished": self.finished,
            "num_exploits": self.num_exploits,
            "best_hparams": self.best_hparams,
            "best_fitness": self.best_fitness,
        }

    def load_state_dict(self, state: dict[str, Any] | None) -> None:
        state = require_state(self, state)
        self.members = [PBTMember.from_dict(m) for m in state["members"]]
        self.ancestry = {
            RequestID(rid): RequestID(parent) if parent else None
            for rid, parent in state["ancestry"].items()
        }
        self.round = state["round"]
        self.finished = state["finished"]
        self.num_exploits = state["num_exploits"]
        self.best_hparams = state.get("best_hparams")
        self.best_fitness = state.get("best_fitness")

    def get_best(self) -> tuple[dict[str, Any] | None, float | None]:
        """Get the best configuration reported at any round end.

        Returns:
            Tuple of (best_hparams, best_fitness).
        """
        return self.best_hparams, self.best_fitness

    def get_statistics(self) -> dict[str, Any]:
        stats = super().get_statistics()
        stats.update(
            {
                "population_size": self.population_size,
                "round": self.round,
                "num_rounds": self.num_rounds,
                "num_trials": len(self.ancestry),
                "num_exploits": self.num_exploits,
            }
        )
        return stats


__all__ = ["PBTMember", "PBTSearch"]
