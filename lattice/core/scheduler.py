"""Scheduler: pick claimable nodes under slot and exclusivity constraints.

Pure: given classified candidates and the live claims, it returns which
nodes to admit and why the others were skipped.  The engine acts on the
result.

Policy
------
- Nothing is admitted while an exclusive claim is active.
- ``used`` is the slot total of active claims.  A candidate costing ``c``
  fits when ``used + batch + c <= max_parallel`` (``max_parallel <= 0``
  means unlimited).
- An exclusive candidate is admitted only when ``used == 0`` and nothing
  else is in the batch; admitting it closes the batch.
- Candidates are considered in declared workflow order.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from lattice.models.engine import NodeStatus, ScheduleSkip, SkipReason, WorkClaim


class Candidate(BaseModel):
    """Scheduling view of one workflow node."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    status: NodeStatus
    slots: int = 1
    exclusive: bool = False
    exhausted: bool = False


class ScheduleBatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    admitted: list[Candidate] = Field(default_factory=list)
    skipped: dict[str, ScheduleSkip] = Field(default_factory=dict)

    @property
    def instance_ids(self) -> list[str]:
        return [candidate.instance_id for candidate in self.admitted]


def _skip(reason: SkipReason, detail: str = "") -> ScheduleSkip:
    return ScheduleSkip(reason=reason, detail=detail)


class Scheduler:
    """Capacity-based admission over a slot budget.

    Parameters
    ----------
    max_parallel:
        Slot budget shared by all active claims; ``0`` disables the limit.
    """

    def __init__(self, max_parallel: int = 0) -> None:
        self.max_parallel = max(0, max_parallel)

    def _fits(self, used: int, cost: int) -> bool:
        return self.max_parallel <= 0 or used + cost <= self.max_parallel

    def admissible(self, candidate: Candidate, claims: Sequence[WorkClaim]) -> bool:
        """Whether ``candidate`` could be admitted against ``claims`` alone."""
        if candidate.status is not NodeStatus.READY or candidate.exhausted:
            return False
        if any(claim.instance_id == candidate.instance_id for claim in claims):
            return False
        if any(claim.exclusive for claim in claims):
            return False
        used = sum(claim.slot_cost for claim in claims)
        if candidate.exclusive and used > 0:
            return False
        return self._fits(used, candidate.slots)

    def select(
        self,
        candidates: Sequence[Candidate],
        claims: Sequence[WorkClaim],
        *,
        limit: int = 0,
        instance_filter: Collection[str] | None = None,
        manual_gates: Mapping[str, bool] | None = None,
    ) -> ScheduleBatch:
        """Choose up to ``limit`` candidates (``0`` = no limit) to admit.

        ``manual_gates`` maps gated instance ids to their approval flag;
        gated nodes that are not approved are skipped.
        """
        skipped: dict[str, ScheduleSkip] = {}
        running = {claim.instance_id for claim in claims}
        exclusive_holder = next((claim.instance_id for claim in claims if claim.exclusive), None)
        if exclusive_holder is not None:
            for candidate in candidates:
                if candidate.instance_id not in running:
                    skipped[candidate.instance_id] = _skip(
                        SkipReason.CONCURRENCY, f"{exclusive_holder} requires exclusive execution"
                    )
            return ScheduleBatch(skipped=skipped)

        gates = manual_gates or {}
        wanted = set(instance_filter) if instance_filter else None
        used = sum(claim.slot_cost for claim in claims)
        admitted: list[Candidate] = []
        batch_slots = 0

        for candidate in candidates:
            node_id = candidate.instance_id
            if wanted is not None and node_id not in wanted:
                skipped[node_id] = _skip(SkipReason.FILTERED)
                continue
            if node_id in running:
                skipped[node_id] = _skip(SkipReason.ALREADY_RUNNING, "module already running")
                continue
            if candidate.status is not NodeStatus.READY:
                skipped[node_id] = _skip(SkipReason.NOT_READY, candidate.status.value)
                continue
            if candidate.exhausted:
                skipped[node_id] = _skip(SkipReason.ATTEMPTS_EXHAUSTED)
                continue
            if node_id in gates and not gates[node_id]:
                skipped[node_id] = _skip(SkipReason.MANUAL_GATE, "awaiting manual approval")
                continue
            if limit > 0 and len(admitted) >= limit:
                skipped[node_id] = _skip(SkipReason.CONCURRENCY, f"batch limit {limit} reached")
                continue
            if candidate.exclusive and (used > 0 or batch_slots > 0):
                skipped[node_id] = _skip(SkipReason.CONCURRENCY, "requires exclusive execution")
                continue
            if not self._fits(used + batch_slots, candidate.slots):
                skipped[node_id] = _skip(
                    SkipReason.CONCURRENCY, f"max parallel {self.max_parallel} reached"
                )
                continue
            admitted.append(candidate)
            batch_slots += candidate.slots
            if candidate.exclusive:
                # An exclusive admission closes the batch.
                limit = len(admitted)

        return ScheduleBatch(admitted=admitted, skipped=skipped)
