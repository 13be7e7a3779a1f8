"""Worker loop: claim, run, report, and poll long-running modules.

A module that returns ``NEEDS_INPUT`` keeps its claim; the worker then
polls ``is_complete`` at ``poll_interval`` and reports ``COMPLETED`` once
it holds, or ``FAILED`` when ``wait_timeout`` elapses.  Exceptions raised
by ``run`` or ``is_complete`` are reported as ``FAILED`` so no claim is
left stuck.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from lattice.core.engine import Engine
from lattice.core.module import ModuleContext
from lattice.models.engine import (
    ClaimRequest,
    EngineSnapshot,
    ModuleStatusUpdate,
    NodeStatus,
    UpdateRequest,
    WorkClaim,
)
from lattice.models.modules import ModuleStatus

logger = logging.getLogger(__name__)


def _progressed(updates: list[ModuleStatusUpdate], snapshot: EngineSnapshot) -> bool:
    """Whether a round changed anything worth another round.

    A ``NO_OP`` counts only when its node is no longer ``READY``.
    """
    for update in updates:
        if update.status is ModuleStatus.COMPLETED:
            return True
        if update.status is ModuleStatus.NO_OP:
            node = snapshot.node(update.instance_id)
            if node is not None and node.status is not NodeStatus.READY:
                return True
    return False


class Worker:
    """Drives modules for one worker id.

    Parameters
    ----------
    engine:
        Started or resumed engine.
    ctx:
        Module context (project layout and store).
    worker_id:
        Identity used for claims.
    limit:
        Maximum claims per round (``0`` = as many as the scheduler allows).
    poll_interval / wait_timeout:
        Seconds between ``is_complete`` polls, and before giving up on a
        waiting module (``0`` = wait forever).  Default to settings.
    """

    def __init__(
        self,
        engine: Engine,
        ctx: ModuleContext,
        worker_id: str,
        *,
        limit: int = 0,
        poll_interval: float | None = None,
        wait_timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._ctx = ctx
        self.worker_id = worker_id
        self._limit = limit
        self._poll_interval = (
            poll_interval if poll_interval is not None else ctx.settings.poll_interval_seconds
        )
        self._wait_timeout = (
            wait_timeout if wait_timeout is not None else ctx.settings.wait_timeout_seconds
        )
        self._sleep = sleep
        self._monotonic = monotonic
        self._waiting: dict[str, float] = {}

    @property
    def waiting(self) -> list[str]:
        return sorted(self._waiting)

    def adopt(self, snapshot: EngineSnapshot) -> None:
        """Resume polling for waiting claims this worker id already holds."""
        for claim in snapshot.claims:
            if claim.worker_id == self.worker_id and claim.waiting:
                self._waiting.setdefault(claim.instance_id, self._monotonic())

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def run_once(self) -> list[ModuleStatusUpdate]:
        """Poll waiting modules, then claim and run whatever is admissible."""
        updates = self._poll_waiting()
        result = self._engine.claim(
            self._ctx, ClaimRequest(worker_id=self.worker_id, limit=self._limit)
        )
        for claim in result.claims:
            updates.append(self._execute(claim))
        return updates

    def run_until_idle(self, max_rounds: int = 0) -> EngineSnapshot:
        """Loop until nothing is claimable and nothing is waiting."""
        self.adopt(self._engine.snapshot())
        rounds = 0
        while True:
            rounds += 1
            updates = self.run_once()
            progressed = bool(updates) and _progressed(updates, self._engine.snapshot())
            if max_rounds and rounds >= max_rounds:
                break
            if progressed:
                continue
            if not self._waiting:
                break
            self._sleep(self._poll_interval)
        return self._engine.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self, claim: WorkClaim) -> ModuleStatusUpdate:
        module = self._engine.module(claim.instance_id)
        try:
            result = module.run(self._engine.context(self._ctx))
        except Exception as exc:
            logger.exception("%s run failed", claim.instance_id)
            update = ModuleStatusUpdate(
                instance_id=claim.instance_id,
                status=ModuleStatus.FAILED,
                message=f"{claim.instance_id} failed",
                error=str(exc),
            )
        else:
            update = ModuleStatusUpdate(
                instance_id=claim.instance_id, status=result.status, message=result.message
            )
        if update.status is ModuleStatus.NEEDS_INPUT:
            self._waiting[claim.instance_id] = self._monotonic()
        self._report(update)
        return update

    def _poll_waiting(self) -> list[ModuleStatusUpdate]:
        updates: list[ModuleStatusUpdate] = []
        for instance_id, started in list(self._waiting.items()):
            module = self._engine.module(instance_id)
            try:
                complete = module.is_complete(self._engine.context(self._ctx))
            except Exception as exc:
                logger.exception("%s completion check failed", instance_id)
                update = ModuleStatusUpdate(
                    instance_id=instance_id,
                    status=ModuleStatus.FAILED,
                    message=f"{instance_id} completion check failed",
                    error=str(exc),
                )
            else:
                if complete:
                    update = ModuleStatusUpdate(
                        instance_id=instance_id,
                        status=ModuleStatus.COMPLETED,
                        message=f"{instance_id} complete",
                    )
                elif self._wait_timeout and self._monotonic() - started >= self._wait_timeout:
                    update = ModuleStatusUpdate(
                        instance_id=instance_id,
                        status=ModuleStatus.FAILED,
                        message=f"{instance_id} timed out after {self._wait_timeout:g}s",
                        error="timed out waiting for outputs",
                    )
                else:
                    continue
            del self._waiting[instance_id]
            self._report(update)
            updates.append(update)
        return updates

    def _report(self, update: ModuleStatusUpdate) -> None:
        self._engine.update(
            self._ctx, UpdateRequest(worker_id=self.worker_id, results=[update])
        )
