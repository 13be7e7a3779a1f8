"""Engine: owns the persisted snapshot and the claim/update protocol.

Workers coordinate only through the engine::

    result = engine.claim(ctx, ClaimRequest(worker_id="w1", limit=2))
    for claim in result.claims:
        module = engine.module(claim.instance_id)
        outcome = module.run(engine.context(ctx))
        engine.update(ctx, UpdateRequest(worker_id="w1", results=[...]))

Every state change follows the same shape: resolve artifacts (I/O, outside
the lock), then take the in-process mutex and the snapshot file lock,
reload the snapshot, apply the change, and persist it atomically.  Any
error inside the locked section leaves the persisted snapshot untouched.

Invariants held at claim time:

- no two claims for the same instance
- the slot total of claims never exceeds ``max_parallel`` (when limited)
- an exclusive claim coexists with no other claim
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Mapping
from datetime import datetime

from lattice.config import LatticeSettings
from lattice.core.artifact_store import utc_now
from lattice.core.module import Module, ModuleContext
from lattice.core.registry import ModuleRegistry
from lattice.core.repository import SnapshotRepository
from lattice.core.resolver import NodeReport, Resolution, Resolver
from lattice.core.scheduler import Candidate, Scheduler
from lattice.errors import ClaimError, ConcurrencyViolation, LatticeError
from lattice.models.engine import (
    ClaimRequest,
    ClaimResult,
    EngineRuntime,
    EngineSnapshot,
    EngineStatus,
    ModuleRun,
    NodeSnapshot,
    NodeStatus,
    OutputReport,
    RuntimeOverrides,
    UpdateRequest,
    WorkClaim,
)
from lattice.models.modules import ModuleStatus
from lattice.models.workflow import WorkflowDefinition

logger = logging.getLogger(__name__)


def generate_run_id(workflow_id: str, now: datetime) -> str:
    """``<workflow-id>-<unix-nanoseconds>``."""
    base = re.sub(r"\s+", "-", workflow_id.strip().lower()) or "workflow"
    nanos = int(now.timestamp()) * 1_000_000_000 + now.microsecond * 1_000
    return f"{base}-{nanos}"


class Engine:
    """Claim/update coordinator for one workflow run.

    Parameters
    ----------
    registry:
        Source of module instances for the workflow's nodes.
    repository:
        Snapshot persistence (usually at ``.lattice/state/engine.json``).
    settings:
        Fallback ``max_parallel`` / ``max_attempts`` when neither the
        workflow nor an override sets them.
    clock:
        Source of timestamps.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        repository: SnapshotRepository,
        *,
        settings: LatticeSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._registry = registry
        self._repo = repository
        self._settings = settings or LatticeSettings()
        self._clock = clock or utc_now
        self._lock = threading.RLock()
        self._resolver: Resolver | None = None
        self._run_id = ""

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def workflow_id(self) -> str:
        return self._require_resolver().definition.id

    @property
    def definition(self) -> WorkflowDefinition:
        return self._require_resolver().definition

    def module(self, instance_id: str) -> Module:
        """The module instance bound to ``instance_id``."""
        return self._require_resolver().module(instance_id)

    def context(self, ctx: ModuleContext) -> ModuleContext:
        """``ctx`` scoped to this workflow, so writes are stamped with its id."""
        return ctx.for_workflow(self.workflow_id)

    def _require_resolver(self) -> Resolver:
        if self._resolver is None:
            raise LatticeError("engine has no workflow; call start() or resume() first")
        return self._resolver

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        ctx: ModuleContext,
        definition: WorkflowDefinition,
        overrides: RuntimeOverrides | None = None,
    ) -> EngineSnapshot:
        """Begin a new run of ``definition``, replacing any persisted snapshot."""
        resolver = Resolver(definition, self._registry)
        ctx = ctx.for_workflow(resolver.definition.id)
        resolution = resolver.resolve(ctx)
        now = self._clock()
        run_id = generate_run_id(resolver.definition.id, now)
        runtime = overrides.apply(EngineRuntime()) if overrides else EngineRuntime()

        with self._lock, self._repo.locked():
            snapshot = self._build(
                run_id=run_id,
                definition=resolver.definition,
                runtime=runtime,
                resolution=resolution,
                claims=[],
                runs={},
                attempts={},
                created_at=now,
            )
            self._repo.save(snapshot)
            self._resolver = resolver
            self._run_id = run_id
        logger.info("Started run %s for workflow %s", run_id, resolver.definition.id)
        return snapshot

    def resume(self, ctx: ModuleContext) -> EngineSnapshot:
        """Attach to the persisted run and refresh its node statuses."""
        stored = self._repo.load()
        resolver = Resolver(stored.definition, self._registry)
        with self._lock:
            self._resolver = resolver
            self._run_id = stored.run_id
        logger.info("Resumed run %s for workflow %s", stored.run_id, stored.workflow_id)
        return self.refresh(ctx)

    def refresh(self, ctx: ModuleContext) -> EngineSnapshot:
        """Re-resolve artifacts and persist the updated node statuses."""
        resolver = self._require_resolver()
        resolution = resolver.resolve(self.context(ctx))
        with self._lock, self._repo.locked():
            current = self._load_current()
            snapshot = self._rebuild(current, resolution, claims=current.claims)
            self._repo.save(snapshot)
        return snapshot

    def snapshot(self) -> EngineSnapshot:
        """The last persisted snapshot (read-only)."""
        return self._repo.load()

    # ------------------------------------------------------------------
    # Claim / update / overrides
    # ------------------------------------------------------------------

    def claim(self, ctx: ModuleContext, request: ClaimRequest) -> ClaimResult:
        """Reserve admissible nodes for ``request.worker_id``.

        Returns an empty claim list (not an error) when nothing fits.
        """
        resolver = self._require_resolver()
        resolution = resolver.resolve(self.context(ctx))

        with self._lock, self._repo.locked():
            current = self._load_current()
            runtime = current.runtime
            scheduler = Scheduler(self._max_parallel(current.definition, runtime))
            batch = scheduler.select(
                self._candidates(resolution, current),
                current.claims,
                limit=request.limit or runtime.batch_size,
                instance_filter=request.instance_filter or runtime.targets or None,
                manual_gates=runtime.manual_gates,
            )
            now = self._clock()
            granted = [
                WorkClaim(
                    worker_id=request.worker_id,
                    instance_id=candidate.instance_id,
                    module_id=resolver.module(candidate.instance_id).info().id,
                    slot_cost=candidate.slots,
                    exclusive=candidate.exclusive,
                    claimed_at=now,
                )
                for candidate in batch.admitted
            ]
            snapshot = self._rebuild(current, resolution, claims=[*current.claims, *granted])
            self._repo.save(snapshot)

        if granted:
            logger.info(
                "Worker %s claimed %s",
                request.worker_id,
                ", ".join(claim.instance_id for claim in granted),
            )
        return ClaimResult(claims=granted, snapshot=snapshot, skipped=batch.skipped)

    def update(self, ctx: ModuleContext, request: UpdateRequest) -> EngineSnapshot:
        """Record run outcomes reported by ``request.worker_id``.

        ``NEEDS_INPUT`` keeps the claim live (marked waiting); every other
        status releases it.  Raises ``ClaimError`` when a result refers to a
        missing or foreign claim, leaving state unchanged.
        """
        resolver = self._require_resolver()
        resolution = resolver.resolve(self.context(ctx))

        with self._lock, self._repo.locked():
            current = self._load_current()
            reported: set[str] = set()
            for result in request.results:
                if result.instance_id in reported:
                    raise ClaimError(f"{result.instance_id} reported more than once")
                reported.add(result.instance_id)
                claim = current.claim_for(result.instance_id)
                if claim is None:
                    raise ClaimError(f"no active claim for {result.instance_id}")
                if claim.worker_id != request.worker_id:
                    raise ClaimError(
                        f"{result.instance_id} is claimed by {claim.worker_id}, "
                        f"not {request.worker_id}"
                    )

            now = self._clock()
            claims = {claim.instance_id: claim for claim in current.claims}
            runs = {n.instance_id: n.last_run for n in current.nodes if n.last_run is not None}
            attempts = {n.instance_id: n.attempts for n in current.nodes}
            for result in request.results:
                runs[result.instance_id] = ModuleRun(
                    status=result.status,
                    message=result.message,
                    error=result.error,
                    finished_at=now,
                )
                if result.status is ModuleStatus.NEEDS_INPUT:
                    claims[result.instance_id] = claims[result.instance_id].model_copy(
                        update={"waiting": True, "message": result.message}
                    )
                    continue
                del claims[result.instance_id]
                if result.status is ModuleStatus.FAILED:
                    attempts[result.instance_id] = attempts.get(result.instance_id, 0) + 1
                else:
                    attempts[result.instance_id] = 0
                logger.info(
                    "Worker %s reported %s: %s",
                    request.worker_id,
                    result.instance_id,
                    result.status.value,
                )

            snapshot = self._rebuild(
                current,
                resolution,
                claims=[claims[c.instance_id] for c in current.claims if c.instance_id in claims],
                runs=runs,
                attempts=attempts,
            )
            self._repo.save(snapshot)
        return snapshot

    def overrides(self, ctx: ModuleContext, overrides: RuntimeOverrides) -> EngineSnapshot:
        """Apply operator overrides for subsequent claims.

        Existing claims stay intact even if the new budget is smaller.
        """
        self._require_resolver()
        with self._lock, self._repo.locked():
            current = self._load_current()
            runtime = overrides.apply(current.runtime)
            snapshot = current.model_copy(
                update={
                    "runtime": runtime,
                    "max_parallel": self._max_parallel(current.definition, runtime),
                    "max_attempts": self._max_attempts(current.definition, runtime),
                    "updated_at": self._clock(),
                }
            )
            self._repo.save(snapshot)
        logger.info("Applied overrides: %s", overrides.model_dump(exclude_none=True))
        return snapshot

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_current(self) -> EngineSnapshot:
        current = self._repo.load()
        if current.run_id != self._run_id:
            raise ConcurrencyViolation(
                f"snapshot belongs to run {current.run_id}, engine is attached to "
                f"{self._run_id}; resume the engine"
            )
        return current

    def _max_parallel(self, definition: WorkflowDefinition, runtime: EngineRuntime) -> int:
        if runtime.max_parallel is not None:
            return runtime.max_parallel
        if definition.runtime.max_parallel is not None:
            return definition.runtime.max_parallel
        return self._settings.max_parallel

    def _max_attempts(self, definition: WorkflowDefinition, runtime: EngineRuntime) -> int:
        if runtime.max_attempts is not None:
            return runtime.max_attempts
        if definition.runtime.max_attempts is not None:
            return definition.runtime.max_attempts
        return self._settings.max_attempts

    def _candidates(self, resolution: Resolution, current: EngineSnapshot) -> list[Candidate]:
        max_attempts = self._max_attempts(current.definition, current.runtime)
        candidates: list[Candidate] = []
        for report in resolution.nodes:
            previous = current.node(report.instance_id)
            attempts = previous.attempts if previous else 0
            concurrency = report.info.concurrency
            candidates.append(
                Candidate(
                    instance_id=report.instance_id,
                    status=report.status,
                    slots=concurrency.slots,
                    exclusive=concurrency.exclusive,
                    exhausted=max_attempts > 0 and attempts >= max_attempts,
                )
            )
        return candidates

    def _rebuild(
        self,
        current: EngineSnapshot,
        resolution: Resolution,
        *,
        claims: list[WorkClaim],
        runs: Mapping[str, ModuleRun] | None = None,
        attempts: Mapping[str, int] | None = None,
    ) -> EngineSnapshot:
        if runs is None:
            runs = {n.instance_id: n.last_run for n in current.nodes if n.last_run is not None}
        if attempts is None:
            attempts = {n.instance_id: n.attempts for n in current.nodes}
        return self._build(
            run_id=current.run_id,
            definition=current.definition,
            runtime=current.runtime,
            resolution=resolution,
            claims=claims,
            runs=runs,
            attempts=attempts,
            created_at=current.created_at,
        )

    def _build(
        self,
        *,
        run_id: str,
        definition: WorkflowDefinition,
        runtime: EngineRuntime,
        resolution: Resolution,
        claims: list[WorkClaim],
        runs: Mapping[str, ModuleRun],
        attempts: Mapping[str, int],
        created_at: datetime,
    ) -> EngineSnapshot:
        now = self._clock()
        max_parallel = self._max_parallel(definition, runtime)
        max_attempts = self._max_attempts(definition, runtime)
        claimed = {claim.instance_id: claim for claim in claims}

        nodes: list[NodeSnapshot] = []
        runnable: list[str] = []
        for report in resolution.nodes:
            ref = definition.module_ref(report.instance_id)
            run = runs.get(report.instance_id)
            count = attempts.get(report.instance_id, 0)
            exhausted = max_attempts > 0 and count >= max_attempts
            claim = claimed.get(report.instance_id)
            status = _node_status(report, claim, run)
            if claim is None and report.status is NodeStatus.READY and not exhausted:
                runnable.append(report.instance_id)
            nodes.append(
                NodeSnapshot(
                    instance_id=report.instance_id,
                    module_id=report.module_id,
                    name=(ref.name if ref and ref.name else report.info.name),
                    description=(ref.description if ref and ref.description else report.info.description),
                    version=report.info.version,
                    slots=report.info.concurrency.slots,
                    exclusive=report.info.concurrency.exclusive,
                    status=status,
                    depends_on=report.depends_on,
                    blocked_by=[*report.blocked_by, *report.missing_inputs],
                    error=report.error,
                    outputs=_output_reports(report),
                    last_run=run,
                    attempts=count,
                    updated_at=now,
                )
            )

        status, reason = _engine_status(nodes, definition, claims, runnable, max_attempts)
        return EngineSnapshot(
            run_id=run_id,
            workflow_id=definition.id,
            definition=definition,
            status=status,
            status_reason=reason,
            runtime=runtime,
            max_parallel=max_parallel,
            max_attempts=max_attempts,
            nodes=nodes,
            claims=claims,
            runnable=runnable,
            created_at=created_at,
            updated_at=now,
        )


# ---------------------------------------------------------------------------
# Status derivation
# ---------------------------------------------------------------------------


def _node_status(report: NodeReport, claim: WorkClaim | None, run: ModuleRun | None) -> NodeStatus:
    if claim is not None:
        return NodeStatus.NEEDS_INPUT if claim.waiting else NodeStatus.RUNNING
    if report.status in (NodeStatus.ERROR, NodeStatus.COMPLETE):
        return report.status
    if run is not None and run.status is ModuleStatus.FAILED:
        return NodeStatus.FAILED
    return report.status


def _output_reports(report: NodeReport) -> list[OutputReport]:
    outputs: list[OutputReport] = []
    for artifact_id, artifact in report.outputs.items():
        outputs.append(
            OutputReport(
                artifact_id=artifact_id,
                path=str(artifact.check.path or ""),
                state=artifact.check.state,
                status=artifact.status,
                reason=artifact.reason.value if artifact.reason else "",
                error=artifact.check.error_message,
            )
        )
    return outputs


def _engine_status(
    nodes: list[NodeSnapshot],
    definition: WorkflowDefinition,
    claims: list[WorkClaim],
    runnable: list[str],
    max_attempts: int,
) -> tuple[EngineStatus, str]:
    for node in nodes:
        if node.status is NodeStatus.ERROR:
            return EngineStatus.ERROR, f"{node.instance_id} encountered an error"
    for node in nodes:
        if node.status is NodeStatus.FAILED and max_attempts > 0 and node.attempts >= max_attempts:
            return EngineStatus.ERROR, f"{node.instance_id} failed"

    optional = {ref.instance_id for ref in definition.modules if ref.optional}
    required = [node for node in nodes if node.instance_id not in optional]
    if not claims and all(node.status is NodeStatus.COMPLETE for node in required):
        return EngineStatus.COMPLETE, ""
    if claims or runnable:
        return EngineStatus.RUNNING, ""
    blocked = [node.instance_id for node in nodes if node.status is NodeStatus.BLOCKED]
    return EngineStatus.BLOCKED, (
        f"waiting on {', '.join(blocked)}" if blocked else "no runnable modules"
    )
