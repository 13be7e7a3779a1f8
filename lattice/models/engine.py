"""Engine models: node status, claims, and the persisted snapshot.

The snapshot is the only mutable state the engine writes to disk; it is
serialized with ``model_dump_json`` to ``.lattice/state/engine.json``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from lattice.models.artifacts import ArtifactState, ArtifactStatus
from lattice.models.modules import ModuleStatus
from lattice.models.workflow import WorkflowDefinition


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NodeStatus(str, Enum):
    """Lifecycle of a workflow node as surfaced in snapshots.

    The resolver only produces PENDING, READY, BLOCKED, COMPLETE and ERROR;
    the engine overlays RUNNING, NEEDS_INPUT and FAILED from claims and runs.
    """

    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    COMPLETE = "complete"
    NEEDS_INPUT = "needs-input"
    FAILED = "failed"
    ERROR = "error"
    BLOCKED = "blocked"


class EngineStatus(str, Enum):
    RUNNING = "running"
    BLOCKED = "blocked"
    COMPLETE = "complete"
    ERROR = "error"


class SkipReason(str, Enum):
    """Why the scheduler passed over a node."""

    NOT_READY = "not-ready"
    ALREADY_RUNNING = "already-running"
    CONCURRENCY = "concurrency"
    FILTERED = "filtered"
    MANUAL_GATE = "manual-gate"
    ATTEMPTS_EXHAUSTED = "attempts-exhausted"


class ScheduleSkip(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: SkipReason
    detail: str = ""


# ---------------------------------------------------------------------------
# Runs and claims
# ---------------------------------------------------------------------------


class ModuleRun(BaseModel):
    """Last reported outcome for a node."""

    model_config = ConfigDict(frozen=True)

    status: ModuleStatus
    message: str = ""
    error: str = ""
    finished_at: datetime = Field(default_factory=_utc_now)


class WorkClaim(BaseModel):
    """An engine-granted reservation for one node."""

    model_config = ConfigDict(frozen=True)

    worker_id: str
    instance_id: str
    module_id: str = ""
    slot_cost: int = 1
    exclusive: bool = False
    claimed_at: datetime = Field(default_factory=_utc_now)
    waiting: bool = False
    message: str = ""


class OutputReport(BaseModel):
    """Observed state of one declared output."""

    model_config = ConfigDict(frozen=True)

    artifact_id: str
    path: str = ""
    state: ArtifactState
    status: ArtifactStatus = ArtifactStatus.UNKNOWN
    reason: str = ""
    error: str = ""


class NodeSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    instance_id: str
    module_id: str
    name: str = ""
    description: str = ""
    version: str = ""
    slots: int = 1
    exclusive: bool = False
    status: NodeStatus = NodeStatus.PENDING
    depends_on: list[str] = Field(default_factory=list)
    blocked_by: list[str] = Field(default_factory=list)
    error: str = ""
    outputs: list[OutputReport] = Field(default_factory=list)
    last_run: ModuleRun | None = None
    attempts: int = 0
    updated_at: datetime = Field(default_factory=_utc_now)


# ---------------------------------------------------------------------------
# Runtime overrides
# ---------------------------------------------------------------------------


class EngineRuntime(BaseModel):
    """Operator overrides in effect; ``None`` defers to workflow or settings."""

    model_config = ConfigDict(frozen=True)

    max_parallel: int | None = None
    max_attempts: int | None = None
    batch_size: int = 0
    targets: list[str] = Field(default_factory=list)
    manual_gates: dict[str, bool] = Field(default_factory=dict)


class RuntimeOverrides(BaseModel):
    """Partial update for :class:`EngineRuntime`; unset fields keep their value."""

    model_config = ConfigDict(frozen=True)

    max_parallel: int | None = Field(default=None, ge=0)
    max_attempts: int | None = Field(default=None, ge=0)
    batch_size: int | None = Field(default=None, ge=0)
    targets: list[str] | None = None
    manual_gates: dict[str, bool] | None = None

    def apply(self, base: EngineRuntime) -> EngineRuntime:
        update = {
            key: value
            for key, value in self.model_dump().items()
            if value is not None
        }
        return base.model_copy(update=update)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class EngineSnapshot(BaseModel):
    """Persisted engine state for one workflow run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    workflow_id: str
    definition: WorkflowDefinition
    status: EngineStatus = EngineStatus.RUNNING
    status_reason: str = ""
    runtime: EngineRuntime = Field(default_factory=EngineRuntime)
    max_parallel: int = 0
    max_attempts: int = 0
    nodes: list[NodeSnapshot] = Field(default_factory=list)
    claims: list[WorkClaim] = Field(default_factory=list)
    runnable: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    def node(self, instance_id: str) -> NodeSnapshot | None:
        for node in self.nodes:
            if node.instance_id == instance_id:
                return node
        return None

    def claim_for(self, instance_id: str) -> WorkClaim | None:
        for claim in self.claims:
            if claim.instance_id == instance_id:
                return claim
        return None

    @property
    def slots_in_use(self) -> int:
        return sum(claim.slot_cost for claim in self.claims)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ClaimRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    worker_id: str = Field(min_length=1)
    limit: int = Field(default=0, ge=0)
    instance_filter: list[str] | None = None


class ClaimResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    claims: list[WorkClaim] = Field(default_factory=list)
    snapshot: EngineSnapshot
    skipped: dict[str, ScheduleSkip] = Field(default_factory=dict)


class ModuleStatusUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    instance_id: str
    status: ModuleStatus
    message: str = ""
    error: str = ""


class UpdateRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    worker_id: str = Field(min_length=1)
    results: list[ModuleStatusUpdate] = Field(default_factory=list)
