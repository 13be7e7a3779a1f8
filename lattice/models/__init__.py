"""Lattice data models -- all Pydantic v2, all frozen (immutable)."""

from lattice.models.artifacts import (
    ArtifactKind,
    ArtifactMetadata,
    ArtifactRef,
    ArtifactState,
    ArtifactStatus,
    CheckResult,
)
from lattice.models.engine import (
    ClaimRequest,
    ClaimResult,
    EngineRuntime,
    EngineSnapshot,
    EngineStatus,
    ModuleRun,
    ModuleStatusUpdate,
    NodeSnapshot,
    NodeStatus,
    OutputReport,
    RuntimeOverrides,
    ScheduleSkip,
    SkipReason,
    UpdateRequest,
    WorkClaim,
)
from lattice.models.modules import (
    ArtifactInvalidation,
    Concurrency,
    InvalidationReason,
    ModuleInfo,
    ModuleResult,
    ModuleStatus,
)
from lattice.models.plugins import ArtifactBinding, LoadedDefinition, ModuleDefinition, SkillSpec
from lattice.models.workflow import ModuleRef, WorkflowDefinition, WorkflowRuntime

__all__ = [
    # artifacts
    "ArtifactKind",
    "ArtifactState",
    "ArtifactStatus",
    "ArtifactRef",
    "ArtifactMetadata",
    "CheckResult",
    # modules
    "Concurrency",
    "ModuleInfo",
    "ModuleStatus",
    "ModuleResult",
    "InvalidationReason",
    "ArtifactInvalidation",
    # workflow
    "ModuleRef",
    "WorkflowRuntime",
    "WorkflowDefinition",
    # engine
    "NodeStatus",
    "EngineStatus",
    "SkipReason",
    "ScheduleSkip",
    "ModuleRun",
    "WorkClaim",
    "OutputReport",
    "NodeSnapshot",
    "EngineRuntime",
    "RuntimeOverrides",
    "EngineSnapshot",
    "ClaimRequest",
    "ClaimResult",
    "ModuleStatusUpdate",
    "UpdateRequest",
    # plugins
    "SkillSpec",
    "ArtifactBinding",
    "ModuleDefinition",
    "LoadedDefinition",
]
