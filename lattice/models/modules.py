"""Module contract models: identity, concurrency profile, run results.

All models are frozen.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lattice.models.artifacts import ArtifactMetadata, ArtifactRef, ArtifactState


class Concurrency(BaseModel):
    """How much scheduling capacity a module consumes.

    ``slots`` of 0 is treated as the default of 1; negative values are
    rejected.  An ``exclusive`` module runs alone.
    """

    model_config = ConfigDict(frozen=True)

    slots: int = 1
    exclusive: bool = False

    @field_validator("slots", mode="before")
    @classmethod
    def _default_slots(cls, value: int | None) -> int:
        if value is None:
            return 1
        value = int(value)
        if value < 0:
            raise ValueError("concurrency slots must be >= 0")
        return value or 1


class ModuleInfo(BaseModel):
    """Identity and scheduling profile of a module."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    description: str = ""
    concurrency: Concurrency = Field(default_factory=Concurrency)

    @field_validator("id", "name", "version", mode="before")
    @classmethod
    def _strip(cls, value: str) -> str:
        return str(value).strip() if value is not None else ""


class ModuleStatus(str, Enum):
    """Outcome of a single ``run`` invocation."""

    COMPLETED = "completed"
    NO_OP = "no-op"
    NEEDS_INPUT = "needs-input"
    FAILED = "failed"


class ModuleResult(BaseModel):
    """What a module reports back from ``run``."""

    model_config = ConfigDict(frozen=True)

    status: ModuleStatus
    message: str = ""

    @classmethod
    def completed(cls, message: str = "") -> ModuleResult:
        return cls(status=ModuleStatus.COMPLETED, message=message)

    @classmethod
    def no_op(cls, message: str = "") -> ModuleResult:
        return cls(status=ModuleStatus.NO_OP, message=message)

    @classmethod
    def needs_input(cls, message: str = "") -> ModuleResult:
        return cls(status=ModuleStatus.NEEDS_INPUT, message=message)

    @classmethod
    def failed(cls, message: str = "") -> ModuleResult:
        return cls(status=ModuleStatus.FAILED, message=message)


class InvalidationReason(str, Enum):
    """Why an output was judged stale or unusable."""

    MISSING = "missing"
    INVALID_METADATA = "invalid-metadata"
    VERSION_MISMATCH = "version-mismatch"
    FINGERPRINT_MISMATCH = "fingerprint-mismatch"
    CHECK_ERROR = "check-error"


class ArtifactInvalidation(BaseModel):
    """Event delivered to a module's invalidation handler."""

    model_config = ConfigDict(frozen=True)

    ref: ArtifactRef
    state: ArtifactState
    reason: InvalidationReason
    stored_version: str = ""
    expected_version: str = ""
    stored_fingerprint: str = ""
    expected_fingerprint: str = ""
    metadata: ArtifactMetadata | None = None
    error: str = ""
