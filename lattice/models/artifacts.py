"""Artifact models: references, provenance metadata, and check results.

An ``ArtifactRef`` is a catalog entry: a stable id, a kind, and a pure
function from a :class:`WorkflowLayout` to the artifact's path.  The
``ArtifactMetadata`` block is what gets stamped into documents (front
matter) and JSON files (``_lattice`` key).
"""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lattice.core.layout import WorkflowLayout
from lattice.errors import PathResolutionError


class ArtifactKind(str, Enum):
    """How an artifact is represented on disk."""

    DOCUMENT = "document"
    JSON = "json"
    MARKER = "marker"
    DIRECTORY = "directory"

    @property
    def carries_metadata(self) -> bool:
        return self in (ArtifactKind.DOCUMENT, ArtifactKind.JSON)


class ArtifactState(str, Enum):
    """On-disk classification produced by ``ArtifactStore.check``."""

    READY = "ready"
    MISSING = "missing"
    INVALID = "invalid"
    ERROR = "error"


class ArtifactStatus(str, Enum):
    """Per-output status reported by the resolver.

    ``FRESH`` means ready with a matching fingerprint; ``OUTDATED`` means
    ready on disk but stamped by another version or fingerprint.
    """

    UNKNOWN = "unknown"
    FRESH = "fresh"
    READY = "ready"
    MISSING = "missing"
    INVALID = "invalid"
    OUTDATED = "outdated"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def format_timestamp(value: datetime) -> str:
    """RFC-3339 UTC with a ``Z`` suffix; microseconds only when present."""
    value = ensure_utc(value)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond:06d}"
    return text + "Z"


def parse_timestamp(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


PathResolver = Callable[[WorkflowLayout], Path]


class ArtifactRef(BaseModel):
    """Immutable catalog entry for one artifact.

    Examples
    --------
    >>> ref = ArtifactRef(
    ...     id="commission-doc",
    ...     kind=ArtifactKind.DOCUMENT,
    ...     resolver=lambda layout: layout.plan_dir / "COMMISSION.md",
    ... )
    >>> ref.resolve(WorkflowLayout.for_project("/app")).name
    'COMMISSION.md'
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ArtifactKind
    name: str = ""
    description: str = ""
    optional: bool = False
    resolver: PathResolver = Field(exclude=True, repr=False)

    def resolve(self, layout: WorkflowLayout) -> Path:
        """Return the cleaned absolute path for this artifact.

        Raises ``PathResolutionError`` when the path falls outside the
        workflow root.
        """
        try:
            raw = self.resolver(layout)
        except Exception as exc:
            raise PathResolutionError(f"artifact {self.id}: {exc}") from exc
        if raw is None or str(raw) == "":
            raise PathResolutionError(f"artifact {self.id}: resolver returned no path")
        path = Path(os.path.normpath(os.path.join(layout.workflow_dir, raw)))
        if not layout.contains(path):
            raise PathResolutionError(
                f"artifact {self.id}: {path} is outside {layout.workflow_dir}"
            )
        return path

    def with_optional(self, optional: bool) -> ArtifactRef:
        return self.model_copy(update={"optional": optional})

    @property
    def label(self) -> str:
        return self.name or self.id


# ---------------------------------------------------------------------------
# Provenance metadata
# ---------------------------------------------------------------------------


class ArtifactMetadata(BaseModel):
    """Provenance block attached to documents and JSON artifacts.

    ``notes`` keys beginning with ``fingerprint:`` are reserved for
    fingerprints published by modules.
    """

    model_config = ConfigDict(frozen=True)

    artifact_id: str = ""
    module_id: str = ""
    module_version: str = ""
    workflow_id: str = ""
    created_at: datetime | None = None
    inputs: list[str] = Field(default_factory=list)
    checksum: str = ""
    notes: dict[str, str] = Field(default_factory=dict)

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the reserved on-disk key names, in fixed order."""
        data: dict[str, Any] = {
            "artifact": self.artifact_id,
            "module": self.module_id,
            "version": self.module_version,
        }
        if self.workflow_id:
            data["workflow"] = self.workflow_id
        if self.inputs:
            data["inputs"] = list(self.inputs)
        if self.created_at is not None:
            data["created"] = format_timestamp(self.created_at)
        if self.checksum:
            data["checksum"] = self.checksum
        if self.notes:
            data["notes"] = {key: self.notes[key] for key in sorted(self.notes)}
        return data

    @classmethod
    def from_wire(cls, data: Any) -> ArtifactMetadata:
        """Parse the on-disk mapping; raises ``ValueError`` when malformed."""
        if not isinstance(data, dict):
            raise ValueError("metadata block must be a mapping")
        for key in ("artifact", "module", "version"):
            value = data.get(key)
            if value is None or isinstance(value, (dict, list)) or not str(value).strip():
                raise ValueError(f"metadata field '{key}' is required")
        created = data.get("created")
        if created in (None, ""):
            raise ValueError("metadata field 'created' is required")
        if not isinstance(created, (str, datetime)):
            raise ValueError("metadata field 'created' must be a timestamp")
        inputs = data.get("inputs") or []
        if not isinstance(inputs, list) or not all(isinstance(i, str) for i in inputs):
            raise ValueError("metadata field 'inputs' must be a list of strings")
        notes = data.get("notes") or {}
        if not isinstance(notes, dict):
            raise ValueError("metadata field 'notes' must be a mapping")
        checksum = data.get("checksum") or ""
        workflow = data.get("workflow") or ""
        return cls(
            artifact_id=str(data["artifact"]),
            module_id=str(data["module"]),
            module_version=str(data["version"]),
            workflow_id=str(workflow),
            created_at=parse_timestamp(created),
            inputs=list(inputs),
            checksum=str(checksum),
            notes={str(k): str(v) for k, v in notes.items()},
        )


# ---------------------------------------------------------------------------
# Check results
# ---------------------------------------------------------------------------


class CheckResult(BaseModel):
    """Outcome of ``ArtifactStore.check`` for one ref."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    ref: ArtifactRef
    path: Path | None = None
    state: ArtifactState
    metadata: ArtifactMetadata | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.state is ArtifactState.READY

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error is not None else ""
