"""Artifact store: classify and write typed artifacts under the workflow root.

``check`` never raises; every outcome, including unexpected I/O failures,
is reported as a :class:`CheckResult` state.  ``write`` stamps provenance
metadata according to the artifact kind:

- document  -- fenced front matter + body
- json      -- body object with the ``_lattice`` key overwritten
- marker    -- empty file
- directory -- ``mkdir -p``
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from lattice.core.filesystem import DIR_MODE, FILE_MODE, FileSystem, LocalFileSystem, PathKind
from lattice.core.frontmatter import (
    parse_document,
    parse_json,
    strip_front_matter,
    write_document,
    write_json,
)
from lattice.core.layout import WorkflowLayout
from lattice.errors import (
    ArtifactInvalidError,
    ArtifactIOError,
    DefinitionError,
    PathResolutionError,
)
from lattice.models.artifacts import (
    ArtifactKind,
    ArtifactMetadata,
    ArtifactRef,
    ArtifactState,
    CheckResult,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ArtifactStore:
    """Reads and writes artifacts for one workflow layout.

    Parameters
    ----------
    layout:
        Workflow handle used to resolve artifact paths.
    fs:
        Filesystem backing.  Defaults to the local disk.
    clock:
        Source of ``created_at`` timestamps for metadata that lacks one.
    """

    def __init__(
        self,
        layout: WorkflowLayout,
        fs: FileSystem | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._layout = layout
        self._fs = fs or LocalFileSystem()
        self._clock = clock or utc_now

    @property
    def layout(self) -> WorkflowLayout:
        return self._layout

    @property
    def fs(self) -> FileSystem:
        return self._fs

    def with_layout(self, layout: WorkflowLayout) -> ArtifactStore:
        return ArtifactStore(layout, self._fs, self._clock)

    def path(self, ref: ArtifactRef) -> Path:
        return ref.resolve(self._layout)

    # ------------------------------------------------------------------
    # Check
    # ------------------------------------------------------------------

    def check(self, ref: ArtifactRef) -> CheckResult:
        """Classify the on-disk state of ``ref``."""
        try:
            path = ref.resolve(self._layout)
        except PathResolutionError as exc:
            return CheckResult(ref=ref, state=ArtifactState.ERROR, error=exc)

        try:
            kind = self._fs.kind(path)
        except OSError as exc:
            return self._io_error(ref, path, exc)

        if kind is None:
            return CheckResult(ref=ref, path=path, state=ArtifactState.MISSING)

        expected = PathKind.DIRECTORY if ref.kind is ArtifactKind.DIRECTORY else PathKind.FILE
        if kind is not expected:
            return CheckResult(
                ref=ref,
                path=path,
                state=ArtifactState.INVALID,
                error=ArtifactInvalidError(
                    f"{ref.id}: expected {expected.value} at {path}, found {kind.value}"
                ),
            )
        if not ref.kind.carries_metadata:
            return CheckResult(ref=ref, path=path, state=ArtifactState.READY)

        try:
            data = self._fs.read_bytes(path)
        except OSError as exc:
            return self._io_error(ref, path, exc)

        try:
            if ref.kind is ArtifactKind.JSON:
                meta, _ = parse_json(data)
            else:
                meta, _ = parse_document(data)
        except ArtifactInvalidError as exc:
            return CheckResult(ref=ref, path=path, state=ArtifactState.INVALID, error=exc)

        if meta.artifact_id != ref.id:
            return CheckResult(
                ref=ref,
                path=path,
                state=ArtifactState.INVALID,
                metadata=meta,
                error=ArtifactInvalidError(
                    f"{ref.id}: metadata names artifact {meta.artifact_id!r}"
                ),
            )
        return CheckResult(ref=ref, path=path, state=ArtifactState.READY, metadata=meta)

    @staticmethod
    def _io_error(ref: ArtifactRef, path: Path, exc: OSError) -> CheckResult:
        logger.warning("I/O error checking %s at %s: %s", ref.id, path, exc)
        return CheckResult(
            ref=ref,
            path=path,
            state=ArtifactState.ERROR,
            error=ArtifactIOError(f"{ref.id}: {exc}"),
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(
        self,
        ref: ArtifactRef,
        body: bytes | str | dict[str, Any] | None = None,
        meta: ArtifactMetadata | None = None,
    ) -> ArtifactMetadata | None:
        """Persist ``ref`` and return the metadata actually written.

        Markers and directories carry no metadata and return ``None``.
        """
        path = ref.resolve(self._layout)
        try:
            if ref.kind is ArtifactKind.DIRECTORY:
                self._fs.make_dirs(path, DIR_MODE)
                return None
            self._fs.make_dirs(path.parent, DIR_MODE)
            if ref.kind is ArtifactKind.MARKER:
                self._fs.write_bytes(path, b"", FILE_MODE)
                return None

            meta = self._complete_metadata(ref, meta or ArtifactMetadata())
            if ref.kind is ArtifactKind.JSON:
                data = write_json(meta, body)
            else:
                data = write_document(meta, body if body is not None else "")
            self._fs.write_bytes(path, data.encode("utf-8"), FILE_MODE)
        except OSError as exc:
            raise ArtifactIOError(f"{ref.id}: cannot write {path}: {exc}") from exc
        logger.debug("Wrote %s (%s) at %s", ref.id, ref.kind.value, path)
        return meta

    def _complete_metadata(self, ref: ArtifactRef, meta: ArtifactMetadata) -> ArtifactMetadata:
        update: dict[str, Any] = {}
        if not meta.artifact_id:
            update["artifact_id"] = ref.id
        if meta.created_at is None:
            update["created_at"] = self._clock()
        if not meta.workflow_id and self._layout.workflow_id:
            update["workflow_id"] = self._layout.workflow_id
        if update:
            meta = meta.model_copy(update=update)
        if meta.artifact_id != ref.id:
            raise ArtifactInvalidError(
                f"{ref.id}: metadata names artifact {meta.artifact_id!r}"
            )
        if not meta.module_id.strip():
            raise DefinitionError(f"{ref.id}: metadata module_id is required")
        if not meta.module_version.strip():
            raise DefinitionError(f"{ref.id}: metadata module_version is required")
        return meta

    # ------------------------------------------------------------------
    # Read / remove
    # ------------------------------------------------------------------

    def read_body(self, ref: ArtifactRef) -> str:
        """Return the artifact body with any front matter stripped.

        JSON artifacts return their raw text.
        """
        path = ref.resolve(self._layout)
        try:
            data = self._fs.read_bytes(path)
        except OSError as exc:
            raise ArtifactIOError(f"{ref.id}: cannot read {path}: {exc}") from exc
        if ref.kind is ArtifactKind.JSON:
            return data.decode("utf-8")
        return strip_front_matter(data)

    def read_json(self, ref: ArtifactRef) -> dict[str, Any]:
        """Return a JSON artifact's payload without the ``_lattice`` key."""
        path = ref.resolve(self._layout)
        try:
            data = self._fs.read_bytes(path)
        except OSError as exc:
            raise ArtifactIOError(f"{ref.id}: cannot read {path}: {exc}") from exc
        _, payload = parse_json(data)
        return payload

    def remove(self, ref: ArtifactRef) -> None:
        """Delete an artifact (missing artifacts are ignored)."""
        path = ref.resolve(self._layout)
        try:
            self._fs.remove(path)
        except OSError as exc:
            raise ArtifactIOError(f"{ref.id}: cannot remove {path}: {exc}") from exc
        logger.info("Removed %s at %s", ref.id, path)
