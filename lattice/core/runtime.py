"""Runtime helpers shared by module implementations.

The ``ensure_*`` helpers answer "is this output ready with my stamp?" and
repair provenance on the way:

- ready with matching module/version  -> ``True``
- ready with a foreign stamp          -> rewrite metadata, ``False``
- missing                             -> ``False``
- invalid document/JSON               -> rewrite metadata, ``False``
- error                               -> raise

A rewrite is reported as not-yet-ready so the caller observes the repaired
artifact on its next check.  Metadata options such as :func:`with_inputs`
and :func:`with_fingerprint` decorate the stamp written during repair.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from lattice.core.hasher import checksum, fingerprint
from lattice.core.module import ModuleContext, fingerprint_note_key
from lattice.errors import ArtifactInvalidError, ArtifactIOError, LatticeError
from lattice.models.artifacts import (
    ArtifactKind,
    ArtifactMetadata,
    ArtifactRef,
    ArtifactState,
    CheckResult,
)

logger = logging.getLogger(__name__)

MetadataOption = Callable[[ArtifactMetadata], ArtifactMetadata]


# ---------------------------------------------------------------------------
# Metadata options
# ---------------------------------------------------------------------------


def with_inputs(*refs: ArtifactRef) -> MetadataOption:
    """Record upstream artifact ids in ``inputs`` (order kept, duplicates dropped)."""

    def apply(meta: ArtifactMetadata) -> ArtifactMetadata:
        ids = list(meta.inputs)
        for ref in refs:
            if ref.id not in ids:
                ids.append(ref.id)
        return meta.model_copy(update={"inputs": ids})

    return apply


def with_fingerprint(ref: ArtifactRef, value: str) -> MetadataOption:
    """Store ``value`` under the reserved ``fingerprint:<id>`` note."""
    return with_note(fingerprint_note_key(ref.id), value)


def with_note(key: str, value: str) -> MetadataOption:
    def apply(meta: ArtifactMetadata) -> ArtifactMetadata:
        return meta.model_copy(update={"notes": {**meta.notes, key: value}})

    return apply


def with_workflow(workflow_id: str) -> MetadataOption:
    def apply(meta: ArtifactMetadata) -> ArtifactMetadata:
        return meta.model_copy(update={"workflow_id": workflow_id})

    return apply


def build_metadata(
    module_id: str,
    version: str,
    ref: ArtifactRef,
    *opts: MetadataOption,
) -> ArtifactMetadata:
    """Metadata stamped by ``module_id@version`` for ``ref``."""
    meta = ArtifactMetadata(artifact_id=ref.id, module_id=module_id, module_version=version)
    for opt in opts:
        meta = opt(meta)
    return meta


# ---------------------------------------------------------------------------
# Ensure helpers
# ---------------------------------------------------------------------------


def _raise_check_error(result: CheckResult) -> None:
    if isinstance(result.error, LatticeError):
        raise result.error
    raise ArtifactIOError(f"{result.ref.id}: {result.error_message or 'check failed'}")


def _stamped_by(result: CheckResult, module_id: str, version: str) -> bool:
    meta = result.metadata
    return meta is not None and meta.module_id == module_id and meta.module_version == version


def _rewrite(
    ctx: ModuleContext,
    module_id: str,
    version: str,
    ref: ArtifactRef,
    opts: Sequence[MetadataOption],
) -> None:
    body = ctx.store.read_body(ref)
    try:
        ctx.store.write(ref, body, build_metadata(module_id, version, ref, *opts))
    except ArtifactInvalidError as exc:
        # Body is not usable yet (e.g. a JSON file still being written).
        logger.warning("Cannot stamp %s yet: %s", ref.id, exc)
        return
    logger.info("Stamped provenance on %s for %s@%s", ref.id, module_id, version)


def ensure_document(
    ctx: ModuleContext,
    module_id: str,
    version: str,
    ref: ArtifactRef,
    *opts: MetadataOption,
) -> bool:
    """Ensure a document or JSON output carries ``module_id@version`` provenance."""
    result = ctx.store.check(ref)
    if result.state is ArtifactState.READY:
        if _stamped_by(result, module_id, version):
            return True
        _rewrite(ctx, module_id, version, ref, opts)
        return False
    if result.state is ArtifactState.MISSING:
        return False
    if result.state is ArtifactState.INVALID:
        _rewrite(ctx, module_id, version, ref, opts)
        return False
    _raise_check_error(result)
    return False


def ensure_documents(
    ctx: ModuleContext,
    module_id: str,
    version: str,
    refs: Sequence[ArtifactRef],
    *opts: MetadataOption,
) -> bool:
    """Run :func:`ensure_document` over every ref (no short-circuit)."""
    ready = True
    for ref in refs:
        ready = ensure_document(ctx, module_id, version, ref, *opts) and ready
    return ready


def ensure_marker(ctx: ModuleContext, ref: ArtifactRef) -> bool:
    """Markers and directories only need to exist with the right type."""
    result = ctx.store.check(ref)
    if result.state is ArtifactState.READY:
        return True
    if result.state is ArtifactState.MISSING:
        return False
    _raise_check_error(result)
    return False


ensure_directory = ensure_marker


def ensure_artifact(
    ctx: ModuleContext,
    module_id: str,
    version: str,
    ref: ArtifactRef,
    *opts: MetadataOption,
) -> bool:
    """Dispatch to the right ensure helper for ``ref.kind``."""
    if ref.kind.carries_metadata:
        return ensure_document(ctx, module_id, version, ref, *opts)
    return ensure_marker(ctx, ref)


def write_output(
    ctx: ModuleContext,
    module_id: str,
    version: str,
    ref: ArtifactRef,
    body: bytes | str | dict | None = None,
    *opts: MetadataOption,
) -> ArtifactMetadata | None:
    """Write an output stamped by ``module_id@version``."""
    if ref.kind is ArtifactKind.MARKER or ref.kind is ArtifactKind.DIRECTORY:
        return ctx.store.write(ref)
    return ctx.store.write(ref, body, build_metadata(module_id, version, ref, *opts))


# ---------------------------------------------------------------------------
# Fingerprints
# ---------------------------------------------------------------------------


def fingerprint_artifacts(ctx: ModuleContext, refs: Sequence[ArtifactRef]) -> str:
    """Fingerprint the current bodies of ``refs``.

    Missing or unreadable artifacts contribute their state instead of a
    checksum, so the fingerprint changes when they appear.
    """
    parts: dict[str, str] = {}
    for ref in refs:
        result = ctx.store.check(ref)
        if result.state is not ArtifactState.READY:
            parts[ref.id] = result.state.value
        elif ref.kind.carries_metadata:
            parts[ref.id] = checksum(ctx.store.read_body(ref))
        else:
            parts[ref.id] = ArtifactState.READY.value
    return fingerprint(parts)
