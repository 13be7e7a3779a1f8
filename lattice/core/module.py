"""Module contract: what every pipeline step must provide.

A module declares its identity (:class:`ModuleInfo`), its inputs and
outputs (catalog :class:`ArtifactRef` values), and two lifecycle calls:

- ``run(ctx)`` performs the work and returns a :class:`ModuleResult`.
  It must be idempotent: after completion it returns ``NO_OP``.
- ``is_complete(ctx)`` observes the artifact store.  It may repair
  provenance on the module's own outputs, reporting ``False`` until the
  repair has been observed.

Two optional capabilities are detected with ``isinstance``:
:class:`Fingerprinter` and :class:`InvalidationHandler`.

Concrete modules usually subclass :class:`BaseModule`, whose ``run()`` is
**not overridable**: it validates the context and short-circuits to
``NO_OP`` when the module is already complete and no output carries a stale
fingerprint, then calls ``execute()``.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol, final, runtime_checkable

from lattice.config import LatticeSettings
from lattice.core.artifact_store import ArtifactStore, utc_now
from lattice.core.layout import WorkflowLayout
from lattice.errors import LatticeError
from lattice.models.artifacts import ArtifactRef
from lattice.models.modules import ArtifactInvalidation, ModuleInfo, ModuleResult

logger = logging.getLogger(__name__)

FINGERPRINT_NOTE_PREFIX = "fingerprint:"


def fingerprint_note_key(artifact_id: str) -> str:
    """Reserved notes key holding the fingerprint for ``artifact_id``."""
    return f"{FINGERPRINT_NOTE_PREFIX}{artifact_id.strip() or 'default'}"


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class ModuleContext:
    """Everything a module may touch: settings, workflow paths, and the store.

    The context carries no cancellation; long-running work is expressed as
    ``NEEDS_INPUT`` plus polling of ``is_complete``.
    """

    def __init__(
        self,
        layout: WorkflowLayout,
        store: ArtifactStore,
        settings: LatticeSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.layout = layout
        self.store = store
        self.settings = settings or LatticeSettings(project_dir=layout.project_dir)
        self.clock = clock or utc_now

    def validate(self) -> None:
        if self.layout is None or self.store is None:
            raise LatticeError("module context requires a workflow layout and store")
        if self.store.layout.project_dir != self.layout.project_dir:
            raise LatticeError("module context store and layout disagree on project dir")

    def now(self) -> datetime:
        return self.clock()

    def for_workflow(self, workflow_id: str) -> ModuleContext:
        """Return a context whose writes are stamped with ``workflow_id``."""
        layout = self.layout.with_workflow(workflow_id)
        return ModuleContext(layout, self.store.with_layout(layout), self.settings, self.clock)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Module(Protocol):
    """Structural contract every module satisfies."""

    def info(self) -> ModuleInfo: ...

    def inputs(self) -> list[ArtifactRef]: ...

    def outputs(self) -> list[ArtifactRef]: ...

    def run(self, ctx: ModuleContext) -> ModuleResult: ...

    def is_complete(self, ctx: ModuleContext) -> bool: ...


@runtime_checkable
class Fingerprinter(Protocol):
    """Optional: publishes a fingerprint per output artifact id."""

    def artifact_fingerprints(self, ctx: ModuleContext) -> dict[str, str]: ...


@runtime_checkable
class InvalidationHandler(Protocol):
    """Optional: notified when one of the module's outputs is stale or unusable."""

    def on_artifact_invalidation(
        self, ctx: ModuleContext, event: ArtifactInvalidation
    ) -> None: ...


ModuleFactory = Callable[[Mapping[str, Any]], Module]


# ---------------------------------------------------------------------------
# Base implementation
# ---------------------------------------------------------------------------


class BaseModule(abc.ABC):
    """Abstract base holding info, declared artifacts, and config.

    Subclasses **must** implement ``execute(ctx)`` and ``is_complete(ctx)``.
    Subclasses **must not** override ``run()``.
    """

    def __init__(
        self,
        info: ModuleInfo,
        inputs: Sequence[ArtifactRef] = (),
        outputs: Sequence[ArtifactRef] = (),
        config: Mapping[str, Any] | None = None,
    ) -> None:
        self._info = info
        self._inputs = list(inputs)
        self._outputs = list(outputs)
        self._config = dict(config or {})

    def info(self) -> ModuleInfo:
        return self._info

    def inputs(self) -> list[ArtifactRef]:
        return list(self._inputs)

    def outputs(self) -> list[ArtifactRef]:
        return list(self._outputs)

    @property
    def config(self) -> dict[str, Any]:
        return dict(self._config)

    @abc.abstractmethod
    def is_complete(self, ctx: ModuleContext) -> bool:
        """Whether every declared output is present with correct provenance."""
        ...

    @abc.abstractmethod
    def execute(self, ctx: ModuleContext) -> ModuleResult:
        """Do the module's work.  Called only when the module is not complete."""
        ...

    def stale_fingerprints(self, ctx: ModuleContext) -> list[str]:
        """Output ids whose stored fingerprint note differs from the published one.

        Always empty for modules that do not publish fingerprints.  Outputs
        without metadata (markers, directories, missing files) are skipped.
        """
        if not isinstance(self, Fingerprinter):
            return []
        expected = self.artifact_fingerprints(ctx)
        stale: list[str] = []
        for ref in self._outputs:
            if ref.id not in expected:
                continue
            meta = ctx.store.check(ref).metadata
            if meta is None:
                continue
            if meta.notes.get(fingerprint_note_key(ref.id), "") != expected[ref.id]:
                stale.append(ref.id)
        return stale

    @final
    def run(self, ctx: ModuleContext) -> ModuleResult:
        """Validate, short-circuit when complete, then ``execute``.  **Do not override.**

        A module counts as complete only when ``is_complete`` holds and no
        output carries a stale fingerprint.
        """
        ctx.validate()
        if self.is_complete(ctx):
            stale = self.stale_fingerprints(ctx)
            if not stale:
                logger.info("%s already complete", self._info.id)
                return ModuleResult.no_op(f"{self._info.id} already complete")
            logger.info(
                "%s re-executing; stale fingerprints on %s", self._info.id, ", ".join(stale)
            )
        return self.execute(ctx)
