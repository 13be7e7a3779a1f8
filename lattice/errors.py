"""Error taxonomy shared across the Lattice runtime.

Every error raised by the runtime derives from :class:`LatticeError` so
callers at the edges (CLI, workers) can catch one base class.  The
families mirror how errors are recovered:

- ``DefinitionError``      -- malformed module, plugin, or workflow definitions.
                              Raised at load/registration, never recovered silently.
- ``PathResolutionError``  -- an artifact ref cannot be placed under the workflow root.
- ``ArtifactInvalidError`` -- parse failures and identity mismatches on disk.
- ``ArtifactIOError``      -- unexpected filesystem failures.
- ``ConcurrencyViolation`` -- missing or foreign claims, duplicate registrations.
- ``ModuleRunFailure``     -- a module could not complete its run.
"""

from __future__ import annotations


class LatticeError(RuntimeError):
    """Base class for all Lattice runtime errors."""


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


class DefinitionError(LatticeError, ValueError):
    """Raised when a module, plugin, or workflow definition is malformed."""


class CyclicDependencyError(DefinitionError):
    """Raised when a workflow graph contains a cycle."""


class UnknownModuleError(DefinitionError):
    """Raised when a module id is not registered."""


class PluginDefinitionError(DefinitionError):
    """Raised when a plugin definition file fails validation.

    ``source`` names the file (and entry index for interpreted files)
    the definition came from.
    """

    def __init__(self, message: str, source: str = "") -> None:
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------


class PathResolutionError(LatticeError):
    """Raised when an artifact ref cannot be resolved against a workflow."""


class ArtifactInvalidError(LatticeError):
    """Raised when an artifact exists but its content or identity is wrong."""


class MissingFrontMatterError(ArtifactInvalidError):
    """Raised when a document does not begin with a front-matter fence."""


class MalformedFrontMatterError(ArtifactInvalidError):
    """Raised when a front-matter block cannot be decoded."""


class ArtifactIOError(LatticeError, OSError):
    """Raised on unexpected filesystem failures."""


# ---------------------------------------------------------------------------
# Coordination
# ---------------------------------------------------------------------------


class ConcurrencyViolation(LatticeError):
    """Raised when coordination rules between workers are broken."""


class ClaimError(ConcurrencyViolation):
    """Raised when an update references a missing or foreign claim."""


class DuplicateModuleError(ConcurrencyViolation):
    """Raised when a module id is registered twice."""


class ModuleRunFailure(LatticeError):
    """Raised by a module when its run cannot complete."""


class SnapshotNotFoundError(LatticeError):
    """Raised when resuming an engine with no persisted snapshot."""
