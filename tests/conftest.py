"""Shared test fixtures for Lattice."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from lattice.config import LatticeSettings
from lattice.core import catalog
from lattice.core.artifact_store import ArtifactStore
from lattice.core.engine import Engine
from lattice.core.filesystem import MemoryFileSystem
from lattice.core.layout import WorkflowLayout
from lattice.core.module import BaseModule, ModuleContext, ModuleFactory, fingerprint_note_key
from lattice.core.registry import ModuleRegistry
from lattice.core.repository import SnapshotRepository
from lattice.core.runtime import MetadataOption, with_fingerprint, with_inputs, write_output
from lattice.errors import ModuleRunFailure
from lattice.models.artifacts import ArtifactKind, ArtifactRef, ArtifactState
from lattice.models.modules import ArtifactInvalidation, Concurrency, ModuleInfo, ModuleResult
from lattice.models.workflow import WorkflowDefinition

PROJECT_DIR = Path("/work/app")
START = datetime(2026, 1, 5, 10, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Deterministic clock; ``advance`` moves it forward."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 1.0) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


# ---------------------------------------------------------------------------
# Stub modules
# ---------------------------------------------------------------------------


class StubModule(BaseModule):
    """Writes every declared output when run.

    ``behavior`` (overridable through workflow config) selects the outcome:
    ``complete`` writes outputs, ``wait`` returns NEEDS_INPUT without
    writing, ``fail`` returns FAILED, ``raise`` raises ModuleRunFailure.
    ``is_complete`` never repairs: an output counts only when it is ready
    and stamped by this module id and version.
    """

    def __init__(
        self,
        info: ModuleInfo,
        inputs: Sequence[ArtifactRef] = (),
        outputs: Sequence[ArtifactRef] = (),
        config: Mapping[str, Any] | None = None,
        *,
        behavior: str = "complete",
    ) -> None:
        super().__init__(info, inputs, outputs, config)
        self.behavior = str(self.config.get("behavior", behavior))
        self.executions = 0

    def execute(self, ctx: ModuleContext) -> ModuleResult:
        self.executions += 1
        module_id = self._info.id
        if self.behavior == "fail":
            return ModuleResult.failed(f"{module_id} failed")
        if self.behavior == "raise":
            raise ModuleRunFailure(f"{module_id} exploded")
        if self.behavior == "wait":
            return ModuleResult.needs_input(f"{module_id} waiting")
        for ref in self._outputs:
            write_output(ctx, module_id, self._info.version, ref, self.body(ref), *self.stamp(ref))
        return ModuleResult.completed(f"{module_id} wrote {len(self._outputs)} output(s)")

    def body(self, ref: ArtifactRef) -> str | dict[str, Any] | None:
        if ref.kind is ArtifactKind.JSON:
            return {"written_by": self._info.id}
        if ref.kind is ArtifactKind.DOCUMENT:
            return f"# {ref.label}\n\nWritten by {self._info.id}.\n"
        return None

    def stamp(self, ref: ArtifactRef) -> list[MetadataOption]:
        return [with_inputs(*self._inputs)]

    def is_complete(self, ctx: ModuleContext) -> bool:
        for ref in self._outputs:
            result = ctx.store.check(ref)
            if result.state is ArtifactState.MISSING and ref.optional:
                continue
            if not result.ok:
                return False
            meta = result.metadata
            if meta is not None and (
                meta.module_id != self._info.id or meta.module_version != self._info.version
            ):
                return False
        return True


class FingerprintStubModule(StubModule):
    """Publishes fingerprints from a shared, mutable mapping."""

    def __init__(self, *args: Any, fingerprints: dict[str, str], **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._fingerprints = fingerprints

    def artifact_fingerprints(self, ctx: ModuleContext) -> dict[str, str]:
        return dict(self._fingerprints)

    def stamp(self, ref: ArtifactRef) -> list[MetadataOption]:
        value = self._fingerprints.get(ref.id, "")
        return [*super().stamp(ref), with_fingerprint(ref, value)]

    def is_complete(self, ctx: ModuleContext) -> bool:
        if not super().is_complete(ctx):
            return False
        for ref in self._outputs:
            meta = ctx.store.check(ref).metadata
            if meta is None or ref.id not in self._fingerprints:
                continue
            if meta.notes.get(fingerprint_note_key(ref.id)) != self._fingerprints[ref.id]:
                return False
        return True


class WatchingStubModule(StubModule):
    """Records every invalidation event in a shared list."""

    def __init__(self, *args: Any, events: list[ArtifactInvalidation], **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._events = events

    def on_artifact_invalidation(self, ctx: ModuleContext, event: ArtifactInvalidation) -> None:
        self._events.append(event)


class WatchingFingerprintStubModule(FingerprintStubModule):
    """Fingerprint stub that also records invalidation events."""

    def __init__(self, *args: Any, events: list[ArtifactInvalidation], **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._events = events

    def on_artifact_invalidation(self, ctx: ModuleContext, event: ArtifactInvalidation) -> None:
        self._events.append(event)


def stub_factory(
    module_id: str,
    *,
    inputs: Sequence[str] = (),
    outputs: Sequence[str] = (),
    version: str = "1.0.0",
    slots: int = 1,
    exclusive: bool = False,
    behavior: str = "complete",
    fingerprints: dict[str, str] | None = None,
    events: list[ArtifactInvalidation] | None = None,
) -> ModuleFactory:
    """Registry factory for a stub module over catalog artifact ids."""
    info = ModuleInfo(
        id=module_id,
        name=module_id.replace("-", " ").title(),
        version=version,
        concurrency=Concurrency(slots=slots, exclusive=exclusive),
    )
    input_refs = [catalog.require(artifact) for artifact in inputs]
    output_refs = [catalog.require(artifact) for artifact in outputs]

    def factory(config: Mapping[str, Any]) -> StubModule:
        if fingerprints is not None and events is not None:
            return WatchingFingerprintStubModule(
                info,
                input_refs,
                output_refs,
                config,
                behavior=behavior,
                fingerprints=fingerprints,
                events=events,
            )
        if fingerprints is not None:
            return FingerprintStubModule(
                info, input_refs, output_refs, config, behavior=behavior, fingerprints=fingerprints
            )
        if events is not None:
            return WatchingStubModule(
                info, input_refs, output_refs, config, behavior=behavior, events=events
            )
        return StubModule(info, input_refs, output_refs, config, behavior=behavior)

    return factory


# ---------------------------------------------------------------------------
# Terminal
# ---------------------------------------------------------------------------


class RecordingTerminal:
    """Terminal double that records calls instead of driving tmux."""

    def __init__(self, *, fail_create: bool = False, fail_send: bool = False) -> None:
        self.created: list[tuple[str, str]] = []
        self.prompts: list[tuple[str, str, dict[str, str]]] = []
        self.killed: list[str] = []
        self._fail_create = fail_create
        self._fail_send = fail_send

    def create_window(self, name: str, directory: str) -> None:
        if self._fail_create:
            raise RuntimeError("no tmux server")
        self.created.append((name, directory))

    def send_prompt(self, window: str, prompt: str, env: Mapping[str, str]) -> None:
        if self._fail_send:
            raise RuntimeError("send-keys failed")
        self.prompts.append((window, prompt, dict(env)))

    def kill_window(self, name: str) -> None:
        self.killed.append(name)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_fs() -> MemoryFileSystem:
    return MemoryFileSystem()


@pytest.fixture
def layout(memory_fs: MemoryFileSystem) -> WorkflowLayout:
    """Initialized layout for a project at ``/work/app`` on the memory filesystem."""
    layout = WorkflowLayout.for_project(PROJECT_DIR)
    layout.initialize(memory_fs)
    return layout


@pytest.fixture
def store(layout: WorkflowLayout, memory_fs: MemoryFileSystem, clock: FakeClock) -> ArtifactStore:
    return ArtifactStore(layout, memory_fs, clock)


@pytest.fixture
def settings() -> LatticeSettings:
    return LatticeSettings(
        project_dir=PROJECT_DIR,
        max_parallel=0,
        max_attempts=0,
        poll_interval_seconds=0.01,
        wait_timeout_seconds=0,
    )


@pytest.fixture
def ctx(
    layout: WorkflowLayout,
    store: ArtifactStore,
    settings: LatticeSettings,
    clock: FakeClock,
) -> ModuleContext:
    return ModuleContext(layout, store, settings, clock)


@pytest.fixture
def registry() -> ModuleRegistry:
    return ModuleRegistry()


@pytest.fixture
def repository(layout: WorkflowLayout, memory_fs: MemoryFileSystem) -> SnapshotRepository:
    return SnapshotRepository(layout.snapshot_path, memory_fs, lock_timeout=1.0)


@pytest.fixture
def engine(
    registry: ModuleRegistry,
    repository: SnapshotRepository,
    settings: LatticeSettings,
    clock: FakeClock,
) -> Engine:
    return Engine(registry, repository, settings=settings, clock=clock)


@pytest.fixture
def make_stub() -> Callable[..., ModuleFactory]:
    """Factory fixture: see :func:`stub_factory`."""
    return stub_factory


@pytest.fixture
def make_workflow() -> Callable[..., WorkflowDefinition]:
    """Factory fixture: build a WorkflowDefinition from node mappings."""

    def _factory(
        modules: list[dict[str, Any]],
        workflow_id: str = "test-flow",
        **runtime: Any,
    ) -> WorkflowDefinition:
        return WorkflowDefinition.model_validate(
            {
                "id": workflow_id,
                "name": workflow_id.replace("-", " ").title(),
                "modules": modules,
                "runtime": runtime,
            }
        )

    return _factory


@pytest.fixture
def terminal() -> RecordingTerminal:
    return RecordingTerminal()


@pytest.fixture
def make_terminal() -> Callable[..., RecordingTerminal]:
    """Factory fixture: a RecordingTerminal, optionally failing."""
    return RecordingTerminal
