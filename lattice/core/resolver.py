"""Resolver: classify every workflow node from the state of its artifacts.

For each node, in declared order:

1. Fingerprints are computed when the module is a ``Fingerprinter``.
2. Every declared output is checked; stale or unusable outputs produce an
   :class:`ArtifactInvalidation` delivered to the module's handler.
3. ``is_complete`` is consulted.

A node is COMPLETE when ``is_complete`` holds and every required output is
ready (and fresh when fingerprinted).  Otherwise it is READY when every
dependency is COMPLETE and every required input is ready, BLOCKED when
not, and ERROR when any check, fingerprint, handler, or ``is_complete``
call failed.

The resolver only classifies; it never selects work.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from lattice.core.definition import normalize_definition
from lattice.core.graph import DependencyGraph
from lattice.core.module import (
    Fingerprinter,
    InvalidationHandler,
    Module,
    ModuleContext,
    fingerprint_note_key,
)
from lattice.core.registry import ModuleRegistry
from lattice.errors import DefinitionError
from lattice.models.artifacts import (
    ArtifactRef,
    ArtifactState,
    ArtifactStatus,
    CheckResult,
)
from lattice.models.engine import NodeStatus
from lattice.models.modules import ArtifactInvalidation, InvalidationReason, ModuleInfo
from lattice.models.workflow import WorkflowDefinition

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class ArtifactReport(BaseModel):
    """Resolver view of one declared output."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    check: CheckResult
    status: ArtifactStatus
    reason: InvalidationReason | None = None
    stored_fingerprint: str = ""
    expected_fingerprint: str = ""

    @property
    def satisfied(self) -> bool:
        if self.status in (ArtifactStatus.READY, ArtifactStatus.FRESH):
            return True
        return self.check.ref.optional and self.status is ArtifactStatus.MISSING


class NodeReport(BaseModel):
    """Classification of one workflow node."""

    model_config = ConfigDict(frozen=True)

    instance_id: str
    module_id: str
    info: ModuleInfo
    depends_on: list[str] = Field(default_factory=list)
    status: NodeStatus = NodeStatus.PENDING
    blocked_by: list[str] = Field(default_factory=list)
    missing_inputs: list[str] = Field(default_factory=list)
    error: str = ""
    outputs: dict[str, ArtifactReport] = Field(default_factory=dict)


class Resolution(BaseModel):
    """Ordered node reports from one resolver pass."""

    model_config = ConfigDict(frozen=True)

    nodes: list[NodeReport] = Field(default_factory=list)

    def node(self, instance_id: str) -> NodeReport | None:
        for node in self.nodes:
            if node.instance_id == instance_id:
                return node
        return None

    def status_map(self) -> dict[str, NodeStatus]:
        return {node.instance_id: node.status for node in self.nodes}

    def runnable(self) -> list[str]:
        return [node.instance_id for node in self.nodes if node.status is NodeStatus.READY]


class _Observation:
    """First-pass result for a node, before dependencies are considered."""

    __slots__ = ("complete", "error", "outputs")

    def __init__(self) -> None:
        self.complete = False
        self.error = ""
        self.outputs: dict[str, ArtifactReport] = {}


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class Resolver:
    """Instantiates a workflow's modules and classifies its nodes.

    Raises ``DefinitionError`` when the definition is invalid, a module id
    is not registered, or two different modules declare the same output.
    """

    def __init__(self, definition: WorkflowDefinition, registry: ModuleRegistry) -> None:
        self._definition = normalize_definition(definition)
        self._graph = DependencyGraph(
            self._definition.instance_ids(),
            {ref.instance_id: ref.depends_on for ref in self._definition.modules},
        )
        self._modules: dict[str, Module] = {}
        for ref in self._definition.modules:
            self._modules[ref.instance_id] = registry.resolve(ref.module_id, ref.config)
        self._check_single_writer()

    def _check_single_writer(self) -> None:
        # Keyed on instance ids: one module used twice is two writers.
        writers: dict[str, str] = {}
        for instance_id, module in self._modules.items():
            for ref in module.outputs():
                owner = writers.setdefault(ref.id, instance_id)
                if owner != instance_id:
                    raise DefinitionError(
                        f"workflow {self._definition.id}: artifact {ref.id} is written by "
                        f"both {owner} and {instance_id}"
                    )

    @property
    def definition(self) -> WorkflowDefinition:
        return self._definition

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def module(self, instance_id: str) -> Module:
        try:
            return self._modules[instance_id]
        except KeyError:
            raise DefinitionError(f"unknown workflow node {instance_id!r}") from None

    def modules(self) -> Mapping[str, Module]:
        return dict(self._modules)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def resolve(self, ctx: ModuleContext) -> Resolution:
        observations = {
            instance_id: self._observe(ctx, instance_id, self._modules[instance_id])
            for instance_id in self._graph.order
        }
        input_checks: dict[str, CheckResult] = {}
        reports: list[NodeReport] = []
        for ref in self._definition.modules:
            report = self._classify(ctx, ref.instance_id, observations, input_checks)
            logger.debug("%s -> %s", report.instance_id, report.status.value)
            reports.append(report)
        return Resolution(nodes=reports)

    def _observe(self, ctx: ModuleContext, instance_id: str, module: Module) -> _Observation:
        obs = _Observation()
        info = module.info()

        expected: dict[str, str] = {}
        if isinstance(module, Fingerprinter):
            try:
                expected = dict(module.artifact_fingerprints(ctx) or {})
            except Exception as exc:
                logger.warning("%s: fingerprint computation failed: %s", instance_id, exc)
                obs.error = f"fingerprint computation failed: {exc}"
                return obs

        for ref in module.outputs():
            report = self._check_output(ctx, info, ref, expected)
            obs.outputs[ref.id] = report
            if report.satisfied or report.reason is None:
                continue
            if isinstance(module, InvalidationHandler):
                event = ArtifactInvalidation(
                    ref=ref,
                    state=report.check.state,
                    reason=report.reason,
                    stored_version=report.check.metadata.module_version
                    if report.check.metadata
                    else "",
                    expected_version=info.version,
                    stored_fingerprint=report.stored_fingerprint,
                    expected_fingerprint=report.expected_fingerprint,
                    metadata=report.check.metadata,
                    error=report.check.error_message,
                )
                try:
                    module.on_artifact_invalidation(ctx, event)
                except Exception as exc:
                    logger.warning("%s: invalidation handler failed: %s", instance_id, exc)
                    obs.error = f"invalidation handler failed for {ref.id}: {exc}"
                    return obs
            if report.status is ArtifactStatus.ERROR and not obs.error:
                obs.error = f"output {ref.id}: {report.check.error_message}"

        if obs.error:
            return obs
        try:
            complete = bool(module.is_complete(ctx))
        except Exception as exc:
            logger.warning("%s: completion check failed: %s", instance_id, exc)
            obs.error = f"completion check failed: {exc}"
            return obs
        obs.complete = complete and all(r.satisfied for r in obs.outputs.values())
        return obs

    @staticmethod
    def _check_output(
        ctx: ModuleContext,
        info: ModuleInfo,
        ref: ArtifactRef,
        expected: Mapping[str, str],
    ) -> ArtifactReport:
        result = ctx.store.check(ref)
        if result.state is ArtifactState.MISSING:
            return ArtifactReport(
                check=result, status=ArtifactStatus.MISSING, reason=InvalidationReason.MISSING
            )
        if result.state is ArtifactState.INVALID:
            return ArtifactReport(
                check=result,
                status=ArtifactStatus.INVALID,
                reason=InvalidationReason.INVALID_METADATA,
            )
        if result.state is ArtifactState.ERROR:
            return ArtifactReport(
                check=result, status=ArtifactStatus.ERROR, reason=InvalidationReason.CHECK_ERROR
            )

        meta = result.metadata
        if meta is None:
            # Markers and directories: existence is the contract.
            return ArtifactReport(check=result, status=ArtifactStatus.READY)
        if meta.module_id != info.id:
            return ArtifactReport(
                check=result,
                status=ArtifactStatus.INVALID,
                reason=InvalidationReason.INVALID_METADATA,
            )
        if meta.module_version != info.version:
            return ArtifactReport(
                check=result,
                status=ArtifactStatus.OUTDATED,
                reason=InvalidationReason.VERSION_MISMATCH,
            )
        if ref.id in expected:
            want = expected[ref.id]
            stored = meta.notes.get(fingerprint_note_key(ref.id), "")
            if stored != want:
                return ArtifactReport(
                    check=result,
                    status=ArtifactStatus.OUTDATED,
                    reason=InvalidationReason.FINGERPRINT_MISMATCH,
                    stored_fingerprint=stored,
                    expected_fingerprint=want,
                )
            return ArtifactReport(
                check=result,
                status=ArtifactStatus.FRESH,
                stored_fingerprint=stored,
                expected_fingerprint=want,
            )
        return ArtifactReport(check=result, status=ArtifactStatus.READY)

    def _classify(
        self,
        ctx: ModuleContext,
        instance_id: str,
        observations: Mapping[str, _Observation],
        input_checks: dict[str, CheckResult],
    ) -> NodeReport:
        module = self._modules[instance_id]
        info = module.info()
        obs = observations[instance_id]
        deps = self._graph.dependencies(instance_id)
        base = {
            "instance_id": instance_id,
            "module_id": info.id,
            "info": info,
            "depends_on": deps,
            "outputs": obs.outputs,
        }
        if obs.error:
            return NodeReport(**base, status=NodeStatus.ERROR, error=obs.error)
        if obs.complete:
            return NodeReport(**base, status=NodeStatus.COMPLETE)

        blocked_by = [dep for dep in deps if not observations[dep].complete]
        missing: list[str] = []
        for ref in module.inputs():
            if ref.id not in input_checks:
                input_checks[ref.id] = ctx.store.check(ref)
            result = input_checks[ref.id]
            if result.state is ArtifactState.ERROR:
                return NodeReport(
                    **base,
                    status=NodeStatus.ERROR,
                    error=f"input {ref.id}: {result.error_message}",
                )
            if result.state is not ArtifactState.READY and not ref.optional:
                missing.append(ref.id)

        if blocked_by or missing:
            return NodeReport(
                **base, status=NodeStatus.BLOCKED, blocked_by=blocked_by, missing_inputs=missing
            )
        return NodeReport(**base, status=NodeStatus.READY)
