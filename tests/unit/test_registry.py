"""Tests for ModuleRegistry and the BaseModule run contract."""

from __future__ import annotations

import threading

import pytest

from lattice.core.module import Fingerprinter, InvalidationHandler, Module
from lattice.core.registry import ModuleRegistry
from lattice.errors import DefinitionError, DuplicateModuleError, UnknownModuleError
from lattice.models.modules import ModuleStatus


class TestRegister:
    def test_register_and_resolve(self, registry: ModuleRegistry, make_stub):
        registry.register("anchor-docs", make_stub("anchor-docs", outputs=["commission-doc"]))
        module = registry.resolve("anchor-docs")
        assert isinstance(module, Module)
        assert module.info().id == "anchor-docs"
        assert [ref.id for ref in module.outputs()] == ["commission-doc"]

    def test_empty_id_rejected(self, registry: ModuleRegistry, make_stub):
        with pytest.raises(DefinitionError):
            registry.register("  ", make_stub("x"))

    def test_missing_factory_rejected(self, registry: ModuleRegistry):
        with pytest.raises(DefinitionError):
            registry.register("x", None)

    def test_duplicate_rejected(self, registry: ModuleRegistry, make_stub):
        registry.register("x", make_stub("x"))
        with pytest.raises(DuplicateModuleError):
            registry.register("x", make_stub("x"))

    def test_unknown_module(self, registry: ModuleRegistry):
        with pytest.raises(UnknownModuleError):
            registry.resolve("nope")

    def test_factory_building_wrong_id(self, registry: ModuleRegistry, make_stub):
        registry.register("alias", make_stub("real-id"))
        with pytest.raises(DefinitionError, match="real-id"):
            registry.resolve("alias")

    def test_factory_returning_none(self, registry: ModuleRegistry):
        registry.register("empty", lambda config: None)
        with pytest.raises(DefinitionError):
            registry.resolve("empty")

    def test_ids_sorted(self, registry: ModuleRegistry, make_stub):
        for module_id in ("zeta", "alpha", "mid"):
            registry.register(module_id, make_stub(module_id))
        assert registry.ids() == ["alpha", "mid", "zeta"]
        assert len(registry) == 3
        assert "mid" in registry

    def test_unregister(self, registry: ModuleRegistry, make_stub):
        registry.register("x", make_stub("x"))
        assert registry.unregister("x") is True
        assert registry.unregister("x") is False
        assert "x" not in registry

    def test_config_passed_to_factory(self, registry: ModuleRegistry, make_stub):
        registry.register("x", make_stub("x"))
        module = registry.resolve("x", {"behavior": "wait"})
        assert module.config == {"behavior": "wait"}

    def test_concurrent_registration(self, registry: ModuleRegistry, make_stub):
        errors: list[Exception] = []

        def register(index: int) -> None:
            try:
                registry.register(f"m-{index}", make_stub(f"m-{index}"))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=register, args=(i,)) for i in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert not errors
        assert len(registry) == 20


class TestCapabilities:
    def test_plain_stub_has_no_optional_capabilities(self, make_stub):
        module = make_stub("x")({})
        assert not isinstance(module, Fingerprinter)
        assert not isinstance(module, InvalidationHandler)

    def test_optional_capabilities_detected(self, make_stub):
        assert isinstance(make_stub("x", fingerprints={})({}), Fingerprinter)
        assert isinstance(make_stub("x", events=[])({}), InvalidationHandler)
        both = make_stub("x", fingerprints={}, events=[])({})
        assert isinstance(both, Fingerprinter) and isinstance(both, InvalidationHandler)


class TestBaseModuleRun:
    def test_run_executes_then_no_op(self, ctx, make_stub):
        module = make_stub("anchor-docs", outputs=["commission-doc", "beads-created"])({})
        assert module.run(ctx).status is ModuleStatus.COMPLETED
        assert module.is_complete(ctx) is True
        assert module.run(ctx).status is ModuleStatus.NO_OP
        assert module.executions == 1

    def test_no_op_leaves_filesystem_untouched(self, ctx, memory_fs, make_stub):
        module = make_stub("anchor-docs", outputs=["commission-doc"])({})
        module.run(ctx)
        before = dict(memory_fs.files)
        assert module.run(ctx).status is ModuleStatus.NO_OP
        assert memory_fs.files == before

    def test_stale_fingerprint_reexecutes(self, ctx, make_stub):
        fingerprints = {"commission-doc": "h1"}
        module = make_stub("anchor-docs", outputs=["commission-doc"], fingerprints=fingerprints)({})
        module.run(ctx)
        assert module.stale_fingerprints(ctx) == []
        fingerprints["commission-doc"] = "h2"
        assert module.stale_fingerprints(ctx) == ["commission-doc"]
        assert module.run(ctx).status is ModuleStatus.COMPLETED
        assert module.stale_fingerprints(ctx) == []
        assert module.executions == 2

    def test_plain_module_has_no_stale_fingerprints(self, ctx, make_stub):
        module = make_stub("anchor-docs", outputs=["commission-doc"])({})
        module.run(ctx)
        assert module.stale_fingerprints(ctx) == []
