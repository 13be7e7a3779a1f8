"""Module registry: factories keyed by module id.

Thread-safe.  Built-in modules and plugin definitions register factories
at startup; the engine resolves one instance per workflow node.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

import pydantic

from lattice.core.module import Module, ModuleFactory
from lattice.errors import DefinitionError, DuplicateModuleError, UnknownModuleError
from lattice.models.modules import ModuleInfo

logger = logging.getLogger(__name__)


class ModuleRegistry:
    """Thread-safe map of ``module_id -> factory(config) -> Module``."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._factories: dict[str, ModuleFactory] = {}

    def register(self, module_id: str, factory: ModuleFactory) -> None:
        """Register ``factory`` under ``module_id``.

        Raises ``DefinitionError`` for an empty id or missing factory and
        ``DuplicateModuleError`` when the id is already taken.
        """
        module_id = (module_id or "").strip()
        if not module_id:
            raise DefinitionError("module id is required")
        if factory is None:
            raise DefinitionError(f"module {module_id!r}: factory is required")
        with self._lock:
            if module_id in self._factories:
                raise DuplicateModuleError(f"module {module_id!r} already registered")
            self._factories[module_id] = factory
        logger.debug("Registered module: %s", module_id)

    def unregister(self, module_id: str) -> bool:
        """Remove ``module_id``; returns ``True`` if it was registered."""
        with self._lock:
            removed = self._factories.pop(module_id, None) is not None
        if removed:
            logger.debug("Unregistered module: %s", module_id)
        return removed

    def resolve(self, module_id: str, config: Mapping[str, Any] | None = None) -> Module:
        """Construct the module registered as ``module_id`` and validate its info."""
        with self._lock:
            factory = self._factories.get(module_id)
        if factory is None:
            raise UnknownModuleError(f"module {module_id!r} is not registered")
        try:
            module = factory(dict(config or {}))
        except pydantic.ValidationError as exc:
            raise DefinitionError(f"module {module_id!r}: invalid definition: {exc}") from exc
        if module is None:
            raise DefinitionError(f"module {module_id!r}: factory returned nothing")
        info = module.info()
        if not isinstance(info, ModuleInfo):
            raise DefinitionError(f"module {module_id!r}: info() must return ModuleInfo")
        if info.id != module_id:
            raise DefinitionError(
                f"module {module_id!r}: factory built module {info.id!r}"
            )
        return module

    def ids(self) -> list[str]:
        """Sorted snapshot of registered ids."""
        with self._lock:
            return sorted(self._factories)

    def __contains__(self, module_id: object) -> bool:
        with self._lock:
            return module_id in self._factories

    def __len__(self) -> int:
        with self._lock:
            return len(self._factories)
