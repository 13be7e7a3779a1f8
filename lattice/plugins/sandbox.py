"""Sandbox for interpreted plugin definitions (``.lattice/modules/*.py``).

An interpreted file declares one zero-argument function::

    def ModuleDefinitions():
        return [
            {"id": "api-review", "version": "1.0.0", ...},
        ]

It may also return ``(definitions, error)``; a non-empty ``error`` fails
the load.

The file is checked statically before it runs:

- imports limited to :data:`ALLOWED_IMPORTS` (no submodules, no relative
  imports, no ``*``)
- no attribute starting with ``_`` and no dunder names
- none of :data:`FORBIDDEN_NAMES` or :data:`FORBIDDEN_ATTRIBUTES`

It then runs with a reduced builtins table.  Imported modules are handed
over as proxies holding only their public, non-module attributes.  The
sandbox bounds what a definition file can reach; it does not bound CPU
time.
"""

from __future__ import annotations

import ast
import builtins
import importlib
import logging
from types import ModuleType, SimpleNamespace
from typing import Any

from lattice.errors import LatticeError, PluginDefinitionError

logger = logging.getLogger(__name__)

ENTRY_POINT = "ModuleDefinitions"

ALLOWED_IMPORTS = frozenset(
    {
        "collections",
        "copy",
        "datetime",
        "decimal",
        "fractions",
        "functools",
        "itertools",
        "json",
        "math",
        "re",
        "statistics",
        "textwrap",
    }
)

FORBIDDEN_NAMES = frozenset(
    {
        "breakpoint",
        "compile",
        "delattr",
        "eval",
        "exec",
        "exit",
        "getattr",
        "globals",
        "hasattr",
        "help",
        "input",
        "locals",
        "memoryview",
        "open",
        "quit",
        "setattr",
        "type",
        "vars",
    }
)

# Frame and code access, plus format-string attribute lookups.
FORBIDDEN_ATTRIBUTES = frozenset(
    {
        "ag_code",
        "ag_frame",
        "cr_code",
        "cr_frame",
        "f_back",
        "f_builtins",
        "f_code",
        "f_globals",
        "f_locals",
        "format",
        "format_map",
        "gi_code",
        "gi_frame",
        "mro",
        "tb_frame",
        "tb_next",
    }
)

_SAFE_BUILTINS = {
    name: getattr(builtins, name)
    for name in (
        "abs",
        "all",
        "any",
        "bool",
        "dict",
        "divmod",
        "enumerate",
        "filter",
        "float",
        "frozenset",
        "int",
        "isinstance",
        "len",
        "list",
        "map",
        "max",
        "min",
        "range",
        "repr",
        "reversed",
        "round",
        "set",
        "sorted",
        "str",
        "sum",
        "tuple",
        "zip",
        "Exception",
        "KeyError",
        "TypeError",
        "ValueError",
    )
}


# ---------------------------------------------------------------------------
# Static checks
# ---------------------------------------------------------------------------


def _violation(node: ast.AST) -> str | None:
    if isinstance(node, ast.Import):
        for alias in node.names:
            if alias.name not in ALLOWED_IMPORTS:
                return f"import of {alias.name!r} is not allowed"
    elif isinstance(node, ast.ImportFrom):
        if node.level or node.module not in ALLOWED_IMPORTS:
            return f"import from {node.module or '.'!r} is not allowed"
        for alias in node.names:
            if alias.name == "*" or alias.name.startswith("_"):
                return f"import of {alias.name!r} from {node.module} is not allowed"
    elif isinstance(node, ast.Attribute):
        if node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES:
            return f"attribute {node.attr!r} is not allowed"
    elif isinstance(node, ast.Name):
        if node.id.startswith("__") or node.id in FORBIDDEN_NAMES:
            return f"name {node.id!r} is not allowed"
    elif isinstance(node, (ast.Global, ast.Nonlocal)):
        return "global and nonlocal statements are not allowed"
    return None


def check_source(source: str, path: str) -> ast.Module:
    """Parse ``source`` and enforce the static rules; returns the AST."""
    try:
        tree = ast.parse(source, filename=path)
    except SyntaxError as exc:
        raise PluginDefinitionError(f"syntax error on line {exc.lineno}: {exc.msg}", path) from exc

    for node in ast.walk(tree):
        problem = _violation(node)
        if problem is not None:
            line = getattr(node, "lineno", 0)
            raise PluginDefinitionError(f"line {line}: {problem}", path)

    entry = [
        node
        for node in tree.body
        if isinstance(node, ast.FunctionDef) and node.name == ENTRY_POINT
    ]
    if not entry:
        raise PluginDefinitionError(f"missing {ENTRY_POINT}() function", path)
    args = entry[0].args
    if args.args or args.posonlyargs or args.kwonlyargs or args.vararg or args.kwarg:
        raise PluginDefinitionError(f"{ENTRY_POINT}() must take no arguments", path)
    return tree


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _proxy(module: ModuleType) -> SimpleNamespace:
    return SimpleNamespace(
        **{
            name: value
            for name, value in vars(module).items()
            if not name.startswith("_") and not isinstance(value, ModuleType)
        }
    )


def _guarded_import(
    name: str,
    globals: dict[str, Any] | None = None,
    locals: dict[str, Any] | None = None,
    fromlist: tuple[str, ...] = (),
    level: int = 0,
) -> SimpleNamespace:
    if level or name not in ALLOWED_IMPORTS:
        raise ImportError(f"import of {name!r} is not allowed")
    return _proxy(importlib.import_module(name))


def _restricted_builtins() -> dict[str, Any]:
    return {**_SAFE_BUILTINS, "__import__": _guarded_import}


def evaluate(source: str, path: str) -> list[dict[str, Any]]:
    """Run ``ModuleDefinitions()`` from ``source`` and return its entries.

    Raises
    ------
    PluginDefinitionError
        When the source breaks a static rule, fails at runtime, reports an
        error, or returns something other than a list of mappings.
    """
    tree = check_source(source, path)
    namespace: dict[str, Any] = {"__builtins__": _restricted_builtins(), "__name__": "lattice_plugin"}
    try:
        exec(compile(tree, path, "exec"), namespace)
        result = namespace[ENTRY_POINT]()
    except LatticeError:
        raise
    except Exception as exc:
        raise PluginDefinitionError(f"{ENTRY_POINT}() failed: {exc}", path) from exc

    if isinstance(result, tuple):
        if len(result) != 2:
            raise PluginDefinitionError(f"{ENTRY_POINT}() must return definitions or (definitions, error)", path)
        result, error = result
        if error:
            raise PluginDefinitionError(f"{ENTRY_POINT}() reported: {error}", path)
    if not isinstance(result, list):
        raise PluginDefinitionError(f"{ENTRY_POINT}() must return a list", path)
    entries: list[dict[str, Any]] = []
    for index, entry in enumerate(result):
        if not isinstance(entry, dict):
            raise PluginDefinitionError(f"entry {index} is not a mapping", f"{path}#{index}")
        entries.append(entry)
    logger.debug("Evaluated %d definition(s) from %s", len(entries), path)
    return entries
