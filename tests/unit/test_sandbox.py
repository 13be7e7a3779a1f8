"""Tests for the interpreted plugin sandbox."""

from __future__ import annotations

import textwrap

import pytest

from lattice.errors import PluginDefinitionError
from lattice.plugins.sandbox import check_source, evaluate


def source(text: str) -> str:
    return textwrap.dedent(text).lstrip()


VALID = source(
    """
    import json

    def ModuleDefinitions():
        outputs = [{"artifact": name} for name in ("review-skeptic",)]
        return [
            {
                "id": "api-review",
                "version": "1.0.0",
                "skill": {"slug": "lattice-review", "prompt": "Review {inputs}"},
                "outputs": outputs,
                "config": json.loads('{"depth": 2}'),
            }
        ]
    """
)


class TestEvaluate:
    def test_returns_entries(self):
        entries = evaluate(VALID, "plugins.py")
        assert len(entries) == 1
        assert entries[0]["id"] == "api-review"
        assert entries[0]["config"] == {"depth": 2}

    def test_tuple_without_error(self):
        text = source(
            """
            def ModuleDefinitions():
                return [{"id": "x"}], ""
            """
        )
        assert evaluate(text, "x.py") == [{"id": "x"}]

    def test_tuple_with_error(self):
        text = source(
            """
            def ModuleDefinitions():
                return [], "not configured"
            """
        )
        with pytest.raises(PluginDefinitionError, match="not configured"):
            evaluate(text, "x.py")

    def test_runtime_failure_wrapped(self):
        text = source(
            """
            def ModuleDefinitions():
                return [1 / 0]
            """
        )
        with pytest.raises(PluginDefinitionError, match="failed"):
            evaluate(text, "x.py")

    def test_must_return_list(self):
        text = source(
            """
            def ModuleDefinitions():
                return {"id": "x"}
            """
        )
        with pytest.raises(PluginDefinitionError, match="list"):
            evaluate(text, "x.py")

    def test_entries_must_be_mappings(self):
        text = source(
            """
            def ModuleDefinitions():
                return [{"id": "ok"}, "nope"]
            """
        )
        with pytest.raises(PluginDefinitionError, match="x.py#1"):
            evaluate(text, "x.py")

    def test_unlisted_builtin_unavailable(self):
        text = source(
            """
            def ModuleDefinitions():
                return [print("hi")]
            """
        )
        with pytest.raises(PluginDefinitionError, match="failed"):
            evaluate(text, "x.py")


class TestStaticChecks:
    @pytest.mark.parametrize(
        "body, problem",
        [
            ("import os", "'os'"),
            ("import json.decoder", "json.decoder"),
            ("from os import path", "'os'"),
            ("from json import *", "'\\*'"),
            ("from . import sibling", "not allowed"),
            ("x = ().__class__", "__class__"),
            ("x = open('secrets')", "'open'"),
            ("x = eval('1')", "'eval'"),
            ("x = __import__('os')", "__import__"),
            ("x = '{}'.format(1)", "'format'"),
            ("x = getattr(1, 'real')", "'getattr'"),
        ],
    )
    def test_rejected(self, body: str, problem: str):
        text = f"{body}\n\ndef ModuleDefinitions():\n    return []\n"
        with pytest.raises(PluginDefinitionError, match=problem):
            check_source(text, "bad.py")

    def test_missing_entry_point(self):
        with pytest.raises(PluginDefinitionError, match="missing ModuleDefinitions"):
            check_source("x = 1\n", "bad.py")

    def test_entry_point_takes_no_arguments(self):
        with pytest.raises(PluginDefinitionError, match="no arguments"):
            check_source("def ModuleDefinitions(registry):\n    return []\n", "bad.py")

    def test_syntax_error(self):
        with pytest.raises(PluginDefinitionError, match="syntax error"):
            check_source("def ModuleDefinitions(:\n", "bad.py")

    def test_error_names_source(self):
        with pytest.raises(PluginDefinitionError, match="^bad.py: line 1"):
            check_source("import os\n", "bad.py")

    def test_allowed_imports_pass(self):
        text = "import math\nfrom itertools import chain\n\ndef ModuleDefinitions():\n    return []\n"
        assert check_source(text, "ok.py") is not None
