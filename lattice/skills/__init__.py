"""Bundled skill payloads (``<slug>/SKILL.md``), read via importlib.resources."""
