"""Workflow definitions shipped with Lattice (read via importlib.resources)."""
