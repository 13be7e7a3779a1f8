"""Lattice runtime core: artifacts, modules, resolution, scheduling, engine."""
