"""Lattice monitor -- read-only rendering of the persisted engine snapshot.

The monitor never keeps state of its own; every render re-reads
``.lattice/state/engine.json`` through the engine's repository.
"""
