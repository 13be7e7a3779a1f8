"""Lattice CLI subcommands."""
