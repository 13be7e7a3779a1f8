"""Lattice CLI -- Typer-based command-line interface.

Provides the ``lattice`` command with subcommands for initializing a
project, starting and resuming workflow runs, claiming and reporting work,
running a worker loop, and inspecting modules and plugins.

All output uses Rich for formatted terminal display.
"""
