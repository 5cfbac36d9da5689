"""Dockhand CLI: Typer-based command-line interface.

Provides the ``dockhand`` command with subcommands for inspecting the
stage plan for a trigger (``plan``) and executing a run (``deploy``).

All output uses Rich for formatted terminal display.
"""
