"""didiff CLI — Typer-based command-line interface.

Provides the ``didiff`` command with subcommands for creating and applying
image patches, listing images, and resolving references.

All output uses Rich for formatted terminal display.
"""
