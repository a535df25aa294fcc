"""Command-line entry points: ``rollcall`` and ``rollcall-copy``."""
