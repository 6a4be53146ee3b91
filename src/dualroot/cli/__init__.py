"""
dualroot CLI Module.

Provides the command-line interface for dualroot.
"""

from dualroot.cli.main import cli, main

__all__ = ["main", "cli"]
