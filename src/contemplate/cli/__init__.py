"""
CLI module for Contemplate.

Provides the command-line interface using Click. The console script entry
point is ``contemplate.cli.main:main``.
"""

from contemplate.cli.main import cli

__all__ = ["cli"]
