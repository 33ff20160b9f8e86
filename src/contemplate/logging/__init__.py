"""
Logging setup for Contemplate.

Modules log through ``logging.getLogger(__name__)``; ``configure_logging``
routes the package's records (and captured warnings) to stderr.
"""

from contemplate.logging.setup import OFF, configure_logging, level_for

__all__ = ["OFF", "configure_logging", "level_for"]
