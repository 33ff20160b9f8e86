"""
Contemplate - cloud-native configuration templating.

Renders configuration templates from layered data sources (files,
environment variables, Kubernetes ConfigMaps and Secrets), keeps the
output in sync while running, and notifies or supervises the process
that consumes it.
"""

import importlib.metadata as _metadata

# Version is defined in pyproject.toml - read it and parse into tuple (primary representation)
_raw_version = _metadata.version("contemplate")
__version_info__: tuple[int, int, int] = tuple(int(x) for x in _raw_version.split(".")[:3])  # type: ignore[assignment]
__version__: str = ".".join(str(x) for x in __version_info__)
__author__ = "Contemplate Contributors"

__all__ = ["__version__", "__version_info__"]
