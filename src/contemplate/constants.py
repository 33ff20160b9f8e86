"""
Shared constants for Contemplate.

This module provides a single source of truth for default values and
well-known names that are used across multiple modules.
"""

# Markers
STREAM_MARKER = "-"
"""Template input/output marker meaning standard input/output."""

PARENT_TARGET = ":parent"
"""Signal target naming the parent process (the --and-then-exec target)."""

# Environment variables
ENV_PREFIX = "CONTEMPLATE_"
"""Prefix for all settings read from the environment."""

ENV_DATASOURCES = "CONTEMPLATE_DATASOURCES"
"""Comma-separated ``kind[:argument]`` data source declarations."""

ENV_CONTEMPLATED_FILES = "CONTEMPLATED_FILES"
"""Set on reload-hook children: comma-separated paths changed this cycle."""

# Watch defaults
DEFAULT_DEBOUNCE_MS = 500
"""Coalescing window for bursts of change events (milliseconds)."""

DEFAULT_HOOK_TERMINATE_TIMEOUT = 10.0
"""Seconds to wait for a superseded reload hook after each signal.

A hook still running after SIGINT and this wait is sent SIGKILL and waited
on for the same bound again before the dispatcher gives up.
"""

# Kubernetes
DEFAULT_K8S_NAMESPACE = "default"
"""Namespace used when neither flags, kubeconfig nor the service account name one."""

SERVICE_ACCOUNT_NAMESPACE_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"
"""In-cluster namespace file mounted with the service account token."""

K8S_WATCH_TIMEOUT_SECONDS = 60
"""Server-side timeout of one watch stream before it is reopened."""

K8S_MAX_BACKOFF_SECONDS = 30
"""Cap for exponential backoff between failed watch reconnects."""

# Supported data file extensions, mapped to their parser
FILE_FORMATS: dict[str, str] = {
    ".json": "json",
    ".toml": "toml",
    ".yaml": "yaml",
    ".yml": "yaml",
}
