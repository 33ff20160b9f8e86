"""
Data source declarations.

Sources are declared on the command line (``--file``, ``--env``, ...) and in
the ``CONTEMPLATE_DATASOURCES`` environment variable, whose value is a
comma-separated list of ``kind[:argument]`` entries:

    CONTEMPLATE_DATASOURCES="file:/etc/app/defaults.yml,env:APP,k8s-configmap:app"

Environment-declared sources come first, so command-line sources override
them.
"""

from __future__ import annotations

import typing as _typing

import pydantic as _pydantic

import contemplate.errors as errors

SourceKind: _typing.TypeAlias = _typing.Literal["file", "env", "k8s-configmap", "k8s-secret"]

_KIND_ALIASES: dict[str, SourceKind] = {
    "file": "file",
    "env": "env",
    "environment": "env",
    "k8s-configmap": "k8s-configmap",
    "k8s-secret": "k8s-secret",
}


class DataSourceSpec(_pydantic.BaseModel):
    """A single declared data source."""

    model_config = _pydantic.ConfigDict(frozen=True, extra="forbid")

    kind: SourceKind
    """Which provider collects this source."""

    argument: str | None = None
    """File path, environment prefix, or Kubernetes resource name."""

    namespace: str | None = None
    """Kubernetes namespace override (k8s kinds only)."""

    @_pydantic.model_validator(mode="after")
    def _validate_argument(self) -> DataSourceSpec:
        if self.kind != "env" and not self.argument:
            raise ValueError(f"{self.kind} sources require an argument")
        return self

    @property
    def label(self) -> str:
        """Display form, e.g. ``file:data.yml`` or ``env``."""
        if self.argument:
            return f"{self.kind}:{self.argument}"
        return self.kind


def make_spec(
    kind: str,
    argument: str | None = None,
    *,
    namespace: str | None = None,
) -> DataSourceSpec:
    """
    Build a spec from a kind name (aliases allowed) and optional argument.

    Raises:
        ConfigurationError: If the kind is unknown or the argument is missing.
    """
    resolved = _KIND_ALIASES.get(kind.strip())
    if resolved is None:
        raise errors.ConfigurationError(f"Unknown data source kind: {kind!r}")
    if resolved == "env":
        # An empty prefix means the whole environment.
        argument = argument or None
    try:
        return DataSourceSpec(
            kind=resolved,
            argument=argument,
            namespace=namespace if resolved.startswith("k8s-") else None,
        )
    except _pydantic.ValidationError as e:
        raise errors.ConfigurationError(
            f"Invalid data source {kind}:{argument or ''}: {e.errors()[0]['msg']}"
        ) from e


def parse_datasources_variable(
    value: str,
    *,
    namespace: str | None = None,
) -> list[DataSourceSpec]:
    """
    Parse a ``CONTEMPLATE_DATASOURCES`` value.

    Args:
        value: Comma-separated ``kind[:argument]`` entries.
        namespace: Kubernetes namespace applied to k8s entries.

    Returns:
        Specs in declaration order. Blank entries are ignored.

    Raises:
        ConfigurationError: If an entry is malformed.
    """
    specs: list[DataSourceSpec] = []
    for entry in value.split(","):
        if not entry.strip():
            continue
        kind, _, argument = entry.partition(":")
        specs.append(make_spec(kind, argument or None, namespace=namespace))
    return specs
