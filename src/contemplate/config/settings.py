"""
Settings configuration using pydantic-settings.

Every setting is read from an environment variable with the CONTEMPLATE_
prefix; command-line options take precedence where both exist:

  CONTEMPLATE_DATASOURCES=file:/etc/app.yml,env:APP
  CONTEMPLATE_K8S_NAMESPACE=production
  CONTEMPLATE_LOG=debug
  CONTEMPLATE_DEBOUNCE_MS=250
  CONTEMPLATE_HOOK_TERMINATE_TIMEOUT=5
"""

from __future__ import annotations

import pydantic as _pydantic
import pydantic_settings as _pydantic_settings

import contemplate.constants as _constants
import contemplate.datasource.spec as spec

LOG_LEVELS = ("OFF", "CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(_pydantic_settings.BaseSettings):
    """
    Contemplate settings from the environment.

    Precedence (highest to lowest):
    1. Constructor arguments
    2. Environment variables (CONTEMPLATE_*)
    3. Defaults
    """

    model_config = _pydantic_settings.SettingsConfigDict(
        env_prefix=_constants.ENV_PREFIX,
        extra="ignore",
    )

    datasources: str = ""
    """Comma-separated ``kind[:argument]`` data sources, ordered before CLI sources."""

    k8s_namespace: str | None = None
    """Namespace for Kubernetes sources (overrides kubeconfig and service account)."""

    log: str | None = None
    """Log level name; overrides -v/-q when set."""

    debounce_ms: int = _pydantic.Field(default=_constants.DEFAULT_DEBOUNCE_MS, ge=0)
    """Coalescing window for change events in watch mode."""

    hook_terminate_timeout: float = _pydantic.Field(
        default=_constants.DEFAULT_HOOK_TERMINATE_TIMEOUT,
        gt=0,
    )
    """Seconds to wait for a superseded reload hook after SIGINT, and again after SIGKILL."""

    @_pydantic.field_validator("log")
    @classmethod
    def _validate_log(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        level = value.strip().upper()
        if level == "WARN":
            level = "WARNING"
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(name.lower() for name in LOG_LEVELS)}")
        return level

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    def datasource_specs(self, *, namespace: str | None = None) -> list[spec.DataSourceSpec]:
        """
        Parse ``datasources`` into specs.

        Args:
            namespace: Namespace override from the command line; defaults to
                ``k8s_namespace``.

        Raises:
            ConfigurationError: If an entry is malformed.
        """
        return spec.parse_datasources_variable(
            self.datasources,
            namespace=namespace or self.k8s_namespace,
        )
