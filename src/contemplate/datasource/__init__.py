"""
Data source providers.

The closed set of providers (file, environment, Kubernetes ConfigMap and
Secret) share the ``DataSource`` interface; ``create_source`` builds one from
its declaration and ``SourceRegistry`` collects them into snapshots.
"""

from contemplate.datasource.base import ChangeEvent, DataSource, Notifier
from contemplate.datasource.env import EnvironmentSource
from contemplate.datasource.file import FileSource
from contemplate.datasource.k8s import ConfigMapSource, SecretSource
from contemplate.datasource.registry import SourceRegistry, create_source
from contemplate.datasource.spec import DataSourceSpec, make_spec, parse_datasources_variable

__all__ = [
    "ChangeEvent",
    "ConfigMapSource",
    "DataSource",
    "DataSourceSpec",
    "EnvironmentSource",
    "FileSource",
    "Notifier",
    "SecretSource",
    "SourceRegistry",
    "create_source",
    "make_spec",
    "parse_datasources_variable",
]
