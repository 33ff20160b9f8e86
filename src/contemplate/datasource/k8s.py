"""
Kubernetes ConfigMap and Secret data sources.

Client configuration comes from the kubeconfig (``KUBECONFIG`` or
``~/.kube/config``), falling back to the in-cluster service account
(``KUBERNETES_SERVICE_HOST``/``KUBERNETES_SERVICE_PORT``).

Keys are lower-cased, ``_`` becomes ``.``, and the result is split on ``.``
into nested maps:

    DATABASE_HOST=db   -> {"database": {"host": "db"}}
    app.conf=...       -> {"app": {"conf": "..."}}

ConfigMap values stay strings. Secret values become
``{"bytes": [...], "string": "..."}``; ``string`` is present only when the
decoded bytes are valid UTF-8.

Watching runs a list-then-watch loop on a daemon thread per resource:
- the stream starts from the listed ``resourceVersion``
- ``410 Gone`` re-lists and resumes
- transient errors back off exponentially with jitter (capped)
- ``401``/``403`` stop the watcher with an error log
"""

from __future__ import annotations

import abc as _abc
import base64 as _base64
import binascii as _binascii
import logging as _logging
import pathlib as _pathlib
import random as _random
import threading as _threading
import typing as _typing

import kubernetes.client as _k8s_client
import kubernetes.client.exceptions as _k8s_exceptions
import kubernetes.config as _k8s_config
import kubernetes.watch as _k8s_watch
import urllib3.exceptions as _urllib3_exceptions

import contemplate.constants as _constants
import contemplate.context.merge as merge
import contemplate.context.values as values
import contemplate.datasource.base as base
import contemplate.datasource.spec as spec
import contemplate.errors as errors

_logger = _logging.getLogger(__name__)

_CHANGE_EVENTS = frozenset({"ADDED", "MODIFIED", "DELETED"})


def load_api_client() -> _k8s_client.ApiClient:
    """
    Create an API client from kubeconfig or, failing that, in-cluster config.

    Raises:
        SourceError: If neither configuration is available.
    """
    configuration = _k8s_client.Configuration()
    try:
        _k8s_config.load_kube_config(client_configuration=configuration)
    except (_k8s_config.ConfigException, OSError) as kubeconfig_error:
        _logger.debug("No usable kubeconfig (%s), trying in-cluster config", kubeconfig_error)
        try:
            _k8s_config.load_incluster_config(client_configuration=configuration)
        except _k8s_config.ConfigException as e:
            raise errors.SourceError(
                "kubernetes",
                errors.SourceErrorKind.AUTH,
                f"no kubeconfig ({kubeconfig_error}) and no in-cluster config ({e})",
            ) from e
    return _k8s_client.ApiClient(configuration=configuration)


def resolve_namespace(explicit: str | None = None) -> str:
    """
    Pick the namespace to read from.

    Order: explicit value, kubeconfig current context, in-cluster service
    account namespace, ``default``.
    """
    if explicit:
        return explicit
    try:
        _, active = _k8s_config.list_kube_config_contexts()
        namespace = (active or {}).get("context", {}).get("namespace")
        if namespace:
            return str(namespace)
    except (_k8s_config.ConfigException, OSError):
        pass
    try:
        namespace = _pathlib.Path(_constants.SERVICE_ACCOUNT_NAMESPACE_PATH).read_text().strip()
        if namespace:
            return namespace
    except OSError:
        pass
    return _constants.DEFAULT_K8S_NAMESPACE


def data_to_tree(data: _typing.Mapping[str, _typing.Any]) -> dict[str, _typing.Any]:
    """Nest resource data under normalized keys (see module docstring)."""
    layers = []
    for key in sorted(data):
        path = [part for part in key.lower().replace("_", ".").split(".") if part]
        if path:
            layers.append(values.nest(path, data[key]))
    return merge.merge(layers)


def decode_secret_value(encoded: str) -> dict[str, _typing.Any]:
    """Decode one base64 Secret value into its bytes and, if UTF-8, string forms."""
    raw = _base64.b64decode(encoded, validate=True)
    decoded: dict[str, _typing.Any] = {"bytes": list(raw)}
    try:
        decoded["string"] = raw.decode("utf-8")
    except UnicodeDecodeError:
        pass
    return decoded


class KubernetesSource(base.DataSource):
    """Shared collect and watch logic for namespaced key-value resources."""

    resource_kind: _typing.ClassVar[str]

    def __init__(
        self,
        source_spec: spec.DataSourceSpec,
        *,
        api: _k8s_client.CoreV1Api | None = None,
    ) -> None:
        super().__init__(source_spec)
        self._api = api
        self._namespace: str | None = None
        self._stop_event = _threading.Event()
        self._thread: _threading.Thread | None = None
        self._active_watch: _k8s_watch.Watch | None = None
        self._watch_lock = _threading.Lock()

    @property
    def name(self) -> str:
        return _typing.cast(str, self.spec.argument)

    @property
    def namespace(self) -> str:
        if self._namespace is None:
            self._namespace = resolve_namespace(self.spec.namespace)
        return self._namespace

    @property
    def supports_watch(self) -> bool:
        return True

    def _core_api(self) -> _k8s_client.CoreV1Api:
        if self._api is None:
            self._api = _k8s_client.CoreV1Api(load_api_client())
        return self._api

    @_abc.abstractmethod
    def _read(self, api: _k8s_client.CoreV1Api) -> _typing.Any:
        """Read the named resource."""
        ...

    @_abc.abstractmethod
    def _list_function(self, api: _k8s_client.CoreV1Api) -> _typing.Callable[..., _typing.Any]:
        """The namespaced list call used for watching."""
        ...

    @_abc.abstractmethod
    def _convert(self, data: dict[str, str]) -> dict[str, _typing.Any]:
        """Convert resource data into a value tree."""
        ...

    def collect(self) -> dict[str, _typing.Any]:
        api = self._core_api()
        try:
            resource = self._read(api)
        except _k8s_exceptions.ApiException as e:
            raise self._api_error(e) from e
        except _urllib3_exceptions.HTTPError as e:
            raise errors.SourceError(self.label, errors.SourceErrorKind.CONNECTIVITY, str(e)) from e

        if resource.data is None:
            raise errors.SourceError(
                self.label,
                errors.SourceErrorKind.NOT_FOUND,
                f"{self.resource_kind} {self.namespace}/{self.name} has no data",
            )
        return self._convert(resource.data)

    def _api_error(self, e: _k8s_exceptions.ApiException) -> errors.SourceError:
        if e.status in (401, 403):
            kind = errors.SourceErrorKind.AUTH
        elif e.status == 404:
            kind = errors.SourceErrorKind.NOT_FOUND
        else:
            kind = errors.SourceErrorKind.CONNECTIVITY
        return errors.SourceError(
            self.label,
            kind,
            f"{self.resource_kind} {self.namespace}/{self.name}: {e.status} {e.reason}",
        )

    def watch(self, notifier: base.Notifier) -> None:
        api = self._core_api()
        self._stop_event.clear()
        self._thread = _threading.Thread(
            target=self._watch_loop,
            args=(api, notifier),
            name=f"watch-{self.label}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        with self._watch_lock:
            if self._active_watch is not None:
                self._active_watch.stop()
        if self._thread is not None:
            # The stream may be blocked in a read; the thread is a daemon.
            self._thread.join(timeout=1.0)
            self._thread = None

    def _watch_loop(self, api: _k8s_client.CoreV1Api, notifier: base.Notifier) -> None:
        field_selector = f"metadata.name={self.name}"
        list_function = self._list_function(api)
        resource_version: str | None = None
        backoff_seconds = 1

        while not self._stop_event.is_set():
            watcher = _k8s_watch.Watch()
            with self._watch_lock:
                self._active_watch = watcher
            try:
                if resource_version is None:
                    listing = list_function(namespace=self.namespace, field_selector=field_selector)
                    resource_version = listing.metadata.resource_version
                    _logger.debug(
                        "Watching %s from resourceVersion %s", self.label, resource_version
                    )

                stream = watcher.stream(
                    list_function,
                    namespace=self.namespace,
                    field_selector=field_selector,
                    resource_version=resource_version,
                    timeout_seconds=_constants.K8S_WATCH_TIMEOUT_SECONDS,
                )
                for event in stream:
                    if self._stop_event.is_set():
                        break
                    event_type = str(event.get("type", ""))
                    if event_type == "ERROR":
                        raise _k8s_exceptions.ApiException(
                            status=_typing.cast(dict, event.get("raw_object") or {}).get("code"),
                            reason="watch error event",
                        )
                    metadata = getattr(event.get("object"), "metadata", None)
                    if metadata is not None and metadata.resource_version:
                        resource_version = metadata.resource_version
                    if event_type in _CHANGE_EVENTS:
                        notifier.notify(self.label)
                backoff_seconds = 1
            except _k8s_exceptions.ApiException as e:
                if e.status == 410:
                    # Compacted past our version: re-list, and assume we missed a change.
                    _logger.warning("Watch of %s expired, re-listing", self.label)
                    resource_version = None
                    notifier.notify(self.label)
                    continue
                if e.status in (401, 403):
                    _logger.error(
                        "Kubernetes API denied watching %s (status=%s); "
                        "check RBAC and service account permissions. No longer watching.",
                        self.label,
                        e.status,
                    )
                    return
                _logger.warning("Kubernetes watch error on %s: %s", self.label, e)
                backoff_seconds = self._backoff(backoff_seconds)
            except Exception as e:
                _logger.warning("Unexpected watch error on %s: %s", self.label, e)
                backoff_seconds = self._backoff(backoff_seconds)
            finally:
                watcher.stop()
                with self._watch_lock:
                    self._active_watch = None

    def _backoff(self, seconds: int) -> int:
        jittered = seconds * (0.5 + _random.random())  # noqa: S311
        self._stop_event.wait(timeout=jittered)
        return min(seconds * 2, _constants.K8S_MAX_BACKOFF_SECONDS)


class ConfigMapSource(KubernetesSource):
    """Collects a Kubernetes ConfigMap; values stay strings."""

    resource_kind = "configmap"

    def _read(self, api: _k8s_client.CoreV1Api) -> _typing.Any:
        return api.read_namespaced_config_map(self.name, self.namespace)

    def _list_function(self, api: _k8s_client.CoreV1Api) -> _typing.Callable[..., _typing.Any]:
        return api.list_namespaced_config_map

    def _convert(self, data: dict[str, str]) -> dict[str, _typing.Any]:
        return data_to_tree(data)


class SecretSource(KubernetesSource):
    """Collects a Kubernetes Secret, exposing each value as bytes and string."""

    resource_kind = "secret"

    def _read(self, api: _k8s_client.CoreV1Api) -> _typing.Any:
        return api.read_namespaced_secret(self.name, self.namespace)

    def _list_function(self, api: _k8s_client.CoreV1Api) -> _typing.Callable[..., _typing.Any]:
        return api.list_namespaced_secret

    def _convert(self, data: dict[str, str]) -> dict[str, _typing.Any]:
        try:
            decoded = {key: decode_secret_value(value) for key, value in data.items()}
        except (_binascii.Error, ValueError) as e:
            raise errors.SourceError(
                self.label, errors.SourceErrorKind.PARSE, f"invalid base64 in secret data: {e}"
            ) from e
        return data_to_tree(decoded)
