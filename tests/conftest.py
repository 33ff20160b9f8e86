"""
Shared pytest fixtures for Contemplate tests.

This file is automatically loaded by pytest. Fixtures defined here are
available to all test files without explicit imports.
"""

import logging as _logging
import pathlib as _pathlib
import typing as _typing

import click.testing as _click_testing
import pytest as _pytest

import contemplate.datasource.base as base
import contemplate.datasource.spec as spec

# Environment keys that should be cleared for isolated tests
ENV_KEYS_TO_CLEAR = [
    "CONTEMPLATE_DATASOURCES",
    "CONTEMPLATE_K8S_NAMESPACE",
    "CONTEMPLATE_LOG",
    "CONTEMPLATE_DEBOUNCE_MS",
    "CONTEMPLATE_HOOK_TERMINATE_TIMEOUT",
    "CONTEMPLATED_FILES",
]


@_pytest.fixture(autouse=True)
def clean_env(monkeypatch: _pytest.MonkeyPatch) -> None:
    """Remove Contemplate settings from the environment for every test."""
    for key in ENV_KEYS_TO_CLEAR:
        monkeypatch.delenv(key, raising=False)


@_pytest.fixture(autouse=True)
def reset_package_logger() -> _typing.Iterator[None]:
    """Undo handlers and levels installed by configure_logging."""
    yield
    for name in ("contemplate", "contemplate.provenance", "py.warnings"):
        logger = _logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(_logging.NOTSET)
        logger.propagate = True
    _logging.captureWarnings(False)


@_pytest.fixture
def write_file(tmp_path: _pathlib.Path) -> _typing.Callable[[str, str], _pathlib.Path]:
    """Factory writing a file under tmp_path and returning its path."""

    def _write(name: str, content: str) -> _pathlib.Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@_pytest.fixture
def cli_runner() -> _click_testing.CliRunner:
    """Click test runner with a wide terminal so log lines do not wrap."""
    return _click_testing.CliRunner(env={"COLUMNS": "1000"})


@_pytest.fixture
def chdir_tmp(tmp_path: _pathlib.Path, monkeypatch: _pytest.MonkeyPatch) -> _pathlib.Path:
    """Run the test from inside tmp_path."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class StaticSource(base.DataSource):
    """
    In-memory data source for tests.

    ``value`` can be reassigned between collections; ``fail_with`` makes
    the next collection raise. Watching records the notifier so tests can
    trigger change events.
    """

    def __init__(
        self,
        name: str,
        value: dict[str, _typing.Any] | None = None,
        *,
        watchable: bool = True,
    ) -> None:
        super().__init__(spec.DataSourceSpec(kind="file", argument=name))
        self.value = value if value is not None else {}
        self.fail_with: Exception | None = None
        self.collect_count = 0
        self.notifier: base.Notifier | None = None
        self.stopped = False
        self._watchable = watchable

    @property
    def supports_watch(self) -> bool:
        return self._watchable

    def collect(self) -> dict[str, _typing.Any]:
        self.collect_count += 1
        if self.fail_with is not None:
            raise self.fail_with
        return dict(self.value)

    def watch(self, notifier: base.Notifier) -> None:
        if not self._watchable:
            super().watch(notifier)
        self.notifier = notifier

    def stop(self) -> None:
        self.stopped = True


@_pytest.fixture
def static_source() -> _typing.Callable[..., StaticSource]:
    """Factory for in-memory data sources."""
    return StaticSource
