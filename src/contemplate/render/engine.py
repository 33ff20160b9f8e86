"""
Template engine.

Templates use Jinja2 syntax. Undefined values chain (``{{ a.b.c }}`` renders
empty when ``a`` is missing) and a template's trailing newline is kept.

Extra filters:
- ``base64encode``, ``hexencode``: encode a string (as UTF-8) or a list of
  byte values, such as a Secret's ``bytes``
- ``from_json``, ``from_yaml``, ``from_toml``: parse a string into a value
"""

from __future__ import annotations

import base64 as _base64
import json as _json
import tomllib as _tomllib
import typing as _typing

import jinja2 as _jinja2
import jinja2.exceptions as _jinja2_exceptions
import yaml as _yaml

import contemplate.errors as errors

# Errors a template (or a filter it calls) can raise while rendering
_EVALUATION_ERRORS = (
    _jinja2.TemplateError,
    ArithmeticError,
    LookupError,
    TypeError,
    ValueError,
    _yaml.YAMLError,
)


def _as_bytes(value: _typing.Any) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, _typing.Sequence):
        if not all(isinstance(item, int) and not isinstance(item, bool) for item in value):
            raise _jinja2_exceptions.FilterArgumentError("byte sequence must contain only integers")
        try:
            return bytes(value)
        except ValueError as e:
            raise _jinja2_exceptions.FilterArgumentError(f"invalid byte sequence: {e}") from e
    raise _jinja2_exceptions.FilterArgumentError(f"cannot encode {type(value).__name__} as bytes")


def base64encode(value: _typing.Any) -> str:
    return _base64.b64encode(_as_bytes(value)).decode("ascii")


def hexencode(value: _typing.Any) -> str:
    return _as_bytes(value).hex()


def _require_str(value: _typing.Any, filter_name: str) -> str:
    if not isinstance(value, str):
        raise _jinja2_exceptions.FilterArgumentError(f"{filter_name} requires a string input")
    return value


def from_json(value: _typing.Any) -> _typing.Any:
    return _json.loads(_require_str(value, "from_json"))


def from_yaml(value: _typing.Any) -> _typing.Any:
    return _yaml.safe_load(_require_str(value, "from_yaml"))


def from_toml(value: _typing.Any) -> _typing.Any:
    return _tomllib.loads(_require_str(value, "from_toml"))


FILTERS: dict[str, _typing.Callable[[_typing.Any], _typing.Any]] = {
    "base64encode": base64encode,
    "hexencode": hexencode,
    "from_json": from_json,
    "from_yaml": from_yaml,
    "from_toml": from_toml,
}


class TemplateEngine:
    """Compiles and renders templates."""

    def __init__(self) -> None:
        self._environment = _jinja2.Environment(
            undefined=_jinja2.ChainableUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self._environment.filters.update(FILTERS)

    @property
    def environment(self) -> _jinja2.Environment:
        return self._environment

    def compile(self, text: str, name: str) -> _jinja2.Template:
        """
        Compile template text.

        Raises:
            TemplateRenderError: On a syntax error.
        """
        try:
            return self._environment.from_string(text)
        except _jinja2.TemplateSyntaxError as e:
            raise errors.TemplateRenderError(name, f"line {e.lineno}: {e.message}") from e

    def render(
        self,
        template: _jinja2.Template,
        name: str,
        context: _typing.Mapping[str, _typing.Any],
    ) -> str:
        """
        Evaluate a compiled template against a context.

        Raises:
            TemplateRenderError: If evaluation fails.
        """
        try:
            return template.render(context)
        except _EVALUATION_ERRORS as e:
            raise errors.TemplateRenderError(name, str(e) or type(e).__name__) from e
