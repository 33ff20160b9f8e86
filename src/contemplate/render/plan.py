"""
Template mappings and the render plan.

A mapping pairs a template input (a path, or ``-`` for stdin) with an
output (a path, or ``-`` for stdout). In-place mappings use the same path
for both and may name a backup extension.
"""

from __future__ import annotations

import pathlib as _pathlib
import sys as _sys
import typing as _typing

import pydantic as _pydantic

import contemplate.constants as _constants
import contemplate.errors as errors

if _typing.TYPE_CHECKING:
    import jinja2 as _jinja2

    import contemplate.render.engine as engine


class TemplateSource(_pydantic.BaseModel):
    """Where a template is read from."""

    model_config = _pydantic.ConfigDict(frozen=True)

    path: _pathlib.Path | None = None
    """Template file, or None for stdin."""

    @classmethod
    def parse(cls, text: str) -> TemplateSource:
        if text == _constants.STREAM_MARKER:
            return cls()
        return cls(path=_pathlib.Path(text))

    @property
    def is_stdin(self) -> bool:
        return self.path is None

    def __str__(self) -> str:
        return "<stdin>" if self.path is None else str(self.path)


class TemplateDestination(_pydantic.BaseModel):
    """Where rendered output is written."""

    model_config = _pydantic.ConfigDict(frozen=True)

    path: _pathlib.Path | None = None
    """Output file, or None for stdout."""

    @classmethod
    def parse(cls, text: str) -> TemplateDestination:
        if text == _constants.STREAM_MARKER:
            return cls()
        return cls(path=_pathlib.Path(text))

    @property
    def is_stdout(self) -> bool:
        return self.path is None

    def __str__(self) -> str:
        return "<stdout>" if self.path is None else str(self.path)


class TemplateMapping(_pydantic.BaseModel):
    """One template input and its output."""

    model_config = _pydantic.ConfigDict(frozen=True)

    source: TemplateSource
    destination: TemplateDestination
    backup_extension: str | None = None
    """Backup suffix for in-place mappings (``path.<ext>``)."""

    @_pydantic.model_validator(mode="after")
    def _validate_backup(self) -> TemplateMapping:
        if self.backup_extension is not None and self.destination.path is None:
            raise ValueError("a backup extension requires a file destination")
        return self

    @classmethod
    def from_args(cls, source: str, destination: str | None = None) -> TemplateMapping:
        """Mapping from command-line text; the output defaults to stdout."""
        return cls(
            source=TemplateSource.parse(source),
            destination=TemplateDestination.parse(destination or _constants.STREAM_MARKER),
        )

    @classmethod
    def in_place(cls, path: str | _pathlib.Path, backup_extension: str | None = None) -> TemplateMapping:
        """Mapping that renders a file over itself."""
        path = _pathlib.Path(path)
        if str(path) == _constants.STREAM_MARKER:
            raise errors.ConfigurationError("Cannot render stdin in place")
        return cls(
            source=TemplateSource(path=path),
            destination=TemplateDestination(path=path),
            backup_extension=backup_extension or None,
        )

    @property
    def backup_path(self) -> _pathlib.Path | None:
        if self.backup_extension is None or self.destination.path is None:
            return None
        path = self.destination.path
        return path.with_name(f"{path.name}.{self.backup_extension}")

    def __str__(self) -> str:
        return f"{self.source} -> {self.destination}"


class Plan:
    """
    Ordered template mappings for one run.

    An empty plan renders stdin to stdout.
    """

    def __init__(self, mappings: _typing.Sequence[TemplateMapping] = ()) -> None:
        self._mappings = list(mappings) or [TemplateMapping.from_args(_constants.STREAM_MARKER)]
        self._templates: list[_jinja2.Template] | None = None

    @property
    def mappings(self) -> list[TemplateMapping]:
        return list(self._mappings)

    @property
    def writes_stdout(self) -> bool:
        return any(mapping.destination.is_stdout for mapping in self._mappings)

    @property
    def file_destinations(self) -> list[_pathlib.Path]:
        return [m.destination.path for m in self._mappings if m.destination.path is not None]

    def validate(self) -> None:
        """
        Check stream usage and destination uniqueness.

        Raises:
            ConfigurationError: If stdin is read or stdout written more than
                once, or two mappings share a file destination.
        """
        if sum(1 for m in self._mappings if m.source.is_stdin) > 1:
            raise errors.ConfigurationError("stdin can be used as a template input only once")
        if sum(1 for m in self._mappings if m.destination.is_stdout) > 1:
            raise errors.ConfigurationError("stdout can be used as an output only once")
        seen: set[_pathlib.Path] = set()
        for path in self.file_destinations:
            key = path.absolute()
            if key in seen:
                raise errors.ConfigurationError(f"Output {path} is written by more than one template")
            seen.add(key)

    def load(
        self,
        template_engine: engine.TemplateEngine,
        stdin: _typing.TextIO | None = None,
    ) -> None:
        """
        Read and compile every template once.

        Templates are cached for the life of the run, so in-place mappings
        keep rendering their original template and stdin is read only once.

        Raises:
            TemplateRenderError: If a template cannot be read or compiled.
        """
        stream = _sys.stdin if stdin is None else stdin
        templates = []
        for mapping in self._mappings:
            name = str(mapping.source)
            if mapping.source.path is None:
                text = stream.read()
            else:
                try:
                    text = mapping.source.path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    raise errors.TemplateRenderError(name, f"cannot read template: {e}") from e
            templates.append(template_engine.compile(text, name))
        self._templates = templates

    @property
    def loaded(self) -> bool:
        return self._templates is not None

    def templates(self) -> list[tuple[TemplateMapping, _jinja2.Template]]:
        """Mappings paired with their compiled templates."""
        if self._templates is None:
            raise RuntimeError("Plan.load() must be called before rendering")
        return list(zip(self._mappings, self._templates, strict=True))

    def __len__(self) -> int:
        return len(self._mappings)

    def __repr__(self) -> str:
        return f"Plan({', '.join(str(m) for m in self._mappings)})"
