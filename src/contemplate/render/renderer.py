"""
Render pass: evaluate every template against a snapshot and commit outputs.

A pass is all-or-nothing. Every template is evaluated before anything is
written; if one fails, the pass fails and no output changes. Changed file
outputs are staged as temporary files next to their destination and only
renamed into place once all of them have been written. If a rename fails,
outputs already renamed are restored from their previous content.

In-place backups are taken on the first pass that writes, whether or not
the output changes, so an existing backup always stops the run.

A dry run writes nothing and therefore reports nothing as changed.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import datetime as _datetime
import logging as _logging
import os as _os
import pathlib as _pathlib
import shutil as _shutil
import sys as _sys
import tempfile as _tempfile
import typing as _typing

import rich.console as _rich_console

import contemplate.errors as errors
import contemplate.render.diff as diff
import contemplate.render.engine as engine
import contemplate.render.plan as plan

if _typing.TYPE_CHECKING:
    import contemplate.context.snapshot as snapshot

_logger = _logging.getLogger(__name__)

_NEW_FILE_MODE = 0o644


@_dataclasses.dataclass(frozen=True)
class RenderOptions:
    """Options that apply to every pass of a run."""

    dry_run: bool = False
    """Evaluate and diff, but write nothing."""

    diff: bool = False
    """Print a unified diff of each changed output to stderr."""


@_dataclasses.dataclass
class RenderState:
    """Run-scoped state owned by the render pass."""

    backups_made: set[_pathlib.Path] = _dataclasses.field(default_factory=set)
    passes: int = 0


@_dataclasses.dataclass(frozen=True)
class MappingOutcome:
    mapping: plan.TemplateMapping
    changed: bool


@_dataclasses.dataclass(frozen=True)
class RenderResult:
    """Per-mapping change status of one successful pass."""

    outcomes: tuple[MappingOutcome, ...]
    initial: bool = False

    @property
    def changed(self) -> bool:
        return any(outcome.changed for outcome in self.outcomes)

    @property
    def changed_paths(self) -> list[_pathlib.Path]:
        """File destinations whose content changed (stdout excluded)."""
        return [
            outcome.mapping.destination.path
            for outcome in self.outcomes
            if outcome.changed and outcome.mapping.destination.path is not None
        ]


@_dataclasses.dataclass
class _Output:
    mapping: plan.TemplateMapping
    text: str
    previous: str | None
    previous_mtime: _datetime.datetime | None

    @property
    def path(self) -> _pathlib.Path | None:
        return self.mapping.destination.path

    @property
    def changed(self) -> bool:
        return self.path is None or self.previous != self.text


class RenderPass:
    """
    Renders a loaded plan against context snapshots.

    One instance lives for the whole run and owns its ``RenderState``.
    """

    def __init__(
        self,
        render_plan: plan.Plan,
        template_engine: engine.TemplateEngine,
        options: RenderOptions | None = None,
        *,
        stdout: _typing.TextIO | None = None,
        console: _rich_console.Console | None = None,
    ) -> None:
        self._plan = render_plan
        self._engine = template_engine
        self._options = options or RenderOptions()
        self._stdout = stdout
        self._console = console
        self._state = RenderState()

    @property
    def plan(self) -> plan.Plan:
        return self._plan

    @property
    def options(self) -> RenderOptions:
        return self._options

    @property
    def state(self) -> RenderState:
        return self._state

    def render(
        self,
        context_snapshot: snapshot.ContextSnapshot,
        *,
        initial: bool = False,
    ) -> RenderResult:
        """
        Render every mapping and commit the changed outputs.

        Args:
            context_snapshot: Values to render with.
            initial: Whether this is the first pass of the run.

        Raises:
            TemplateRenderError: If a template fails to evaluate.
            BackupCollisionError: If an in-place backup already exists.
            RenderError: If an output cannot be written.
        """
        context = context_snapshot.to_template_context()
        outputs = []
        for mapping, template in self._plan.templates():
            text = self._engine.render(template, str(mapping.source), context)
            outputs.append(self._compare(mapping, text))

        if self._options.diff:
            self._emit_diffs(outputs)

        dry_run = self._options.dry_run
        if dry_run:
            _logger.info("Dry run: not writing %d output(s)", sum(o.changed for o in outputs))
        else:
            self._make_backups([o for o in outputs if o.path is not None])
            self._commit([o for o in outputs if o.changed and o.path is not None])
            self._write_stdout(outputs)

        self._state.passes += 1
        return RenderResult(
            outcomes=tuple(MappingOutcome(o.mapping, o.changed and not dry_run) for o in outputs),
            initial=initial,
        )

    def _compare(self, mapping: plan.TemplateMapping, text: str) -> _Output:
        path = mapping.destination.path
        if path is None:
            return _Output(mapping, text, None, None)
        try:
            previous = path.read_text(encoding="utf-8")
            mtime = _datetime.datetime.fromtimestamp(path.stat().st_mtime, _datetime.timezone.utc)
        except FileNotFoundError:
            return _Output(mapping, text, None, None)
        except (OSError, UnicodeDecodeError) as e:
            raise errors.RenderError(f"Could not read current content of {path}: {e}") from e
        return _Output(mapping, text, previous, mtime)

    def _emit_diffs(self, outputs: list[_Output]) -> None:
        for output in outputs:
            if output.path is None or not output.changed:
                continue
            text = diff.unified_diff(output.path, output.previous or "", output.text, output.previous_mtime)
            if text:
                diff.emit_diff(text, self._console)

    def _make_backups(self, outputs: list[_Output]) -> None:
        pending = []
        for output in outputs:
            backup = output.mapping.backup_path
            if backup is None or output.path in self._state.backups_made:
                continue
            if backup.exists():
                raise errors.BackupCollisionError(backup)
            pending.append((output, backup))

        for output, backup in pending:
            path = _typing.cast(_pathlib.Path, output.path)
            try:
                with backup.open("x", encoding="utf-8") as handle:
                    handle.write(output.previous or "")
            except FileExistsError as e:
                raise errors.BackupCollisionError(backup) from e
            except OSError as e:
                raise errors.RenderError(f"Could not create backup {backup}: {e}") from e
            if path.exists():
                _shutil.copymode(path, backup)
            self._state.backups_made.add(path)
            _logger.info("Backed up %s to %s", path, backup)

    def _commit(self, outputs: list[_Output]) -> None:
        staged: list[tuple[str, _Output]] = []
        try:
            for output in outputs:
                path = _typing.cast(_pathlib.Path, output.path)
                staged.append((self._stage(path, output.text), output))
        except OSError as e:
            for temporary, _ in staged:
                _remove_quietly(temporary)
            raise errors.RenderError(f"Could not write {path}: {e}") from e

        committed: list[_Output] = []
        for index, (temporary, output) in enumerate(staged):
            path = _typing.cast(_pathlib.Path, output.path)
            try:
                _os.replace(temporary, path)
            except OSError as e:
                for leftover, _ in staged[index:]:
                    _remove_quietly(leftover)
                self._roll_back(committed)
                raise errors.RenderError(f"Could not replace {path}: {e}") from e
            committed.append(output)

        for output in committed:
            _logger.info("Rendered %s", output.path)

    def _roll_back(self, committed: list[_Output]) -> None:
        """Put back the previous content of outputs renamed earlier in a failed pass."""
        for output in reversed(committed):
            path = _typing.cast(_pathlib.Path, output.path)
            try:
                if output.previous is None:
                    path.unlink()
                else:
                    _os.replace(self._stage(path, output.previous), path)
            except OSError as e:
                _logger.error("Could not restore previous content of %s: %s", path, e)
            else:
                _logger.warning("Restored previous content of %s", path)

    @staticmethod
    def _stage(path: _pathlib.Path, text: str) -> str:
        directory = path.parent if str(path.parent) else _pathlib.Path(".")
        with _tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=directory,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            try:
                handle.write(text)
                handle.flush()
                _os.fsync(handle.fileno())
                if path.exists():
                    _shutil.copymode(path, handle.name)
                else:
                    _os.chmod(handle.name, _NEW_FILE_MODE)
            except OSError:
                _remove_quietly(handle.name)
                raise
        return handle.name

    def _write_stdout(self, outputs: list[_Output]) -> None:
        stream = self._stdout or _sys.stdout
        for output in outputs:
            if output.path is None:
                stream.write(output.text)
                stream.flush()


def _remove_quietly(path: str) -> None:
    try:
        _os.unlink(path)
    except FileNotFoundError:
        pass
