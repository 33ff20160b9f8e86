"""Tests for template mappings and render plans."""

import io as _io
import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic
import pytest as _pytest

import contemplate.errors as errors
import contemplate.render.engine as engine
import contemplate.render.plan as plan


class TestTemplateMapping:
    """Tests for TemplateMapping."""

    def test_from_args_defaults_to_stdout(self) -> None:
        mapping = plan.TemplateMapping.from_args("app.conf.tmpl")
        assert mapping.source.path == _pathlib.Path("app.conf.tmpl")
        assert mapping.destination.is_stdout
        assert str(mapping) == "app.conf.tmpl -> <stdout>"

    def test_stream_markers(self) -> None:
        mapping = plan.TemplateMapping.from_args("-", "out.conf")
        assert mapping.source.is_stdin
        assert str(mapping.source) == "<stdin>"
        assert mapping.destination.path == _pathlib.Path("out.conf")

    def test_in_place(self) -> None:
        mapping = plan.TemplateMapping.in_place("etc/app.conf", "orig")
        assert mapping.source.path == mapping.destination.path == _pathlib.Path("etc/app.conf")
        assert mapping.backup_path == _pathlib.Path("etc/app.conf.orig")

    def test_in_place_without_backup(self) -> None:
        mapping = plan.TemplateMapping.in_place("app.conf", "")
        assert mapping.backup_extension is None
        assert mapping.backup_path is None

    def test_in_place_stdin_is_rejected(self) -> None:
        with _pytest.raises(errors.ConfigurationError, match="stdin"):
            plan.TemplateMapping.in_place("-")

    def test_backup_requires_file_destination(self) -> None:
        with _pytest.raises(_pydantic.ValidationError, match="file destination"):
            plan.TemplateMapping(
                source=plan.TemplateSource(),
                destination=plan.TemplateDestination(),
                backup_extension="bak",
            )


class TestPlanValidate:
    """Tests for Plan.validate()."""

    def test_empty_plan_is_stdin_to_stdout(self) -> None:
        render_plan = plan.Plan()
        assert len(render_plan) == 1
        (mapping,) = render_plan.mappings
        assert mapping.source.is_stdin
        assert mapping.destination.is_stdout
        assert render_plan.writes_stdout
        render_plan.validate()

    def test_stdin_twice(self) -> None:
        render_plan = plan.Plan(
            [plan.TemplateMapping.from_args("-", "a"), plan.TemplateMapping.from_args("-", "b")]
        )
        with _pytest.raises(errors.ConfigurationError, match="stdin"):
            render_plan.validate()

    def test_stdout_twice(self) -> None:
        render_plan = plan.Plan(
            [plan.TemplateMapping.from_args("a"), plan.TemplateMapping.from_args("b")]
        )
        with _pytest.raises(errors.ConfigurationError, match="stdout"):
            render_plan.validate()

    def test_duplicate_destination(self, chdir_tmp: _pathlib.Path) -> None:
        """Relative and absolute spellings of one path collide."""
        render_plan = plan.Plan(
            [
                plan.TemplateMapping.from_args("a.tmpl", "out.conf"),
                plan.TemplateMapping.from_args("b.tmpl", str(chdir_tmp / "out.conf")),
            ]
        )
        with _pytest.raises(errors.ConfigurationError, match="more than one template"):
            render_plan.validate()

    def test_file_destinations(self) -> None:
        render_plan = plan.Plan(
            [
                plan.TemplateMapping.from_args("a.tmpl", "a.conf"),
                plan.TemplateMapping.from_args("b.tmpl"),
            ]
        )
        render_plan.validate()
        assert render_plan.file_destinations == [_pathlib.Path("a.conf")]
        assert render_plan.writes_stdout


class TestPlanLoad:
    """Tests for Plan.load()."""

    def test_templates_require_load(self) -> None:
        with _pytest.raises(RuntimeError, match="load"):
            plan.Plan().templates()

    def test_loads_files_and_stdin(self, write_file: _typing.Callable[..., _pathlib.Path]) -> None:
        path = write_file("a.tmpl", "A={{ a }}")
        render_plan = plan.Plan(
            [
                plan.TemplateMapping.from_args(str(path), "a.out"),
                plan.TemplateMapping.from_args("-"),
            ]
        )
        template_engine = engine.TemplateEngine()
        render_plan.load(template_engine, stdin=_io.StringIO("B={{ b }}"))

        assert render_plan.loaded
        rendered = [
            template.render({"a": 1, "b": 2}) for _, template in render_plan.templates()
        ]
        assert rendered == ["A=1", "B=2"]

    def test_missing_template(self, tmp_path: _pathlib.Path) -> None:
        render_plan = plan.Plan([plan.TemplateMapping.from_args(str(tmp_path / "nope.tmpl"))])
        with _pytest.raises(errors.TemplateRenderError, match="cannot read template"):
            render_plan.load(engine.TemplateEngine())

    def test_syntax_error(self, write_file: _typing.Callable[..., _pathlib.Path]) -> None:
        path = write_file("bad.tmpl", "line one\n{% if %}\n")
        render_plan = plan.Plan([plan.TemplateMapping.from_args(str(path))])
        with _pytest.raises(errors.TemplateRenderError, match="line 2") as exc_info:
            render_plan.load(engine.TemplateEngine())
        assert exc_info.value.template == str(path)
