"""Tests for CLI main module."""

import pathlib as _pathlib
import typing as _typing
import unittest.mock as _mock

import click.testing as _click_testing
import pytest as _pytest

import contemplate
import contemplate.cli as cli
import contemplate.cli.args as cli_args
import contemplate.cli.main as cli_main
import contemplate.config as config
import contemplate.errors as errors
import contemplate.reload.actions as actions
import contemplate.supervisor as supervisor


class TestCLIBasics:
    """Help and version."""

    def test_help_lists_options(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["--help"])
        assert result.exit_code == 0
        for option in ["--file", "--env", "--template", "--in-place", "--watch", "--and-then-exec"]:
            assert option in result.output, f"Option '{option}' missing from help"

    def test_version_shows_current_version(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["--version"])
        assert result.exit_code == 0
        assert contemplate.__version__ in result.output


class TestRender:
    """One-shot rendering."""

    def test_file_and_env_sources(
        self,
        cli_runner: _click_testing.CliRunner,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        """Later sources override earlier ones."""
        data = write_file("data.yml", "name: Alice\ngreeting: Hello\n")
        template = write_file("hello.tmpl", "{{ greeting }}, {{ name }}!")

        result = cli_runner.invoke(
            cli.cli,
            ["-f", str(data), "-e=FOO", str(template)],
            env={"FOO_NAME": "Bob"},
        )

        assert result.exit_code == 0, result.output
        assert "Hello, Bob!" in result.output

    def test_stdin_to_stdout(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["-e=CTPL"], input="x={{ x }}", env={"CTPL_X": "[1, 2]"})
        assert result.exit_code == 0, result.output
        assert "x=[1, 2]" in result.output

    def test_template_to_output_file(
        self,
        cli_runner: _click_testing.CliRunner,
        tmp_path: _pathlib.Path,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        data = write_file("data.json", '{"port": 8080}')
        template = write_file("app.tmpl", "port={{ port }}\n")
        output = tmp_path / "app.conf"

        result = cli_runner.invoke(cli.cli, ["-f", str(data), "-t", str(template), str(output)])

        assert result.exit_code == 0, result.output
        assert output.read_text() == "port=8080\n"

    def test_datasources_variable_comes_first(
        self,
        cli_runner: _click_testing.CliRunner,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        base = write_file("base.yml", "name: Base\nlevel: base\n")
        override = write_file("override.yml", "name: Override\n")
        template = write_file("t.tmpl", "{{ name }}/{{ level }}")

        result = cli_runner.invoke(
            cli.cli,
            ["-f", str(override), str(template)],
            env={"CONTEMPLATE_DATASOURCES": f"file:{base}"},
        )

        assert result.exit_code == 0, result.output
        assert "Override/base" in result.output

    def test_in_place_with_backup(
        self,
        cli_runner: _click_testing.CliRunner,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        path = write_file("app.conf", "user={{ user }}\n")

        result = cli_runner.invoke(cli.cli, ["-e=APP", "-i=orig", str(path)], env={"APP_USER": "www"})

        assert result.exit_code == 0, result.output
        assert path.read_text() == "user=www\n"
        assert path.with_name("app.conf.orig").read_text() == "user={{ user }}\n"

    def test_dry_run_writes_nothing(
        self,
        cli_runner: _click_testing.CliRunner,
        tmp_path: _pathlib.Path,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        template = write_file("app.tmpl", "static\n")
        output = tmp_path / "app.conf"

        result = cli_runner.invoke(cli.cli, ["-n", "--diff", "-t", str(template), str(output)])

        assert result.exit_code == 0, result.output
        assert not output.exists()
        assert "+static" in result.output


class TestExitCodes:
    """Configuration errors exit 2; failures of the initial render exit 1."""

    def test_stdin_used_twice(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["-t", "-", "a.conf", "-t", "-", "b.conf"])
        assert result.exit_code == 2
        assert "stdin" in result.output

    def test_template_with_positional(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["-t", "a.tmpl", "a.conf", "b.tmpl"])
        assert result.exit_code == 2

    def test_missing_option_value_is_usage_error(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["--file"])
        assert result.exit_code == 2
        assert "--file requires a value" in result.output

    def test_verbose_and_quiet(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["-v", "-q"], input="")
        assert result.exit_code == 2
        assert "mutually exclusive" in result.output

    def test_reload_option_requires_watch(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["-r", "true"], input="")
        assert result.exit_code == 2
        assert "requires --watch" in result.output

    def test_daemonize_requires_watch(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["--daemonize"], input="")
        assert result.exit_code == 2
        assert "--daemonize requires --watch" in result.output

    def test_watch_to_stdout(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["-w", "-f", "a.yml"], input="")
        assert result.exit_code == 2
        assert "stdout" in result.output

    def test_watch_needs_watchable_source(
        self,
        cli_runner: _click_testing.CliRunner,
        tmp_path: _pathlib.Path,
    ) -> None:
        result = cli_runner.invoke(cli.cli, ["-w", "-e", "-o", str(tmp_path / "out")], input="")
        assert result.exit_code == 2
        assert "supports watching" in result.output

    def test_invalid_environment_setting(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, [], input="", env={"CONTEMPLATE_DEBOUNCE_MS": "soon"})
        assert result.exit_code == 2
        assert "invalid environment settings" in result.output

    def test_unknown_and_then_exec_program(self, cli_runner: _click_testing.CliRunner) -> None:
        result = cli_runner.invoke(cli.cli, ["-x", "no-such-program-xyz", ";"], input="")
        assert result.exit_code == 2
        assert "no-such-program-xyz" in result.output

    def test_missing_data_file(
        self,
        cli_runner: _click_testing.CliRunner,
        tmp_path: _pathlib.Path,
    ) -> None:
        result = cli_runner.invoke(cli.cli, ["-f", str(tmp_path / "nope.yml")], input="x")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_backup_collision(
        self,
        cli_runner: _click_testing.CliRunner,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        path = write_file("app.conf", "v={{ v }}\n")
        write_file("app.conf.bak", "keep me")

        result = cli_runner.invoke(cli.cli, ["-e=APP", "-i=bak", str(path)], env={"APP_V": "1"})

        assert result.exit_code == 1
        assert "Refusing to overwrite" in result.output
        assert path.read_text() == "v={{ v }}\n"

    def test_in_place_run_twice(
        self,
        cli_runner: _click_testing.CliRunner,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        """The first run's backup stops the second, even with nothing to change."""
        path = write_file("app.conf", "static\n")
        args = ["-e=APP", "-i=bak", str(path)]

        assert cli_runner.invoke(cli.cli, args).exit_code == 0
        result = cli_runner.invoke(cli.cli, args)

        assert result.exit_code == 1
        assert "Refusing to overwrite" in result.output
        assert path.with_name("app.conf.bak").read_text() == "static\n"


class TestHandoff:
    """--and-then-exec and --watch."""

    def test_exec_after_render(self, cli_runner: _click_testing.CliRunner) -> None:
        with _mock.patch.object(supervisor, "exec_target") as exec_target:
            result = cli_runner.invoke(cli.cli, ["-x", "true", "--flag", ";"], input="")

        assert result.exit_code == 0, result.output
        (target,), _ = exec_target.call_args
        assert target.argv == ["true", "--flag"]

    def test_exec_failure_exits_1(self, cli_runner: _click_testing.CliRunner) -> None:
        with _mock.patch.object(
            supervisor, "exec_target", side_effect=errors.ContemplateError("Could not execute")
        ):
            result = cli_runner.invoke(cli.cli, ["-x", "true", ";"], input="")
        assert result.exit_code == 1

    def test_watch_with_exec_forks(
        self,
        cli_runner: _click_testing.CliRunner,
        tmp_path: _pathlib.Path,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        data = write_file("data.yml", "a: 1\n")
        template = write_file("t.tmpl", "{{ a }}")

        with (
            _mock.patch.object(supervisor, "fork_for_watch") as fork,
            _mock.patch.object(cli_main._asyncio, "run") as run,
        ):
            result = cli_runner.invoke(
                cli.cli,
                ["-w", "-f", str(data), "-t", str(template), str(tmp_path / "out"), "-x", "true", ";"],
            )

        assert result.exit_code == 0, result.output
        fork.assert_called_once()
        run.assert_called_once()
        run.call_args.args[0].close()

    def test_daemonize_before_watching(
        self,
        cli_runner: _click_testing.CliRunner,
        tmp_path: _pathlib.Path,
        write_file: _typing.Callable[..., _pathlib.Path],
    ) -> None:
        data = write_file("data.yml", "a: 1\n")
        template = write_file("t.tmpl", "{{ a }}")
        output = tmp_path / "out"

        with (
            _mock.patch.object(supervisor, "daemonize", return_value=True) as daemonize,
            _mock.patch.object(cli_main._asyncio, "run") as run,
        ):
            result = cli_runner.invoke(
                cli.cli, ["-w", "-d", "-f", str(data), "-t", str(template), str(output)]
            )

        assert result.exit_code == 0, result.output
        assert output.read_text() == "1"
        daemonize.assert_called_once_with()
        run.assert_called_once()
        run.call_args.args[0].close()


class TestBuildAction:
    """Tests for build_action()."""

    def test_signal_action(self) -> None:
        scanned = cli_args.ScannedArgs(reload_signal=("HUP", "1234"))
        action = cli_main.build_action(scanned, None, watch=True)
        assert action == actions.SignalAction(signal=1, target=actions.ByPid(pid=1234))

    def test_execute_action(self) -> None:
        scanned = cli_args.ScannedArgs(reload_execute=("/usr/bin/touch", "/tmp/x"))
        action = cli_main.build_action(scanned, None, watch=True)
        assert action == actions.ExecAction(path="/usr/bin/touch", args=("/tmp/x",))

    def test_command_action(self) -> None:
        action = cli_main.build_action(cli_args.ScannedArgs(), "nginx -s reload", watch=True)
        assert action == actions.ShellCommandAction(command="nginx -s reload")

    def test_mutually_exclusive(self) -> None:
        scanned = cli_args.ScannedArgs(reload_signal=("HUP", None))
        with _pytest.raises(errors.ConfigurationError, match="mutually exclusive"):
            cli_main.build_action(scanned, "true", watch=True)

    def test_none(self) -> None:
        assert cli_main.build_action(cli_args.ScannedArgs(), None, watch=False) is None


class TestBuildPlan:
    """Tests for build_plan()."""

    def test_positional_inputs_share_output(self) -> None:
        render_plan = cli_main.build_plan(cli_args.ScannedArgs(), ["a.tmpl"], "out.conf")
        (mapping,) = render_plan.mappings
        assert str(mapping) == "a.tmpl -> out.conf"

    def test_output_without_inputs_reads_stdin(self) -> None:
        render_plan = cli_main.build_plan(cli_args.ScannedArgs(), [], "out.conf")
        (mapping,) = render_plan.mappings
        assert mapping.source.is_stdin

    def test_output_with_in_place(self) -> None:
        scanned = cli_args.ScannedArgs(in_place=True)
        with _pytest.raises(errors.ConfigurationError, match="--output"):
            cli_main.build_plan(scanned, ["a.conf"], "out.conf")

    def test_in_place_applies_to_single_value_templates(self) -> None:
        scanned = cli_args.ScannedArgs(
            templates=[("a.conf", None), ("b.tmpl", "b.conf")],
            in_place=True,
            backup_extension="orig",
        )
        first, second = cli_main.build_plan(scanned, [], None).mappings
        assert first.backup_path == _pathlib.Path("a.conf.orig")
        assert str(second) == "b.tmpl -> b.conf"


class TestBuildSources:
    """Tests for build_sources()."""

    def test_environment_sources_first(self) -> None:
        settings = config.Settings(datasources="env:BASE")
        scanned = cli_args.ScannedArgs(sources=[("file", "a.yml"), ("k8s-configmap", "cm")])
        specs = cli_main.build_sources(settings, scanned, "ops")
        assert [s.label for s in specs] == ["env:BASE", "file:a.yml", "k8s-configmap:cm"]
        assert specs[2].namespace == "ops"

    def test_namespace_falls_back_to_settings(self) -> None:
        settings = config.Settings(k8s_namespace="prod")
        scanned = cli_args.ScannedArgs(sources=[("k8s-secret", "db")])
        (source,) = cli_main.build_sources(settings, scanned, None)
        assert source.namespace == "prod"


def test_main_uses_program_name() -> None:
    with _mock.patch.object(cli_main, "cli") as command:
        cli_main.main()
    command.assert_called_once_with(prog_name="contemplate")
