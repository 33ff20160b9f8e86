"""
Main CLI entry point for Contemplate.

Provides the command-line interface using Click. Data source options,
``--template``, ``--in-place``, ``--on-reload-signal``, ``-R`` and ``-x`` are
pre-scanned from argv (see ``contemplate.cli.args``); click parses the rest.

Run sequence:
1. Build settings, sources, plan and reload action; validate (exit 2).
2. Load templates, collect and render once (exit 1 on failure).
3. Hand off: watch (optionally detached), exec the target, fork into both,
   or exit 0.
"""

from __future__ import annotations

import asyncio as _asyncio
import logging as _logging
import typing as _typing

import click as _click
import pydantic as _pydantic

import contemplate
import contemplate.cli.args as cli_args
import contemplate.config as config
import contemplate.datasource.registry as registry
import contemplate.datasource.spec as spec
import contemplate.errors as errors
import contemplate.logging as logging
import contemplate.reload.actions as actions
import contemplate.reload.dispatcher as dispatcher
import contemplate.render.engine as engine
import contemplate.render.plan as plan
import contemplate.render.renderer as renderer
import contemplate.supervisor as supervisor
import contemplate.watch.engine as watch_engine

_logger = _logging.getLogger(__name__)

# Custom Click context settings for better help formatting
CONTEXT_SETTINGS: dict[str, _typing.Any] = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 100,
}

_SCANNED = "contemplate.scanned"


class ContemplateCommand(_click.Command):
    """Click command that pre-scans order-sensitive options before parsing."""

    def parse_args(self, ctx: _click.Context, args: list[str]) -> list[str]:
        try:
            scanned = cli_args.scan(args)
        except errors.ConfigurationError as e:
            raise _click.UsageError(str(e), ctx) from e
        ctx.meta[_SCANNED] = scanned
        return super().parse_args(ctx, scanned.remaining)


def build_sources(
    settings: config.Settings,
    scanned: cli_args.ScannedArgs,
    namespace: str | None,
) -> list[spec.DataSourceSpec]:
    """Environment-declared sources first, then command-line sources in order."""
    namespace = namespace or settings.k8s_namespace
    specs = settings.datasource_specs(namespace=namespace)
    for kind, argument in scanned.sources:
        specs.append(spec.make_spec(kind, argument, namespace=namespace))
    return specs


def build_plan(
    scanned: cli_args.ScannedArgs,
    inputs: _typing.Sequence[str],
    output: str | None,
) -> plan.Plan:
    """
    Turn template options into a validated plan.

    Raises:
        ConfigurationError: On conflicting template options.
    """
    if scanned.templates and inputs:
        raise errors.ConfigurationError("--template cannot be combined with positional templates")
    if output is not None and (scanned.templates or scanned.in_place):
        raise errors.ConfigurationError("--output cannot be combined with --template or --in-place")

    mappings: list[plan.TemplateMapping] = []
    for source in inputs:
        if scanned.in_place:
            mappings.append(plan.TemplateMapping.in_place(source, scanned.backup_extension))
        else:
            mappings.append(plan.TemplateMapping.from_args(source, output))
    if not inputs and output is not None:
        mappings.append(plan.TemplateMapping.from_args("-", output))
    for source, destination in scanned.templates:
        if destination is None and scanned.in_place:
            mappings.append(plan.TemplateMapping.in_place(source, scanned.backup_extension))
        else:
            mappings.append(plan.TemplateMapping.from_args(source, destination))

    render_plan = plan.Plan(mappings)
    render_plan.validate()
    return render_plan


def build_action(
    scanned: cli_args.ScannedArgs,
    command: str | None,
    watch: bool,
) -> actions.SignalAction | actions.ShellCommandAction | actions.ExecAction | None:
    """
    Build the reload action from the mutually exclusive reload options.

    Raises:
        ConfigurationError: If more than one is given, or one is given without --watch.
    """
    given = [
        name
        for name, value in (
            ("--on-reload-signal", scanned.reload_signal),
            ("--on-reload-command", command),
            ("--on-reload-execute", scanned.reload_execute),
        )
        if value is not None
    ]
    if len(given) > 1:
        raise errors.ConfigurationError(f"Options {' and '.join(given)} are mutually exclusive")
    if given and not watch:
        raise errors.ConfigurationError(f"Option {given[0]} requires --watch")

    if scanned.reload_signal is not None:
        signal_text, target_text = scanned.reload_signal
        return actions.SignalAction(
            signal=actions.parse_signal(signal_text),
            target=actions.parse_target(target_text),
        )
    if command is not None:
        return actions.ShellCommandAction(command=command)
    if scanned.reload_execute is not None:
        path, *arguments = scanned.reload_execute
        return actions.ExecAction(path=path, args=tuple(arguments))
    return None


def _initial_render(
    source_registry: registry.SourceRegistry,
    render_plan: plan.Plan,
    render_pass: renderer.RenderPass,
    template_engine: engine.TemplateEngine,
) -> None:
    render_plan.load(template_engine)
    context_snapshot = source_registry.collect()
    watch_engine.log_provenance(context_snapshot)
    render_pass.render(context_snapshot, initial=True)


@_click.command(cls=ContemplateCommand, context_settings=CONTEXT_SETTINGS)
@_click.version_option(contemplate.__version__, "--version", prog_name="contemplate")
@_click.option(
    "-f",
    "--file",
    metavar="PATH",
    expose_value=False,
    help="Add a JSON, TOML or YAML file as a data source (repeatable).",
)
@_click.option(
    "-e",
    "--env",
    "--environment",
    metavar="[=PREFIX]",
    expose_value=False,
    help="Add environment variables (starting with PREFIX_) as a data source.",
)
@_click.option(
    "--k8s-configmap",
    metavar="NAME",
    expose_value=False,
    help="Add a Kubernetes ConfigMap as a data source (repeatable).",
)
@_click.option(
    "--k8s-secret",
    metavar="NAME",
    expose_value=False,
    help="Add a Kubernetes Secret as a data source (repeatable).",
)
@_click.option(
    "--k8s-namespace",
    metavar="NAME",
    default=None,
    help="Namespace for Kubernetes data sources.",
)
@_click.option(
    "-t",
    "--template",
    metavar="INPUT [OUTPUT]",
    expose_value=False,
    help="Render INPUT to OUTPUT ('-' for stdin/stdout; repeatable).",
)
@_click.option(
    "-o",
    "--output",
    metavar="PATH",
    default=None,
    help="Output for positional templates (default '-', stdout).",
)
@_click.option(
    "-i",
    "--in-place",
    metavar="[=SUFFIX]",
    expose_value=False,
    help="Overwrite templates with their output, backing up to PATH.SUFFIX.",
)
@_click.option("-w", "--watch", is_flag=True, help="Re-render when data sources change.")
@_click.option(
    "-d",
    "--daemonize",
    is_flag=True,
    help="Detach into the background after the first render (requires --watch).",
)
@_click.option(
    "--on-reload-signal",
    metavar="SIGNAL [PID|NAME]",
    expose_value=False,
    help="On reload, signal a PID, processes by name, or ':parent' (default).",
)
@_click.option(
    "-r",
    "--on-reload-command",
    metavar="COMMAND",
    default=None,
    help="On reload, run a shell command (changed files in $CONTEMPLATED_FILES).",
)
@_click.option(
    "-R",
    "--on-reload-execute",
    metavar="PATH [ARGS...] ;",
    expose_value=False,
    help="On reload, run a program without a shell.",
)
@_click.option(
    "-x",
    "--and-then-exec",
    metavar="PATH [ARGS...] ;",
    expose_value=False,
    help="After rendering, replace this process with a program.",
)
@_click.option("-v", "--verbose", count=True, help="Increase verbosity (repeatable).")
@_click.option("-q", "--quiet", count=True, help="Decrease verbosity (repeatable).")
@_click.option("--diff", is_flag=True, help="Print diffs of changed outputs to stderr.")
@_click.option("-n", "--dry-run", is_flag=True, help="Do not write any files.")
@_click.argument("inputs", nargs=-1, metavar="[TEMPLATE]...")
@_click.pass_context
def cli(
    ctx: _click.Context,
    k8s_namespace: str | None,
    output: str | None,
    watch: bool,
    daemonize: bool,
    on_reload_command: str | None,
    verbose: int,
    quiet: int,
    diff: bool,
    dry_run: bool,
    inputs: tuple[str, ...],
) -> None:
    """
    Contemplate - render configuration templates from files, the environment
    and Kubernetes, and keep them up to date.
    """
    scanned: cli_args.ScannedArgs = ctx.meta[_SCANNED]

    try:
        settings = config.Settings()
    except _pydantic.ValidationError as e:
        _click.echo(f"Error: invalid environment settings: {e}", err=True)
        ctx.exit(2)
    logging.configure_logging(verbose - quiet, settings.log)

    try:
        if verbose and quiet:
            raise errors.ConfigurationError("--verbose and --quiet are mutually exclusive")
        if daemonize and not watch:
            raise errors.ConfigurationError("Option --daemonize requires --watch")
        source_registry = registry.SourceRegistry.from_specs(build_sources(settings, scanned, k8s_namespace))
        render_plan = build_plan(scanned, inputs, output)
        reload_action = build_action(scanned, on_reload_command, watch)
        target = (
            supervisor.ExecTarget.resolve(scanned.and_then_exec[0], scanned.and_then_exec[1:])
            if scanned.and_then_exec
            else None
        )
        if watch:
            watch_engine.check_watch_preconditions(source_registry, render_plan)
    except errors.ConfigurationError as e:
        _click.echo(f"Error: {e}", err=True)
        ctx.exit(2)

    _logger.debug("Sources: %s", source_registry)
    _logger.debug("Plan: %s", render_plan)

    template_engine = engine.TemplateEngine()
    render_pass = renderer.RenderPass(
        render_plan,
        template_engine,
        renderer.RenderOptions(dry_run=dry_run, diff=diff),
    )
    try:
        _initial_render(source_registry, render_plan, render_pass, template_engine)
    except errors.ContemplateError as e:
        _logger.error("%s", e)
        ctx.exit(1)

    try:
        if not watch:
            if target is not None:
                supervisor.exec_target(target)
            return
        if daemonize:
            supervisor.daemonize()
        if target is not None:
            supervisor.fork_for_watch(target)

        watcher = watch_engine.WatchEngine(
            source_registry,
            render_pass,
            dispatcher.NotificationDispatcher(
                reload_action,
                terminate_timeout=settings.hook_terminate_timeout,
            ),
            debounce=settings.debounce_seconds,
        )
        _asyncio.run(watch_engine.run_until_signalled(watcher))
    except errors.ContemplateError as e:
        _logger.error("%s", e)
        ctx.exit(1)


def main() -> None:
    """Main entry point."""
    cli(prog_name="contemplate")


if __name__ == "__main__":
    main()
