"""CLI main entry point."""

import asyncio
import json
import sys

import click

from .application import ParascenarioApp
from .config import config_keys, load_config, save_config, unset_config
from .errors import ParascenarioError
from .feature import FeatureFile
from .formatters import (
    print_config_yaml,
    print_registry_table,
    print_run_summary,
    print_validation_result,
)
from .registry import find_registries
from .shared.logging import configure_logging
from .shared.paths import delete_path_if_exists

VERBOSITY_LEVELS = {0: "warning", 1: "info"}


def _load_config_or_exit(ctx: click.Context):
    try:
        return load_config(ctx.obj["config_path"])
    except ValueError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("-c", "--config", type=click.Path(), help="Config file path")
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--log-file", type=click.Path(), help="Write JSON logs to a file")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(
    ctx: click.Context,
    config: str | None,
    verbose: int,
    log_file: str | None,
    json_output: bool,
) -> None:
    """Run feature file scenarios on parallel device sessions."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["json_output"] = json_output

    configure_logging(
        level=VERBOSITY_LEVELS.get(verbose, "debug"),
        log_file=log_file,
        json_output=bool(log_file),
    )


@cli.command()
@click.argument("features", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--device", type=click.Choice(["web", "android"]), help="Device type override")
@click.option("--timeout", type=float, help="Process timeout override (seconds)")
@click.pass_context
def run(ctx: click.Context, features: tuple[str, ...], device: str | None, timeout: float | None) -> None:
    """Run every scenario of each FEATURE on its own device."""
    config = _load_config_or_exit(ctx)
    if device:
        config.device_type = device
    if timeout is not None:
        config.process_timeout = timeout

    def on_started(test_scenario) -> None:
        if not ctx.obj["json_output"]:
            count = len(test_scenario.feature_file.scenarios)
            click.echo(f"Running {test_scenario.feature_file.file_path} ({count} scenarios)")

    app = ParascenarioApp(features, config=config, on_started=on_started)

    try:
        finished = asyncio.run(app.run())
    except ParascenarioError as e:
        if ctx.obj["json_output"]:
            click.echo(json.dumps({"status": "error", "error": e.to_dict()}, indent=2))
        else:
            click.echo(f"Error: {e.message}", err=True)
            for problem in e.data.get("problems", []):
                click.echo(f"  - {problem}", err=True)
        sys.exit(1)

    if ctx.obj["json_output"]:
        click.echo(
            json.dumps(
                {
                    "status": "success",
                    "runs": [s.reporter.build_report() for s in finished],
                },
                indent=2,
            )
        )
    else:
        for test_scenario in finished:
            print_run_summary(test_scenario)


@cli.command()
@click.argument("features", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx: click.Context, features: tuple[str, ...]) -> None:
    """Check that each scenario has one unique @user tag."""
    results = []
    for path in features:
        feature_file = FeatureFile.load(path)
        results.append((path, feature_file.syntax_problems(), len(feature_file.scenarios)))

    if ctx.obj["json_output"]:
        click.echo(
            json.dumps(
                [
                    {"file": path, "valid": not problems, "errors": problems, "scenarios": count}
                    for path, problems, count in results
                ],
                indent=2,
            )
        )
    else:
        for path, problems, count in results:
            print_validation_result(path, problems, count)

    if any(problems for _, problems, _ in results):
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show process states of runs in progress."""
    config = _load_config_or_exit(ctx)
    registries = find_registries(config.work_dir)

    if ctx.obj["json_output"]:
        data = {
            registry.run_dir.name: {
                str(pid): state.value if state else None for pid, state in registry.snapshot().items()
            }
            for registry in registries
        }
        click.echo(json.dumps(data, indent=2))
    else:
        print_registry_table(registries)


@cli.command()
@click.pass_context
def clean(ctx: click.Context) -> None:
    """Delete the work directory of every run."""
    config = _load_config_or_exit(ctx)
    if delete_path_if_exists(config.work_dir):
        click.echo(f"Removed {config.work_dir}")
    else:
        click.echo("Nothing to clean.")


@cli.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration and where each value comes from."""
    loaded = _load_config_or_exit(ctx)
    data = loaded.to_dict()

    if ctx.obj["json_output"]:
        click.echo(
            json.dumps(
                {key: {"value": value, "source": loaded.get_source(key)} for key, value in data.items()},
                indent=2,
            )
        )
    else:
        print_config_yaml(data, {key: loaded.get_source(key) for key in data})


@config.command("set")
@click.argument("key", type=click.Choice(config_keys()))
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Persist a configuration value."""
    try:
        save_config(key, value, ctx.obj["config_path"])
    except ValueError as e:
        click.echo(f"Error: invalid value for {key}: {e}", err=True)
        sys.exit(1)
    click.echo(f"Set {key} = {value}")


@config.command("unset")
@click.argument("key", type=click.Choice(config_keys()))
@click.pass_context
def config_unset(ctx: click.Context, key: str) -> None:
    """Remove a persisted configuration value."""
    if unset_config(key, ctx.obj["config_path"]):
        click.echo(f"Unset {key}")
    else:
        click.echo(f"{key} is not set in the config file")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
