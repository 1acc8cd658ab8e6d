"""CLI output formatting helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click
import yaml
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from .registry import ProcessRegistry
    from .scenario import TestScenario

console = Console()

STATE_STYLES = {
    "created": "dim",
    "running": "yellow",
    "finished": "green",
    "failed": "red",
}


def print_config_yaml(data: dict[str, Any], sources: dict[str, str] | None = None) -> None:
    """Print config as YAML, with the source of each value as a comment.

    Args:
        data: Configuration data
        sources: Optional key -> source mapping
    """
    for line in yaml.safe_dump(data, default_flow_style=False, sort_keys=False).splitlines():
        key = line.split(":", 1)[0]
        if sources and key in sources:
            click.echo(f"{line}  # {sources[key]}")
        else:
            click.echo(line)


def print_validation_result(file: str, problems: list[str], scenario_count: int) -> None:
    """Print feature file validation results.

    Args:
        file: File being validated
        problems: List of syntax problems
        scenario_count: Number of scenarios found
    """
    click.echo(f"Validating: {file}")

    if problems:
        click.echo("ERRORS:")
        for problem in problems:
            click.echo(f"  ✗ {problem}")
        click.echo(f"\nValidation failed with {len(problems)} errors")
    else:
        click.echo(f"✓ Validation passed ({scenario_count} scenarios)")


def print_run_summary(test_scenario: TestScenario) -> None:
    """Print the per-process outcome of a finished run.

    Args:
        test_scenario: Finished scenario run
    """
    feature = test_scenario.feature_file
    click.echo(f"Feature: {feature.name or feature.file_path}")
    click.echo(f"Execution: {test_scenario.execution_id}")

    for process in test_scenario.processes:
        outcome = process.outcome
        if outcome is None:
            status = f"failed ({process.error})" if process.error else process.state.value
        else:
            status = "passed" if outcome.passed else f"failed (exit {outcome.exit_code})"
        tag = process.actor_tag or "-"
        click.echo(f"  {process.id}. {tag} on {process.device.device_id}: {status}")

    click.echo(f"Report: {test_scenario.reporter.report_file}")


def print_registry_table(registries: list[ProcessRegistry]) -> None:
    """Print the process states of every run found on disk.

    Args:
        registries: Registries to show
    """
    if not registries:
        console.print("No scenario runs in progress.")
        return

    table = Table(title="Scenario runs")
    table.add_column("Execution")
    table.add_column("Process", justify="right")
    table.add_column("Device")
    table.add_column("Actor")
    table.add_column("State")

    for registry in registries:
        lookup = registry.read_dictionary()
        for process_id, state in registry.snapshot().items():
            entry = lookup.get(process_id, {})
            state_name = state.value if state else "unknown"
            style = STATE_STYLES.get(state_name, "")
            table.add_row(
                registry.run_dir.name,
                str(process_id),
                entry.get("device") or registry.read_record(process_id).get("device") or "-",
                entry.get("actor_tag") or "-",
                f"[{style}]{state_name}[/{style}]" if style else state_name,
            )

    console.print(table)
