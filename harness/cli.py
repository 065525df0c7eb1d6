"""CLI interface for the runtime simulator."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from harness.config import SimulatorConfig, dump_config, load_config, save_config
from harness.suite import SuiteRunner, load_suite
from simulator.executor import RuntimeSimulator
from simulator.policy import scan_source

app = typer.Typer(help="Constrained runtime simulator CLI")


def _load(config_path: Optional[str]) -> SimulatorConfig:
    if config_path is None:
        return SimulatorConfig()
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        typer.secho(f"❌ Config file not found: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.secho(f"❌ Invalid config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _read_script(script_path: str) -> str:
    path = Path(script_path)
    if not path.exists():
        typer.secho(f"❌ Script not found: {script_path}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8")


def _configure_logging(config: SimulatorConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def run(
    script_path: str = typer.Argument(..., help="Path to the guarded script"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to simulator YAML config"),
    timeout_ms: Optional[float] = typer.Option(None, "--timeout-ms", help="Override max execution time"),
    memory_bytes: Optional[int] = typer.Option(None, "--memory-bytes", help="Override memory budget"),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run a script under the configured constraints."""
    config = _load(config_path)
    try:
        config = config.with_budget_overrides(max_execution_time_ms=timeout_ms, max_memory_bytes=memory_bytes)
    except ValueError as e:
        typer.secho(f"❌ Invalid budget override: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    _configure_logging(config, verbose)
    source = _read_script(script_path)

    simulator = RuntimeSimulator(budget=config.budget, policy=config.policy)
    outcome = simulator.run(source)

    if as_json:
        typer.echo(json.dumps(outcome.to_report(), indent=2))
    else:
        for line in outcome.console:
            typer.echo(f"   {line}")
        metrics = outcome.metrics
        if outcome.success:
            typer.secho(f"✅ Succeeded: {outcome.value_repr}", fg=typer.colors.GREEN)
        else:
            typer.secho(
                f"❌ Failed ({outcome.error.category.value}): {outcome.error.message}",
                fg=typer.colors.RED,
                err=True,
            )
        typer.echo(f"   Time:   {metrics.execution_time_ms:.2f}ms (ui blocking: {metrics.ui_blocking})")
        typer.echo(f"   Memory: {metrics.peak_memory_bytes} bytes peak")
        for violation in metrics.violations:
            marker = "fatal" if violation.fatal else "warn"
            typer.echo(f"   [{marker}] {violation.category.value}: {violation.message}")

    if not outcome.success:
        raise typer.Exit(1)


@app.command()
def check(
    script_path: str = typer.Argument(..., help="Path to the guarded script"),
) -> None:
    """Scan a script for denied capability references without running it."""
    source = _read_script(script_path)
    findings = scan_source(source)

    if not findings:
        typer.secho("✅ No denied capabilities referenced", fg=typer.colors.GREEN)
        return

    typer.secho(f"⚠️  {len(findings)} denied capability reference(s):", fg=typer.colors.YELLOW)
    for finding in findings:
        typer.echo(f"   {finding.identifier:<16} {finding.capability.value}")


@app.command()
def suite(
    suite_path: str = typer.Argument(..., help="Path to suite YAML"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to simulator YAML config"),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Show a progress bar"),
) -> None:
    """Run every case of a suite and report pass/fail."""
    config = _load(config_path)
    _configure_logging(config, verbose=False)

    try:
        loaded = load_suite(suite_path)
    except FileNotFoundError as e:
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.secho(f"❌ Invalid suite: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    runner = SuiteRunner(RuntimeSimulator(budget=config.budget, policy=config.policy), show_progress=progress)
    report = runner.run(loaded)

    typer.echo(f"\n{'Case':<30} {'Expected':<12} {'Observed':<12} {'Time (ms)':>10}")
    typer.echo("-" * 68)
    for result in report.results:
        mark = "✅" if result.passed else "❌"
        typer.echo(
            f"{mark} {result.name:<28} {result.expected:<12} {result.observed:<12} "
            f"{result.execution_time_ms:>10.2f}"
        )

    typer.echo(f"\nPassed: {report.passed}  Failed: {report.failed}")
    for category, count in report.failures_by_category.items():
        typer.echo(f"   {category}: {count}")

    if not report.all_passed:
        raise typer.Exit(1)


@app.command()
def defaults(
    output: Optional[str] = typer.Option(None, "--output", help="Write the default config to this path"),
) -> None:
    """Print or save the default simulator configuration."""
    config = SimulatorConfig()
    if output is None:
        typer.echo(dump_config(config))
        return

    save_config(config, output)
    typer.secho(f"✅ Default config written to {output}", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
