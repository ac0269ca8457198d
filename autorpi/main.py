"""
auto-rpi-config — CLI entrypoint.

Usage:
    auto-rpi-config [OPTIONS] [CONFIG]
    auto-rpi-config --check config.yml
    auto-rpi-config --mock --only system --no-reboot config.yml
    autorpi-health [--json]
"""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path

import click

from autorpi import __version__
from autorpi.core.observability.logging_config import setup_logging

_RESULT_MARKS = {
    "success": ("✓", "green"),
    "failed": ("✗", "red"),
    "skipped": ("⊘", "yellow"),
}

_HEALTH_MARKS = {
    "healthy": ("✓", "green"),
    "degraded": ("⚠", "yellow"),
    "unhealthy": ("✗", "red"),
    "unknown": ("ℹ", "blue"),
}


def _configure_logging(verbose: bool = False, quiet: bool = False, debug: bool = False) -> None:
    """Level precedence: --debug > --verbose > --quiet > AUTORPI_LOG_LEVEL > INFO."""
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("AUTORPI_LOG_LEVEL", "INFO")

    setup_logging(
        level=level,
        log_file=os.environ.get("AUTORPI_LOG_FILE"),
        log_file_level=os.environ.get("AUTORPI_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


@click.command()
@click.version_option(version=__version__, prog_name="auto-rpi-config")
@click.argument("config_path", metavar="[CONFIG]", required=False, type=click.Path(dir_okay=False))
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False),
    envvar="AUTORPI_STATE_DIR",
    default=None,
    help="Completion marker directory (default: /var/lib/rpi-config/state).",
)
@click.option("--force", is_flag=True, help="Ignore completion markers and re-apply every unit.")
@click.option("--only", "only", multiple=True, metavar="UNIT", help="Run only this unit (repeatable).")
@click.option("--check", "check_only", is_flag=True, help="Validate the manifest and exit.")
@click.option("--list-units", is_flag=True, help="List units in execution order and exit.")
@click.option("--status", "show_status", is_flag=True, help="Show what has been provisioned and exit.")
@click.option("--mock", is_flag=True, help="Use in-memory adapters (nothing touches the host).")
@click.option("--no-reboot", is_flag=True, help="Report a required reboot instead of rebooting.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
def cli(
    config_path: str | None,
    state_dir: str | None,
    force: bool,
    only: tuple[str, ...],
    check_only: bool,
    list_units: bool,
    show_status: bool,
    mock: bool,
    no_reboot: bool,
    as_json: bool,
    verbose: bool,
    quiet: bool,
    debug: bool,
) -> None:
    """Provision this Raspberry Pi from a YAML manifest (default: config.yml).

    Examples:

        auto-rpi-config

        auto-rpi-config --check my-pi.yml

        auto-rpi-config --only containers --only 3dprinter --no-reboot
    """
    _configure_logging(verbose=verbose, quiet=quiet, debug=debug)

    if list_units:
        _list_units(as_json)
        return
    if show_status:
        _show_status(state_dir, as_json)
        return
    if check_only:
        _check(config_path, as_json)
        return

    from autorpi.adapters.registry import mock_capabilities, system_capabilities
    from autorpi.core.use_cases.run import run_provision

    if mock and state_dir is None:
        state_dir = str(Path(tempfile.mkdtemp(prefix="autorpi-mock-")) / "state")

    result = run_provision(
        config_path=config_path,
        state_dir=state_dir,
        caps=mock_capabilities() if mock else system_capabilities(),
        only=list(only) or None,
        force=force,
        reboot=not no_reboot,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    report = result.report
    if result.error or report is None:
        click.secho(f"✗ {result.error or 'No provisioning report produced'}", fg="red", err=True)
        sys.exit(result.exit_code)

    mode_label = "[mock] " if mock else ""
    click.secho(f"\n{mode_label}Provisioning summary — {result.config_path}", fg="cyan", bold=True)
    click.echo()
    for unit_result in report.results:
        mark, color = _RESULT_MARKS[unit_result.outcome.value]
        click.secho(f"   {mark} {unit_result.unit}", fg=color, nl=False)
        message = f"  {unit_result.message}" if unit_result.message else ""
        timing = f" ({unit_result.duration_ms}ms)" if unit_result.duration_ms else ""
        click.echo(f"{timing}{message}")
        if verbose:
            for warning in unit_result.warnings:
                click.echo(f"     │ ⚠ {warning}")

    click.echo()
    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(report.status, "white")
    click.secho(
        f"   Result: {report.succeeded} succeeded, {report.failed} failed, {report.skipped} skipped",
        fg=status_color,
        bold=True,
    )
    if report.aborted_by:
        click.secho(f"   Aborted after critical unit '{report.aborted_by}' failed", fg="red")
    if result.reboot_required and not result.rebooted:
        click.secho("   ⚠ A reboot is required to finish provisioning", fg="yellow")
    click.echo()

    sys.exit(result.exit_code)


def _list_units(as_json: bool) -> None:
    from autorpi.core.units import default_units

    units = default_units()
    if as_json:
        click.echo(json.dumps([{"name": u.name, "description": u.description} for u in units], indent=2))
        return
    for position, unit in enumerate(units, start=1):
        click.echo(f"   {position:2d}. {unit.name:<12} {unit.description}")


def _show_status(state_dir: str | None, as_json: bool) -> None:
    from autorpi.core.use_cases.status import get_status

    result = get_status(state_dir)
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"\nState: {result.state_dir}", fg="cyan", bold=True)
    for name in result.configured_units:
        click.secho(f"   ✓ {name}", fg="green")
    for name in result.pending_units:
        click.secho(f"   · {name}", fg="white")
    extra = [m for m in result.markers if m not in result.configured_units]
    if extra:
        click.echo(f"   Sub-resources: {', '.join(extra)}")

    if result.last_run:
        run = result.last_run
        color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(run.status, "white")
        click.echo()
        click.echo(f"   Last run {run.operation_id} at {run.timestamp} — ", nl=False)
        click.secho(run.status, fg=color)
    click.echo()


def _check(config_path: str | None, as_json: bool) -> None:
    from autorpi.core.use_cases.config_check import check_config

    result = check_config(config_path)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        click.secho(f"✓ Configuration is valid: {result.config_path}", fg="green", bold=True)
    else:
        click.secho("✗ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠ Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    sys.exit(0 if result.valid else 1)


@click.command()
@click.version_option(version=__version__, prog_name="autorpi-health")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Show check details.")
def health(as_json: bool, verbose: bool) -> None:
    """Report disk, temperature, NVMe and service health."""
    from autorpi.adapters.registry import system_capabilities
    from autorpi.core.observability.health import check_system_health

    _configure_logging(verbose=False, quiet=True)
    system_health = check_system_health(system_capabilities())

    if as_json:
        click.echo(json.dumps(system_health.to_dict(), indent=2))
        sys.exit(1 if system_health.status == "unhealthy" else 0)

    mark, color = _HEALTH_MARKS.get(system_health.status, ("ℹ", "white"))
    click.echo("=== System Health Check ===")
    click.echo(f"Timestamp: {system_health.timestamp}")
    click.echo()
    for component in system_health.components:
        c_mark, c_color = _HEALTH_MARKS.get(component.status, ("ℹ", "white"))
        click.secho(f"{c_mark} {component.name}: {component.message}", fg=c_color)
        if verbose:
            for key, val in component.details.items():
                click.echo(f"     {key}: {val}")
    click.echo()
    click.secho(f"{mark} Overall: {system_health.status.upper()}", fg=color, bold=True)
    sys.exit(1 if system_health.status == "unhealthy" else 0)


if __name__ == "__main__":
    cli()
