"""
runtimectl — CLI entrypoint.

Usage:
    python -m runtimectl.main --help
    python -m runtimectl.main status
    python -m runtimectl.main runtimes install php 8.4
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from runtimectl.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    resolve_level,
    setup_logging,
)

from runtimectl import __version__


@click.group()
@click.version_option(version=__version__, prog_name="runtimectl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to runtimectl.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """runtimectl — manage locally installed PHP and Node.js versions."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
        quiet_third_party=not debug,
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show installed versions of every runtime kind."""
    from runtimectl.core.use_cases.status import get_status
    from runtimectl.ui.cli.runtimes import load_registry

    result = get_status(load_registry(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not ctx.obj.get("quiet", False):
        click.secho("\n🧩 runtimectl", fg="cyan", bold=True)
        click.echo(f"   📁 {result.data_dir}")
        click.echo()

    for kind in result.kinds:
        click.secho(f"   {kind.display_name}: {len(kind.versions)} installed", fg="white", bold=True)
        for version in kind.versions:
            marker = " ← default" if version["default"] else ""
            click.echo(f"     • {version['major']:<6} {version['version'] or '?'}{marker}")
        for project, major in kind.pinned_projects.items():
            click.echo(f"     📌 {project} → {major}")

    op = result.last_operation
    if op:
        click.echo()
        click.secho("   Last operation:", fg="white", bold=True)
        status_color = {"ok": "green", "failed": "red"}.get(op["status"], "white")
        click.echo(f"     {op['operation_type']} {op['kind']} {op['major']} — ", nl=False)
        click.secho(op["status"], fg=status_color)
        click.echo(f"     at {op['timestamp']}")

    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def health(ctx: click.Context, as_json: bool) -> None:
    "Show runtime health — records vs disk vs pointer, catalog circuits."
    from runtimectl.core.observability.health import check_system_health
    from runtimectl.ui.cli.runtimes import load_registry

    system_health = check_system_health(load_registry(ctx))

    if as_json:
        click.echo(json.dumps(system_health.to_dict(), indent=2))
        return

    status_icons = {
        "healthy": ("💚", "green"),
        "degraded": ("🟡", "yellow"),
        "unhealthy": ("🔴", "red"),
        "unknown": ("❔", "white"),
    }
    icon, color = status_icons.get(system_health.status, ("❔", "white"))

    click.echo()
    click.secho(f"{icon} System Health: {system_health.status.upper()}", fg=color, bold=True)
    click.echo(f"   {system_health.timestamp}")
    click.echo()

    for component in system_health.components:
        c_icon, c_color = status_icons.get(component.status, ("❔", "white"))
        click.secho(f"   {c_icon} {component.name}", fg=c_color, bold=True)
        click.echo(f"      {component.message}")

        if ctx.obj.get("verbose") and component.details:
            for key, val in component.details.items():
                click.echo(f"      {key}: {val}")

    click.echo()

    if system_health.status == "unhealthy":
        sys.exit(1)


@cli.command()
@click.option("-n", "count", default=20, type=int, help="Number of entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent operations from the audit ledger."""
    from runtimectl.core.persistence.audit import AuditWriter
    from runtimectl.ui.cli.runtimes import load_registry

    audit = load_registry(ctx).audit or AuditWriter()
    entries = audit.read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.secho("No operations recorded yet", fg="yellow")
        return

    for entry in entries:
        icon = "✅" if entry.status == "ok" else "❌"
        target = f"{entry.kind} {entry.major}".strip()
        click.echo(f"{icon} {entry.timestamp[:19]}  {entry.operation_type:<12} {target:<12} {entry.duration_ms}ms")
        for err in entry.errors:
            click.secho(f"      {err}", fg="red")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", "-p", default=8000, type=int, help="Port number.")
@click.option("--no-sync", is_flag=True, help="Skip start-up reconciliation.")
@click.pass_context
def web(ctx: click.Context, host: str, port: int, no_sync: bool) -> None:
    "Start the JSON HTTP API."
    from runtimectl.ui.cli.runtimes import load_registry
    from runtimectl.ui.web.server import create_app, run_server

    registry = load_registry(ctx)
    app = create_app(registry, initialize=not no_sync)

    debug = ctx.obj.get("debug", False)

    click.echo()
    click.secho("⚡ runtimectl — HTTP API", bold=True)
    click.echo(f"   API:  http://{host}:{port}/api/runtimes")
    click.echo(f"   Data: {registry.paths.data_dir}")
    if debug:
        click.secho("   Logging: DEBUG (all output)", fg="yellow")
    click.echo()

    run_server(app, host=host, port=port, debug=debug)


# ── Register sub-command groups from runtimectl/ui/cli/ ─────────

from runtimectl.ui.cli.runtimes import runtimes

cli.add_command(runtimes)


def main() -> None:
    """Entry point for the runtimectl console script."""
    cli()


if __name__ == "__main__":
    main()
