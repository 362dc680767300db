"""
CLI commands for runtime version management.

Thin wrappers over ``runtimectl.core.services.runtime``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from runtimectl.core.services.runtime import php_ini
from runtimectl.core.services.runtime.errors import RuntimeCtlError
from runtimectl.core.services.runtime.manager import RuntimeManager
from runtimectl.core.services.runtime.registry import RuntimeRegistry


def load_registry(ctx: click.Context) -> RuntimeRegistry:
    """Registry for this invocation, built once from settings."""
    registry: RuntimeRegistry | None = ctx.obj.get("registry")
    if registry is not None:
        return registry

    from runtimectl.core.config.loader import ConfigError, load_settings
    from runtimectl.core.context import set_data_dir
    from runtimectl.core.services.runtime.registry import build_registry

    try:
        settings = load_settings(ctx.obj.get("config_path"))
        set_data_dir(settings.data_dir)
        registry = build_registry(settings)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    ctx.obj["registry"] = registry
    return registry


def _manager(ctx: click.Context, kind: str) -> RuntimeManager:
    registry = load_registry(ctx)
    if kind not in registry:
        click.secho(f"❌ Unknown runtime kind '{kind}' (configured: {', '.join(registry.kinds())})", fg="red")
        sys.exit(1)
    return registry.get(kind)


def _fail(error: RuntimeCtlError) -> None:
    click.secho(f"❌ {error}", fg="red")
    sys.exit(1)


def _progress_printer(label: str):  # type: ignore[no-untyped-def]
    last = {"pct": -1}

    def show(value: float) -> None:
        pct = int(value * 100)
        if pct != last["pct"]:
            last["pct"] = pct
            click.echo(f"\r   {label}: {pct:3d}%", nl=False)

    return show


@click.group()
def runtimes() -> None:
    """Runtimes — list, install, update, remove, default, config, sync, pin."""


# ── Observe ─────────────────────────────────────────────────────


@runtimes.command("list")
@click.argument("kind")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_versions(ctx: click.Context, kind: str, as_json: bool) -> None:
    """List installed versions of KIND."""
    manager = _manager(ctx, kind)
    records = manager.records()

    if as_json:
        click.echo(json.dumps([r.model_dump(mode="json") for r in records], indent=2))
        return

    if not records:
        click.secho(f"⚠️  No {manager.label} versions installed", fg="yellow")
        return

    click.secho(f"🧩 {manager.label}:", fg="cyan", bold=True)
    for record in records:
        marker = " ← default" if record.is_default else ""
        click.echo(f"   • {record.major:<6} {record.full_version or '?'}{marker}")
    click.echo()


@runtimes.command()
@click.argument("kind")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def available(ctx: click.Context, kind: str, as_json: bool) -> None:
    """Show versions of KIND available for download."""
    manager = _manager(ctx, kind)
    manager.refresh()
    snapshot = manager.snapshot()

    if as_json:
        click.echo(json.dumps(
            {
                "catalog": snapshot["catalog"],
                "updates": snapshot["updates"],
                "error": snapshot["catalog_error"],
            },
            indent=2,
        ))
        return

    if snapshot["catalog_error"]:
        click.secho(f"⚠️  {snapshot['catalog_error']}", fg="yellow")
        if not snapshot["catalog"]:
            sys.exit(1)

    click.secho(f"🌐 {manager.label} releases:", fg="cyan", bold=True)
    for major, info in snapshot["catalog"].items():
        tags = []
        if info["is_lts"]:
            tags.append("LTS")
        if info["is_eol"]:
            tags.append("EOL")
        tag_label = f" [{', '.join(tags)}]" if tags else ""
        icon = "✅" if info["installed"] else "  "
        update = snapshot["updates"].get(major)
        update_label = "  ⬆️  update available" if update else ""
        click.echo(f"   {icon} {major:<6} {info['latest']}{tag_label}{update_label}")
    click.echo()


# ── Act ─────────────────────────────────────────────────────────


@runtimes.command()
@click.argument("kind")
@click.argument("major")
@click.pass_context
def install(ctx: click.Context, kind: str, major: str) -> None:
    """Download and install MAJOR of KIND."""
    manager = _manager(ctx, kind)
    try:
        record = manager.install(major, progress=_progress_printer(f"{manager.label} {major}"))
    except RuntimeCtlError as e:
        click.echo()
        _fail(e)
        return

    click.echo()
    default = " (default)" if record.is_default else ""
    click.secho(f"✅ Installed {manager.label} {record.full_version}{default}", fg="green")


@runtimes.command()
@click.argument("kind")
@click.argument("major")
@click.pass_context
def update(ctx: click.Context, kind: str, major: str) -> None:
    """Update MAJOR of KIND to its latest release."""
    manager = _manager(ctx, kind)
    manager.refresh()
    try:
        record = manager.update(major, progress=_progress_printer(f"{manager.label} {major}"))
    except RuntimeCtlError as e:
        click.echo()
        _fail(e)
        return

    click.echo()
    click.secho(f"✅ Updated {manager.label} {major} to {record.full_version}", fg="green")


@runtimes.command()
@click.argument("kind")
@click.argument("major")
@click.pass_context
def remove(ctx: click.Context, kind: str, major: str) -> None:
    """Remove MAJOR of KIND (not the default, not the last one)."""
    manager = _manager(ctx, kind)
    try:
        manager.remove(major)
    except RuntimeCtlError as e:
        _fail(e)
        return
    click.secho(f"🗑️  Removed {manager.label} {major}", fg="green")


@runtimes.command()
@click.argument("kind")
@click.argument("major")
@click.pass_context
def default(ctx: click.Context, kind: str, major: str) -> None:
    """Make MAJOR the default version of KIND."""
    manager = _manager(ctx, kind)
    try:
        manager.set_default(major)
    except RuntimeCtlError as e:
        _fail(e)
        return
    click.secho(f"✅ Default {manager.label} is now {major}", fg="green")


@runtimes.command()
@click.argument("kind")
@click.argument("major")
@click.option("--memory-limit", type=int, default=None, help="memory_limit in MB (-1: unlimited).")
@click.option("--upload-max-filesize", type=int, default=None,
              help="upload_max_filesize and post_max_size in MB (-1: unlimited).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config(
    ctx: click.Context,
    kind: str,
    major: str,
    memory_limit: int | None,
    upload_max_filesize: int | None,
    as_json: bool,
) -> None:
    """Show or change the managed settings of MAJOR of KIND."""
    manager = _manager(ctx, kind)
    changed: list[str] = []
    try:
        if memory_limit is not None or upload_max_filesize is not None:
            changed = manager.update_settings(
                major, memory_limit=memory_limit, upload_max_filesize=upload_max_filesize,
            )
        settings = manager.read_settings(major)
    except RuntimeCtlError as e:
        _fail(e)
        return

    if as_json:
        data = settings.model_dump(mode="json")
        data["changed"] = changed
        click.echo(json.dumps(data, indent=2))
        return

    if changed:
        click.secho(f"✅ Updated {', '.join(changed)} (restart {manager.label} {major} to apply)", fg="green")
    click.secho(f"⚙️  {manager.label} {major}:", fg="cyan", bold=True)
    click.echo(f"   memory_limit:        {php_ini.format_size(settings.memory_limit)}")
    click.echo(f"   upload_max_filesize: {php_ini.format_size(settings.upload_max_filesize)}")
    click.echo(f"   CA bundle:           {settings.ca_bundle or '(not set)'}")


@runtimes.command()
@click.argument("kind", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def sync(ctx: click.Context, kind: str | None, as_json: bool) -> None:
    """Reconcile records with disk for KIND (default: every kind)."""
    registry = load_registry(ctx)
    managers = [_manager(ctx, kind)] if kind else list(registry)

    reports = {}
    failed = False
    for manager in managers:
        manager.refresh()
        try:
            reports[manager.kind.name] = manager.sync(bootstrap=True).to_dict()
        except RuntimeCtlError as e:
            reports[manager.kind.name] = {"error": str(e)}
            failed = True

    if as_json:
        click.echo(json.dumps(reports, indent=2))
        sys.exit(1 if failed else 0)
        return

    for name, report in reports.items():
        label = registry.get(name).label
        if "error" in report:
            click.secho(f"❌ {label}: {report['error']}", fg="red")
            continue
        if report["mutations"] == 0:
            click.secho(f"✅ {label}: in sync", fg="green")
            continue
        click.secho(f"🔄 {label}: {report['mutations']} change(s)", fg="yellow", bold=True)
        for field_name in (
            "created", "updated", "recovered", "deleted",
            "binaries_removed", "duplicates_removed", "pointer_rewrites",
        ):
            if report[field_name]:
                click.echo(f"   {field_name.replace('_', ' ')}: {', '.join(report[field_name])}")
        for error in report["errors"]:
            click.secho(f"   ⚠️  {error}", fg="yellow")

    if failed:
        sys.exit(1)


# ── Pins ────────────────────────────────────────────────────────


@runtimes.command()
@click.argument("kind")
@click.argument("major")
@click.option("--project", "project_dir", type=click.Path(file_okay=False), default=None,
              help="Project directory (default: cwd).")
@click.pass_context
def pin(ctx: click.Context, kind: str, major: str, project_dir: str | None) -> None:
    """Pin a project to MAJOR of KIND."""
    manager = _manager(ctx, kind)
    registry = load_registry(ctx)
    if not any(r.major == major for r in manager.records()):
        click.secho(f"❌ {manager.label} {major} is not installed", fg="red")
        sys.exit(1)

    project = str(Path(project_dir or Path.cwd()).resolve())
    registry.store.pin(kind, project, major)
    registry.store.save()
    click.secho(f"📌 {project} → {manager.label} {major}", fg="green")


@runtimes.command()
@click.argument("kind")
@click.option("--project", "project_dir", type=click.Path(file_okay=False), default=None,
              help="Project directory (default: cwd).")
@click.pass_context
def unpin(ctx: click.Context, kind: str, project_dir: str | None) -> None:
    """Remove a project's pin for KIND."""
    manager = _manager(ctx, kind)
    registry = load_registry(ctx)

    project = str(Path(project_dir or Path.cwd()).resolve())
    if not registry.store.clear_reference(kind, project):
        click.secho(f"⚠️  {project} has no {manager.label} pin", fg="yellow")
        return
    registry.store.save()
    click.secho(f"✅ Unpinned {project} from {manager.label}", fg="green")
