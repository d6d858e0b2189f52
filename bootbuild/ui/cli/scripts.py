"""
CLI commands for the script registry.

Thin wrappers over ``bootbuild.core.services.registry``.
"""

from __future__ import annotations

import json
import sys

import click

# Session cache entry for the on-disk script scan
_SCAN_ENTRY = "script-scan.json"


def _registry(ctx: click.Context):
    from bootbuild.core.services.registry import ScriptRegistry

    return ScriptRegistry(ctx.obj["config"])


def _fail(message: str) -> None:
    click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


@click.group()
def scripts() -> None:
    """Scripts — list, inspect and locate setup scripts."""


@scripts.command("list")
@click.option("--phase", type=int, default=None, help="Only scripts in this phase.")
@click.option("--profile", default=None, help="Only scripts in this profile.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_scripts(ctx: click.Context, phase: int | None, profile: str | None, as_json: bool) -> None:
    """List scripts grouped by phase, with menu numbers."""
    from bootbuild.core.errors import BootbuildError
    from bootbuild.core.persistence.markers import CompletionMarkers

    registry = _registry(ctx)
    done = set(CompletionMarkers(ctx.obj["config"].logs_dir).completed())

    try:
        if profile is not None and not registry.profile_exists(profile):
            _fail(f"Unknown profile: {profile}")
            return
        wanted = set(registry.profile_scripts(profile)) if profile else None
        rows = []
        for number, sid in registry.script_number_map():
            entry = registry.script(sid)
            if entry is None:
                continue
            if phase is not None and entry.phase != phase:
                continue
            if wanted is not None and sid not in wanted:
                continue
            rows.append({
                "number": number,
                "id": sid,
                "phase": entry.phase,
                "short": entry.short,
                "status": registry.script_status(sid),
                "completed": sid in done,
            })
        phase_names = {p: registry.phase_name(p) for p in registry.phases()}
    except BootbuildError as e:
        _fail(str(e))
        return

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        click.echo("No scripts found.")
        return

    current = None
    for row in rows:
        if row["phase"] != current:
            current = row["phase"]
            click.secho(f"\n  Phase {current}: {phase_names.get(current, '')}", fg="cyan", bold=True)
        marker = " ✓" if row["completed"] else ""
        color = "red" if row["status"] == "missing" else None
        click.secho(f"   {row['number']:>3}. {row['id']:<20} {row['short']}{marker}", fg=color)
    click.echo()


@scripts.command()
@click.argument("script_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, script_id: str, as_json: bool) -> None:
    """Show one script's manifest entry and dependencies."""
    from bootbuild.core.errors import BootbuildError

    registry = _registry(ctx)
    try:
        entry = registry.script(script_id)
        if entry is None:
            _fail(f"Script not in manifest: {script_id}")
            return
        tools = [str(t) for t in registry.script_requires_tools(script_id)]
        optional = [str(t) for t in registry.script_optional_tools(script_id)]
        path = registry.script_file_resolves(script_id)
        status = registry.script_status(script_id)
    except BootbuildError as e:
        _fail(str(e))
        return

    if as_json:
        data = entry.model_dump(mode="json")
        data.update({
            "requires_tools": tools,
            "optional_tools": optional,
            "path": str(path) if path else None,
            "status": status,
        })
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"📜 {entry.id}", fg="cyan", bold=True)
    if entry.description or entry.short:
        click.echo(f"   {entry.description or entry.short}")
    click.echo(f"   Phase:    {entry.phase if entry.phase is not None else '-'}")
    if entry.category:
        click.echo(f"   Category: {entry.category}")
    click.echo(f"   File:     {path or '-'} ({status})")
    if entry.depends:
        click.echo(f"   Depends:  {', '.join(entry.depends)}")
    if tools:
        click.echo(f"   Tools:    {', '.join(tools)}")
    if optional:
        click.echo(f"   Optional: {', '.join(optional)}")


@scripts.command()
@click.argument("script_id")
@click.pass_context
def path(ctx: click.Context, script_id: str) -> None:
    """Print the resolved path of a script's file."""
    from bootbuild.core.errors import BootbuildError

    registry = _registry(ctx)
    try:
        if not registry.script_exists(script_id):
            _fail(f"Script not in manifest: {script_id}")
            return
        resolved = registry.script_file_resolves(script_id)
    except BootbuildError as e:
        _fail(str(e))
        return

    if resolved is None:
        _fail(f"Script has no file: {script_id}")
        return
    click.echo(str(resolved))
    if not resolved.is_file():
        sys.exit(1)


@scripts.command()
@click.option("--refresh", is_flag=True, help="Ignore the cached scan.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def missing(ctx: click.Context, refresh: bool, as_json: bool) -> None:
    """Declared scripts without a file, and script files not in the manifest."""
    from bootbuild.core.errors import BootbuildError
    from bootbuild.core.persistence.session_cache import SessionCache

    config = ctx.obj["config"]
    session = SessionCache(config)
    scan = None
    cached = None if refresh else session.read_fresh(_SCAN_ENTRY)
    if cached is not None:
        try:
            scan = json.loads(cached)
        except json.JSONDecodeError:
            scan = None

    if scan is None:
        registry = _registry(ctx)
        try:
            scan = {
                "missing": registry.find_missing_scripts(),
                "new": registry.discover_new_scripts(),
            }
        except BootbuildError as e:
            _fail(str(e))
            return
        try:
            session.write(_SCAN_ENTRY, json.dumps(scan))
        except OSError as e:
            click.secho(f"⚠️  Could not cache scan: {e}", fg="yellow", err=True)

    if as_json:
        click.echo(json.dumps(scan, indent=2))
        return

    if not scan["missing"] and not scan["new"]:
        click.secho("✅ Manifest and script files agree", fg="green")
        return
    if scan["missing"]:
        click.secho("❌ Declared but missing on disk:", fg="red")
        for sid in scan["missing"]:
            click.echo(f"   • {sid}")
    if scan["new"]:
        click.secho("⚠️  On disk but not in the manifest:", fg="yellow")
        for sid in scan["new"]:
            click.echo(f"   • {sid}")
