"""
CLI commands for completion markers.

Thin wrappers over ``bootbuild.core.persistence.markers``.
"""

from __future__ import annotations

import json
import sys

import click


def _markers(ctx: click.Context):
    from bootbuild.core.persistence.markers import CompletionMarkers

    return CompletionMarkers(ctx.obj["config"].logs_dir)


@click.group()
def markers() -> None:
    """Markers — which setup scripts have completed."""


@markers.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_markers(ctx: click.Context, as_json: bool) -> None:
    """List scripts with a completion marker."""
    completed = _markers(ctx).completed()

    if as_json:
        click.echo(json.dumps(completed, indent=2))
        return

    if not completed:
        click.echo("No scripts have completed yet.")
        return
    for sid in completed:
        click.secho(f"   ✓ {sid}", fg="green")


@markers.command()
@click.argument("script_id")
@click.pass_context
def mark(ctx: click.Context, script_id: str) -> None:
    """Record SCRIPT_ID as completed."""
    try:
        marker = _markers(ctx).mark_complete(script_id)
    except (ValueError, OSError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    click.secho(f"✅ Marked {script_id} complete", fg="green")
    if ctx.obj.get("verbose"):
        click.echo(f"   {marker}")


@markers.command()
@click.argument("script_id", required=False)
@click.option("--all", "clear_all", is_flag=True, help="Remove every marker.")
@click.pass_context
def clear(ctx: click.Context, script_id: str | None, clear_all: bool) -> None:
    """Remove a marker (rollback), or all of them with --all."""
    store = _markers(ctx)

    if clear_all:
        removed = store.clear_all()
        click.secho(f"✅ Removed {removed} markers", fg="green")
        return

    if not script_id:
        click.secho("❌ Give a SCRIPT_ID or --all", fg="red")
        sys.exit(2)

    try:
        removed = store.clear(script_id)
    except ValueError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if removed:
        click.secho(f"✅ Cleared marker for {script_id}", fg="green")
    else:
        click.echo(f"No marker for {script_id}")
