"""
CLI commands for the manifest cache.

Thin wrappers over ``bootbuild.core.persistence.manifest_cache``.
"""

from __future__ import annotations

import json
import sys

import click


def _fail(message: str) -> None:
    click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


@click.group()
def manifest() -> None:
    """Manifest — cache status, statistics, validation."""


@manifest.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the manifest cache state."""
    from bootbuild.core.errors import BootbuildError
    from bootbuild.core.persistence.manifest_cache import ManifestCache

    try:
        result = ManifestCache(ctx.obj["config"]).status()
    except BootbuildError as e:
        _fail(str(e))
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho("📦 Manifest cache", fg="cyan", bold=True)
    click.echo(f"   Manifest:  {result.manifest_file}")
    click.echo(f"   Directory: {result.cache_dir}")
    click.echo(f"   TTL:       {result.ttl}s")
    if not result.exists:
        click.secho("   State:     not cached", fg="yellow")
        return
    click.echo(f"   Size:      {result.size_bytes} bytes")
    if result.age_seconds is not None:
        click.echo(f"   Age:       {int(result.age_seconds)}s")
    if result.valid:
        click.secho("   State:     valid", fg="green")
    else:
        click.secho(f"   State:     stale ({result.reason})", fg="yellow")


@manifest.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def stats(ctx: click.Context, as_json: bool) -> None:
    """Count scripts, phases, profiles, paths and tools."""
    from bootbuild.core.errors import BootbuildError
    from bootbuild.core.persistence.manifest_cache import ManifestCache

    cache = ManifestCache(ctx.obj["config"])
    try:
        counts = cache.stats()
    except BootbuildError as e:
        _fail(str(e))
        return

    if as_json:
        click.echo(json.dumps(counts, indent=2))
        return

    click.secho("📊 Manifest statistics", fg="cyan", bold=True)
    for name, count in counts.items():
        click.echo(f"   {name.capitalize():<9} {count}")


@manifest.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def validate(ctx: click.Context, as_json: bool) -> None:
    """Check the cache file and the manifest's cross-references."""
    from bootbuild.core.errors import BootbuildError
    from bootbuild.core.persistence.manifest_cache import ManifestCache
    from bootbuild.core.services.registry import ScriptRegistry

    cache = ManifestCache(ctx.obj["config"])
    registry = ScriptRegistry(ctx.obj["config"], cache)
    try:
        warnings = registry.validate()
    except BootbuildError as e:
        _fail(str(e))
        return
    cache_ok, cache_message = cache.validate_cache()

    if as_json:
        click.echo(json.dumps({
            "cache_valid": cache_ok,
            "cache_message": cache_message,
            "warnings": warnings,
        }, indent=2))
        sys.exit(0 if cache_ok else 1)

    if cache_ok:
        click.secho(f"✅ {cache_message}", fg="green", bold=True)
    else:
        click.secho(f"❌ {cache_message}", fg="red", bold=True)

    if warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in warnings:
            click.echo(f"   • {warn}")

    if not cache_ok:
        sys.exit(1)


@manifest.command()
@click.option("--session/--no-session", default=True, help="Also clear session cache entries.")
@click.pass_context
def clear(ctx: click.Context, session: bool) -> None:
    """Remove the cached manifest (and session entries)."""
    from bootbuild.core.errors import BootbuildError
    from bootbuild.core.persistence.manifest_cache import ManifestCache
    from bootbuild.core.persistence.session_cache import SessionCache

    config = ctx.obj["config"]
    try:
        ManifestCache(config).invalidate()
    except BootbuildError as e:
        _fail(str(e))
        return
    click.secho("✅ Manifest cache cleared", fg="green")

    if session:
        removed = SessionCache(config).clear_all()
        if removed:
            click.echo(f"   Removed {removed} session entries")
