"""
bootbuild — CLI entrypoint.

Usage:
    python -m bootbuild.main --help
    bootbuild deps check docker
    bootbuild manifest status
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from bootbuild import __version__
from bootbuild.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="bootbuild")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--bootstrap-dir",
    "-d",
    "bootstrap_dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Toolkit directory holding config/bootstrap-manifest.json (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    bootstrap_dir: str | None,
) -> None:
    """bootbuild — dependency resolution for project bootstrap scripts."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(
            debug=debug, verbose=verbose, quiet=quiet,
            env_level=os.environ.get("BOOTBUILD_LOG_LEVEL"),
        ),
        log_file=os.environ.get("BOOTBUILD_LOG_FILE"),
        log_file_level=os.environ.get("BOOTBUILD_LOG_FILE_LEVEL"),
    )

    # ── Engine configuration ────────────────────────────────────
    from bootbuild.core.errors import ConfigError
    from bootbuild.core.config.loader import load_config

    try:
        ctx.obj["config"] = load_config(Path(bootstrap_dir) if bootstrap_dir else None)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


# ── Command groups ─────────────────────────────────────────────

from bootbuild.ui.cli.deps import deps
from bootbuild.ui.cli.manifest import manifest
from bootbuild.ui.cli.markers import markers
from bootbuild.ui.cli.scripts import scripts

cli.add_command(deps)
cli.add_command(manifest)
cli.add_command(scripts)
cli.add_command(markers)


if __name__ == "__main__":
    cli()
