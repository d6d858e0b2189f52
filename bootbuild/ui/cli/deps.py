"""
CLI commands for dependency checks.

Thin wrappers over ``bootbuild.core.use_cases.check_deps``.
"""

from __future__ import annotations

import json
import sys

import click


def _confirm_install(tools: list[str]) -> bool:
    click.echo("The following tools can be installed automatically:")
    for tool in tools:
        click.echo(f"  • {tool}")
    return click.confirm("Install missing dependencies now?", default=True)


@click.group()
def deps() -> None:
    """Dependencies — check tools, versions and prior scripts."""


@deps.command("check")
@click.argument("script_id", required=False)
@click.option("--tools", default=None, help='Tool specs, e.g. "node:18.0.0:min docker git".')
@click.option("--scripts", "script_deps", default=None, help="Scripts that must have run first.")
@click.option("--optional", default=None, help="Optional tools (warnings only).")
@click.option("--install", "offer_install", is_flag=True, help="Offer to install missing tools.")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Install without prompting.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(
    ctx: click.Context,
    script_id: str | None,
    tools: str | None,
    script_deps: str | None,
    optional: str | None,
    offer_install: bool,
    assume_yes: bool,
    as_json: bool,
) -> None:
    """Check the dependencies of SCRIPT_ID, or of an explicit declaration."""
    from bootbuild.core.models.dependency import DependencyDeclaration
    from bootbuild.core.use_cases.check_deps import check_dependencies

    config = ctx.obj["config"]
    if assume_yes:
        config = config.model_copy(update={"assume_yes": True})

    declaration = None
    if tools or script_deps or optional:
        try:
            declaration = DependencyDeclaration.parse(
                tools=tools, scripts=script_deps, optional=optional,
            )
        except ValueError as e:
            click.secho(f"❌ {e}", fg="red")
            sys.exit(2)
    elif not script_id:
        click.secho("❌ Give a SCRIPT_ID or at least one of --tools/--scripts/--optional", fg="red")
        sys.exit(2)

    result = check_dependencies(
        config,
        script_id=script_id,
        declaration=declaration,
        offer_install=offer_install,
        confirm=None if as_json else _confirm_install,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.proceed else 1)

    report = result.report
    if result.error or report is None:
        click.secho(f"❌ {result.error or 'No dependency report produced'}", fg="red")
        sys.exit(1)

    quiet = ctx.obj.get("quiet", False)
    label = report.script or "declaration"

    if report.missing_tools:
        click.secho("❌ Required tools not installed:", fg="red", bold=True)
        for tool in report.missing_tools:
            click.echo(f"   ✗ {tool}")
            if not offer_install:
                from bootbuild.core.services.install_guidance import suggest_install

                for line in suggest_install(tool):
                    click.echo(f"       {line}")

    if report.version_failures:
        click.secho("❌ Version requirements not met:", fg="red", bold=True)
        for failure in report.version_failures:
            click.echo(f"   ✗ {failure}")

    if report.missing_scripts:
        click.secho("❌ Required bootstrap scripts not run:", fg="red", bold=True)
        for sid in report.missing_scripts:
            click.echo(f"   ✗ bootstrap-{sid}.sh")

    if report.invalid_requirements:
        click.secho("❌ Invalid requirements in manifest:", fg="red", bold=True)
        for problem in report.invalid_requirements:
            click.echo(f"   ✗ {problem}")

    if result.install is not None:
        install = result.install
        for tool, lines in install.guidance.items():
            click.secho(f"   {tool} must be installed manually:", fg="yellow")
            for line in lines:
                click.echo(f"       {line}")
        for item in install.results:
            color = "green" if item.ok else "red"
            click.secho(f"   {item.tool}: {item.status} ({item.method or 'n/a'})", fg=color)
        if install.message:
            click.echo(f"   {install.message}")

    if not quiet and (report.missing_optional or report.optional_version_failures):
        click.secho("⚠️  Optional tools (script will work without them):", fg="yellow")
        for tool in report.missing_optional:
            click.echo(f"   ⚠ {tool} (not installed)")
        for failure in report.optional_version_failures:
            click.echo(f"   ⚠ {failure}")

    if not quiet and report.unknown_versions:
        click.secho(f"   Version unknown: {', '.join(report.unknown_versions)}", fg="yellow")

    if result.proceed:
        click.secho(f"✅ All dependencies satisfied for {label}", fg="green", bold=True)
        if not quiet:
            click.echo(
                f"   Tools: {len(report.satisfied_tools)}  "
                f"Scripts: {len(report.satisfied_scripts)}  ({report.elapsed_ms}ms)"
            )
        return

    click.echo()
    sys.exit(1)
