"""
CLI command: bring-up.
"""

from __future__ import annotations

import sys

import click

from wetctl.ui.cli.common import echo_json, get_context, print_health, print_record

_STEP_STYLE = {
    "ok": ("✅", "green"),
    "skipped": ("⏭️ ", "white"),
    "warning": ("⚠️ ", "yellow"),
    "failed": ("❌", "red"),
}


@click.command("bring-up")
@click.option("--env", "-e", "environment", default=None, help="Target environment (default: dev).")
@click.option("--skip-cluster", is_flag=True, help="Do not wait for cluster nodes.")
@click.option("--skip-build", is_flag=True, help="Use already-pushed images.")
@click.option("--with-monitoring", is_flag=True, help="Install the monitoring stack.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def bring_up(
    ctx: click.Context,
    environment: str | None,
    skip_cluster: bool,
    skip_build: bool,
    with_monitoring: bool,
    as_json: bool,
) -> None:
    """Bring an environment up: platform, images, secrets, services."""
    from wetctl.core.use_cases.bring_up import bring_up as run_bring_up

    run_ctx = get_context(ctx)
    result = run_bring_up(
        run_ctx,
        environment,
        skip_cluster=skip_cluster,
        skip_build=skip_build,
        with_monitoring=with_monitoring,
    )

    if as_json:
        echo_json(result.to_dict())
        sys.exit(result.exit_code)

    click.secho(f"\n🐟 bring-up → {result.environment or environment or '?'}", fg="cyan", bold=True)
    click.echo()
    for step in result.steps:
        icon, color = _STEP_STYLE.get(step.status, ("•", "white"))
        suffix = f" ({step.message})" if step.message else ""
        click.secho(f"   {icon} {step.name}{suffix}", fg=color)

    if result.error:
        click.echo()
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    click.echo()
    for record in result.records:
        print_record(record)
    for report in result.reports:
        click.echo()
        print_health(report)

    click.echo()
    sys.exit(result.exit_code)
