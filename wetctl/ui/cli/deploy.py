"""
CLI command: deploy.

Thin wrapper over ``wetctl.core.use_cases.deploy``.
"""

from __future__ import annotations

import sys

import click

from wetctl.ui.cli.common import echo_json, get_context, print_health, print_record


@click.command("deploy")
@click.option("--env", "-e", "environment", default=None, help="Target environment (default: dev).")
@click.option("--verify", "run_verify", is_flag=True, help="Run health checks after the rollout.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.argument("target")
@click.argument("action", required=False, default="deploy", type=click.Choice(["deploy", "delete"]))
@click.pass_context
def deploy(
    ctx: click.Context,
    environment: str | None,
    run_verify: bool,
    as_json: bool,
    target: str,
    action: str,
) -> None:
    """Deploy a service, a stack, or 'all' (append 'delete' to remove)."""
    from wetctl.core.use_cases.deploy import deploy as run_deploy

    run_ctx = get_context(ctx)
    result = run_deploy(run_ctx, target, environment, action=action, verify=run_verify)

    if as_json:
        echo_json(result.to_dict())
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    click.secho(f"\n🚀 {action} {target} → {result.environment}", fg="cyan", bold=True)
    click.echo()
    for record in result.records:
        print_record(record)

    for report in result.reports:
        click.echo()
        print_health(report)

    if result.access and not ctx.obj.get("quiet"):
        click.echo()
        click.secho("🔗 Access:", fg="cyan", bold=True)
        for info in result.access:
            for url in info["urls"]:
                click.echo(f"   {info['service']}: {url}")
            if info.get("port_forward"):
                click.echo(f"   {info['port_forward']}")
            click.echo(f"   {info['logs']}")

    click.echo()
    sys.exit(result.exit_code)
