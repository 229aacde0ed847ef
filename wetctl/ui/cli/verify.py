"""
CLI command: verify.
"""

from __future__ import annotations

import sys

import click

from wetctl.ui.cli.common import echo_json, get_context, print_health


@click.command("verify")
@click.option("--env", "-e", "environment", default=None, help="Target environment (default: dev).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.argument("services", nargs=-1)
@click.pass_context
def verify(ctx: click.Context, environment: str | None, as_json: bool, services: tuple[str, ...]) -> None:
    """Run health checks against deployed services (default: all)."""
    from wetctl.core.use_cases.verify import verify_services

    run_ctx = get_context(ctx)
    result = verify_services(run_ctx, environment, list(services) or None)

    if as_json:
        echo_json(result.to_dict())
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    for report in result.reports:
        print_health(report)
        click.echo()

    sys.exit(result.exit_code)
