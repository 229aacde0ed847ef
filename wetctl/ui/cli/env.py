"""
CLI commands: environment registry and namespace provisioning.
"""

from __future__ import annotations

import sys

import click

from wetctl.ui.cli.common import echo_json, get_context


@click.group("env")
def env() -> None:
    """Environments — list the registry, provision namespaces."""


@env.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """Show every known environment."""
    from wetctl.core.use_cases.environments import list_environments

    run_ctx = get_context(ctx)
    envs = list_environments(run_ctx)

    if as_json:
        echo_json(envs)
        return

    default = run_ctx.config.default_environment
    click.secho("🌍 Environments:", fg="cyan", bold=True)
    for item in envs:
        marker = " (default)" if item["id"] == default else ""
        aliases = f" [{', '.join(item['aliases'])}]" if item["aliases"] else ""
        click.secho(f"   • {item['id']}{aliases}{marker}", bold=True)
        click.echo(f"     namespace: {item['namespace']}")
        click.echo(f"     registry:  {item['registry']}")
        click.echo(f"     hosts:     *.{item['hostname_suffix']}")
        click.echo(f"     tls:       {item['tls_issuer']}")
        creds = "allowed" if item["allow_default_credentials"] else "random only"
        click.echo(f"     defaults:  {creds}")


@env.command("provision")
@click.option("--env", "-e", "environment", default=None, help="Target environment (default: dev).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def provision(ctx: click.Context, environment: str | None, as_json: bool) -> None:
    """Create the environment's namespace and the shared system namespaces."""
    from wetctl.core.use_cases.environments import provision_namespaces

    result = provision_namespaces(get_context(ctx), environment)

    if as_json:
        echo_json(result.to_dict())
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    for namespace, change in result.namespaces.items():
        color = "green" if change == "created" else "white"
        click.secho(f"   ✓ {namespace}: {change}", fg=color)
