"""
CLI command: generate-secrets.

Secret values are never printed; only file paths and fingerprints.
"""

from __future__ import annotations

import sys

import click

from wetctl.ui.cli.common import echo_json, get_context


@click.command("generate-secrets")
@click.option("--env", "-e", "environment", default=None, help="Target environment (default: dev).")
@click.option("--random", "use_random", is_flag=True, help="Generate cryptographically random values.")
@click.option("--force", is_flag=True, help="Overwrite existing secret files.")
@click.option("--service", "-s", "services", multiple=True, help="Limit to a service (repeatable).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def generate_secrets(
    ctx: click.Context,
    environment: str | None,
    use_random: bool,
    force: bool,
    services: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create per-service secret files for an environment."""
    from wetctl.core.use_cases.generate_secrets import generate_secrets as run_generate

    run_ctx = get_context(ctx)
    result = run_generate(
        run_ctx,
        environment,
        random=use_random,
        force=force,
        services=list(services) or None,
    )

    if as_json:
        echo_json(result.to_dict())
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    click.secho(f"\n🔐 Secrets for {result.environment}", fg="cyan", bold=True)
    for ref in result.refs:
        if not ref.secret_names:
            continue
        written = ref.service in result.generated
        marker = "generated" if written else "kept"
        color = "green" if written else "white"
        click.secho(f"   {'✨' if written else '✓'} {ref.service}: {marker} → {ref.path}", fg=color)
    click.echo()
    click.secho("   Secret files must stay out of version control.", fg="yellow")
    click.echo()
