"""
Wetfish deployment orchestrator — CLI entrypoint.

Usage:
    wetctl --help
    wetctl deploy --env dev wiki
    wetctl generate-secrets --env prod --random
    wetctl bring-up --with-monitoring
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from wetctl import __version__
from wetctl.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="wetctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to wetctl.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Wetfish — multi-environment deployment orchestrator."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("WETCTL_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("WETCTL_LOG_FILE"),
        log_file_level=os.environ.get("WETCTL_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── Register sub-command groups ─────────────────────────────────

from wetctl.ui.cli.bring_up import bring_up  # noqa: E402
from wetctl.ui.cli.deploy import deploy  # noqa: E402
from wetctl.ui.cli.env import env  # noqa: E402
from wetctl.ui.cli.secrets import generate_secrets  # noqa: E402
from wetctl.ui.cli.verify import verify  # noqa: E402

cli.add_command(deploy)
cli.add_command(generate_secrets)
cli.add_command(bring_up)
cli.add_command(verify)
cli.add_command(env)


if __name__ == "__main__":
    cli()
