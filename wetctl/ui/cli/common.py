"""
Shared CLI helpers — context construction and report printing.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from wetctl.core.context import OrchestratorContext
from wetctl.core.errors import ConfigError
from wetctl.core.models.rollout import OutcomeStatus, RolloutRecord, RolloutStatus
from wetctl.core.observability.health import HealthReport


def get_context(ctx: click.Context) -> OrchestratorContext:
    """Build the run context once per process (config, registry, adapters).

    Tests pre-seed ``ctx.obj["context"]`` (or ``ctx.obj["tools"]``) to
    run commands against in-memory adapters.
    """
    existing = ctx.obj.get("context")
    if existing is not None:
        return existing

    from wetctl.core.config.loader import find_project_file, load_config

    config_path: Path | None = ctx.obj.get("config_path") or find_project_file()
    try:
        config = load_config(config_path)
        run_ctx = OrchestratorContext.create(config, tools=ctx.obj.get("tools"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    ctx.obj["context"] = run_ctx
    return run_ctx


def echo_json(data: dict | list) -> None:
    click.echo(json.dumps(data, indent=2))


def fail(message: str, code: int = 1) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(code)


_STATUS_STYLE = {
    RolloutStatus.SUCCEEDED: ("✅", "green"),
    RolloutStatus.PARTIALLY_DEGRADED: ("⚠️ ", "yellow"),
    RolloutStatus.FAILED: ("❌", "red"),
}


def print_record(record: RolloutRecord) -> None:
    """One-block summary of a rollout record."""
    icon, color = _STATUS_STYLE.get(record.status, ("•", "white"))
    click.secho(
        f"{icon} {record.unit} [{record.action}] → {record.status}",
        fg=color,
        bold=True,
    )

    changes: dict[str, int] = {}
    for outcome in record.outcomes:
        if outcome.status in (OutcomeStatus.APPLIED, OutcomeStatus.DELETED):
            changes[outcome.change or "done"] = changes.get(outcome.change or "done", 0) + 1
    if changes:
        summary = ", ".join(f"{n} {change}" for change, n in sorted(changes.items()))
        click.echo(f"   📦 {summary}")

    for outcome in record.skipped:
        click.secho(f"   ⏭️  skipped {outcome.resource}: {outcome.message}", fg="yellow")
    for warning in record.warnings:
        if not any(o.message == warning for o in record.skipped):
            click.secho(f"   ⚠️  {warning}", fg="yellow")
    if record.error:
        click.secho(f"   ❌ {record.phase}: {record.error}", fg="red")
    if record.interrupted:
        click.secho("   ⏹  interrupted, applied resources were left in place", fg="yellow")


_CHECK_STYLE = {
    "pass": ("✅", "green"),
    "warn": ("⚠️ ", "yellow"),
    "fail": ("❌", "red"),
    "skip": ("⏭️ ", "white"),
}


def print_health(report: HealthReport) -> None:
    color = {"healthy": "green", "degraded": "yellow"}.get(report.status, "red")
    click.secho(f"🩺 {report.unit}: {report.status}", fg=color, bold=True)
    for check in report.checks:
        icon, fg = _CHECK_STYLE.get(check.status, ("•", "white"))
        click.secho(f"   {icon} {check.name:<10} {check.message}", fg=fg)
