"""run command: start the relay."""

from __future__ import annotations

import time

import click
from rich.console import Console
from rich.table import Table

console = Console()


def _print_reports(reports) -> None:
    table = Table(title="Startup pass", show_header=True, header_style="bold cyan")
    table.add_column("Repository")
    table.add_column("Open PRs", justify="right")
    table.add_column("Queued")
    table.add_column("Error", style="red")
    for report in reports:
        queued = ", ".join(f"{kind}: {n}" for kind, n in sorted(report.notifications.items()))
        table.add_row(report.repository, str(report.open_pull_requests), queued or "-", report.error or "")
    console.print(table)


def _drain_until_empty(queue, interval: float) -> None:
    """Deliver everything queued, honouring the drain interval between attempts."""
    while len(queue):
        queue.drain()
        if len(queue):
            time.sleep(interval)


@click.command("run")
@click.option(
    "--once",
    is_flag=True,
    help="Run the startup pass, deliver the queued messages and exit (for cron-style deployments).",
)
@click.pass_context
def run_cmd(ctx, once: bool):
    """Poll the review system and relay PR status to the chat.

    Validates credentials, posts a startup message and notifies about every
    open PR, then polls every `poll_interval` seconds (only during the work
    schedule) and drains the outbound queue every `drain_interval` seconds.

    \b
    Required environment variables:
      PACHKA_BOT_TOKEN         Chat bot token
      BITBUCKET_USERNAME       When provider is bitbucket
      BITBUCKET_APP_PASSWORD   When provider is bitbucket
      GITHUB_TOKEN             When provider is github
    """
    from prrelay_cli.cli import _build_gateway, _build_reader
    from prrelay_core.config import load_work_schedule, parse_workspaces
    from prrelay_core.engine import ReconciliationEngine
    from prrelay_core.errors import StartupError
    from prrelay_core.queue import DeliveryQueue
    from prrelay_core.scheduler import Scheduler

    config = ctx.obj["config"]
    store = ctx.obj["store"]

    try:
        workspaces = parse_workspaces(config)
        schedule = load_work_schedule(config)
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}")
    if not workspaces:
        raise click.UsageError("No workspaces configured. Add 'workspaces' to .prrelay.yml or set BITBUCKET_WORKSPACES.")

    reader = _build_reader(config)
    gateway = _build_gateway(config)
    ctx.call_on_close(reader.close)
    ctx.call_on_close(gateway.close)

    queue = DeliveryQueue(gateway=gateway, store=store)
    engine = ReconciliationEngine(
        reader=reader,
        store=store,
        queue=queue,
        workspaces=workspaces,
        mentions=config.get("mentions") or {},
        schedule=schedule,
        poll_interval=int(config["poll_interval"]),
    )
    drain_interval = float(config["drain_interval"])

    try:
        reports = engine.startup()
    except StartupError as e:
        # Best effort: get the error notification out before exiting.
        queue.drain()
        raise click.ClickException(str(e))

    if once:
        _print_reports(reports)
        _drain_until_empty(queue, drain_interval)
        return

    scheduler = Scheduler()
    scheduler.add("poll", float(config["poll_interval"]), engine.poll)
    scheduler.add("drain", drain_interval, queue.drain)
    console.print(
        f"[green]prrelay running[/green], polling every {config['poll_interval']}s, "
        f"draining every {drain_interval:g}s. Press Ctrl+C to stop."
    )
    scheduler.run_forever()
