"""check command: verify credentials and configuration without posting anything."""

from __future__ import annotations

import click
from rich.console import Console

console = Console()

_DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


@click.command("check")
@click.pass_context
def check_cmd(ctx):
    """Validate access to every configured workspace and show the work schedule."""
    from prrelay_cli.cli import _build_reader
    from prrelay_core.config import load_work_schedule, parse_workspaces
    from prrelay_core.errors import StartupError

    config = ctx.obj["config"]
    try:
        workspaces = parse_workspaces(config)
        schedule = load_work_schedule(config)
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    reader = _build_reader(config)
    failed = False
    try:
        for workspace in workspaces:
            try:
                reader.validate_access(workspace.name)
            except StartupError as e:
                failed = True
                console.print(f"[red]✗[/red] {workspace.name}: {e}")
                continue
            repos = ", ".join(workspace.repositories) or "no repositories"
            console.print(f"[green]✓[/green] {workspace.name} ({repos})")
    finally:
        reader.close()

    days = ", ".join(_DAY_NAMES[d] for d in sorted(schedule.work_days))
    console.print(
        f"\nWork schedule: {days}, {schedule.start_hour:02d}:00–{schedule.end_hour:02d}:00 ({schedule.timezone})"
    )
    state = "[green]within[/green]" if schedule.is_working_time() else "[yellow]outside[/yellow]"
    console.print(f"Current time is {state} working hours.")

    if failed:
        raise click.ClickException("One or more workspaces could not be accessed.")
