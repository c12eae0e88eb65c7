"""threads command: display tracked PR threads from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

console = Console()


@click.command("threads")
@click.option("--repo", default=None, help="Only show threads for this repository (workspace/name).")
@click.pass_context
def threads_cmd(ctx, repo: str | None):
    """Show which pull requests have an open chat thread."""
    store = ctx.obj["store"]

    records = store.list_all()
    if repo:
        records = [r for r in records if r.repository == repo]
    if not records:
        console.print("[yellow]No tracked threads.[/yellow]")
        return

    table = Table(title="Tracked threads", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=8)
    table.add_column("Repository")
    table.add_column("Thread")
    table.add_column("Updated At", width=20)

    for r in records:
        table.add_row(f"#{r.pr_id}", r.repository, r.thread_id, r.updated_at[:19].replace("T", " "))

    console.print(table)
