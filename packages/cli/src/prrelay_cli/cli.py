"""CLI entry point for prrelay.

Commands:
  run      start the relay (startup pass, then poll + drain loops)
  check    validate review-system credentials and show the work schedule
  threads  list the PR → chat thread links in the thread store
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prrelay_cli.commands.check import check_cmd
from prrelay_cli.commands.run import run_cmd
from prrelay_cli.commands.threads import threads_cmd

console = Console()

_NOISY_LOGGERS = ("urllib3", "requests", "github")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _build_store(config: dict):
    """Instantiate the configured thread store from .prrelay.yml settings.

    Store selection:
      store: json   → JsonFileThreadStore (default, store_path or .prrelay_threads.json)
      store: sqlite → SQLiteThreadStore  (store_path or .prrelay.db)

    Any failure to read an existing store is fatal: the relay must not start
    with an empty view of threads it already opened.
    """
    from prrelay_store.errors import StoreError

    store_type = config.get("store", "json")
    try:
        if store_type == "sqlite":
            from prrelay_store.sqlite import SQLiteThreadStore

            return SQLiteThreadStore(db_path=config.get("store_path") or ".prrelay.db")

        if store_type == "json":
            from prrelay_store.json_file import JsonFileThreadStore

            return JsonFileThreadStore(path=config.get("store_path") or ".prrelay_threads.json")
    except StoreError as e:
        raise click.ClickException(str(e))

    raise click.UsageError(f"Unknown store type: {store_type!r}. Choose 'json' or 'sqlite'.")


def _build_reader(config: dict):
    """Instantiate the review-system reader for the configured provider."""
    provider = config.get("provider", "bitbucket")
    timeout = config.get("request_timeout", 10)

    if provider == "bitbucket":
        from prrelay_core.readers.bitbucket import BitbucketReader

        if not config.get("bitbucket_username") or not config.get("bitbucket_app_password"):
            raise click.UsageError("BITBUCKET_USERNAME and BITBUCKET_APP_PASSWORD environment variables must be set.")
        return BitbucketReader(
            api_url=config["bitbucket_api_url"],
            username=config["bitbucket_username"],
            app_password=config["bitbucket_app_password"],
            timeout=timeout,
        )

    if provider == "github":
        from prrelay_core.readers.github import GitHubReader

        if not config.get("github_token"):
            raise click.UsageError("GITHUB_TOKEN environment variable is not set.")
        return GitHubReader(token=config["github_token"], timeout=timeout)

    raise click.UsageError(f"Unknown provider: {provider!r}. Choose 'bitbucket' or 'github'.")


def _build_gateway(config: dict):
    from prrelay_core.chat.pachka import PachkaGateway

    if not config.get("chat_token"):
        raise click.UsageError("PACHKA_BOT_TOKEN environment variable is not set.")
    if not config.get("chat_id"):
        raise click.UsageError("No chat configured. Set chat_id in .prrelay.yml or PACHKA_CHAT_ID.")
    return PachkaGateway(
        api_url=config["chat_api_url"],
        token=config["chat_token"],
        chat_id=str(config["chat_id"]),
        timeout=config.get("request_timeout", 10),
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prrelay"),
    prog_name="prrelay",
)
@click.option(
    "--config",
    "config_path",
    default=".prrelay.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRRELAY_CONFIG",
)
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    envvar="PRRELAY_LOG_LEVEL",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str):
    """Relay pull request review status to a team chat."""
    from prrelay_core.config import load_config

    _setup_logging(log_level)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.UsageError(f"Invalid configuration: {e}")

    ctx.obj["config"] = config
    if ctx.invoked_subcommand == "check":
        # check only talks to the review system; don't create a store file for it.
        return

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.call_on_close(store.close)


main.add_command(run_cmd)
main.add_command(check_cmd)
main.add_command(threads_cmd)
