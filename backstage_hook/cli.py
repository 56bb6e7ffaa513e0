"""
CLI for backstage-hook.

Runs the interactive approval queue and inspects remembered decisions.
"""

import json
import logging
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from backstage_hook import __version__, policies
from backstage_hook.actions import Action, Command, load_actions
from backstage_hook.approval_queue import ApprovalQueue, QueueClosedError
from backstage_hook.config import HookConfig, build_store
from backstage_hook.console_ui import COMMAND_PREVIEW_CHARS, ConsoleReviewer, decision_text, quote
from backstage_hook.policies import Policy
from backstage_hook.storage import Store

console = Console()
logger = logging.getLogger(__name__)

# Lets commands take things like `deploy -f x.yaml` as plain arguments.
_PASSTHROUGH = {"ignore_unknown_options": True}


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def get_config() -> HookConfig:
    """Load configuration from environment, exiting on errors."""
    try:
        return HookConfig.from_env()
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        console.print("\nSupported settings:")
        console.print("  BACKSTAGE_HOOK_STORAGE=memory|sqlite")
        console.print("  BACKSTAGE_HOOK_DB_PATH=<sqlite file>")
        console.print("  BACKSTAGE_HOOK_ARTIFACT_DIR=<directory>")
        sys.exit(1)


def _open_store(config: HookConfig) -> Store:
    if config.storage == "memory":
        console.print(
            "[yellow]Note:[/yellow] memory storage forgets decisions on exit; "
            "set BACKSTAGE_HOOK_STORAGE=sqlite to keep them"
        )
    return build_store(config)


def _action(plugin: str, name: str, args: tuple) -> Action:
    return Action(plugin=plugin, command=Command(name=name, args=args))


@click.group()
@click.version_option(__version__, prog_name="backstage-hook")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def main(verbose: bool):
    """backstage-hook - Approve plugin commands before they run."""
    setup_logging(verbose)


def _close_when_done(queue: ApprovalQueue, futures: list[Future]) -> None:
    wait(futures)
    queue.close()


@main.command()
@click.argument("actions_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--workers", "-w", default=8, show_default=True, help="Concurrent submitters")
def review(actions_file: str, workers: int):
    """
    Review every action in ACTIONS_FILE (NDJSON, one action per line).

    Each action is submitted from its own worker as a plugin would.
    Actions with a remembered decision are answered without a prompt.
    """
    config = get_config()
    actions = load_actions(actions_file)
    if not actions:
        console.print("[yellow]No actions found[/yellow]")
        return

    store = _open_store(config)
    reviewer = ConsoleReviewer(console, title=config.app_name)
    queue = ApprovalQueue(store, reviewer, artifact_dir=config.artifact_dir)

    with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="submit") as pool:
        futures = [pool.submit(queue.submit, action) for action in actions]
        threading.Thread(target=_close_when_done, args=(queue, futures), daemon=True).start()
        try:
            queue.serve_forever()
        except (EOFError, KeyboardInterrupt):
            denied = queue.abort(Policy.DENY)
            console.print(f"\n[yellow]Input closed, denied {denied} unreviewed action(s)[/yellow]")
        except Exception:
            # Blocked submitters keep the pool from shutting down until answered.
            denied = queue.abort(Policy.DENY)
            logger.error("Review failed, denied %d unreviewed action(s)", denied)
            raise

    table = Table(title="Decisions")
    table.add_column("#", style="dim", width=3)
    table.add_column("Plugin", style="cyan")
    table.add_column("Command")
    table.add_column("Decision")
    for i, (action, future) in enumerate(zip(actions, futures), 1):
        try:
            decision = decision_text(future.result())
        except QueueClosedError:
            decision = "[yellow]not reviewed[/yellow]"
        table.add_row(
            str(i),
            Text(json.dumps(action.plugin)),
            Text(quote(str(action.command), COMMAND_PREVIEW_CHARS)),
            decision,
        )
    console.print(table)


@main.command(name="policies")
def list_policies():
    """List the decisions available at the prompt."""
    table = Table(title="Policies")
    table.add_column("Shortcut", style="bold")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Description")
    for policy in policies.all_policies():
        table.add_row(policy.shortcut, policy.id, decision_text(policy), policy.description)
    console.print(table)


@main.command(context_settings=_PASSTHROUGH)
@click.argument("plugin")
@click.argument("name")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def fingerprint(plugin: str, name: str, args: tuple):
    """Print the fingerprint of PLUGIN running NAME ARGS..."""
    console.print(_action(plugin, name, args).fingerprint(), highlight=False)


@main.command(context_settings=_PASSTHROUGH)
@click.argument("plugin")
@click.argument("name")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def check(plugin: str, name: str, args: tuple):
    """Show the remembered decision for PLUGIN running NAME ARGS..."""
    store = _open_store(get_config())
    policy, cached = store.policy(_action(plugin, name, args))
    if not cached:
        console.print("[yellow]No remembered decision[/yellow] - the reviewer will be asked")
        return
    console.print(decision_text(policy))


@main.command(context_settings=_PASSTHROUGH)
@click.argument("plugin")
@click.argument("name")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def forget(plugin: str, name: str, args: tuple):
    """Forget the remembered decision for PLUGIN running NAME ARGS..."""
    store = _open_store(get_config())
    action = _action(plugin, name, args)
    _, cached = store.policy(action)
    if not cached:
        console.print("[yellow][-][/yellow] Nothing remembered for this action")
        return
    store.set_policy(action, None)
    console.print(f"[green][OK][/green] Forgot decision for {action.fingerprint()}")


if __name__ == "__main__":
    main()
