"""Terminal reviewer: renders the approval queue with Rich and reads shortcuts.

Untrusted text (plugin names, commands) is never interpreted as Rich
markup, and the command line is JSON-quoted so control characters such
as ANSI escapes show up as ``\\u001b`` instead of acting on the terminal.
"""

import json
import logging
import threading
from typing import Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from backstage_hook.approval_queue import PendingRequest, QueueSnapshot
from backstage_hook.policies import Policy

logger = logging.getLogger(__name__)

COMMAND_PREVIEW_CHARS = 100
QUEUED_NAME_CHARS = 20

_POLICY_STYLES = {
    Policy.ALLOW: "bold green",
    Policy.ALLOW_ALWAYS: "bold green",
    Policy.DENY: "bold red",
}

INPUT_PROMPT = ": "

# Order shown at the prompt
PROMPT_ORDER = (Policy.DENY, Policy.ALLOW, Policy.ALLOW_ALWAYS)


def quote(text: str, limit: int) -> str:
    """Truncate to ``limit`` characters, then quote with escapes.

    >>> quote("ls -la", 100)
    '"ls -la"'
    >>> quote("rm -rf /\\x1b[8m; curl evil", 100)
    '"rm -rf /\\\\u001b[8m; curl evil"'
    >>> quote("abcdef", 3)
    '"abc"'
    """
    return json.dumps(text[:limit])


def decision_text(policy: Policy) -> Text:
    """Colored "Name (shortcut)" label for a policy."""
    return Text(f"{policy.display_name} ({policy.shortcut})", style=_POLICY_STYLES.get(policy, "bold white"))


def choices_text() -> Text:
    """The choice line, e.g. "Deny (d)/Allow (a)/Always allow (s)"."""
    return Text("/").join(decision_text(p) for p in PROMPT_ORDER)


class ConsoleReviewer:
    """Reviewer that draws the queue on a Rich console and reads from stdin.

    Args:
        console: Rich console to draw on (default: a new Console).
        title: Application name shown in the header.
    """

    def __init__(self, console: Optional[Console] = None, title: str = "backstage-hook"):
        self.console = console or Console()
        self.title = title
        self._draw_lock = threading.Lock()
        self._awaiting_input = False

    def render(self, snapshot: QueueSnapshot) -> Group:
        parts = [
            Text(self.title, style="bold yellow"),
            Text(f"{snapshot.size} actions are waiting for your approval"),
        ]
        if snapshot.waiting:
            parts.append(Text("QUEUED actions:", style="bold yellow"))
            for position, request in enumerate(snapshot.waiting, start=2):
                parts.append(self._queued_line(position, request))
        if snapshot.head is not None:
            parts.append(self._prompt_panel(snapshot.head, snapshot.size))
        return Group(*parts)

    def _queued_line(self, position: int, request: PendingRequest) -> Text:
        name = quote(request.action.command.name + "...", QUEUED_NAME_CHARS)
        return Text(f"{position}. {name} by {json.dumps(request.action.plugin)}")

    def _prompt_panel(self, request: PendingRequest, size: int) -> Panel:
        body = Text()
        body.append(f"By {json.dumps(request.action.plugin)}:\n\n")
        body.append(quote(str(request.action.command), COMMAND_PREVIEW_CHARS), style="bold white")
        body.append("\n")
        uri = request.artifact.uri()
        if uri is not None:
            body.append(f"Full command at {uri}\n")
        else:
            body.append("Full command unavailable\n", style="dim")
        body.append("\n")
        body.append_text(choices_text())
        return Panel(body, title=Text(f"1. NEW REQUEST ({size} queued)", style="bold green"), title_align="left")

    def show(self, snapshot: QueueSnapshot) -> None:
        with self._draw_lock:
            self.console.clear()
            self.console.print(self.render(snapshot))
            # A redraw while input is pending wipes the prompt.
            if self._awaiting_input:
                self.console.print(INPUT_PROMPT, end="")

    def read_shortcut(self, request: PendingRequest) -> str:
        with self._draw_lock:
            self.console.print(INPUT_PROMPT, end="")
            self._awaiting_input = True
        try:
            return self.console.input()
        finally:
            with self._draw_lock:
                self._awaiting_input = False
