"""Actions proposed by plugins, and their fingerprints.

An action is a plugin's intent to run a command. Its fingerprint is the
key under which "Always allow" decisions are remembered, so it must be
stable across restarts and must never collide for different actions.

The canonical form is compact, ASCII-only JSON with sorted keys. Non-ASCII
characters (including lone surrogates from undecodable argv or paths) are
written as ``\\uXXXX`` escapes. ``args`` is left out when empty, which makes
a missing argument list and an empty one the same action:

>>> a = Action(plugin="p1", command=Command(name="ls"))
>>> canonical_bytes(a)
b'{"command":{"name":"ls"},"plugin":"p1"}'
>>> a.fingerprint() == Action(plugin="p1", command=Command(name="ls", args=[])).fingerprint()
True
"""

import base64
import hashlib
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)


class Command(BaseModel):
    """The command a plugin wants executed.

    >>> str(Command(name="kubectl", args=["get", "pods"]))
    'kubectl get pods'
    >>> str(Command(name="pwd"))
    'pwd'
    """

    model_config = ConfigDict(frozen=True)

    name: str
    args: tuple[str, ...] = ()

    @field_validator("args", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return () if value is None else value

    def __str__(self) -> str:
        if not self.args:
            return self.name
        return f"{self.name} {' '.join(self.args)}"


class Action(BaseModel):
    """A plugin's request to execute a command. Immutable and hashable."""

    model_config = ConfigDict(frozen=True)

    plugin: str
    command: Command

    def fingerprint(self) -> str:
        return fingerprint(self)


def canonical_bytes(action: Action) -> bytes:
    """Deterministic encoding of an action. Field set and order must never change."""
    command: dict = {"name": action.command.name}
    if action.command.args:
        command["args"] = list(action.command.args)
    payload = {"command": command, "plugin": action.plugin}
    return json.dumps(
        payload, separators=(",", ":"), sort_keys=True, ensure_ascii=True
    ).encode("ascii")


def fingerprint(action: Action) -> str:
    """SHA-256 of the canonical encoding as standard base64 (44 characters).

    >>> len(fingerprint(Action(plugin="p", command=Command(name="x"))))
    44
    """
    digest = hashlib.sha256(canonical_bytes(action)).digest()
    return base64.b64encode(digest).decode("ascii")


def parse_action_line(line: str) -> Optional[Action]:
    """Parse one NDJSON line into an Action.

    Returns None for blank lines, malformed JSON and lines that do not
    describe an action (permissive).

    >>> parse_action_line('{"plugin":"p1","command":{"name":"deploy","args":["-f","x.yaml"]}}').command.args
    ('-f', 'x.yaml')
    >>> parse_action_line('') is None
    True
    >>> parse_action_line('{"plugin":"p1"}') is None
    True
    """
    stripped = line.strip()
    if not stripped:
        return None
    try:
        return Action.model_validate_json(stripped)
    except ValidationError:
        logger.debug("Skipping malformed action line: %s", stripped[:100])
        return None


def load_actions(path: str | Path) -> list[Action]:
    """Read every valid action from an NDJSON file, in file order."""
    actions = []
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            action = parse_action_line(line)
            if action is not None:
                actions.append(action)
    return actions
