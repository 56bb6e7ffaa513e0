"""The decisions a reviewer can make for an incoming action.

The set is closed: Allow, Always allow and Deny. Each carries a storage
id, a display name, a description and a one-character shortcut typed at
the prompt.

>>> by_shortcut("s") is Policy.ALLOW_ALWAYS
True
>>> Policy.DENY.id
'DENY'
"""

from enum import Enum


class PolicyNotFoundError(LookupError):
    """No policy has the requested id or shortcut."""


class Policy(Enum):
    ALLOW = ("ALLOW", "Allow", "Allow the action once", "a")
    ALLOW_ALWAYS = ("ALLOW_ALWAYS", "Always allow", "Always allow this action", "s")
    DENY = ("DENY", "Deny", "Deny this action this time", "d")

    def __init__(self, policy_id: str, display_name: str, description: str, shortcut: str):
        self.id = policy_id
        self.display_name = display_name
        self.description = description
        self.shortcut = shortcut

    @property
    def persistent(self) -> bool:
        """Only Always allow outlives the request it answered."""
        return self is Policy.ALLOW_ALWAYS


def all_policies() -> tuple[Policy, ...]:
    return (Policy.ALLOW, Policy.ALLOW_ALWAYS, Policy.DENY)


def id_valid(policy_id: str) -> bool:
    """True if one of the policies has this id.

    >>> id_valid("ALLOW"), id_valid("allow")
    (True, False)
    """
    return any(p.id == policy_id for p in all_policies())


def shortcut_valid(shortcut: str) -> bool:
    """True if one of the policies has this shortcut.

    >>> shortcut_valid("d"), shortcut_valid("x"), shortcut_valid("")
    (True, False, False)
    """
    return any(p.shortcut == shortcut for p in all_policies())


def by_id(policy_id: str) -> Policy:
    for p in all_policies():
        if p.id == policy_id:
            return p
    raise PolicyNotFoundError(f"policy with id {policy_id!r} not found")


def by_shortcut(shortcut: str) -> Policy:
    for p in all_policies():
        if p.shortcut == shortcut:
            return p
    raise PolicyNotFoundError(f"policy with shortcut {shortcut!r} not found")
