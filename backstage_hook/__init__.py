"""
backstage-hook - Interactive approval gate for plugin-proposed commands.

Plugins submit actions, a human reviewer answers each one with
Allow / Always allow / Deny, and "Always allow" answers are remembered
by action fingerprint so identical actions pass without a prompt.

    from backstage_hook import Action, ApprovalQueue, Store
"""

__version__ = "0.3.0"

from backstage_hook.actions import Action, Command, fingerprint
from backstage_hook.approval_queue import ApprovalQueue, QueueClosedError
from backstage_hook.policies import Policy, PolicyNotFoundError
from backstage_hook.sessions import Session
from backstage_hook.storage import Store

__all__ = [
    "__version__",
    "Action",
    "ApprovalQueue",
    "Command",
    "Policy",
    "PolicyNotFoundError",
    "QueueClosedError",
    "Session",
    "Store",
    "fingerprint",
]
