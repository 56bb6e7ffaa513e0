"""Typed access to remembered decisions and sessions.

``Store`` wraps the two raw backends: it keys decisions by action
fingerprint, converts stored ids back into ``Policy`` members and stamps
records with the time they were written.

Example::

    store = Store(MemoryPolicyStorage(), MemorySessionStorage())
    store.set_policy(action, Policy.ALLOW_ALWAYS)
    store.policy(action)  # (Policy.ALLOW_ALWAYS, True)
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from backstage_hook import policies
from backstage_hook.actions import Action
from backstage_hook.policies import Policy
from backstage_hook.sessions import Session
from backstage_hook.storage.base import (
    PolicyStorage,
    SessionStorage,
    StoredPolicy,
    StoredSession,
)

logger = logging.getLogger(__name__)


class Store:
    """Decision and session storage over pluggable backends.

    Either backend may be None when the caller only needs the other
    namespace; touching an unconfigured namespace raises RuntimeError.
    """

    def __init__(
        self,
        policy_storage: Optional[PolicyStorage] = None,
        session_storage: Optional[SessionStorage] = None,
    ):
        self._policies = policy_storage
        self._sessions = session_storage

    def _policy_backend(self) -> PolicyStorage:
        if self._policies is None:
            raise RuntimeError("no policy storage configured")
        return self._policies

    def _session_backend(self) -> SessionStorage:
        if self._sessions is None:
            raise RuntimeError("no session storage configured")
        return self._sessions

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    def policy(self, action: Action) -> tuple[Optional[Policy], bool]:
        """Remembered decision for this action, or (None, False).

        A record naming an unknown policy id counts as a miss, so a
        corrupted entry leads to a fresh prompt instead of an error.
        """
        key = action.fingerprint()
        value, ok = self._policy_backend().get(key)
        if not ok or value.is_empty:
            return None, False
        if not policies.id_valid(value.policy_id):
            logger.warning(
                "Ignoring stored policy with unknown id %r for %s", value.policy_id, key
            )
            return None, False
        return policies.by_id(value.policy_id), True

    def set_policy(self, action: Action, policy: Optional[Policy]) -> None:
        """Remember a decision for this action. None forgets it."""
        key = action.fingerprint()
        if policy is None:
            self._policy_backend().store(key, StoredPolicy())
            return
        self._policy_backend().store(
            key,
            StoredPolicy(policy_id=policy.id, timestamp=datetime.now(timezone.utc)),
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def session(self, session_id: str) -> tuple[Optional[Session], bool]:
        value, ok = self._session_backend().get(session_id)
        if not ok or value.is_empty:
            return None, False
        return Session(id=session_id, secret=value.secret), True

    def set_session(self, session: Session) -> None:
        if session is None:
            raise ValueError("cannot store a None session")
        self._session_backend().store(
            session.id,
            StoredSession(secret=session.secret, created=datetime.now(timezone.utc)),
        )

    def delete_session(self, session_id: str) -> None:
        self._session_backend().store(session_id, StoredSession())
