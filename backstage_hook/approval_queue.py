"""FIFO approval queue: many submitters, one human reviewer.

Any number of threads call ``submit``. Actions with a remembered decision
are answered straight from the store. Everything else is appended to the
queue and the calling thread blocks until the reviewer has answered it.

One reviewer loop (``serve_forever``, usually on its own thread) shows
the head of the queue, reads a shortcut and delivers the decision. It is
the only reader of reviewer input and the only code that removes the
head, so review is strictly one request at a time, in submission order.

Request lifecycle:
    submitted -> queued -> under review (head only) -> resolved

Answers go through a one-shot Future per request: exactly one decision
is written, and a second write raises InvalidStateError.
"""

import logging
import threading
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from backstage_hook import policies
from backstage_hook.actions import Action
from backstage_hook.artifacts import CommandFile
from backstage_hook.policies import Policy
from backstage_hook.storage.store import Store

logger = logging.getLogger(__name__)


class QueueClosedError(RuntimeError):
    """Raised by ``submit`` once the queue no longer accepts actions."""


class PendingRequest:
    """An action waiting for the reviewer, with its one-shot answer slot."""

    def __init__(self, action: Action, artifact_dir: Optional[str | Path] = None):
        self.action = action
        self.fingerprint = action.fingerprint()
        self.artifact = CommandFile(str(action.command), artifact_dir)
        self._response: Future = Future()

    @property
    def resolved(self) -> bool:
        return self._response.done()

    def deliver(self, policy: Policy) -> None:
        """Answer the request. Raises InvalidStateError if already answered."""
        self._response.set_result(policy)

    def wait(self, timeout: Optional[float] = None) -> Policy:
        return self._response.result(timeout=timeout)

    def __repr__(self) -> str:
        return f"PendingRequest(plugin={self.action.plugin!r}, command={str(self.action.command)!r})"


@dataclass(frozen=True)
class QueueSnapshot:
    """Point-in-time view of the queue for rendering."""

    head: Optional[PendingRequest]
    waiting: tuple[PendingRequest, ...] = ()

    @property
    def size(self) -> int:
        return len(self.waiting) + (1 if self.head is not None else 0)


class Reviewer(Protocol):
    """The human side of the queue.

    ``show`` is called from the reviewer loop and from submitting threads
    (to redraw the queue when it grows). The queue serializes these calls
    and takes each snapshot inside the same lock, so snapshots arrive in
    order and the newest one always shows the request being prompted for.
    ``read_shortcut`` is only ever called from the reviewer loop.
    """

    def show(self, snapshot: QueueSnapshot) -> None:
        ...

    def read_shortcut(self, request: PendingRequest) -> str:
        ...


class ApprovalQueue:
    """Serializes human review of concurrently submitted actions.

    Args:
        store: remembered decisions; consulted before queueing and
            written to on "Always allow".
        reviewer: renders the queue and reads shortcuts.
        artifact_dir: where command files are created (default: system
            temp dir).
    """

    def __init__(
        self,
        store: Store,
        reviewer: Reviewer,
        artifact_dir: Optional[str | Path] = None,
    ):
        self._store = store
        self._reviewer = reviewer
        self._artifact_dir = artifact_dir
        self._pending: deque[PendingRequest] = deque()
        self._cond = threading.Condition()
        self._draw_lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # Submitting side
    # ------------------------------------------------------------------

    def submit(self, action: Action) -> Policy:
        """Get a decision for ``action``, blocking until the reviewer answers.

        Returns immediately if a decision is remembered for the action's
        fingerprint; such calls never enter the queue.

        Raises:
            QueueClosedError: the queue was closed before the action
                could be queued.
        """
        remembered, cached = self._store.policy(action)
        if cached:
            logger.debug("Remembered %s for %s", remembered.id, action.fingerprint())
            return remembered

        request = PendingRequest(action, self._artifact_dir)
        with self._cond:
            if self._closed:
                raise QueueClosedError("approval queue is closed")
            self._pending.append(request)
            position = len(self._pending)
            self._cond.notify_all()
        logger.info(
            "Queued %r from plugin %r at position %d", action.command.name, action.plugin, position
        )
        if position > 1:
            # The head is already under review; only the waiting list changed.
            self._redraw()
        return request.wait()

    # ------------------------------------------------------------------
    # Reviewer side
    # ------------------------------------------------------------------

    def review_next(self) -> bool:
        """Run one review cycle for the head of the queue.

        Blocks until there is a head. Returns False, without reviewing,
        once the queue is closed and empty.
        """
        with self._cond:
            while not self._pending and not self._closed:
                self._cond.wait()
            if not self._pending:
                return False
            head = self._pending[0]

        self._redraw()
        shortcut = self._reviewer.read_shortcut(head).strip()
        while not policies.shortcut_valid(shortcut):
            logger.debug("Ignoring reviewer input %r", shortcut)
            self._redraw()
            shortcut = self._reviewer.read_shortcut(head).strip()

        self._resolve(head, policies.by_shortcut(shortcut))
        return True

    def _redraw(self) -> None:
        # Snapshot under the draw lock: the last draw always shows the current head.
        with self._draw_lock:
            self._reviewer.show(self.snapshot())

    def _resolve(self, request: PendingRequest, policy: Policy) -> None:
        # Persist first so a caller that resubmits right after the answer hits the cache.
        if policy.persistent:
            self._store.set_policy(request.action, policy)
        with self._cond:
            self._pending.popleft()
        request.deliver(policy)
        request.artifact.release()
        logger.info(
            "%s %r from plugin %r", policy.display_name, request.action.command.name, request.action.plugin
        )

    def serve_forever(self) -> None:
        """Review requests until the queue is closed and drained."""
        while self.review_next():
            pass
        logger.debug("Reviewer loop stopped")

    def start(self) -> threading.Thread:
        """Run ``serve_forever`` on a daemon thread and return the thread."""
        thread = threading.Thread(target=self.serve_forever, name="approval-reviewer", daemon=True)
        thread.start()
        return thread

    def close(self) -> None:
        """Stop accepting actions. The reviewer loop exits once the queue is empty."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def abort(self, policy: Policy = Policy.DENY) -> int:
        """Close the queue and answer everything still waiting with ``policy``.

        For shutting down when the reviewer can no longer answer (input
        closed, interrupt). Must not run while the reviewer loop is
        running. Returns the number of requests answered.
        """
        with self._cond:
            self._closed = True
            abandoned = list(self._pending)
            self._pending.clear()
            self._cond.notify_all()
        for request in abandoned:
            request.deliver(policy)
            request.artifact.release()
        if abandoned:
            logger.warning("Answered %d unreviewed request(s) with %s", len(abandoned), policy.id)
        return len(abandoned)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def snapshot(self) -> QueueSnapshot:
        with self._cond:
            if not self._pending:
                return QueueSnapshot(head=None)
            items = tuple(self._pending)
        return QueueSnapshot(head=items[0], waiting=items[1:])

    def __len__(self) -> int:
        with self._cond:
            return len(self._pending)
