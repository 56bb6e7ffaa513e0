"""Shared fixtures for backstage-hook tests."""

import queue
import threading
import time

import pytest

from backstage_hook.actions import Action, Command
from backstage_hook.approval_queue import ApprovalQueue
from backstage_hook.storage import MemoryPolicyStorage, MemorySessionStorage, Store


# Strings that are easy to confuse once serialized
CORPUS_STRINGS = ["", "test", "tests", "t", '{"name":"test"}', "Test", "*"]


class ScriptedReviewer:
    """Reviewer double: records what it was shown, answers from a key queue.

    Like the console reviewer it opens the command file at each prompt.
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self.keys: queue.Queue = queue.Queue()
        self.shown = []
        self.prompted = []
        self.uris = []
        # Delay for draws coming from submitter threads
        self.submitter_draw_delay = 0.0
        self._lock = threading.Lock()

    def press(self, *keys: str):
        for key in keys:
            self.keys.put(key)

    def show(self, snapshot):
        if self.submitter_draw_delay and threading.current_thread().name != "approval-reviewer":
            time.sleep(self.submitter_draw_delay)
        with self._lock:
            self.shown.append(snapshot)

    def read_shortcut(self, request):
        with self._lock:
            self.prompted.append(request.action)
            self.uris.append(request.artifact.uri())
        return self.keys.get(timeout=self.timeout)


@pytest.fixture
def make_action():
    """Factory for Action objects."""
    def _create(plugin="p1", name="deploy", args=None):
        return Action(plugin=plugin, command=Command(name=name, args=args))
    return _create


@pytest.fixture
def unique_actions():
    """Every (plugin, name, args) combination over CORPUS_STRINGS; all distinct."""
    actions = []
    for plugin in CORPUS_STRINGS:
        for name in CORPUS_STRINGS:
            for arg_count in range(3):
                args = CORPUS_STRINGS * arg_count
                actions.append(Action(plugin=plugin, command=Command(name=name, args=args)))
    return actions


@pytest.fixture
def memory_store():
    """Store over fresh in-memory backends."""
    return Store(MemoryPolicyStorage(), MemorySessionStorage())


@pytest.fixture
def reviewer():
    return ScriptedReviewer()


@pytest.fixture
def approval_queue(memory_store, reviewer, tmp_path):
    """ApprovalQueue with its reviewer loop running on a background thread."""
    q = ApprovalQueue(memory_store, reviewer, artifact_dir=tmp_path)
    thread = q.start()
    yield q
    q.close()
    thread.join(timeout=5)


@pytest.fixture
def wait_until():
    """Poll a predicate until it is true or the timeout expires."""
    def _wait(predicate, timeout=5.0, interval=0.01):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return _wait
