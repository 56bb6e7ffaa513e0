"""
Tests for the approval queue.

Submitters run on a thread pool, the reviewer loop on its own thread
(see the ``approval_queue`` fixture) and the test plays the human by
pressing keys on the scripted reviewer.
"""

from concurrent.futures import InvalidStateError, ThreadPoolExecutor
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import pytest

from backstage_hook import artifacts
from backstage_hook.approval_queue import ApprovalQueue, PendingRequest, QueueClosedError
from backstage_hook.policies import Policy
from backstage_hook.storage import MemoryPolicyStorage, Store, StoredPolicy

RESULT_TIMEOUT = 5


@pytest.fixture
def pool():
    with ThreadPoolExecutor(max_workers=8) as executor:
        yield executor


def submit_in_order(q, pool, actions, wait_until):
    """Submit actions one after another so their queue order is known."""
    futures = []
    for i, action in enumerate(actions):
        futures.append(pool.submit(q.submit, action))
        assert wait_until(lambda: len(q) == i + 1)
    return futures


class TestSingleReview:
    def test_deny_is_not_remembered(self, approval_queue, reviewer, memory_store, pool, make_action):
        action = make_action()
        future = pool.submit(approval_queue.submit, action)
        reviewer.press("d")

        assert future.result(timeout=RESULT_TIMEOUT) is Policy.DENY
        assert memory_store.policy(action) == (None, False)

    def test_allow_is_not_remembered(self, approval_queue, reviewer, memory_store, pool, make_action):
        action = make_action()
        future = pool.submit(approval_queue.submit, action)
        reviewer.press("a")

        assert future.result(timeout=RESULT_TIMEOUT) is Policy.ALLOW
        assert memory_store.policy(action) == (None, False)

    def test_allow_always_is_remembered(self, approval_queue, reviewer, memory_store, pool, make_action):
        action = make_action(args=["-f", "x.yaml"])
        future = pool.submit(approval_queue.submit, action)
        reviewer.press("s")

        assert future.result(timeout=RESULT_TIMEOUT) is Policy.ALLOW_ALWAYS
        assert memory_store.policy(action) == (Policy.ALLOW_ALWAYS, True)

        # Resubmitting an equal action never reaches the reviewer.
        assert approval_queue.submit(make_action(args=["-f", "x.yaml"])) is Policy.ALLOW_ALWAYS
        assert len(approval_queue) == 0
        assert reviewer.prompted == [action]

    def test_remembered_decision_skips_queue(self, approval_queue, reviewer, memory_store, make_action):
        action = make_action()
        memory_store.set_policy(action, Policy.DENY)

        assert approval_queue.submit(action) is Policy.DENY
        assert reviewer.prompted == []
        assert reviewer.shown == []

    def test_invalid_input_is_asked_again(self, approval_queue, reviewer, pool, make_action):
        action = make_action()
        future = pool.submit(approval_queue.submit, action)
        reviewer.press("x", "", "A", " a \n")

        assert future.result(timeout=RESULT_TIMEOUT) is Policy.ALLOW
        assert reviewer.prompted == [action] * 4
        assert len(reviewer.shown) >= 4


class TestOrdering:
    def test_fifo(self, approval_queue, reviewer, pool, make_action, wait_until):
        actions = [make_action(plugin=f"plugin-{i}", name=f"cmd-{i}") for i in range(5)]
        futures = submit_in_order(approval_queue, pool, actions, wait_until)

        reviewer.press(*"aaaaa")

        assert [f.result(timeout=RESULT_TIMEOUT) for f in futures] == [Policy.ALLOW] * 5
        assert reviewer.prompted == actions

    def test_second_plugin_waits_for_first(self, approval_queue, reviewer, pool, make_action, wait_until):
        first = make_action(plugin="p1", name="deploy")
        second = make_action(plugin="p2", name="migrate")
        f1, f2 = submit_in_order(approval_queue, pool, [first, second], wait_until)

        reviewer.press("a")
        assert f1.result(timeout=RESULT_TIMEOUT) is Policy.ALLOW
        assert wait_until(lambda: len(approval_queue) == 1)
        assert not f2.done()
        assert approval_queue.snapshot().head.action == second

        reviewer.press("d")
        assert f2.result(timeout=RESULT_TIMEOUT) is Policy.DENY

    def test_growing_queue_is_redrawn(self, reviewer, memory_store, pool, make_action, wait_until):
        q = ApprovalQueue(memory_store, reviewer)
        actions = [make_action(name=f"cmd-{i}") for i in range(3)]
        submit_in_order(q, pool, actions, wait_until)

        # Without a running reviewer only the submitters behind the head draw.
        assert wait_until(lambda: len(reviewer.shown) == 2)
        assert max(s.size for s in reviewer.shown) == 3
        q.abort()

    def test_screen_shows_request_being_answered(self, approval_queue, reviewer, pool, make_action, wait_until):
        """A slow redraw from a submitter never leaves an answered head on screen."""
        reviewer.submitter_draw_delay = 0.3
        first = make_action(plugin="p1", name="first")
        second = make_action(plugin="p2", name="second")

        f1 = pool.submit(approval_queue.submit, first)
        assert wait_until(lambda: len(reviewer.prompted) == 1)
        f2 = pool.submit(approval_queue.submit, second)
        assert wait_until(lambda: len(approval_queue) == 2)

        reviewer.press("a")
        assert f1.result(timeout=RESULT_TIMEOUT) is Policy.ALLOW
        assert wait_until(lambda: len(reviewer.prompted) == 2)
        # reviewer draw, submitter draw, reviewer draw
        assert wait_until(lambda: len(reviewer.shown) == 3)
        assert reviewer.shown[-1].head.action == reviewer.prompted[-1] == second

        reviewer.press("d")
        assert f2.result(timeout=RESULT_TIMEOUT) is Policy.DENY

    def test_many_concurrent_submitters(self, approval_queue, reviewer, pool, make_action):
        actions = [make_action(plugin=f"p{i % 3}", name=f"cmd-{i}") for i in range(20)]
        futures = [pool.submit(approval_queue.submit, a) for a in actions]
        reviewer.press(*("a" * 20))

        assert all(f.result(timeout=RESULT_TIMEOUT) is Policy.ALLOW for f in futures)
        assert sorted(reviewer.prompted, key=str) == sorted(actions, key=str)
        assert len(reviewer.prompted) == 20


class TestPendingRequest:
    def test_answered_exactly_once(self, make_action):
        request = PendingRequest(make_action())
        assert not request.resolved

        request.deliver(Policy.ALLOW)
        with pytest.raises(InvalidStateError):
            request.deliver(Policy.DENY)

        assert request.resolved
        assert request.wait() is Policy.ALLOW

    def test_fingerprint_matches_action(self, make_action):
        action = make_action(args=["x"])
        assert PendingRequest(action).fingerprint == action.fingerprint()


class TestCommandFiles:
    def test_released_after_answer(self, approval_queue, reviewer, pool, make_action, tmp_path, wait_until):
        future = pool.submit(approval_queue.submit, make_action(args=["--all"]))
        reviewer.press("a")
        future.result(timeout=RESULT_TIMEOUT)

        path = Path(url2pathname(urlparse(reviewer.uris[0]).path))
        assert path.parent == tmp_path.resolve()
        assert wait_until(lambda: not path.exists())

    def test_file_failure_still_answers(self, approval_queue, reviewer, pool, make_action, monkeypatch):
        def broken_mkstemp(*args, **kwargs):
            raise OSError("no space left")

        monkeypatch.setattr(artifacts.tempfile, "mkstemp", broken_mkstemp)
        future = pool.submit(approval_queue.submit, make_action())
        reviewer.press("d")

        assert future.result(timeout=RESULT_TIMEOUT) is Policy.DENY
        assert reviewer.uris == [None]


class TestShutdown:
    def test_submit_after_close(self, reviewer, memory_store, make_action):
        q = ApprovalQueue(memory_store, reviewer)
        q.close()

        with pytest.raises(QueueClosedError):
            q.submit(make_action())
        assert q.closed

    def test_remembered_decision_after_close(self, reviewer, memory_store, make_action):
        action = make_action()
        memory_store.set_policy(action, Policy.ALLOW_ALWAYS)
        q = ApprovalQueue(memory_store, reviewer)
        q.close()

        assert q.submit(action) is Policy.ALLOW_ALWAYS

    def test_review_next_returns_false_when_closed_and_empty(self, reviewer, memory_store):
        q = ApprovalQueue(memory_store, reviewer)
        q.close()
        assert q.review_next() is False

    def test_loop_drains_before_stopping(self, reviewer, memory_store, pool, make_action, wait_until):
        q = ApprovalQueue(memory_store, reviewer)
        future = pool.submit(q.submit, make_action())
        assert wait_until(lambda: len(q) == 1)
        thread = q.start()
        q.close()

        reviewer.press("a")
        assert future.result(timeout=RESULT_TIMEOUT) is Policy.ALLOW
        thread.join(timeout=RESULT_TIMEOUT)
        assert not thread.is_alive()

    def test_abort_answers_everything_waiting(self, reviewer, memory_store, pool, make_action, wait_until):
        q = ApprovalQueue(memory_store, reviewer)
        futures = submit_in_order(q, pool, [make_action(name="a"), make_action(name="b")], wait_until)

        assert q.abort() == 2
        assert [f.result(timeout=RESULT_TIMEOUT) for f in futures] == [Policy.DENY, Policy.DENY]
        assert len(q) == 0
        assert q.closed
        assert q.abort() == 0


class TestSnapshot:
    def test_empty(self, reviewer, memory_store):
        snap = ApprovalQueue(memory_store, reviewer).snapshot()
        assert snap.head is None
        assert snap.size == 0

    def test_head_and_waiting(self, reviewer, memory_store, pool, make_action, wait_until):
        q = ApprovalQueue(memory_store, reviewer)
        actions = [make_action(name=n) for n in ("one", "two", "three")]
        submit_in_order(q, pool, actions, wait_until)

        snap = q.snapshot()
        assert snap.head.action == actions[0]
        assert [r.action for r in snap.waiting] == actions[1:]
        assert snap.size == 3
        q.abort()


def test_corrupted_record_goes_to_reviewer(reviewer, pool, make_action, tmp_path):
    backend = MemoryPolicyStorage()
    store = Store(backend, None)
    action = make_action()
    backend.store(action.fingerprint(), StoredPolicy(policy_id="NOT_A_POLICY"))

    q = ApprovalQueue(store, reviewer, artifact_dir=tmp_path)
    thread = q.start()
    try:
        future = pool.submit(q.submit, action)
        reviewer.press("a")
        assert future.result(timeout=RESULT_TIMEOUT) is Policy.ALLOW
        assert reviewer.prompted == [action]
    finally:
        q.close()
        thread.join(timeout=RESULT_TIMEOUT)
