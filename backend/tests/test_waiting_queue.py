"""Tests for the FIFO waiting queue."""
import random

from nulm.matching.queue import WaitingQueue

from conftest import make_participant


class TestEnqueue:
    def test_enqueue_requires_entered(self):
        queue = WaitingQueue()
        participant = make_participant(entered=False)
        assert queue.enqueue(participant) is False
        assert len(queue) == 0

    def test_enqueue_ignores_disconnected(self):
        queue = WaitingQueue()
        participant = make_participant()
        participant.connected = False
        assert queue.enqueue(participant) is False
        assert participant.id not in queue

    def test_re_enqueue_is_noop(self):
        queue = WaitingQueue()
        participant = make_participant()
        assert queue.enqueue(participant) is True
        assert queue.enqueue(participant) is True
        assert len(queue) == 1

    def test_entry_snapshots_nickname_and_address(self):
        queue = WaitingQueue()
        participant = make_participant(address="10.1.2.3")
        queue.enqueue(participant)
        queue.enqueue(make_participant())
        first, _ = queue.dequeue_pair()
        assert first.nickname == participant.nickname
        assert first.address == "10.1.2.3"


class TestDequeuePair:
    def test_returns_oldest_two_in_order(self):
        queue = WaitingQueue()
        a, b, c = make_participant(), make_participant(), make_participant()
        for p in (a, b, c):
            queue.enqueue(p)

        first, second = queue.dequeue_pair()
        assert (first.participant, second.participant) == (a, b)
        assert queue.ids() == [c.id]

    def test_fewer_than_two_leaves_queue_untouched(self):
        queue = WaitingQueue()
        a = make_participant()
        assert queue.dequeue_pair() is None
        queue.enqueue(a)
        assert queue.dequeue_pair() is None
        assert queue.ids() == [a.id]

    def test_push_front_restores_head(self):
        queue = WaitingQueue()
        a, b, c = make_participant(), make_participant(), make_participant()
        for p in (a, b, c):
            queue.enqueue(p)
        first, _ = queue.dequeue_pair()
        queue.push_front(first)
        assert queue.ids() == [a.id, c.id]


class TestRemove:
    def test_remove_absent_is_safe(self):
        queue = WaitingQueue()
        assert queue.remove("nobody") is False

    def test_remove_twice(self):
        queue = WaitingQueue()
        a = make_participant()
        queue.enqueue(a)
        assert queue.remove(a.id) is True
        assert queue.remove(a.id) is False
        assert len(queue) == 0


def test_random_operations_keep_ids_unique_and_fifo():
    """Random enqueue/remove/dequeue sequences against a reference list."""
    rng = random.Random(1234)
    pool = [make_participant() for _ in range(8)]
    queue = WaitingQueue()
    reference = []

    for _ in range(500):
        op = rng.choice(["enqueue", "enqueue", "remove", "dequeue"])
        p = rng.choice(pool)
        if op == "enqueue":
            queue.enqueue(p)
            if p.id not in reference:
                reference.append(p.id)
        elif op == "remove":
            queue.remove(p.id)
            if p.id in reference:
                reference.remove(p.id)
        else:
            pair = queue.dequeue_pair()
            if len(reference) < 2:
                assert pair is None
            else:
                assert [e.participant_id for e in pair] == reference[:2]
                reference = reference[2:]

        ids = queue.ids()
        assert len(ids) == len(set(ids))
        assert ids == reference
