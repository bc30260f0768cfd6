"""Unit tests for checkpoint validation, commit and rollback."""

import json
from unittest.mock import MagicMock

from vida_node.consensus.types import CheckpointPhase
from vida_node.feed.types import FeedTransaction

ADDR1 = bytes.fromhex("11" * 20)
ADDR2 = bytes.fromhex("22" * 20)


def _transfer(block: int, amount: int) -> FeedTransaction:
    data = json.dumps(
        {"action": "transfer", "receiver": "0x" + ADDR2.hex(), "amount": amount}
    ).encode()
    return FeedTransaction(block_number=block, sender=ADDR1, data=data)


def _seed(ledger, checkpoint=9):
    ledger.seed_genesis({"0x" + ADDR1.hex(): 1000}, checkpoint=checkpoint)


def test_accepted_checkpoint_is_committed(ledger, make_worker, peer_session, make_response):
    _seed(ledger)
    subscriber = MagicMock()
    worker = make_worker(["p1:1"], subscriber=subscriber)

    worker.handle_transaction(_transfer(10, 300))
    ledger.set_last_checkpoint(10)
    expected_root = ledger.root_hash()
    peer_session.get.return_value = make_response(200, expected_root.hex())

    assert worker.handle_checkpoint(10) is True

    assert ledger.get_committed_checkpoint() == 10
    assert ledger.get_committed_root_hash(10) == expected_root
    assert ledger.store.get_committed(ADDR2) is not None
    assert not ledger.store.has_pending_changes
    assert worker.committed_checkpoints == 1
    assert worker.phase == CheckpointPhase.AWAITING_TXNS
    subscriber.rewind.assert_not_called()


def test_rejected_checkpoint_reverts_and_rewinds(ledger, make_worker, peer_session, make_response):
    """3 peers all report a different hash: revert to checkpoint 9 state."""
    _seed(ledger)
    committed_root = ledger.committed_root_hash()
    subscriber = MagicMock()
    worker = make_worker(["p1:1", "p2:1", "p3:1"], subscriber=subscriber)
    peer_session.get.return_value = make_response(200, "ff" * 32)

    worker.handle_transaction(_transfer(10, 300))
    assert worker.handle_checkpoint(10) is False

    assert ledger.get_balance(ADDR1) == 1000
    assert ledger.get_balance(ADDR2) == 0
    assert ledger.get_last_checkpoint() == 9
    assert ledger.get_root_hash(10) is None
    assert ledger.root_hash() == committed_root
    subscriber.rewind.assert_called_once_with(10)
    assert worker.rejected_checkpoints == 1
    assert worker.recovery.consecutive_rejections == 1
    assert worker.phase == CheckpointPhase.AWAITING_TXNS


def test_replay_after_rejection_reproduces_the_same_root(ledger, make_worker, peer_session, make_response):
    _seed(ledger)
    worker = make_worker(["p1:1"], subscriber=MagicMock())

    peer_session.get.return_value = make_response(200, "ff" * 32)
    worker.handle_transaction(_transfer(10, 300))
    worker.handle_checkpoint(10)
    rejected = worker.last_outcome

    worker.handle_transaction(_transfer(10, 300))
    ledger.set_last_checkpoint(10)
    replay_root = ledger.root_hash()
    peer_session.get.return_value = make_response(200, replay_root.hex())

    assert worker.handle_checkpoint(10) is True
    assert rejected.accepted is False
    assert ledger.get_balance(ADDR2) == 300
    assert worker.recovery.consecutive_rejections == 0


def test_no_peers_always_rejects(ledger, make_worker):
    _seed(ledger)
    worker = make_worker([], subscriber=MagicMock())

    assert worker.handle_checkpoint(10) is False
    assert ledger.get_committed_checkpoint() == 9


def test_stale_checkpoint_is_ignored(ledger, make_worker, peer_session):
    _seed(ledger, checkpoint=20)
    subscriber = MagicMock()
    worker = make_worker(["p1:1"], subscriber=subscriber)

    worker.handle_transaction(_transfer(15, 300))
    assert worker.handle_checkpoint(15) is False

    peer_session.get.assert_not_called()
    assert ledger.get_balance(ADDR2) == 0
    subscriber.rewind.assert_called_once_with(21)


def test_backoff_grows_and_caps(ledger, make_worker):
    worker = make_worker(
        [], subscriber=MagicMock(), backoff_seconds=1.0, backoff_max_seconds=5.0
    )
    recovery = worker.recovery
    recovery.stop_event = MagicMock()

    delays = []
    for _ in range(5):
        recovery.rollback(10)
        delays.append(recovery.backoff_delay())

    assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]
    recovery.stop_event.wait.assert_called_with(5.0)


def test_commit_resets_backoff(ledger, make_worker):
    _seed(ledger)
    worker = make_worker([], subscriber=MagicMock())
    recovery = worker.recovery
    recovery.rollback(10)
    recovery.rollback(10)

    ledger.set_last_checkpoint(10)
    recovery.commit(10, ledger.root_hash())

    assert recovery.consecutive_rejections == 0
    assert recovery.backoff_delay() == 0.0
