# vida_node/consensus/recovery.py

import threading
from typing import Optional

from loguru import logger

from vida_node.database_handler.ledger_state import LedgerState
from vida_node.feed.subscriber import TransactionFeedSubscriber


class RecoveryController:
    """
    Commits accepted checkpoints and rolls back rejected ones.

    A rejection reverts the staged overlay and rewinds the feed to the block
    after the last durably committed checkpoint. Consecutive rejections back
    off exponentially so a permanently disagreeing peer set does not turn
    into a hot replay loop.
    """

    def __init__(
        self,
        ledger: LedgerState,
        subscriber: Optional[TransactionFeedSubscriber] = None,
        backoff_seconds: float = 1.0,
        backoff_max_seconds: float = 60.0,
        alert_after: int = 5,
        stop_event: Optional[threading.Event] = None,
    ):
        self.ledger = ledger
        self.subscriber = subscriber
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.alert_after = alert_after
        self.stop_event = stop_event or threading.Event()
        self.consecutive_rejections = 0

    def attach(self, subscriber: TransactionFeedSubscriber) -> None:
        self.subscriber = subscriber
        self.stop_event = subscriber.stop_event

    def backoff_delay(self) -> float:
        if self.consecutive_rejections == 0:
            return 0.0
        delay = self.backoff_seconds * 2 ** (self.consecutive_rejections - 1)
        return min(delay, self.backoff_max_seconds)

    def commit(self, checkpoint: int, root_hash: bytes) -> None:
        self.ledger.record_root_hash(checkpoint, root_hash)
        self.ledger.flush()
        self.consecutive_rejections = 0
        logger.info(f"Checkpoint {checkpoint} committed with root hash {root_hash.hex()}")

    def rollback(self, checkpoint: int) -> int:
        """Discard the rejected checkpoint and rewind the feed.

        Returns the block number delivery resumes from.
        """
        self.ledger.revert()
        resume_from = self.ledger.get_committed_checkpoint() + 1
        if self.subscriber is not None:
            self.subscriber.rewind(resume_from)

        self.consecutive_rejections += 1
        delay = self.backoff_delay()
        message = (
            f"Checkpoint {checkpoint} rejected by peers; reverted and resuming from "
            f"block {resume_from} in {delay:.1f}s "
            f"(consecutive rejections: {self.consecutive_rejections})"
        )
        if self.consecutive_rejections >= self.alert_after:
            logger.error(message)
        else:
            logger.warning(message)

        if delay > 0:
            self.stop_event.wait(delay)
        return resume_from
