# vida_node/feed/subscriber.py

import threading
from typing import Callable, Optional

from loguru import logger

from vida_node.database_handler.errors import StorageUnavailable
from vida_node.feed.errors import FeedUnavailable
from vida_node.feed.sources import FeedSource
from vida_node.feed.types import FeedTransaction


class TransactionFeedSubscriber:
    """
    Delivers feed transactions to a single writer, one block range at a time.

    Checkpoints fall on multiples of ``checkpoint_interval``, so every node
    replaying the same feed checkpoints the same blocks no matter when it
    polls. A range is delivered only once the chain head has reached its last
    block: each transaction goes to ``on_transaction`` in feed order, then
    ``on_checkpoint`` is called with the range end. The loop does not move on
    until the checkpoint handler returns, and the handler may ``rewind`` the
    subscriber to have a range delivered again.
    """

    def __init__(
        self,
        source: FeedSource,
        start_block: int,
        on_transaction: Callable[[FeedTransaction], object],
        on_checkpoint: Callable[[int], object],
        poll_interval: float = 1.0,
        checkpoint_interval: int = 100,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        if start_block < 0:
            raise ValueError(f"start_block must not be negative, got {start_block}")
        if checkpoint_interval < 1:
            raise ValueError(
                f"checkpoint_interval must be positive, got {checkpoint_interval}"
            )

        self.source = source
        self.on_transaction = on_transaction
        self.on_checkpoint = on_checkpoint
        self.poll_interval = poll_interval
        self.checkpoint_interval = checkpoint_interval
        self.on_fatal = on_fatal

        self._lock = threading.Lock()
        self._next_block = start_block
        self._stop_event = stop_event or threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.fatal_error: Optional[BaseException] = None

    @property
    def next_block(self) -> int:
        with self._lock:
            return self._next_block

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def rewind(self, block_number: int) -> None:
        """Resume delivery from ``block_number`` on the next round."""
        with self._lock:
            self._next_block = block_number
        logger.info(f"Feed subscription rewound to block {block_number}")

    def checkpoint_boundary(self, block_number: int) -> int:
        """Last block of the checkpoint range containing ``block_number``."""
        return -(-block_number // self.checkpoint_interval) * self.checkpoint_interval

    def poll_once(self) -> bool:
        """Deliver one block range. Returns False while the range is incomplete."""
        start = self.next_block
        end = self.checkpoint_boundary(start)
        if self.source.latest_block_number() < end:
            return False

        for tx in self.source.fetch_transactions(start, end):
            if self._stop_event.is_set():
                return False
            self.on_transaction(tx)

        with self._lock:
            self._next_block = end + 1
        self.on_checkpoint(end)
        return True

    def _run(self) -> None:
        logger.info(f"Feed subscriber started at block {self.next_block}")
        while not self._stop_event.is_set():
            try:
                progressed = self.poll_once()
            except FeedUnavailable as e:
                logger.warning(f"Feed unavailable, retrying: {e.message}")
                progressed = False
            except StorageUnavailable as e:
                logger.critical(f"Storage unavailable, stopping the node: {e.message}")
                self._fail(e)
                return
            except Exception as e:
                logger.exception(f"Unexpected error while applying the feed: {e}")
                self._fail(e)
                return

            if not progressed:
                self._stop_event.wait(self.poll_interval)

        logger.info("Feed subscriber stopped")

    def _fail(self, error: BaseException) -> None:
        self.fatal_error = error
        self._stop_event.set()
        if self.on_fatal is not None:
            self.on_fatal(error)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="vida-feed-subscriber", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
