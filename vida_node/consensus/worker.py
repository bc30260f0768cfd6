# vida_node/consensus/worker.py

import threading

from loguru import logger

from vida_node.consensus.quorum import QuorumValidator
from vida_node.consensus.recovery import RecoveryController
from vida_node.consensus.types import CheckpointPhase, QuorumOutcome
from vida_node.database_handler.ledger_state import LedgerState
from vida_node.feed.processor import TransactionProcessor
from vida_node.feed.types import FeedTransaction


class CheckpointWorker:
    """
    The single writer of the ledger.

    Applies feed transactions in order and, at each checkpoint, walks
    AWAITING_TXNS -> CHECKPOINT_REACHED -> VALIDATING -> COMMITTED/REVERTING
    and back to AWAITING_TXNS.
    """

    def __init__(
        self,
        ledger: LedgerState,
        processor: TransactionProcessor,
        validator: QuorumValidator,
        recovery: RecoveryController,
    ):
        self.ledger = ledger
        self.processor = processor
        self.validator = validator
        self.recovery = recovery

        self._phase_lock = threading.Lock()
        self._phase = CheckpointPhase.AWAITING_TXNS
        self.committed_checkpoints = 0
        self.rejected_checkpoints = 0
        self.last_outcome: QuorumOutcome | None = None

    @property
    def phase(self) -> CheckpointPhase:
        with self._phase_lock:
            return self._phase

    def _set_phase(self, phase: CheckpointPhase) -> None:
        with self._phase_lock:
            self._phase = phase

    def handle_transaction(self, tx: FeedTransaction) -> None:
        self.processor.process(tx)

    def handle_checkpoint(self, checkpoint: int) -> bool:
        """Validate and commit or roll back everything staged up to ``checkpoint``."""
        committed = self.ledger.get_committed_checkpoint()
        if checkpoint <= committed:
            logger.debug(
                f"Ignoring checkpoint {checkpoint}, already committed up to {committed}"
            )
            self.ledger.revert()
            if self.recovery.subscriber is not None:
                self.recovery.subscriber.rewind(committed + 1)
            return False

        self._set_phase(CheckpointPhase.CHECKPOINT_REACHED)
        self.ledger.set_last_checkpoint(checkpoint)
        root_hash = self.ledger.root_hash()

        self._set_phase(CheckpointPhase.VALIDATING)
        outcome = self.validator.validate(checkpoint, root_hash)
        self.last_outcome = outcome
        logger.info(
            f"Checkpoint {checkpoint}: {outcome.matches}/{outcome.quorum} matches "
            f"needed from {outcome.peers_count} voting peers"
        )

        if outcome.accepted:
            self._set_phase(CheckpointPhase.COMMITTED)
            self.recovery.commit(checkpoint, root_hash)
            self.committed_checkpoints += 1
        else:
            self._set_phase(CheckpointPhase.REVERTING)
            self.recovery.rollback(checkpoint)
            self.rejected_checkpoints += 1

        self._set_phase(CheckpointPhase.AWAITING_TXNS)
        return outcome.accepted
