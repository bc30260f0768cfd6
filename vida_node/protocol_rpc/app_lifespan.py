"""Service wiring for a vida node: one writer, one peer-facing HTTP app."""

from __future__ import annotations

import asyncio
import os
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from loguru import logger

from vida_node.consensus.quorum import QuorumValidator
from vida_node.consensus.recovery import RecoveryController
from vida_node.consensus.worker import CheckpointWorker
from vida_node.database_handler.ledger_state import LedgerState
from vida_node.database_handler.merkle_store import CommittedKeyValueStore
from vida_node.database_handler.session_factory import DatabaseSessionManager
from vida_node.feed.processor import TransactionProcessor
from vida_node.feed.sources import FeedSource, RpcFeedSource
from vida_node.feed.subscriber import TransactionFeedSubscriber
from vida_node.protocol_rpc.configuration import NodeSettings


def _terminate_process(error: BaseException) -> None:
    # uvicorn turns SIGTERM into a graceful shutdown
    logger.critical(f"Stopping process after fatal error: {error}")
    os.kill(os.getpid(), signal.SIGTERM)


@dataclass
class NodeState:
    """Aggregated services of a running node."""

    settings: NodeSettings
    db_manager: DatabaseSessionManager
    store: CommittedKeyValueStore
    ledger: LedgerState
    validator: QuorumValidator
    recovery: RecoveryController
    processor: TransactionProcessor
    worker: CheckpointWorker
    subscriber: TransactionFeedSubscriber

    def apply_to_app(self, app) -> None:
        app.state.node = self

    def start(self) -> None:
        seeded = self.ledger.seed_genesis(
            self.settings.genesis_balances, self.settings.genesis_checkpoint
        )
        committed = self.ledger.get_committed_checkpoint()
        if not seeded and self.settings.start_block > committed + 1:
            logger.warning(
                f"Configured start block {self.settings.start_block} is ahead of "
                f"committed checkpoint {committed}; resuming from {committed + 1}"
            )
        self.subscriber.rewind(committed + 1)
        self.subscriber.start()

    def stop(self) -> None:
        self.subscriber.stop(timeout=self.settings.peer_timeout_seconds * 2)
        self.validator.session.close()
        self.db_manager.dispose()


def build_node_state(
    settings: NodeSettings,
    feed_source: Optional[FeedSource] = None,
    db_manager: Optional[DatabaseSessionManager] = None,
    on_fatal: Callable[[BaseException], None] = _terminate_process,
) -> NodeState:
    db_manager = db_manager or DatabaseSessionManager(settings.database_url)
    db_manager.create_schema()

    store = CommittedKeyValueStore(db_manager.transaction)
    ledger = LedgerState(store)

    validator = QuorumValidator(
        settings.peers,
        timeout=settings.peer_timeout_seconds,
        self_address=settings.self_address,
    )
    recovery = RecoveryController(
        ledger,
        backoff_seconds=settings.rewind_backoff_seconds,
        backoff_max_seconds=settings.rewind_backoff_max_seconds,
        alert_after=settings.rewind_alert_after,
    )
    processor = TransactionProcessor(ledger)
    worker = CheckpointWorker(ledger, processor, validator, recovery)

    feed_source = feed_source or RpcFeedSource(settings.rpc_url, settings.vida_id)
    subscriber = TransactionFeedSubscriber(
        feed_source,
        start_block=settings.start_block,
        on_transaction=worker.handle_transaction,
        on_checkpoint=worker.handle_checkpoint,
        poll_interval=settings.poll_interval_seconds,
        checkpoint_interval=settings.checkpoint_interval,
        on_fatal=on_fatal,
    )
    recovery.attach(subscriber)

    return NodeState(
        settings=settings,
        db_manager=db_manager,
        store=store,
        ledger=ledger,
        validator=validator,
        recovery=recovery,
        processor=processor,
        worker=worker,
        subscriber=subscriber,
    )


@asynccontextmanager
async def node_lifespan(app, settings: NodeSettings) -> AsyncIterator[NodeState]:
    """Build the node, start the feed subscriber and stop it on shutdown."""

    node = build_node_state(settings)
    node.apply_to_app(app)
    node.start()
    logger.info(
        f"Vida node {settings.vida_id} serving root hashes on port {settings.port} "
        f"with {len(settings.peers)} peers"
    )

    try:
        yield node
    finally:
        logger.info("Shutting down vida node...")
        await asyncio.to_thread(node.stop)
