"""
Global fixtures for unit tests.

Every test gets its own in-memory SQLite database.
"""

from unittest.mock import MagicMock

import pytest

from vida_node.consensus.quorum import QuorumValidator
from vida_node.consensus.recovery import RecoveryController
from vida_node.consensus.worker import CheckpointWorker
from vida_node.database_handler.ledger_state import LedgerState
from vida_node.database_handler.merkle_store import CommittedKeyValueStore
from vida_node.database_handler.session_factory import DatabaseSessionManager
from vida_node.feed.processor import TransactionProcessor


@pytest.fixture
def db_manager():
    manager = DatabaseSessionManager("sqlite://")
    manager.create_schema()
    yield manager
    manager.dispose()


@pytest.fixture
def store(db_manager):
    return CommittedKeyValueStore(db_manager.transaction)


@pytest.fixture
def ledger(store):
    return LedgerState(store)


@pytest.fixture
def peer_session():
    """requests.Session stand-in; set ``get.side_effect`` per test."""
    return MagicMock()


@pytest.fixture
def make_response():
    def _make(status_code: int, text: str) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.text = text
        return response

    return _make


@pytest.fixture
def make_worker(ledger, peer_session):
    def _make(peers, subscriber=None, **recovery_kwargs):
        validator = QuorumValidator(peers, timeout=10, session=peer_session)
        recovery_kwargs.setdefault("backoff_seconds", 0)
        recovery = RecoveryController(ledger, subscriber=subscriber, **recovery_kwargs)
        return CheckpointWorker(
            ledger, TransactionProcessor(ledger), validator, recovery
        )

    return _make
