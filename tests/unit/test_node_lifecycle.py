"""End-to-end tests of a node replaying an in-memory feed."""

import json
import time

import pytest
from fastapi import FastAPI

from vida_node.database_handler.session_factory import DatabaseSessionManager
from vida_node.feed.sources import InMemoryFeedSource
from vida_node.protocol_rpc.app_lifespan import build_node_state, node_lifespan
from vida_node.protocol_rpc.configuration import NodeSettings

ADDR1 = bytes.fromhex("11" * 20)
ADDR2 = bytes.fromhex("22" * 20)


def _transfer(amount: int) -> bytes:
    return json.dumps(
        {"action": "transfer", "receiver": "0x" + ADDR2.hex(), "amount": amount}
    ).encode()


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def _settings(**overrides) -> NodeSettings:
    defaults = dict(
        peers=("self:8080",),
        self_address="self:8080",
        start_block=5,
        poll_interval_seconds=0.01,
        checkpoint_interval=2,
        rewind_backoff_seconds=0,
        genesis_balances={"0x" + ADDR1.hex(): 1000},
    )
    defaults.update(overrides)
    return NodeSettings(**defaults)


def test_node_replays_feed_and_commits_checkpoints(db_manager):
    source = InMemoryFeedSource()
    source.add_transaction(5, ADDR1, _transfer(100))
    source.add_transaction(6, ADDR1, b"garbage")
    source.add_transaction(7, ADDR1, _transfer(5000))
    source.add_transaction(8, ADDR1, _transfer(200))

    node = build_node_state(_settings(), feed_source=source, db_manager=db_manager)
    node.start()
    try:
        assert _wait_for(lambda: node.ledger.get_committed_checkpoint() == 8)
    finally:
        node.subscriber.stop(timeout=5)

    assert node.store.get_committed(ADDR1) == (700).to_bytes(2, "big")
    assert node.ledger.get_balance(ADDR2) == 300
    assert node.ledger.get_committed_root_hash(6) is not None
    assert node.ledger.get_committed_root_hash(8) is not None
    assert node.worker.committed_checkpoints == 2


def test_two_nodes_replaying_the_same_feed_agree():
    source = InMemoryFeedSource()
    for block in range(5, 13):
        source.add_transaction(block, ADDR1, _transfer(block))

    roots = []
    for _ in range(2):
        manager = DatabaseSessionManager("sqlite://")
        node = build_node_state(_settings(), feed_source=source, db_manager=manager)
        node.start()
        try:
            assert _wait_for(lambda: node.ledger.get_committed_checkpoint() == 12)
        finally:
            node.subscriber.stop(timeout=5)
        roots.append(node.ledger.committed_root_hash())
        manager.dispose()

    assert roots[0] == roots[1]


def test_nodes_seeing_the_chain_head_at_different_times_agree():
    def _replay(source, blocks_per_step):
        manager = DatabaseSessionManager("sqlite://")
        node = build_node_state(_settings(), feed_source=source, db_manager=manager)
        node.start()
        try:
            for step in blocks_per_step:
                for block in step:
                    source.add_transaction(block, ADDR1, _transfer(block))
                time.sleep(0.05)
            assert _wait_for(lambda: node.ledger.get_committed_checkpoint() == 8)
        finally:
            node.subscriber.stop(timeout=5)
        result = (
            node.ledger.committed_root_hash(),
            node.ledger.get_committed_root_hash(8),
            node.ledger.get_balance(ADDR2),
        )
        manager.dispose()
        return result

    polled_often = _replay(InMemoryFeedSource(), [[5], [6], [7], [8]])
    polled_once = _replay(InMemoryFeedSource(), [[5, 6, 7, 8]])

    assert polled_often == polled_once
    assert polled_once[2] == 26


def test_node_without_peers_never_commits(db_manager):
    source = InMemoryFeedSource()
    source.add_transaction(5, ADDR1, _transfer(100))
    source.advance_to(6)

    node = build_node_state(
        _settings(peers=(), self_address=None),
        feed_source=source,
        db_manager=db_manager,
    )
    node.start()
    try:
        assert _wait_for(lambda: node.worker.rejected_checkpoints >= 2)
    finally:
        node.subscriber.stop(timeout=5)

    assert node.ledger.get_committed_checkpoint() == 4
    assert node.ledger.get_balance(ADDR2) == 0


def test_restart_resumes_after_committed_checkpoint(db_manager):
    source = InMemoryFeedSource()
    source.add_transaction(5, ADDR1, _transfer(100))
    source.add_transaction(6, ADDR1, _transfer(100))

    first = build_node_state(_settings(), feed_source=source, db_manager=db_manager)
    first.start()
    try:
        assert _wait_for(lambda: first.ledger.get_committed_checkpoint() == 6)
    finally:
        first.subscriber.stop(timeout=5)

    source.add_transaction(7, ADDR1, _transfer(50))
    source.advance_to(8)
    second = build_node_state(_settings(), feed_source=source, db_manager=db_manager)
    second.start()
    try:
        assert _wait_for(lambda: second.ledger.get_committed_checkpoint() == 8)
    finally:
        second.subscriber.stop(timeout=5)

    assert second.ledger.get_balance(ADDR2) == 250
    assert second.ledger.get_balance(ADDR1) == 750


@pytest.mark.asyncio
async def test_lifespan_starts_and_stops_the_subscriber(tmp_path, monkeypatch):
    monkeypatch.setattr(
        "vida_node.protocol_rpc.app_lifespan.RpcFeedSource",
        lambda rpc_url, vida_id: InMemoryFeedSource(latest_block=0),
    )
    app = FastAPI()
    settings = _settings(database_url=f"sqlite:///{tmp_path / 'node.db'}")

    async with node_lifespan(app, settings) as node:
        assert app.state.node is node
        assert node.subscriber.running
        assert node.ledger.get_committed_checkpoint() == 4

    assert not node.subscriber.running
