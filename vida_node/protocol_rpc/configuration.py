"""Runtime settings for a vida node, read once at process start."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from vida_node.database_handler.ledger_state import GENESIS_BALANCES


def _split_peers(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(peer.strip() for peer in value.split(",") if peer.strip())


def _load_genesis(value: Optional[str]) -> dict[str, int]:
    if not value:
        return dict(GENESIS_BALANCES)
    try:
        balances = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"GENESIS_BALANCES_JSON is not valid JSON: {e}") from e
    if not isinstance(balances, dict):
        raise ValueError("GENESIS_BALANCES_JSON must be a JSON object")
    return {str(address): int(amount) for address, amount in balances.items()}


@dataclass(frozen=True)
class NodeSettings:
    """Peer list, feed position and service endpoints for one node."""

    peers: tuple[str, ...] = ()
    start_block: int = 1
    port: int = 8080
    host: str = "0.0.0.0"
    vida_id: int = 1
    rpc_url: str = "https://pwrrpc.pwrlabs.io"
    database_url: str = "sqlite:///vida_node.db"
    self_address: Optional[str] = None
    peer_timeout_seconds: float = 10.0
    poll_interval_seconds: float = 1.0
    checkpoint_interval: int = 100
    rewind_backoff_seconds: float = 1.0
    rewind_backoff_max_seconds: float = 60.0
    rewind_alert_after: int = 5
    genesis_balances: Mapping[str, int] = field(
        default_factory=lambda: dict(GENESIS_BALANCES)
    )

    def __post_init__(self):
        if self.start_block < 1:
            raise ValueError(f"start_block must be at least 1, got {self.start_block}")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")
        if self.checkpoint_interval < 1:
            raise ValueError(
                f"checkpoint_interval must be positive, got {self.checkpoint_interval}"
            )
        if self.peer_timeout_seconds <= 0:
            raise ValueError("peer_timeout_seconds must be positive")

    @property
    def genesis_checkpoint(self) -> int:
        return self.start_block - 1

    @classmethod
    def from_environment(cls) -> "NodeSettings":
        env = os.environ
        return cls(
            peers=_split_peers(env.get("PEERS")),
            start_block=int(env.get("START_BLOCK", "1")),
            port=int(env.get("PORT", "8080")),
            host=env.get("HOST", "0.0.0.0"),
            vida_id=int(env.get("VIDA_ID", "1")),
            rpc_url=env.get("RPC_URL", "https://pwrrpc.pwrlabs.io"),
            database_url=env.get("DATABASE_URL", "sqlite:///vida_node.db"),
            self_address=env.get("SELF_ADDRESS") or None,
            peer_timeout_seconds=float(env.get("PEER_TIMEOUT_SECONDS", "10")),
            poll_interval_seconds=float(env.get("POLL_INTERVAL_SECONDS", "1")),
            checkpoint_interval=int(env.get("CHECKPOINT_INTERVAL", "100")),
            rewind_backoff_seconds=float(env.get("REWIND_BACKOFF_SECONDS", "1")),
            rewind_backoff_max_seconds=float(
                env.get("REWIND_BACKOFF_MAX_SECONDS", "60")
            ),
            rewind_alert_after=int(env.get("REWIND_ALERT_AFTER", "5")),
            genesis_balances=_load_genesis(env.get("GENESIS_BALANCES_JSON")),
        )

    def with_overrides(self, **overrides) -> "NodeSettings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if isinstance(changes.get("peers"), str):
            changes["peers"] = _split_peers(changes["peers"])
        return replace(self, **changes)
