# vida_node/feed/sources.py

from abc import ABC, abstractmethod
import threading
from typing import Optional

import requests
from loguru import logger

from vida_node.feed.errors import FeedUnavailable
from vida_node.feed.types import FeedTransaction


class FeedSource(ABC):
    """Read side of the upstream, totally ordered transaction feed."""

    @abstractmethod
    def latest_block_number(self) -> int:
        pass

    @abstractmethod
    def fetch_transactions(self, start: int, end: int) -> list[FeedTransaction]:
        """Transactions in blocks ``start..end`` inclusive, in feed order."""
        pass


class InMemoryFeedSource(FeedSource):
    """List-backed feed, used for local runs and tests."""

    def __init__(self, latest_block: int = 0):
        self._lock = threading.Lock()
        self._latest_block = latest_block
        self._transactions: list[FeedTransaction] = []

    def add_transaction(self, block_number: int, sender: bytes, data: bytes) -> FeedTransaction:
        with self._lock:
            position = sum(
                1 for tx in self._transactions if tx.block_number == block_number
            )
            tx = FeedTransaction(
                block_number=block_number,
                sender=sender,
                data=data,
                position=position,
            )
            self._transactions.append(tx)
            self._latest_block = max(self._latest_block, block_number)
        return tx

    def advance_to(self, block_number: int) -> None:
        with self._lock:
            self._latest_block = max(self._latest_block, block_number)

    def latest_block_number(self) -> int:
        with self._lock:
            return self._latest_block

    def fetch_transactions(self, start: int, end: int) -> list[FeedTransaction]:
        with self._lock:
            selected = [
                tx for tx in self._transactions if start <= tx.block_number <= end
            ]
        return sorted(selected, key=lambda tx: (tx.block_number, tx.position))


def _hex_to_bytes(value: Optional[str]) -> bytes:
    if not value:
        return b""
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return bytes.fromhex(value)


class RpcFeedSource(FeedSource):
    """Feed adapter for a chain node's REST RPC, filtered by VIDA id."""

    def __init__(
        self,
        rpc_url: str,
        vida_id: int,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.vida_id = vida_id
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str, params: Optional[dict] = None) -> dict:
        try:
            response = self.session.get(
                f"{self.rpc_url}{path}", params=params, timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise FeedUnavailable(f"RPC request to {path} failed: {e}") from e

    def latest_block_number(self) -> int:
        payload = self._get("/latestBlockNumber/")
        try:
            return int(payload["latestBlockNumber"])
        except (KeyError, TypeError, ValueError) as e:
            raise FeedUnavailable(f"Unexpected latestBlockNumber payload: {payload}") from e

    def fetch_transactions(self, start: int, end: int) -> list[FeedTransaction]:
        payload = self._get(
            "/getVidaDataTransactions/",
            params={
                "startingBlock": start,
                "endingBlock": end,
                "vidaId": self.vida_id,
            },
        )

        transactions = []
        for index, raw in enumerate(payload.get("transactions", [])):
            try:
                transactions.append(
                    FeedTransaction(
                        block_number=int(raw["blockNumber"]),
                        sender=_hex_to_bytes(raw.get("sender")),
                        data=_hex_to_bytes(raw.get("data")),
                        position=int(raw.get("positionInTheBlock", index)),
                        hash=raw.get("transactionHash"),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(
                    f"Skipping undecodable feed record {index} in blocks "
                    f"{start}..{end}: {e}"
                )

        return sorted(transactions, key=lambda tx: (tx.block_number, tx.position))
