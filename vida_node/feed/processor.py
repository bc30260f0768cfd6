# vida_node/feed/processor.py

import json
from decimal import Decimal, InvalidOperation
from typing import Optional

from loguru import logger

from vida_node.database_handler.errors import InvalidAddress
from vida_node.database_handler.ledger_state import LedgerState, parse_address
from vida_node.feed.errors import MalformedTransaction
from vida_node.feed.types import FeedTransaction


def _parse_amount(value) -> int:
    if isinstance(value, bool):
        raise MalformedTransaction(f"invalid amount {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            raise MalformedTransaction(f"invalid amount {value!r}")
        if not parsed.is_finite() or parsed != parsed.to_integral_value():
            raise MalformedTransaction(f"fractional amount {value!r}")
        return int(parsed)
    raise MalformedTransaction(f"invalid amount {value!r}")


def decode_payload(data: bytes) -> dict:
    """Decode a transaction payload into a JSON object with an ``action``."""
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedTransaction(f"undecodable payload: {e}", data)

    if not isinstance(payload, dict):
        raise MalformedTransaction("payload is not a JSON object", data)
    if not isinstance(payload.get("action"), str):
        raise MalformedTransaction("missing action", data)
    return payload


class TransactionProcessor:
    """Applies decoded feed transactions to the ledger.

    Only ``transfer`` is understood. Everything the processor cannot apply is
    logged and skipped so a single bad record never halts the feed.
    """

    def __init__(self, ledger: LedgerState):
        self.ledger = ledger

    def process(self, tx: FeedTransaction) -> Optional[bool]:
        """Apply one transaction.

        Returns True/False for an applied/insufficient-balance transfer and
        None when the transaction was skipped.
        """
        try:
            payload = decode_payload(tx.data)
        except MalformedTransaction as e:
            logger.warning(f"Skipping {tx.describe()}: {e.reason}")
            return None

        action = payload["action"].lower()
        if action == "transfer":
            return self._handle_transfer(tx, payload)

        logger.warning(f"Skipping {tx.describe()}: unknown action {payload['action']!r}")
        return None

    def _handle_transfer(self, tx: FeedTransaction, payload: dict) -> Optional[bool]:
        try:
            amount = _parse_amount(payload.get("amount"))
            if amount <= 0:
                raise MalformedTransaction(f"non-positive amount {amount}")
            receiver = parse_address(payload.get("receiver"))
            if len(tx.sender) == 0:
                raise MalformedTransaction("missing sender")
        except (MalformedTransaction, InvalidAddress) as e:
            logger.warning(f"Skipping transfer {tx.describe()}: {e.message}")
            return None

        if not self.ledger.transfer(tx.sender, receiver, amount):
            logger.info(
                f"Insufficient balance for transfer {tx.describe()}: "
                f"sender 0x{tx.sender.hex()} amount {amount}"
            )
            return False

        logger.debug(
            f"Transferred {amount} from 0x{tx.sender.hex()} to 0x{receiver.hex()}"
        )
        return True
