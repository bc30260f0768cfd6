# vida_node/database_handler/ledger_state.py

from typing import Mapping, Optional

from eth_utils import is_address, to_canonical_address
from loguru import logger

from vida_node.database_handler.errors import InvalidAddress, InvalidArgument
from vida_node.database_handler.merkle_store import CommittedKeyValueStore

LAST_CHECKPOINT_KEY = b"lastCheckpoint"
ROOT_HASH_PREFIX = b"blockRootHash_"

# Balances seeded on first start when no checkpoint has been committed yet.
GENESIS_BALANCES = {
    "0xc767ea1d613eefe0ce1610b18cb047881bafb829": 1_000_000_000_000,
    "0x3766321b1a7a3e6a5a1b7e2b7b8b4b7d6b4a1e12": 1_000_000_000_000,
    "0x7d3a0d7c6b31f1c8a4c5b3f4a2c6e1e4f5a6b7c8": 1_000_000_000_000,
}


def _root_hash_key(checkpoint: int) -> bytes:
    return ROOT_HASH_PREFIX + str(checkpoint).encode("ascii")


def _check_address(address) -> bytes:
    if not isinstance(address, (bytes, bytearray)) or len(address) == 0:
        raise InvalidAddress(address)
    return bytes(address)


def _check_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgument(f"Amount must be an integer, got {amount!r}")
    if amount < 0:
        raise InvalidArgument(f"Amount must not be negative, got {amount}")
    return amount


def _encode_balance(amount: int) -> bytes:
    return amount.to_bytes(max(1, (amount.bit_length() + 7) // 8), "big")


def parse_address(address: str) -> bytes:
    """Convert a hex address string into its 20 raw bytes."""
    if not isinstance(address, str) or not is_address(address):
        raise InvalidAddress(address)
    return to_canonical_address(address)


class LedgerState:
    """Account balances and checkpoint bookkeeping on top of the committed store.

    The ledger is owned by a single writer. Every mutation is staged in the
    store overlay until ``flush``.
    """

    def __init__(self, store: CommittedKeyValueStore):
        self.store = store

    # -- balances -------------------------------------------------------

    def get_balance(self, address: bytes) -> int:
        address = _check_address(address)
        raw = self.store.get(address)
        if raw is None:
            return 0
        return int.from_bytes(raw, "big")

    def set_balance(self, address: bytes, amount: int) -> None:
        address = _check_address(address)
        amount = _check_amount(amount)
        self.store.set(address, _encode_balance(amount))

    def transfer(self, sender: bytes, receiver: bytes, amount: int) -> bool:
        """Move ``amount`` from sender to receiver.

        Returns False, without touching either balance, when the sender
        cannot cover the amount.
        """
        sender = _check_address(sender)
        receiver = _check_address(receiver)
        amount = _check_amount(amount)

        sender_balance = self.get_balance(sender)
        if sender_balance < amount:
            return False

        self.set_balance(sender, sender_balance - amount)
        self.set_balance(receiver, self.get_balance(receiver) + amount)
        return True

    # -- checkpoints ----------------------------------------------------

    def get_last_checkpoint(self) -> int:
        raw = self.store.get(LAST_CHECKPOINT_KEY)
        return int.from_bytes(raw, "big") if raw else 0

    def get_committed_checkpoint(self) -> int:
        raw = self.store.get_committed(LAST_CHECKPOINT_KEY)
        return int.from_bytes(raw, "big") if raw else 0

    def set_last_checkpoint(self, checkpoint: int) -> None:
        if isinstance(checkpoint, bool) or not isinstance(checkpoint, int):
            raise InvalidArgument(f"Checkpoint must be an integer, got {checkpoint!r}")
        if checkpoint < 0:
            raise InvalidArgument(f"Checkpoint must not be negative, got {checkpoint}")
        self.store.set(LAST_CHECKPOINT_KEY, checkpoint.to_bytes(8, "big"))

    def record_root_hash(self, checkpoint: int, root_hash: bytes) -> None:
        if not root_hash:
            raise InvalidArgument(f"Empty root hash for checkpoint {checkpoint}")
        self.store.set(_root_hash_key(checkpoint), root_hash)

    def get_root_hash(self, checkpoint: int) -> Optional[bytes]:
        return self.store.get(_root_hash_key(checkpoint))

    def get_committed_root_hash(self, checkpoint: int) -> Optional[bytes]:
        return self.store.get_committed(_root_hash_key(checkpoint))

    # -- store delegation ----------------------------------------------

    def root_hash(self) -> Optional[bytes]:
        return self.store.root_hash()

    def committed_root_hash(self) -> Optional[bytes]:
        return self.store.committed_root_hash()

    def flush(self) -> None:
        self.store.flush()

    def revert(self) -> None:
        self.store.revert()

    def seed_genesis(self, balances: Mapping[str, int], checkpoint: int) -> bool:
        """Seed genesis balances when no checkpoint has ever been committed."""
        if self.store.get_committed(LAST_CHECKPOINT_KEY) is not None:
            return False

        for address, amount in balances.items():
            self.set_balance(parse_address(address), amount)
        self.set_last_checkpoint(checkpoint)
        self.flush()

        logger.info(
            f"Seeded {len(balances)} genesis balances at checkpoint {checkpoint}"
        )
        return True
