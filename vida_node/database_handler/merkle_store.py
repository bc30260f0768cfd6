# vida_node/database_handler/merkle_store.py

"""Key-value store with a staged overlay and a Keccak-256 Merkle root.

Writes land in an in-memory overlay first. ``flush`` persists the overlay to
the database in a single transaction; ``revert`` throws it away. The root hash
covers every entry, durable and staged, so a node can compute its tentative
root for a checkpoint before deciding whether to keep it.
"""

from __future__ import annotations

import threading
from typing import Callable, ContextManager, Iterable, Optional

from eth_utils import keccak
from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vida_node.database_handler.errors import (
    InvalidArgument,
    InvalidKey,
    StorageUnavailable,
)
from vida_node.database_handler.models import KeyValueEntry

LEAF_PREFIX = b"\x00"
NODE_PREFIX = b"\x01"


def leaf_hash(key: bytes, value: bytes) -> bytes:
    # length prefix keeps (key, value) boundaries unambiguous
    return keccak(LEAF_PREFIX + len(key).to_bytes(4, "big") + key + value)


def merkle_root(leaves: Iterable[bytes]) -> Optional[bytes]:
    """Fold ordered leaf hashes into a single root.

    An odd node at the end of a level is promoted to the next level as is.
    Returns None when there are no leaves.
    """
    level = list(leaves)
    if not level:
        return None

    while len(level) > 1:
        next_level = []
        for i in range(0, len(level) - 1, 2):
            next_level.append(keccak(NODE_PREFIX + level[i] + level[i + 1]))
        if len(level) % 2 == 1:
            next_level.append(level[-1])
        level = next_level

    return level[0]


def _ordered_root(leaf_hashes: dict[bytes, bytes]) -> Optional[bytes]:
    return merkle_root(leaf_hashes[key] for key in sorted(leaf_hashes))


def _check_key(key) -> bytes:
    if not isinstance(key, (bytes, bytearray)) or len(key) == 0:
        raise InvalidKey(key)
    return bytes(key)


class CommittedKeyValueStore:
    """Ordered key-value map with staged writes and a Merkle commitment.

    Only one writer may call ``set``, ``flush`` and ``revert``. Readers on
    other threads must use ``get_committed`` and ``committed_root_hash``,
    which never observe a flush or revert half way through.
    """

    def __init__(self, session_scope: Callable[[], ContextManager[Session]]):
        self._session_scope = session_scope
        self._lock = threading.RLock()

        self._committed: dict[bytes, bytes] = {}
        self._committed_leaves: dict[bytes, bytes] = {}
        self._committed_root: Optional[bytes] = None
        self._staged: dict[bytes, bytes] = {}

        self._load()

    def _load(self) -> None:
        try:
            with self._session_scope() as session:
                entries = session.execute(select(KeyValueEntry)).scalars().all()
                for entry in entries:
                    self._committed[entry.key] = entry.value
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Failed to load committed state: {e}", e) from e

        self._committed_leaves = {
            key: leaf_hash(key, value) for key, value in self._committed.items()
        }
        self._committed_root = _ordered_root(self._committed_leaves)
        logger.debug(f"Loaded {len(self._committed)} committed entries")

    # -- writer side ----------------------------------------------------

    def get(self, key: bytes) -> Optional[bytes]:
        key = _check_key(key)
        with self._lock:
            if key in self._staged:
                return self._staged[key]
            return self._committed.get(key)

    def set(self, key: bytes, value: bytes) -> None:
        key = _check_key(key)
        if not isinstance(value, (bytes, bytearray)):
            raise InvalidArgument(f"Value for key {key!r} must be bytes")
        with self._lock:
            self._staged[key] = bytes(value)

    def root_hash(self) -> Optional[bytes]:
        """Merkle root over the durable state with staged writes applied."""
        with self._lock:
            if not self._staged:
                return self._committed_root
            leaves = dict(self._committed_leaves)
            for key, value in self._staged.items():
                leaves[key] = leaf_hash(key, value)
        return _ordered_root(leaves)

    @property
    def has_pending_changes(self) -> bool:
        with self._lock:
            return bool(self._staged)

    def flush(self) -> None:
        """Persist every staged write. Raises StorageUnavailable on failure,
        in which case neither the overlay nor the durable state change."""
        with self._lock:
            if not self._staged:
                return

            try:
                with self._session_scope() as session:
                    for key, value in self._staged.items():
                        session.merge(KeyValueEntry(key=key, value=value))
            except SQLAlchemyError as e:
                raise StorageUnavailable(f"Failed to flush staged writes: {e}", e) from e

            for key, value in self._staged.items():
                self._committed[key] = value
                self._committed_leaves[key] = leaf_hash(key, value)
            self._committed_root = _ordered_root(self._committed_leaves)

            logger.debug(f"Flushed {len(self._staged)} staged entries")
            self._staged.clear()

    def revert(self) -> None:
        with self._lock:
            if self._staged:
                logger.debug(f"Reverting {len(self._staged)} staged entries")
            self._staged.clear()

    # -- reader side ----------------------------------------------------

    def get_committed(self, key: bytes) -> Optional[bytes]:
        key = _check_key(key)
        with self._lock:
            return self._committed.get(key)

    def committed_root_hash(self) -> Optional[bytes]:
        with self._lock:
            return self._committed_root
