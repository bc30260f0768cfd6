# vida_node/protocol_rpc/root_hash.py

"""Read-only endpoint peers poll to cross-check their root hashes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, Response
from loguru import logger

from vida_node.database_handler.ledger_state import LedgerState
from vida_node.protocol_rpc.app_lifespan import NodeState
from vida_node.protocol_rpc.dependencies import get_node_state_optional

MAX_BLOCK_NUMBER = 2**64 - 1
INVALID_BLOCK_NUMBER = "Invalid block number"

root_hash_router = APIRouter(tags=["peers"])


class RootHashNotFound(Exception):
    def __init__(self, block_number: int):
        self.block_number = block_number
        self.message = f"Block root hash not found for block number: {block_number}"
        super().__init__(self.message)


class InvalidBlockNumber(Exception):
    pass


def parse_block_number(value: Optional[str]) -> int:
    if value is None:
        raise InvalidBlockNumber(value)
    try:
        block_number = int(value.strip())
    except ValueError:
        raise InvalidBlockNumber(value)
    if not 0 <= block_number <= MAX_BLOCK_NUMBER:
        raise InvalidBlockNumber(value)
    return block_number


def lookup_root_hash(ledger: LedgerState, block_number: int) -> bytes:
    """
    Root hash this node committed for ``block_number``.

    Only durable state is read, so a checkpoint that is still being
    validated is never served.

    Raises:
        InvalidBlockNumber: block_number <= 1 or beyond the last checkpoint
        RootHashNotFound: no record for a past checkpoint
    """
    last_checkpoint = ledger.get_committed_checkpoint()

    if block_number == last_checkpoint and block_number > 0:
        root_hash = ledger.get_committed_root_hash(block_number)
        if root_hash is None:
            # genesis checkpoint: seeded, never validated
            root_hash = ledger.committed_root_hash()
        if root_hash is None:
            raise RootHashNotFound(block_number)
        return root_hash

    if 1 < block_number < last_checkpoint:
        root_hash = ledger.get_committed_root_hash(block_number)
        if root_hash is None:
            raise RootHashNotFound(block_number)
        return root_hash

    raise InvalidBlockNumber(block_number)


@root_hash_router.get("/rootHash")
def get_root_hash(
    block_number: Optional[str] = Query(None, alias="blockNumber"),
    node: Optional[NodeState] = Depends(get_node_state_optional),
) -> Response:
    try:
        if node is None:
            raise RuntimeError("Node not initialized")
        root_hash = lookup_root_hash(node.ledger, parse_block_number(block_number))
    except InvalidBlockNumber:
        return PlainTextResponse(INVALID_BLOCK_NUMBER, status_code=400)
    except RootHashNotFound as e:
        return PlainTextResponse(e.message, status_code=400)
    except Exception as e:
        logger.exception(f"Failed to serve root hash for {block_number!r}: {e}")
        return Response(status_code=500)

    return PlainTextResponse(root_hash.hex())
