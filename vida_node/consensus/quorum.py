# vida_node/consensus/quorum.py

"""Cross-check a tentative root hash against independently operated peers."""

import threading
from typing import Iterable, Optional

import requests
from loguru import logger

from vida_node.consensus.types import PeerResponse, PeerVote, QuorumOutcome
from vida_node.consensus.utils import QuorumTally

DEFAULT_PEER_TIMEOUT_SECONDS = 10.0


def normalize_peer(peer: str) -> str:
    peer = peer.strip().rstrip("/")
    if "://" not in peer:
        peer = f"http://{peer}"
    return peer


def _parse_hex_digest(body: str) -> Optional[bytes]:
    body = body.strip()
    if body.startswith(("0x", "0X")):
        body = body[2:]
    if not body:
        return None
    try:
        return bytes.fromhex(body)
    except ValueError:
        return None


class QuorumValidator:
    """
    Polls peers for their root hash at a checkpoint and decides whether the
    local tentative root hash can be trusted.

    Peers are queried one after the other and polling stops as soon as
    quorum is reached. Unreachable peers, 4xx/5xx answers and malformed
    bodies are non-votes: they shrink the denominator instead of counting
    against the local hash.
    """

    def __init__(
        self,
        peers: Iterable[str],
        timeout: float = DEFAULT_PEER_TIMEOUT_SECONDS,
        self_address: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self._lock = threading.Lock()
        self._peers = [normalize_peer(p) for p in peers]
        self.timeout = timeout
        self.self_address = normalize_peer(self_address) if self_address else None
        self.session = session or requests.Session()

    @property
    def peers(self) -> list[str]:
        with self._lock:
            return list(self._peers)

    def update_peers(self, peers: Iterable[str]) -> None:
        new_peers = [normalize_peer(p) for p in peers]
        with self._lock:
            self._peers = new_peers
        logger.info(f"Peer list updated: {len(new_peers)} peers")

    def query_peer(self, peer: str, checkpoint: int, root_hash: bytes) -> PeerResponse:
        """Ask a single peer for its root hash and classify the answer."""
        if self.self_address is not None and peer == self.self_address:
            return PeerResponse(peer=peer, vote=PeerVote.SELF)

        try:
            response = self.session.get(
                f"{peer}/rootHash",
                params={"blockNumber": checkpoint},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return PeerResponse(peer=peer, vote=PeerVote.NO_VOTE, detail=str(e))

        if response.status_code != 200:
            return PeerResponse(
                peer=peer,
                vote=PeerVote.NO_VOTE,
                detail=f"HTTP {response.status_code}: {response.text.strip()}",
            )

        peer_hash = _parse_hex_digest(response.text)
        if peer_hash is None:
            return PeerResponse(
                peer=peer, vote=PeerVote.NO_VOTE, detail="malformed root hash"
            )

        if peer_hash == root_hash:
            return PeerResponse(peer=peer, vote=PeerVote.MATCH)
        return PeerResponse(peer=peer, vote=PeerVote.MISMATCH, detail=peer_hash.hex())

    def validate(self, checkpoint: int, root_hash: bytes) -> QuorumOutcome:
        peers = self.peers
        tally = QuorumTally(len(peers))
        responses: list[PeerResponse] = []

        for peer in peers:
            response = self.query_peer(peer, checkpoint, root_hash)
            responses.append(response)
            tally.record(response.vote)

            if response.vote == PeerVote.NO_VOTE:
                logger.debug(
                    f"Peer {peer} did not vote on checkpoint {checkpoint} "
                    f"({response.detail}); peers_count={tally.peers_count}, "
                    f"quorum={tally.quorum}"
                )
            elif response.vote == PeerVote.MISMATCH:
                logger.warning(
                    f"Peer {peer} reported root hash {response.detail} for "
                    f"checkpoint {checkpoint}, local is {root_hash.hex()}"
                )

            if tally.reached:
                break

        return QuorumOutcome(
            checkpoint=checkpoint,
            accepted=tally.reached,
            matches=tally.matches,
            quorum=tally.quorum,
            peers_count=tally.peers_count,
            responses=responses,
        )
