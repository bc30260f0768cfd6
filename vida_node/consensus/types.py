from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class PeerVote(Enum):
    MATCH = "MATCH"
    MISMATCH = "MISMATCH"
    NO_VOTE = "NO_VOTE"
    SELF = "SELF"

    def counts_as_match(self) -> bool:
        return self in (PeerVote.MATCH, PeerVote.SELF)


class CheckpointPhase(Enum):
    AWAITING_TXNS = "AWAITING_TXNS"
    CHECKPOINT_REACHED = "CHECKPOINT_REACHED"
    VALIDATING = "VALIDATING"
    COMMITTED = "COMMITTED"
    REVERTING = "REVERTING"


@dataclass(frozen=True)
class PeerResponse:
    peer: str
    vote: PeerVote
    detail: Optional[str] = None


@dataclass
class QuorumOutcome:
    """Result of one validation pass over the peer set."""

    checkpoint: int
    accepted: bool
    matches: int
    quorum: int
    peers_count: int
    responses: list[PeerResponse] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checkpoint": self.checkpoint,
            "accepted": self.accepted,
            "matches": self.matches,
            "quorum": self.quorum,
            "peers_count": self.peers_count,
            "responses": [
                {"peer": r.peer, "vote": r.vote.value, "detail": r.detail}
                for r in self.responses
            ],
        }
