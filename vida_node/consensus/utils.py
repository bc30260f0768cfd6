from vida_node.consensus.types import PeerVote


def compute_quorum(peers_count: int) -> int:
    """Matches needed to accept a root hash: floor(2n/3) + 1."""
    return peers_count * 2 // 3 + 1


class QuorumTally:
    """
    Running count of peer votes with a shrinking denominator.

    A NO_VOTE removes its peer from the denominator instead of counting
    against the local root hash. A MISMATCH stays in the denominator.
    """

    def __init__(self, peers_count: int):
        self.peers_count = peers_count
        self.quorum = compute_quorum(peers_count)
        self.matches = 0

    def record(self, vote: PeerVote) -> bool:
        """Add one vote and return whether quorum has been reached."""
        if vote.counts_as_match():
            self.matches += 1
        elif vote == PeerVote.NO_VOTE:
            self.peers_count -= 1
            self.quorum = compute_quorum(self.peers_count)
        return self.reached

    @property
    def reached(self) -> bool:
        return self.matches >= self.quorum
