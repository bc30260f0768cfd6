from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class FeedTransaction:
    """One application transaction as delivered by the feed."""

    block_number: int
    sender: bytes
    data: bytes
    position: int = 0
    hash: Optional[str] = None

    def describe(self) -> str:
        label = self.hash or f"#{self.position}"
        return f"tx {label} in block {self.block_number}"
