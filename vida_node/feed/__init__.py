__all__ = (
    "FeedTransaction",
    "FeedSource",
    "InMemoryFeedSource",
    "RpcFeedSource",
    "TransactionFeedSubscriber",
    "TransactionProcessor",
)

from vida_node.feed.types import FeedTransaction
from vida_node.feed.sources import FeedSource, InMemoryFeedSource, RpcFeedSource
from vida_node.feed.subscriber import TransactionFeedSubscriber
from vida_node.feed.processor import TransactionProcessor
