"""FlowReader sync client: cached article listings kept live over websocket."""

from .cache import CollectionKey, CollectionView, PagedCollectionCache
from .client import ApiError, FlowReaderClient
from .coordinator import SyncCoordinator
from .events import ConnectionState, EventStreamClient
from .ledger import MutationLedger, MutationState, PendingMutation
from .models import Article, Feed
from .server import main

__all__ = [
    "main",
    "FlowReaderClient",
    "ApiError",
    "Article",
    "Feed",
    "CollectionKey",
    "CollectionView",
    "PagedCollectionCache",
    "MutationLedger",
    "MutationState",
    "PendingMutation",
    "EventStreamClient",
    "ConnectionState",
    "SyncCoordinator",
]

__version__ = "0.1.0"
