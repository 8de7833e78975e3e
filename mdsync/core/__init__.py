"""Core sync functionality."""

from .auth import NotionAuth
from .client import NotionAPIError, NotionClient, PermanentRemoteError, TransientRemoteError
from .converter import ConversionContext, convert
from .operations import SyncOperations, SyncResult, build_document
from .reconciler import Reconciler, SchemaMismatchError
from .retry import RetryPolicy
from .state import SyncState
from .url_parser import NotionUrlParseError, parse_notion_id
from .watcher import PollingWatcher, SyncQueue, WatchService

__all__ = [
    "ConversionContext",
    "NotionAPIError",
    "NotionAuth",
    "NotionClient",
    "NotionUrlParseError",
    "PermanentRemoteError",
    "PollingWatcher",
    "Reconciler",
    "RetryPolicy",
    "SchemaMismatchError",
    "SyncOperations",
    "SyncQueue",
    "SyncResult",
    "SyncState",
    "TransientRemoteError",
    "WatchService",
    "build_document",
    "convert",
    "parse_notion_id",
]
