"""Sync module for the remote circulation store.

Handles typed remote mutations, durable offline staging when the store is
unreachable, and ordered replay with progress reporting.
"""

from .operations import (
    DeleteOperation,
    InsertOperation,
    Operation,
    OperationKind,
    QueueEntry,
    UpdateOperation,
)
from .queue import (
    OFFLINE_QUEUE_KEY,
    OfflineQueue,
    ProgressCallback,
    SyncProcessor,
    SyncResult,
)
from .remote import (
    RemoteStoreError,
    RemoteUnavailableError,
    RestRemoteStore,
)

__all__ = [
    # Operations
    "DeleteOperation",
    "InsertOperation",
    "Operation",
    "OperationKind",
    "QueueEntry",
    "UpdateOperation",
    # Offline queue
    "OFFLINE_QUEUE_KEY",
    "OfflineQueue",
    "ProgressCallback",
    "SyncProcessor",
    "SyncResult",
    # Remote store
    "RemoteStoreError",
    "RemoteUnavailableError",
    "RestRemoteStore",
]
