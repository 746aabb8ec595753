"""Persistence for fork nodes: the local store, its message channel and replica sync."""

from polyfork.storage.channel import ForkNodesService, ForkStoreRouter
from polyfork.storage.replica import FileReplica, HttpReplica, Replica, SyncResult, sync_replicas
from polyfork.storage.store import ForkNodeStore

__all__ = [
    "FileReplica",
    "ForkNodeStore",
    "ForkNodesService",
    "ForkStoreRouter",
    "HttpReplica",
    "Replica",
    "SyncResult",
    "sync_replicas",
]
