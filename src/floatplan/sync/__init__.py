"""Offline mutation queue and delivery to the backend."""

from floatplan.sync.connectivity import ConnectivityMonitor
from floatplan.sync.drain import DrainResult, drain
from floatplan.sync.queue import MutationQueue
from floatplan.sync.service import SyncService, backoff_delay
from floatplan.sync.transport import HttpRemoteApi, RemoteReadApi, RemoteWriteApi

__all__ = [
    "ConnectivityMonitor",
    "DrainResult",
    "HttpRemoteApi",
    "MutationQueue",
    "RemoteReadApi",
    "RemoteWriteApi",
    "SyncService",
    "backoff_delay",
    "drain",
]
