from .base import Configured, RemoteHandle, RemoteHistoryItem, RemoteStore, RemoteStoreError, Unconfigured

__all__ = [
    "Configured",
    "RemoteHandle",
    "RemoteHistoryItem",
    "RemoteStore",
    "RemoteStoreError",
    "Unconfigured",
]
