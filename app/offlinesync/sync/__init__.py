from .history import HistoryReconciler
from .models import HISTORY_LIMIT, EntryId, HistoryEntry, LocalId, ProfileRecord, RemoteId
from .policy import BestEffort, Outcome
from .profile import ProfileReconciler

__all__ = [
    "BestEffort",
    "EntryId",
    "HISTORY_LIMIT",
    "HistoryEntry",
    "HistoryReconciler",
    "LocalId",
    "Outcome",
    "ProfileReconciler",
    "ProfileRecord",
    "RemoteId",
]
