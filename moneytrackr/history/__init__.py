"""Append-only change history, backups and restore."""

from moneytrackr.history.integrity import generate_checksum, payload_size
from moneytrackr.history.store import OFFLINE_QUEUE_KEY, HistoryStore

__all__ = [
    "OFFLINE_QUEUE_KEY",
    "HistoryStore",
    "generate_checksum",
    "payload_size",
]
