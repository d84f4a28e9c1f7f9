"""Message history — the append-only store and its read-only facade.

Learn: Everything the relay promises durably lives here. The store is the
only writer of the messages table; the HistoryService is the only thing
external callers read through.
"""

from chatrelay.history.service import HistoryService
from chatrelay.history.store import MessageStore, PersistenceError

__all__ = ["HistoryService", "MessageStore", "PersistenceError"]
