"""Storage - persistence facade, SQLite and Supabase backends, change feed"""

from __future__ import annotations

from doomsday.storage.facade import PersistenceFacade, StorageError
from doomsday.storage.models import DailyContentEntry, MessageRecord, NewDailyContent, NewMessage

__all__ = [
    "DailyContentEntry",
    "MessageRecord",
    "NewDailyContent",
    "NewMessage",
    "PersistenceFacade",
    "StorageError",
]
