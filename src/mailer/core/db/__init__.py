from .connection import Database, build_odbc_connection_string, connect_db
from .credentials import CredentialStore
from .event_log import EventLogTable
from .history import HistoryRecorder

__all__ = [
    "connect_db",
    "build_odbc_connection_string",
    "Database",
    "CredentialStore",
    "EventLogTable",
    "HistoryRecorder",
]
