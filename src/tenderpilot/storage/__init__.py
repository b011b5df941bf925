"""Local persistence: the durable store and the session cache slot."""

from .session import FileSessionSlot, MemorySessionSlot, SessionSlot
from .store import SCHEMA_VERSION, ActivityCollection, LocalStore, VaultCollection

__all__ = [
    "SCHEMA_VERSION",
    "ActivityCollection",
    "FileSessionSlot",
    "LocalStore",
    "MemorySessionSlot",
    "SessionSlot",
    "VaultCollection",
]
