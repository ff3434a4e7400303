"""Reco memory: conversation windows, durable SQLite store, ledger backends."""

from src.memory.backends import InMemoryLedgerStore, SqliteLedgerStore
from src.memory.conversation import ConversationMemory
from src.memory.store import MemoryStore

__all__ = ["ConversationMemory", "InMemoryLedgerStore", "MemoryStore", "SqliteLedgerStore"]
