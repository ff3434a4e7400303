"""
Ledger storage backends for Reco.

The usage ledger talks to a LedgerStore. Two implementations exist:

- InMemoryLedgerStore: process-local maps, used when no durable store is
  configured (mock mode) and in tests.
- SqliteLedgerStore: wraps MemoryStore, running its blocking calls in a
  worker thread so the event loop never waits on disk.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from src.billing.models import LedgerEntry, User
from src.memory.store import MemoryStore


class LedgerStore(Protocol):
    async def get_user(self, user_key: str) -> User | None: ...

    async def get_user_by_id(self, user_id: str) -> User | None: ...

    async def save_user(self, user: User) -> None: ...

    async def record(self, user: User, entry: LedgerEntry) -> None:
        """Persist the user's new state together with the entry explaining it."""
        ...

    async def list_entries(self, user_id: str) -> list[LedgerEntry]: ...

    async def delete_user(self, user_id: str) -> bool: ...


class InMemoryLedgerStore:
    """Process-local ledger store. State is lost on restart."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._entries: dict[str, list[LedgerEntry]] = {}

    async def get_user(self, user_key: str) -> User | None:
        return self._users.get(user_key)

    async def get_user_by_id(self, user_id: str) -> User | None:
        for user in self._users.values():
            if user.id == user_id:
                return user
        return None

    async def save_user(self, user: User) -> None:
        self._users[user.user_key] = user

    async def record(self, user: User, entry: LedgerEntry) -> None:
        self._users[user.user_key] = user
        self._entries.setdefault(user.id, []).append(entry)

    async def list_entries(self, user_id: str) -> list[LedgerEntry]:
        return list(self._entries.get(user_id, []))

    async def delete_user(self, user_id: str) -> bool:
        user = await self.get_user_by_id(user_id)
        if user is None:
            return False
        del self._users[user.user_key]
        self._entries.pop(user_id, None)
        return True

    def __len__(self) -> int:
        return len(self._users)


class SqliteLedgerStore:
    """LedgerStore over the durable SQLite MemoryStore."""

    def __init__(self, store: MemoryStore):
        self.store = store

    async def get_user(self, user_key: str) -> User | None:
        return await asyncio.to_thread(self.store.get_user_by_key, user_key)

    async def get_user_by_id(self, user_id: str) -> User | None:
        return await asyncio.to_thread(self.store.get_user_by_id, user_id)

    async def save_user(self, user: User) -> None:
        await asyncio.to_thread(self.store.save_user, user)

    async def record(self, user: User, entry: LedgerEntry) -> None:
        await asyncio.to_thread(self.store.save_user_with_entry, user, entry)

    async def list_entries(self, user_id: str) -> list[LedgerEntry]:
        return await asyncio.to_thread(self.store.list_ledger_entries, user_id)

    async def delete_user(self, user_id: str) -> bool:
        return await asyncio.to_thread(self.store.delete_user, user_id)
