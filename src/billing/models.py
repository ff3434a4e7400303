"""Ledger records for Reco."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass
class User:
    """A metered user, keyed by phone number. Mutated only by the usage ledger."""

    user_key: str
    credits_minor: int = 0
    message_count: int = 0
    lang: str = "es"
    is_blocked: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable record of a balance change. delta_minor is the change actually applied."""

    user_id: str
    delta_minor: int
    reason: str
    ref_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


# Ledger reason tags
INIT_GRANT = "init_grant"
CHAT_SPEND = "chat_spend"
TOP_UP = "top_up"
QUOTA_USE = "quota_use"
