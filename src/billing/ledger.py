"""
Usage ledger for Reco: per-user credit balance or message quota.

Two strategies, chosen by config and never mixed for one user:

- BalanceLedger ("credits"): a balance in minor units, debited per answer.
  Debits clamp at zero and the ledger entry records the decrement actually
  applied, so the sum of a user's entries always equals the stored balance.
- QuotaLedger ("messages"): a message counter blocked at a fixed cap. The
  init_grant entry records the quota and each counted message records a
  quota_use entry of -1, so the entries sum to the remaining allowance.

Store failures never escape: lookups degrade to "no user", "no balance",
"0 credits", which the caller surfaces as insufficient funds.
"""

from __future__ import annotations

import abc
import dataclasses

from src.billing.models import CHAT_SPEND, INIT_GRANT, QUOTA_USE, TOP_UP, LedgerEntry, User
from src.config import BillingConfig
from src.constants import DEFAULT_INITIAL_CREDITS, DEFAULT_MESSAGE_QUOTA
from src.memory.backends import InMemoryLedgerStore, LedgerStore
from src.memory.conversation import ConversationMemory
from src.utils.logging import get_logger, mask_user_key

logger = get_logger("ledger")


class UsageLedger(abc.ABC):
    """Operations shared by both metering strategies."""

    mode = ""

    def __init__(
        self,
        store: LedgerStore | None = None,
        conversations: ConversationMemory | None = None,
    ):
        self.store: LedgerStore = store if store is not None else InMemoryLedgerStore()
        self.conversations = conversations
        if store is None:
            logger.warning("ledger_mock_mode", msg="No durable store configured, using memory")

    async def ensure_user(self, user_key: str) -> User | None:
        """
        Return the user for this key, creating it on first contact.

        Idempotent: the initial grant and its init_grant entry happen once.
        Returns None if the store is unavailable.
        """
        user, _ = await self.ensure_user_with_status(user_key)
        return user

    async def ensure_user_with_status(self, user_key: str) -> tuple[User | None, bool]:
        """Like ensure_user, also reporting whether the user was just created."""
        try:
            existing = await self.store.get_user(user_key)
            if existing is not None:
                return existing, False

            user = self._new_user(user_key)
            grant = self._initial_grant_entry(user)
            if grant is not None:
                await self.store.record(user, grant)
            else:
                await self.store.save_user(user)

            logger.info(
                "user_created",
                user=mask_user_key(user_key),
                mode=self.mode,
                credits=user.credits_minor,
            )
            return user, True

        except Exception as e:
            logger.error("ensure_user_failed", user=mask_user_key(user_key), error=str(e))
            return None, False

    async def get_user(self, user_id: str) -> User | None:
        try:
            return await self.store.get_user_by_id(user_id)
        except Exception as e:
            logger.error("get_user_failed", user_id=user_id, error=str(e))
            return None

    async def entries(self, user_id: str) -> list[LedgerEntry]:
        try:
            return await self.store.list_entries(user_id)
        except Exception as e:
            logger.error("list_entries_failed", user_id=user_id, error=str(e))
            return []

    @abc.abstractmethod
    async def has_allowance(self, user_id: str) -> bool:
        """Whether the user may ask another question under this strategy."""
        ...

    async def delete_user_data(self, user_id: str) -> bool:
        """
        Erase a user, their ledger entries and their conversation state.

        Conversation memory is cleared even when the store is unreachable;
        the return value reports whether the store side succeeded.
        """
        user_key = None
        try:
            user = await self.store.get_user_by_id(user_id)
            user_key = user.user_key if user else None
        except Exception as e:
            logger.error("delete_lookup_failed", user_id=user_id, error=str(e))

        if self.conversations is not None and user_key is not None:
            self.conversations.clear(user_key)

        try:
            await self.store.delete_user(user_id)
        except Exception as e:
            logger.error("delete_user_failed", user_id=user_id, error=str(e))
            return False

        logger.info("user_data_deleted", user_id=user_id)
        return True

    def _new_user(self, user_key: str) -> User:
        return User(user_key=user_key)

    def _initial_grant_entry(self, user: User) -> LedgerEntry | None:
        return None


class BalanceLedger(UsageLedger):
    """Credit balance in minor units (USD cents)."""

    mode = "credits"

    def __init__(
        self,
        store: LedgerStore | None = None,
        conversations: ConversationMemory | None = None,
        initial_credits: int = DEFAULT_INITIAL_CREDITS,
    ):
        super().__init__(store=store, conversations=conversations)
        self.initial_credits = initial_credits

    async def get_credits(self, user_id: str) -> int:
        user = await self.get_user(user_id)
        return user.credits_minor if user else 0

    async def has_balance(self, user_id: str) -> bool:
        return await self.get_credits(user_id) > 0

    async def can_afford(self, user_id: str, amount_minor: int) -> bool:
        return await self.get_credits(user_id) >= amount_minor

    async def has_allowance(self, user_id: str) -> bool:
        return await self.has_balance(user_id)

    async def debit(self, user_id: str, amount_minor: int, ref_id: str | None = None) -> int:
        """
        Debit up to amount_minor, clamping the balance at zero.

        Returns the new balance (0 when the user or store is unavailable).
        The ledger entry carries the applied delta, not the requested one;
        nothing is recorded when nothing was applied.
        """
        if amount_minor < 0:
            raise ValueError("Debit amount must be non-negative; use credit() for top-ups")

        try:
            user = await self.store.get_user_by_id(user_id)
            if user is None:
                logger.error("debit_user_not_found", user_id=user_id)
                return 0

            old_balance = user.credits_minor
            new_balance = max(0, old_balance - amount_minor)
            applied = old_balance - new_balance
            if applied == 0:
                return old_balance

            updated = dataclasses.replace(user, credits_minor=new_balance)
            entry = LedgerEntry(
                user_id=user_id,
                delta_minor=-applied,
                reason=CHAT_SPEND,
                ref_id=ref_id,
            )
            await self.store.record(updated, entry)

            logger.info(
                "credits_debited",
                user_id=user_id,
                requested=amount_minor,
                applied=applied,
                old_balance=old_balance,
                new_balance=new_balance,
            )
            return new_balance

        except Exception as e:
            logger.error("debit_failed", user_id=user_id, amount=amount_minor, error=str(e))
            return 0

    async def credit(
        self,
        user_id: str,
        amount_minor: int,
        reason: str = TOP_UP,
        ref_id: str | None = None,
    ) -> int:
        """Add credits (top-ups, refunds). Returns the new balance, 0 on failure."""
        if amount_minor <= 0:
            raise ValueError("Credit amount must be positive")

        try:
            user = await self.store.get_user_by_id(user_id)
            if user is None:
                logger.error("credit_user_not_found", user_id=user_id)
                return 0

            updated = dataclasses.replace(user, credits_minor=user.credits_minor + amount_minor)
            entry = LedgerEntry(
                user_id=user_id,
                delta_minor=amount_minor,
                reason=reason,
                ref_id=ref_id,
            )
            await self.store.record(updated, entry)
            logger.info(
                "credits_added",
                user_id=user_id,
                amount=amount_minor,
                reason=reason,
                new_balance=updated.credits_minor,
            )
            return updated.credits_minor

        except Exception as e:
            logger.error("credit_failed", user_id=user_id, amount=amount_minor, error=str(e))
            return 0

    def _new_user(self, user_key: str) -> User:
        return User(user_key=user_key, credits_minor=self.initial_credits)

    def _initial_grant_entry(self, user: User) -> LedgerEntry | None:
        if user.credits_minor <= 0:
            return None
        return LedgerEntry(user_id=user.id, delta_minor=user.credits_minor, reason=INIT_GRANT)


class QuotaLedger(UsageLedger):
    """Message-count quota with a fixed cap."""

    mode = "messages"

    def __init__(
        self,
        store: LedgerStore | None = None,
        conversations: ConversationMemory | None = None,
        quota: int = DEFAULT_MESSAGE_QUOTA,
    ):
        super().__init__(store=store, conversations=conversations)
        self.quota = quota

    async def get_message_count(self, user_id: str) -> int:
        user = await self.get_user(user_id)
        return user.message_count if user else 0

    async def has_remaining(self, user_id: str) -> bool:
        user = await self.get_user(user_id)
        if user is None:
            return False
        return user.message_count < self.quota

    async def remaining(self, user_id: str) -> int:
        return max(0, self.quota - await self.get_message_count(user_id))

    async def has_allowance(self, user_id: str) -> bool:
        return await self.has_remaining(user_id)

    async def increment(self, user_id: str) -> int:
        """Count one answered message. Returns the new count, capped at the quota."""
        try:
            user = await self.store.get_user_by_id(user_id)
            if user is None:
                logger.error("increment_user_not_found", user_id=user_id)
                return 0

            new_count = min(self.quota, user.message_count + 1)
            if new_count == user.message_count:
                return new_count

            entry = LedgerEntry(user_id=user_id, delta_minor=-1, reason=QUOTA_USE)
            await self.store.record(dataclasses.replace(user, message_count=new_count), entry)
            logger.info(
                "message_counted",
                user_id=user_id,
                count=new_count,
                remaining=self.quota - new_count,
            )
            return new_count

        except Exception as e:
            logger.error("increment_failed", user_id=user_id, error=str(e))
            return 0

    def _initial_grant_entry(self, user: User) -> LedgerEntry | None:
        if self.quota <= 0:
            return None
        return LedgerEntry(user_id=user.id, delta_minor=self.quota, reason=INIT_GRANT)


def create_ledger(
    config: BillingConfig,
    store: LedgerStore | None = None,
    conversations: ConversationMemory | None = None,
) -> UsageLedger:
    """Build the ledger strategy selected by billing.mode."""
    if config.mode == "messages":
        return QuotaLedger(store=store, conversations=conversations, quota=config.message_quota)
    return BalanceLedger(
        store=store,
        conversations=conversations,
        initial_credits=config.initial_credits,
    )
