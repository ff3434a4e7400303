"""Tests for the usage ledger (balance and quota strategies)."""

from unittest.mock import AsyncMock

import pytest

from src.billing.ledger import BalanceLedger, QuotaLedger, UsageLedger, create_ledger
from src.billing.models import CHAT_SPEND, INIT_GRANT, QUOTA_USE, TOP_UP
from src.config import BillingConfig
from src.memory.backends import InMemoryLedgerStore, SqliteLedgerStore
from src.memory.conversation import ConversationMemory


def _broken_store():
    store = AsyncMock()
    for name in ("get_user", "get_user_by_id", "save_user", "record", "list_entries", "delete_user"):
        getattr(store, name).side_effect = RuntimeError("store down")
    return store


class TestEnsureUser:
    """User creation and the initial grant."""

    @pytest.mark.asyncio
    async def test_first_contact_grants_credits(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=300)
        user = await ledger.ensure_user("+34600111222")

        assert user.credits_minor == 300
        entries = await ledger.entries(user.id)
        assert [(e.delta_minor, e.reason) for e in entries] == [(300, INIT_GRANT)]

    @pytest.mark.asyncio
    async def test_idempotent(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore())
        first = await ledger.ensure_user("+34600111222")
        second = await ledger.ensure_user("+34600111222")

        assert first.id == second.id
        entries = await ledger.entries(first.id)
        assert sum(1 for e in entries if e.reason == INIT_GRANT) == 1

    @pytest.mark.asyncio
    async def test_reports_creation(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore())
        _, created = await ledger.ensure_user_with_status("u")
        _, created_again = await ledger.ensure_user_with_status("u")
        assert created is True
        assert created_again is False

    @pytest.mark.asyncio
    async def test_zero_grant_records_no_entry(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=0)
        user = await ledger.ensure_user("u")
        assert await ledger.entries(user.id) == []

    @pytest.mark.asyncio
    async def test_uses_injected_empty_store(self):
        store = InMemoryLedgerStore()
        ledger = BalanceLedger(store=store)
        await ledger.ensure_user("u")
        assert ledger.store is store
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_store_failure_returns_none(self):
        ledger = BalanceLedger(store=_broken_store())
        assert await ledger.ensure_user("u") is None


class TestDebit:
    """Clamped debits and their ledger entries."""

    @pytest.mark.asyncio
    async def test_debit_records_applied_delta(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=300)
        user = await ledger.ensure_user("u")

        new_balance = await ledger.debit(user.id, 45, ref_id="turn-1")

        assert new_balance == 255
        spend = [e for e in await ledger.entries(user.id) if e.reason == CHAT_SPEND]
        assert len(spend) == 1
        assert spend[0].delta_minor == -45
        assert spend[0].ref_id == "turn-1"

    @pytest.mark.asyncio
    async def test_debit_clamps_at_zero(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=30)
        user = await ledger.ensure_user("u")

        assert await ledger.debit(user.id, 100) == 0
        entries = await ledger.entries(user.id)
        assert entries[-1].delta_minor == -30
        assert sum(e.delta_minor for e in entries) == 0

    @pytest.mark.asyncio
    async def test_debit_on_empty_balance_records_nothing(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=10)
        user = await ledger.ensure_user("u")
        await ledger.debit(user.id, 10)
        count = len(await ledger.entries(user.id))

        assert await ledger.debit(user.id, 5) == 0
        assert len(await ledger.entries(user.id)) == count

    @pytest.mark.asyncio
    async def test_ledger_sum_matches_balance(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=300)
        user = await ledger.ensure_user("u")
        for amount in (45, 0, 120, 7, 500, 3):
            await ledger.debit(user.id, amount)
        await ledger.credit(user.id, 200)
        await ledger.debit(user.id, 17)

        balance = await ledger.get_credits(user.id)
        assert balance == 183
        assert sum(e.delta_minor for e in await ledger.entries(user.id)) == balance

    @pytest.mark.asyncio
    async def test_negative_debit_rejected(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore())
        with pytest.raises(ValueError):
            await ledger.debit("x", -1)

    @pytest.mark.asyncio
    async def test_unknown_user_debit_returns_zero(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore())
        assert await ledger.debit("missing", 10) == 0

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_no_balance(self):
        ledger = BalanceLedger(store=_broken_store())
        assert await ledger.has_balance("u") is False
        assert await ledger.get_credits("u") == 0
        assert await ledger.can_afford("u", 1) is False
        assert await ledger.debit("u", 10) == 0


class TestCredit:
    """Top-ups."""

    @pytest.mark.asyncio
    async def test_credit_adds_and_records(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=0)
        user = await ledger.ensure_user("u")

        assert await ledger.credit(user.id, 500, ref_id="pay-1") == 500
        entries = await ledger.entries(user.id)
        assert entries[-1].reason == TOP_UP
        assert await ledger.can_afford(user.id, 500) is True
        assert await ledger.can_afford(user.id, 501) is False

    @pytest.mark.asyncio
    async def test_non_positive_credit_rejected(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore())
        with pytest.raises(ValueError):
            await ledger.credit("x", 0)


class TestQuota:
    """Message quota strategy."""

    @pytest.mark.asyncio
    async def test_blocks_at_cap(self):
        ledger = QuotaLedger(store=InMemoryLedgerStore(), quota=3)
        user = await ledger.ensure_user("u")

        for expected in (1, 2, 3):
            assert await ledger.has_remaining(user.id) is True
            assert await ledger.increment(user.id) == expected

        assert await ledger.has_remaining(user.id) is False
        assert await ledger.increment(user.id) == 3
        assert await ledger.remaining(user.id) == 0

    @pytest.mark.asyncio
    async def test_first_contact_records_one_grant(self):
        ledger = QuotaLedger(store=InMemoryLedgerStore(), quota=100)
        first = await ledger.ensure_user("+34600111222")
        second = await ledger.ensure_user("+34600111222")

        assert first.id == second.id
        grants = [e for e in await ledger.entries(first.id) if e.reason == INIT_GRANT]
        assert [e.delta_minor for e in grants] == [100]

    @pytest.mark.asyncio
    async def test_entries_sum_to_remaining(self):
        ledger = QuotaLedger(store=InMemoryLedgerStore(), quota=2)
        user = await ledger.ensure_user("u")

        for _ in range(3):
            await ledger.increment(user.id)

        entries = await ledger.entries(user.id)
        assert [e.reason for e in entries] == [INIT_GRANT, QUOTA_USE, QUOTA_USE]
        assert sum(e.delta_minor for e in entries) == await ledger.remaining(user.id) == 0

    @pytest.mark.asyncio
    async def test_sqlite_backed_grant(self, store):
        ledger = QuotaLedger(store=SqliteLedgerStore(store), quota=5)
        user = await ledger.ensure_user("u")
        await ledger.increment(user.id)

        assert store.get_ledger_sum(user.id) == 4
        assert store.get_user_by_id(user.id).message_count == 1

    @pytest.mark.asyncio
    async def test_unknown_user_has_nothing_remaining(self):
        ledger = QuotaLedger(store=InMemoryLedgerStore())
        assert await ledger.has_remaining("missing") is False


class TestDeleteUserData:
    """Data erasure."""

    @pytest.mark.asyncio
    async def test_cascades_to_entries_and_conversation(self):
        conversations = ConversationMemory()
        ledger = BalanceLedger(store=InMemoryLedgerStore(), conversations=conversations)
        user = await ledger.ensure_user("+34600111222")
        conversations.add_user_message("+34600111222", "hola")

        assert await ledger.delete_user_data(user.id) is True
        assert await ledger.get_user(user.id) is None
        assert await ledger.entries(user.id) == []
        assert conversations.get_history("+34600111222") == []

    @pytest.mark.asyncio
    async def test_store_failure_returns_false(self):
        ledger = BalanceLedger(store=_broken_store())
        assert await ledger.delete_user_data("u") is False

    @pytest.mark.asyncio
    async def test_recreated_user_gets_new_grant(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=300)
        user = await ledger.ensure_user("u")
        await ledger.debit(user.id, 100)
        await ledger.delete_user_data(user.id)

        again = await ledger.ensure_user("u")
        assert again.id != user.id
        assert again.credits_minor == 300


class TestSqliteBackedLedger:
    """The same contract over the durable store."""

    @pytest.mark.asyncio
    async def test_debit_and_sum(self, store):
        ledger = BalanceLedger(store=SqliteLedgerStore(store), initial_credits=300)
        user = await ledger.ensure_user("+34600111222")
        await ledger.debit(user.id, 45)

        assert await ledger.get_credits(user.id) == 255
        assert store.get_ledger_sum(user.id) == 255

    @pytest.mark.asyncio
    async def test_delete_cascades(self, store):
        ledger = BalanceLedger(store=SqliteLedgerStore(store))
        user = await ledger.ensure_user("u")
        store.mirror_message("u", "user", "hola", "2026-01-01T00:00:00+00:00")

        assert await ledger.delete_user_data(user.id) is True
        assert store.list_ledger_entries(user.id) == []
        assert store.get_mirrored_messages("u") == []


class TestCreateLedger:
    """Strategy selection from config."""

    def test_credits_mode(self):
        ledger = create_ledger(BillingConfig(mode="credits", initial_credits=50))
        assert isinstance(ledger, BalanceLedger)
        assert ledger.initial_credits == 50

    def test_messages_mode(self):
        ledger = create_ledger(BillingConfig(mode="messages", message_quota=7))
        assert isinstance(ledger, QuotaLedger)
        assert ledger.quota == 7

    def test_base_strategy_is_abstract(self):
        with pytest.raises(TypeError):
            UsageLedger(store=InMemoryLedgerStore())
