"""Tests for the agent brain's message handling."""

import dataclasses

import pytest

from src.agent.brain import AgentBrain, is_erasure_command, is_greeting
from src.agent.gateway import ModelGateway
from src.agent.llm_router import LLMError
from src.agent.persona import Persona
from src.agent.wire import ModelReply
from src.billing.ledger import BalanceLedger, QuotaLedger
from src.billing.models import CHAT_SPEND
from src.billing.pricing import Usage
from src.memory.backends import InMemoryLedgerStore
from src.memory.conversation import ConversationMemory
from src.search.service import SearchOutcome

USER = "+34600111222"

# 100k input + 31,250 output tokens on gpt-4.1 is exactly $0.45
PRICED_USAGE = Usage(input_tokens=100_000, cached_tokens=0, output_tokens=31_250)


class ScriptedRouter:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    async def complete(self, request):
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class NoSearch:
    async def search(self, query, focus_sites=None, reason=None):
        return SearchOutcome(success=False, content="")

    async def close(self):
        pass


class FakeModerator:
    def __init__(self, appropriate=True):
        self.appropriate = appropriate

    async def is_appropriate(self, text):
        return self.appropriate


def _brain(*replies, ledger=None, moderator=None):
    conversations = ConversationMemory()
    ledger = ledger or BalanceLedger(store=InMemoryLedgerStore(), conversations=conversations)
    gateway = ModelGateway(router=ScriptedRouter(*replies), search=NoSearch())
    return AgentBrain(
        gateway=gateway,
        ledger=ledger,
        conversations=conversations,
        moderator=moderator,
        margin=1.0,
    )


class TestCommandDetection:
    def test_erasure_command(self):
        assert is_erasure_command("BAJA") is True
        assert is_erasure_command("  baja ") is True
        assert is_erasure_command("darme de baja") is False

    def test_greeting(self):
        assert is_greeting("Hola!") is True
        assert is_greeting("hola, ¿qué es el NIE?") is False


class TestAnswering:
    """The happy path: answer, price, debit."""

    @pytest.mark.asyncio
    async def test_first_message_welcomes_and_answers(self):
        brain = _brain(ModelReply(text="El NIE es...", usage=PRICED_USAGE))

        result = await brain.handle_message(USER, "¿Qué es el NIE?")

        assert result.kind == "answer"
        assert len(result.replies) == 2
        assert "Soy" in result.replies[0]
        assert result.replies[1] == "El NIE es..."
        assert result.answer.cost_minor == 45

        user = await brain.ledger.ensure_user(USER)
        assert user.credits_minor == 255
        spend = [e for e in await brain.ledger.entries(user.id) if e.reason == CHAT_SPEND]
        assert [e.delta_minor for e in spend] == [-45]

    @pytest.mark.asyncio
    async def test_answer_is_remembered(self):
        brain = _brain(ModelReply(text="uno"), ModelReply(text="dos"))
        await brain.handle_message(USER, "¿Qué es el NIE?")
        await brain.handle_message(USER, "¿Y la TIE?")

        history = brain.conversations.get_history(USER)
        assert [m.content for m in history] == ["¿Qué es el NIE?", "uno", "¿Y la TIE?", "dos"]
        second_request = brain.gateway.router.requests[1]
        assert [t.content for t in second_request.messages[1:]] == ["¿Qué es el NIE?", "uno", "¿Y la TIE?"]

    @pytest.mark.asyncio
    async def test_failed_answer_is_not_charged(self):
        brain = _brain(LLMError("down"))

        result = await brain.handle_message(USER, "¿Qué es el NIE?")

        assert result.answer.failed is True
        assert result.replies[-1] == brain.persona.fallback_answer
        user = await brain.ledger.ensure_user(USER)
        assert user.credits_minor == 300


class TestGating:
    """Everything that stops a message before the model."""

    @pytest.mark.asyncio
    async def test_greeting_only_welcomes(self):
        brain = _brain()
        result = await brain.handle_message(USER, "hola")
        assert result.kind == "welcome"
        assert brain.gateway.router.requests == []

    @pytest.mark.asyncio
    async def test_erasure(self):
        brain = _brain(ModelReply(text="respuesta"))
        await brain.handle_message(USER, "¿Qué es el NIE?")

        result = await brain.handle_message(USER, "BAJA")

        assert result.kind == "deleted"
        assert result.replies == [Persona().data_deleted()]
        assert brain.conversations.get_history(USER) == []
        assert len(brain.ledger.store) == 0

    @pytest.mark.asyncio
    async def test_blocked_user(self):
        brain = _brain()
        user = await brain.ledger.ensure_user(USER)
        await brain.ledger.store.save_user(dataclasses.replace(user, is_blocked=True))

        result = await brain.handle_message(USER, "¿Qué es el NIE?")
        assert result.kind == "blocked"

    @pytest.mark.asyncio
    async def test_moderated(self):
        brain = _brain(moderator=FakeModerator(appropriate=False))
        await brain.ledger.ensure_user(USER)

        result = await brain.handle_message(USER, "texto ofensivo")

        assert result.kind == "moderated"
        assert brain.gateway.router.requests == []

    @pytest.mark.asyncio
    async def test_no_credits(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore(), initial_credits=0)
        brain = _brain(ledger=ledger)

        result = await brain.handle_message(USER, "¿Qué es el NIE?")

        assert result.kind == "no_credits"
        assert brain.gateway.router.requests == []

    @pytest.mark.asyncio
    async def test_quota_counts_and_blocks(self):
        ledger = QuotaLedger(store=InMemoryLedgerStore(), quota=1)
        brain = _brain(ModelReply(text="uno", usage=PRICED_USAGE), ledger=ledger)

        first = await brain.handle_message(USER, "¿Qué es el NIE?")
        second = await brain.handle_message(USER, "¿Y la TIE?")

        assert first.kind == "answer"
        assert second.kind == "limit_reached"
        user = await ledger.ensure_user(USER)
        assert user.message_count == 1
        assert user.credits_minor == 0

    @pytest.mark.asyncio
    async def test_store_unavailable(self):
        ledger = BalanceLedger(store=InMemoryLedgerStore())
        brain = _brain(ledger=ledger)

        async def broken(user_key):
            raise RuntimeError("store down")

        ledger.store.get_user = broken
        result = await brain.handle_message(USER, "¿Qué es el NIE?")
        assert result.kind == "error"
