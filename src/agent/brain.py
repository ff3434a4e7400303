"""
Agent brain for Reco: one question-and-answer cycle per inbound message.

The brain composes the pieces:
1. Usage ledger: who is asking, and may they ask?
2. Conversation memory: what was said before?
3. Model gateway: the answer, with search augmentation when warranted
4. Cost model: what the answer cost, in minor units
5. Ledger again: debit the balance or count the message

Nothing here raises to the caller. The worst case is the fixed apology
with nothing charged.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from src.agent.gateway import ModelGateway
from src.agent.llm_router import LLMRouter
from src.agent.moderation import ContentModerator
from src.agent.persona import Persona
from src.billing.ledger import BalanceLedger, QuotaLedger, UsageLedger, create_ledger
from src.billing.pricing import CostBreakdown, Usage, price_usage
from src.config import RecoConfig, require_secret
from src.constants import DEFAULT_MARGIN_MULTIPLIER
from src.memory.backends import SqliteLedgerStore
from src.memory.conversation import ConversationMemory
from src.memory.store import MemoryStore
from src.search.service import SearchService
from src.utils.logging import get_logger, mask_user_key

logger = get_logger("brain")

_ERASURE_COMMAND = re.compile(r"^baja$", re.IGNORECASE)
_GREETING = re.compile(r"^(hola|hi|hello|buenas|hey)[!¡.]*$", re.IGNORECASE)


@dataclass
class Answer:
    text: str
    cost_minor: int = 0
    search_used: bool = False
    sources: list[str] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    breakdown: CostBreakdown | None = None
    search_cost_minor: int = 0
    search_served_from_cache: bool = False
    failed: bool = False


@dataclass
class TurnResult:
    """Everything a channel needs to reply to one inbound message."""

    kind: str  # answer | welcome | deleted | blocked | moderated | no_credits | limit_reached | error
    replies: list[str] = field(default_factory=list)
    answer: Answer | None = None


def is_erasure_command(text: str) -> bool:
    return bool(_ERASURE_COMMAND.match(text.strip()))


def is_greeting(text: str) -> bool:
    return bool(_GREETING.match(text.strip()))


class AgentBrain:
    """
    Central orchestrator for Reco.

    Usage:
        brain = AgentBrain.from_config(load_config())
        result = await brain.handle_message("+34600111222", "¿Cómo renuevo mi TIE?")
        for reply in result.replies:
            send(reply)
    """

    def __init__(
        self,
        gateway: ModelGateway,
        ledger: UsageLedger,
        conversations: ConversationMemory,
        moderator: ContentModerator | None = None,
        persona: Persona | None = None,
        margin: float = DEFAULT_MARGIN_MULTIPLIER,
        store: MemoryStore | None = None,
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.conversations = conversations
        self.moderator = moderator
        self.persona = persona or gateway.persona
        self.margin = margin
        self._store = store

    @classmethod
    def from_config(cls, config: RecoConfig) -> AgentBrain:
        """
        Wire the full stack from configuration.

        Raises ConfigurationError when the completion service key is missing.
        An empty storage.db_path runs the ledger in memory with no mirror.
        """
        api_key = require_secret(config.llm.api_key_name)

        store: MemoryStore | None = None
        if config.storage.db_path:
            store = MemoryStore(Path(config.storage.db_path).expanduser())
            store.open()

        conversations = ConversationMemory(
            window=config.conversation.window_size,
            timeout_seconds=config.conversation.timeout_seconds,
            mirror=store,
        )
        ledger = create_ledger(
            config.billing,
            store=SqliteLedgerStore(store) if store else None,
            conversations=conversations,
        )
        persona = Persona(top_up_links=list(config.billing.top_up_links))
        gateway = ModelGateway(
            router=LLMRouter(config.llm, api_key=api_key),
            search=SearchService.from_config(config.search),
            persona=persona,
            model=config.llm.model,
            max_tokens=config.llm.max_tokens,
            temperature=config.llm.temperature,
        )
        moderator = ContentModerator(
            api_key=api_key,
            model=config.llm.moderation_model,
            enabled=config.llm.moderation_enabled,
        )
        logger.info(
            "brain_ready",
            model=config.llm.model,
            billing_mode=config.billing.mode,
            durable_store=store is not None,
        )
        return cls(
            gateway=gateway,
            ledger=ledger,
            conversations=conversations,
            moderator=moderator,
            persona=persona,
            margin=config.billing.margin_multiplier,
            store=store,
        )

    # ── Question answering ─────────────────────────────────────

    async def answer_question(self, user_key: str, question: str) -> Answer:
        """
        Answer one question in the user's conversation and price it.

        The question and the answer are both written to conversation
        memory; the history given to the model excludes the question itself.
        Charging is left to the caller.
        """
        history = self.conversations.add_user_message(user_key, question)[:-1]

        try:
            result = await self.gateway.ask(question, history)
        except Exception as e:
            logger.error("answer_failed", user=mask_user_key(user_key), error=str(e))
            self.conversations.add_assistant_message(user_key, self.persona.fallback_answer)
            return Answer(text=self.persona.fallback_answer, failed=True)

        breakdown = price_usage(result.model, result.usage, margin=self.margin)
        cost_minor = breakdown.cost_minor + result.search_cost_minor
        self.conversations.add_assistant_message(user_key, result.text)

        logger.info(
            "question_answered",
            user=mask_user_key(user_key),
            llm_cost_minor=breakdown.cost_minor,
            search_cost_minor=result.search_cost_minor,
            cost_minor=cost_minor,
            search_used=result.search_used,
            sources=len(result.sources),
        )
        return Answer(
            text=result.text,
            cost_minor=cost_minor,
            search_used=result.search_used,
            sources=list(result.sources),
            usage=result.usage,
            breakdown=breakdown,
            search_cost_minor=result.search_cost_minor,
            search_served_from_cache=result.search_served_from_cache,
            failed=result.failed,
        )

    # ── Full inbound message handling ──────────────────────────

    async def handle_message(self, user_key: str, text: str) -> TurnResult:
        """Run one inbound message through gating, answering and charging."""
        try:
            return await self._handle(user_key, text)
        except Exception as e:
            logger.error("handle_message_failed", user=mask_user_key(user_key), error=str(e), exc_info=True)
            return TurnResult(kind="error", replies=[self.persona.error()])

    async def _handle(self, user_key: str, text: str) -> TurnResult:
        user, created = await self.ledger.ensure_user_with_status(user_key)
        if user is None:
            return TurnResult(kind="error", replies=[self.persona.error()])

        if is_erasure_command(text):
            # Pending mirror writes must land before the rows are deleted
            await self.conversations.drain()
            deleted = await self.ledger.delete_user_data(user.id)
            self.conversations.clear(user_key)
            if not deleted:
                return TurnResult(kind="error", replies=[self.persona.error()])
            return TurnResult(kind="deleted", replies=[self.persona.data_deleted()])

        if user.is_blocked:
            logger.info("blocked_user_message", user=mask_user_key(user_key))
            return TurnResult(kind="blocked", replies=[self.persona.blocked()])

        replies: list[str] = []
        if created or is_greeting(text):
            replies.append(self.persona.welcome(user.credits_minor if created else 0))
            if is_greeting(text):
                return TurnResult(kind="welcome", replies=replies)

        if self.moderator is not None and not await self.moderator.is_appropriate(text):
            replies.append(self.persona.moderation_warning())
            return TurnResult(kind="moderated", replies=replies)

        if not await self.ledger.has_allowance(user.id):
            if isinstance(self.ledger, QuotaLedger):
                replies.append(self.persona.message_limit_reached())
                return TurnResult(kind="limit_reached", replies=replies)
            replies.append(self.persona.no_credits())
            return TurnResult(kind="no_credits", replies=replies)

        answer = await self.answer_question(user_key, text)
        await self._charge(user.id, answer)

        replies.append(answer.text)
        return TurnResult(kind="answer", replies=replies, answer=answer)

    async def _charge(self, user_id: str, answer: Answer) -> None:
        if answer.failed:
            return
        if isinstance(self.ledger, BalanceLedger):
            if answer.cost_minor > 0:
                await self.ledger.debit(user_id, answer.cost_minor, ref_id=str(uuid.uuid4()))
        elif isinstance(self.ledger, QuotaLedger):
            await self.ledger.increment(user_id)

    async def close(self) -> None:
        """Flush mirror writes and release clients."""
        await self.conversations.drain()
        await self.gateway.search.close()
        if self._store is not None:
            self._store.close()