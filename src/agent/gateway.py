"""
Model gateway for Reco: one question in, one answer out.

Per question the gateway walks a small state machine:

    DRAFT -> SENT -> COMPLETED
                  -> TOOL_REQUESTED -> TOOL_EXECUTED -> FOLLOW_UP_SENT -> COMPLETED
    (any step)    -> FAILED

Search augmentation enters the loop in one of two ways:

1. The model calls the search tool. The tool result goes back as a
   tool-role message in a follow-up call that offers no tools.
2. The model does not call it, but the question looks time-sensitive.
   The gateway searches by itself and injects the result as an extra
   system message before one follow-up call, again without tools.

When both apply, the model's own call wins and the heuristic is skipped.
Usage of the first call and the follow-up is summed field by field.
Any failure ends in FAILED: a fixed apology with zero usage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from src.agent.llm_router import LLMError, LLMRouter
from src.agent.persona import Persona
from src.agent.tools import (
    SearchToolCall,
    UnknownToolCall,
    extract_tool_invocation,
    needs_fresh_search,
    search_tool_definition,
)
from src.agent.wire import CanonicalRequest, ChatTurn, ModelReply
from src.billing.pricing import Usage
from src.constants import DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_MODEL, DEFAULT_TEMPERATURE
from src.memory.conversation import Message
from src.search.service import SearchOutcome, SearchService
from src.utils.logging import get_logger

logger = get_logger("gateway")

SEARCH_CONTEXT_HEADER = (
    "Información actualizada obtenida de fuentes oficiales para esta consulta. "
    "Úsala para responder y cita las fuentes relevantes:"
)


class TurnState(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    COMPLETED = "completed"
    TOOL_REQUESTED = "tool_requested"
    TOOL_EXECUTED = "tool_executed"
    FOLLOW_UP_SENT = "follow_up_sent"
    FAILED = "failed"


@dataclass
class GatewayAnswer:
    text: str
    usage: Usage = field(default_factory=Usage)
    search_used: bool = False
    sources: list[str] = field(default_factory=list)
    search_cost_minor: int = 0
    search_served_from_cache: bool = False
    state: TurnState = TurnState.COMPLETED
    model: str = DEFAULT_MODEL

    @property
    def failed(self) -> bool:
        return self.state is TurnState.FAILED


class ModelGateway:
    """
    Builds completion requests, runs the search round-trip, and never raises.

    Usage:
        gateway = ModelGateway(router=router, search=search_service)
        answer = await gateway.ask("¿Qué requisitos hay en 2024?", history)
    """

    def __init__(
        self,
        router: LLMRouter,
        search: SearchService,
        persona: Persona | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.router = router
        self.search = search
        self.persona = persona or Persona()
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def ask(self, question: str, history: list[Message]) -> GatewayAnswer:
        """Answer one question given the prior conversation (current question excluded)."""
        try:
            return await self._run(question, history)
        except LLMError as e:
            logger.error("gateway_failed", error=str(e))
        except Exception as e:
            logger.error("gateway_unexpected_error", error=str(e), exc_info=True)
        return GatewayAnswer(
            text=self.persona.fallback_answer,
            state=TurnState.FAILED,
            model=self.model,
        )

    async def _run(self, question: str, history: list[Message]) -> GatewayAnswer:
        base = self.build_messages(question, history)
        state = TurnState.DRAFT

        first = await self.router.complete(
            self._request(base, offer_tools=True)
        )
        state = TurnState.SENT
        logger.debug("gateway_state", state=state.value)

        invocation = extract_tool_invocation(first.tool_calls)
        outcome: SearchOutcome | None = None
        second: ModelReply | None = None

        if isinstance(invocation, SearchToolCall):
            state = TurnState.TOOL_REQUESTED
            logger.info("search_tool_requested", query=invocation.query[:80], reason=invocation.reason)
            outcome = await self.search.search(
                invocation.query,
                focus_sites=invocation.focus_sites,
                reason=invocation.reason,
            )
            state = TurnState.TOOL_EXECUTED
            call = first.tool_calls[0]
            follow_up = base + (
                ChatTurn(role="assistant", content=first.text or "", tool_calls=(call,)),
                ChatTurn(role="tool", content=outcome.content, tool_call_id=call.id),
            )
            second = await self.router.complete(self._request(follow_up, offer_tools=False))
            state = TurnState.FOLLOW_UP_SENT

        elif needs_fresh_search(question):
            if isinstance(invocation, UnknownToolCall):
                logger.info("unknown_tool_ignored", tool=invocation.name)
            state = TurnState.TOOL_REQUESTED
            logger.info("search_forced_by_heuristic")
            outcome = await self.search.search(question, reason="heuristic")
            state = TurnState.TOOL_EXECUTED
            if outcome.success:
                follow_up = base + (
                    ChatTurn(role="system", content=f"{SEARCH_CONTEXT_HEADER}\n\n{outcome.content}"),
                )
                second = await self.router.complete(self._request(follow_up, offer_tools=False))
                state = TurnState.FOLLOW_UP_SENT

        elif isinstance(invocation, UnknownToolCall):
            logger.info("unknown_tool_ignored", tool=invocation.name)

        usage = first.usage + second.usage if second is not None else first.usage
        text = (second.text if second is not None else None) or first.text
        if not text:
            raise LLMError("Completion produced no text")

        state = TurnState.COMPLETED
        searched = outcome is not None and outcome.success
        answer = GatewayAnswer(
            text=text,
            usage=usage,
            search_used=searched,
            sources=list(outcome.sources) if searched else [],
            search_cost_minor=outcome.cost_minor if outcome is not None else 0,
            search_served_from_cache=outcome.served_from_cache if outcome is not None else False,
            state=state,
            model=self.model,
        )
        logger.info(
            "gateway_completed",
            follow_up=second is not None,
            search_used=answer.search_used,
            input_tokens=usage.input_tokens,
            cached_tokens=usage.cached_tokens,
            output_tokens=usage.output_tokens,
        )
        return answer

    def build_messages(self, question: str, history: list[Message]) -> tuple[ChatTurn, ...]:
        """System prompt, then history oldest first, then the question."""
        turns = [ChatTurn(role="system", content=self.persona.system_prompt)]
        turns.extend(ChatTurn(role=m.role, content=m.content) for m in history)
        turns.append(ChatTurn(role="user", content=question))
        return tuple(turns)

    def _request(self, messages: tuple[ChatTurn, ...], offer_tools: bool) -> CanonicalRequest:
        return CanonicalRequest(
            model=self.model,
            messages=messages,
            tools=(search_tool_definition(),) if offer_tools else (),
            tool_choice="auto" if offer_tools else None,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
