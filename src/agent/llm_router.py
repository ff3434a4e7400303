"""
LLM router for Reco: one semantic request, two wire shapes, via LiteLLM.

The primary attempt goes to the structured Responses API. If the provider
rejects that shape (bad request, forbidden, not found, or an unsupported
parameter), the same canonical request is retried once against the legacy
chat completions API. There is no retry loop and no backoff: a second
failure is terminal.
"""

from __future__ import annotations

from typing import Any

import litellm
from litellm import acompletion, aresponses

from src.agent.wire import (
    CanonicalRequest,
    MalformedResponseError,
    ModelReply,
    build_chat_request,
    build_responses_request,
    parse_chat_response,
    parse_responses_response,
)
from src.billing.pricing import Usage
from src.config import ConfigurationError, LLMConfig
from src.utils.logging import get_logger

logger = get_logger("llm_router")

# Suppress LiteLLM's verbose logging
litellm.suppress_debug_info = True

# Status codes that mean "this endpoint does not accept this request shape"
NEGOTIATION_STATUS_CODES = frozenset({400, 403, 404})


class LLMRouter:
    """
    Completion client with a single primary → legacy fallback step.

    Usage:
        router = LLMRouter(config=config.llm, api_key="sk-...")
        reply = await router.complete(request)
    """

    def __init__(self, config: LLMConfig, api_key: str = ""):
        if not api_key:
            raise ConfigurationError(
                f"{config.api_key_name} is not set. The completion service needs an API key."
            )
        self.config = config
        self.api_key = api_key
        self.total_usage = Usage()

        logger.info("llm_router_initialized", model=config.model)

    async def complete(self, request: CanonicalRequest) -> ModelReply:
        """
        Send a canonical request, negotiating the wire shape.

        Raises:
            LLMError: transport failure, malformed reply, or a rejected
                request on both shapes.
        """
        try:
            reply = await self.try_primary(request)
        except Exception as e:
            if not is_negotiation_failure(e):
                logger.error("primary_llm_failed", model=request.model, error=str(e))
                raise LLMError(f"Completion failed: {e}") from e

            logger.warning(
                "primary_shape_rejected",
                model=request.model,
                status=getattr(e, "status_code", None),
                error=str(e)[:200],
            )
            try:
                reply = await self.try_fallback(request)
            except Exception as fallback_error:
                logger.error(
                    "fallback_llm_failed",
                    model=request.model,
                    error=str(fallback_error),
                )
                raise LLMError(f"Legacy completion failed: {fallback_error}") from fallback_error

        self.total_usage = self.total_usage + reply.usage
        logger.info(
            "llm_call_complete",
            model=request.model,
            api_shape=reply.api_shape,
            input_tokens=reply.usage.input_tokens,
            cached_tokens=reply.usage.cached_tokens,
            output_tokens=reply.usage.output_tokens,
            has_tool_calls=bool(reply.tool_calls),
        )
        return reply

    async def try_primary(self, request: CanonicalRequest) -> ModelReply:
        """One call against the Responses API shape."""
        params = build_responses_request(request)
        response = await aresponses(**params, **self._connection_kwargs())
        return parse_responses_response(response)

    async def try_fallback(self, request: CanonicalRequest) -> ModelReply:
        """One call against the legacy chat completions shape."""
        params = build_chat_request(request)
        response = await acompletion(**params, **self._connection_kwargs())
        return parse_chat_response(response)

    def _connection_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "api_key": self.api_key,
            "timeout": self.config.timeout_seconds,
        }
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base
        return kwargs


def is_negotiation_failure(error: Exception) -> bool:
    """Whether an error means the endpoint rejected the request's shape."""
    if isinstance(error, MalformedResponseError):
        return False
    if isinstance(error, litellm.UnsupportedParamsError):
        return True
    return getattr(error, "status_code", None) in NEGOTIATION_STATUS_CODES


class LLMError(Exception):
    """Raised when the completion service cannot produce a reply."""

    pass
