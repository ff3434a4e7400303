"""
Wire shapes for the completion service.

One canonical request value, two pure builders (Responses API, legacy chat
completions) and two parsers that normalize either reply into a ModelReply
carrying the same Usage triple. The legacy shape has no cached-token
figure; it normalizes to zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from src.billing.pricing import Usage


class MalformedResponseError(Exception):
    """Raised when a completion reply lacks the fields its shape requires."""

    pass


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str  # raw JSON string as produced by the model


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChatTurn:
    """One message of a canonical request."""

    role: str  # system | user | assistant | tool
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None


@dataclass(frozen=True)
class CanonicalRequest:
    model: str
    messages: tuple[ChatTurn, ...]
    tools: tuple[ToolSpec, ...] = ()
    tool_choice: str | None = None
    max_tokens: int = 500
    temperature: float = 0.7


@dataclass
class ModelReply:
    text: str | None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    api_shape: str = ""


# ── Builders ──────────────────────────────────────────────────


def build_responses_request(request: CanonicalRequest) -> dict[str, Any]:
    """Translate a canonical request into Responses API parameters."""
    items: list[dict[str, Any]] = []
    for turn in request.messages:
        if turn.role == "tool":
            items.append(
                {
                    "type": "function_call_output",
                    "call_id": turn.tool_call_id,
                    "output": turn.content,
                }
            )
            continue
        if turn.content or not turn.tool_calls:
            items.append({"role": turn.role, "content": turn.content})
        for call in turn.tool_calls:
            items.append(
                {
                    "type": "function_call",
                    "call_id": call.id,
                    "name": call.name,
                    "arguments": call.arguments,
                }
            )

    params: dict[str, Any] = {
        "model": request.model,
        "input": items,
        "max_output_tokens": request.max_tokens,
        "temperature": request.temperature,
    }
    if request.tools:
        params["tools"] = [
            {
                "type": "function",
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            }
            for tool in request.tools
        ]
        if request.tool_choice:
            params["tool_choice"] = request.tool_choice
    return params


def build_chat_request(request: CanonicalRequest) -> dict[str, Any]:
    """Translate a canonical request into chat completions parameters."""
    messages: list[dict[str, Any]] = []
    for turn in request.messages:
        message: dict[str, Any] = {"role": turn.role, "content": turn.content}
        if turn.tool_calls:
            message["content"] = turn.content or None
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in turn.tool_calls
            ]
        if turn.role == "tool":
            message["tool_call_id"] = turn.tool_call_id
        messages.append(message)

    params: dict[str, Any] = {
        "model": request.model,
        "messages": messages,
        "max_tokens": request.max_tokens,
        "temperature": request.temperature,
    }
    if request.tools:
        params["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in request.tools
        ]
        if request.tool_choice:
            params["tool_choice"] = request.tool_choice
    return params


# ── Parsers ───────────────────────────────────────────────────


def parse_responses_response(response: Any) -> ModelReply:
    """Normalize a Responses API reply (object or dict)."""
    output = read_field(response, "output")
    if output is None:
        raise MalformedResponseError("Responses reply has no output")

    texts: list[str] = []
    tool_calls: list[ToolCall] = []
    for item in output:
        item_type = read_field(item, "type")
        if item_type == "message":
            for block in read_field(item, "content") or []:
                if read_field(block, "type") in ("output_text", "text"):
                    text = read_field(block, "text")
                    if text:
                        texts.append(text)
        elif item_type == "function_call":
            tool_calls.append(
                ToolCall(
                    id=read_field(item, "call_id") or read_field(item, "id") or "",
                    name=read_field(item, "name") or "",
                    arguments=read_field(item, "arguments") or "{}",
                )
            )

    usage = read_field(response, "usage")
    details = read_field(usage, "input_tokens_details")
    normalized = Usage(
        input_tokens=int(read_field(usage, "input_tokens") or 0),
        cached_tokens=int(read_field(details, "cached_tokens") or 0),
        output_tokens=int(read_field(usage, "output_tokens") or 0),
    )
    return ModelReply(
        text="".join(texts) or None,
        tool_calls=tool_calls,
        usage=normalized,
        api_shape="responses",
    )


def parse_chat_response(response: Any) -> ModelReply:
    """Normalize a chat completions reply (object or dict). Cached tokens are always 0."""
    choices = read_field(response, "choices")
    if not choices:
        raise MalformedResponseError("Chat reply has no choices")
    message = read_field(choices[0], "message")
    if message is None:
        raise MalformedResponseError("Chat reply has no message")

    tool_calls = []
    for tc in read_field(message, "tool_calls") or []:
        function = read_field(tc, "function")
        tool_calls.append(
            ToolCall(
                id=read_field(tc, "id") or "",
                name=read_field(function, "name") or "",
                arguments=read_field(function, "arguments") or "{}",
            )
        )

    usage = read_field(response, "usage")
    return ModelReply(
        text=read_field(message, "content") or None,
        tool_calls=tool_calls,
        usage=Usage(
            input_tokens=int(read_field(usage, "prompt_tokens") or 0),
            cached_tokens=0,
            output_tokens=int(read_field(usage, "completion_tokens") or 0),
        ),
        api_shape="chat",
    )


def read_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a dict or an attribute-style SDK object."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)
