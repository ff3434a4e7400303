"""
Short-term conversation memory for Reco.

Keeps a rolling window of recent messages per user, in process. A
conversation idle for longer than the timeout is dropped the next time
it is touched; there is no background sweep.

Writes can be mirrored to a durable store. Mirroring runs as a detached
task: at most once, best effort, failures logged and dropped. The mirror
is never read back into the hot path.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from src.constants import CONVERSATION_TIMEOUT_SECONDS, MAX_CONTEXT_MESSAGES
from src.utils.logging import get_logger, mask_user_key

logger = get_logger("conversation")


@dataclass(frozen=True)
class Message:
    role: str
    content: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_chat(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class Conversation:
    user_key: str
    last_activity: float
    messages: list[Message] = field(default_factory=list)


class ConversationMirror(Protocol):
    def mirror_message(self, user_key: str, role: str, content: str, timestamp: str) -> Any: ...


class ConversationMemory:
    """
    Per-user rolling message history with lazy inactivity expiry.

    Usage:
        memory = ConversationMemory(window=20, timeout_seconds=1800)
        memory.add_user_message("+34600111222", "¿Cómo renuevo mi TIE?")
        history = memory.get_history("+34600111222")
    """

    def __init__(
        self,
        window: int = MAX_CONTEXT_MESSAGES,
        timeout_seconds: float = CONVERSATION_TIMEOUT_SECONDS,
        mirror: ConversationMirror | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self.timeout_seconds = timeout_seconds
        self.mirror = mirror
        self._clock = clock
        self._conversations: dict[str, Conversation] = {}
        self._pending: set[asyncio.Task] = set()
        self._mirror_lock = asyncio.Lock()

    def add_user_message(self, user_key: str, content: str) -> list[Message]:
        """Append a user message, starting a fresh conversation if none is live."""
        conversation = self._get_live(user_key)
        if conversation is None:
            conversation = Conversation(user_key=user_key, last_activity=self._clock())
            self._conversations[user_key] = conversation

        message = Message(role="user", content=content)
        self._append(conversation, message)
        return list(conversation.messages)

    def add_assistant_message(self, user_key: str, content: str) -> None:
        """Append an assistant reply to the user's live conversation."""
        conversation = self._get_live(user_key)
        if conversation is None:
            logger.warning(
                "assistant_message_without_conversation",
                user=mask_user_key(user_key),
            )
            return

        self._append(conversation, Message(role="assistant", content=content))

    def get_history(self, user_key: str) -> list[Message]:
        """Messages of the live conversation, oldest first. Empty after expiry."""
        conversation = self._get_live(user_key)
        return list(conversation.messages) if conversation else []

    def clear(self, user_key: str) -> None:
        self._conversations.pop(user_key, None)
        logger.info("conversation_cleared", user=mask_user_key(user_key))

    def active_count(self) -> int:
        return len(self._conversations)

    async def drain(self) -> None:
        """Wait for in-flight mirror writes. Used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── internals ──────────────────────────────────────────────

    def _get_live(self, user_key: str) -> Conversation | None:
        conversation = self._conversations.get(user_key)
        if conversation is None:
            return None

        idle = self._clock() - conversation.last_activity
        if idle > self.timeout_seconds:
            logger.info(
                "conversation_expired",
                user=mask_user_key(user_key),
                idle_seconds=round(idle, 1),
            )
            del self._conversations[user_key]
            return None
        return conversation

    def _append(self, conversation: Conversation, message: Message) -> None:
        conversation.messages.append(message)
        if len(conversation.messages) > self.window:
            conversation.messages = conversation.messages[-self.window :]
        conversation.last_activity = self._clock()

        logger.debug(
            "conversation_message_added",
            user=mask_user_key(conversation.user_key),
            role=message.role,
            message_count=len(conversation.messages),
        )
        self._mirror(conversation.user_key, message)

    def _mirror(self, user_key: str, message: Message) -> None:
        if self.mirror is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("conversation_mirror_skipped", reason="no running event loop")
            return

        task = loop.create_task(self._mirror_write(user_key, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _mirror_write(self, user_key: str, message: Message) -> None:
        try:
            # Keep mirrored rows in write order
            async with self._mirror_lock:
                await asyncio.to_thread(
                    self.mirror.mirror_message,
                    user_key,
                    message.role,
                    message.content,
                    message.timestamp,
                )
        except Exception as e:
            logger.warning(
                "conversation_mirror_failed",
                user=mask_user_key(user_key),
                error=str(e),
            )
