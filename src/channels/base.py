"""
Base channel interface for Reco.

Every transport (terminal, messaging adapters) implements this interface
and hands inbound text to process_message, which serializes turns through
the channel's queue into the agent brain.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any

from src.channels.queue import SerialQueue

if TYPE_CHECKING:
    from src.agent.brain import AgentBrain, TurnResult


class BaseChannel(abc.ABC):
    """
    Abstract base class for all Reco messaging channels.

    Each channel must implement:
    - run(): Start the channel event loop
    - send_message(): Send a message to the user
    """

    def __init__(self, brain: AgentBrain, channel_name: str = "base"):
        self.brain = brain
        self.channel_name = channel_name
        self.queue = SerialQueue(name=channel_name)
        self._running = False

    @abc.abstractmethod
    def run(self) -> None:
        """Start the channel event loop (blocking)."""
        ...

    @abc.abstractmethod
    async def send_message(self, user_key: str, content: str, **kwargs: Any) -> None:
        """Send a message to a user."""
        ...

    def stop(self) -> None:
        """Gracefully stop the channel."""
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def process_message(self, user_key: str, text: str) -> TurnResult:
        """Run one inbound message through the brain, one turn at a time per channel."""
        return await self.queue.submit(lambda: self.brain.handle_message(user_key, text))

    async def deliver(self, user_key: str, text: str) -> TurnResult:
        """Process a message and send every reply it produces."""
        result = await self.process_message(user_key, text)
        for reply in result.replies:
            await self.send_message(user_key, reply)
        return result
