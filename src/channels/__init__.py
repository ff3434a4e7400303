"""Reco channels: transports feeding the agent brain."""

from src.channels.base import BaseChannel
from src.channels.queue import SerialQueue

__all__ = ["BaseChannel", "SerialQueue"]
