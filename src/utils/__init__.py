"""Reco utilities: structured logging and redaction."""

from src.utils.logging import get_logger

__all__ = ["get_logger"]
