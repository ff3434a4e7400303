"""Content moderation for incoming questions. Fails open."""

from __future__ import annotations

from dataclasses import dataclass, field

from litellm import amoderation

from src.agent.wire import read_field
from src.utils.logging import get_logger

logger = get_logger("moderation")


@dataclass
class ModerationResult:
    flagged: bool
    categories: list[str] = field(default_factory=list)


class ContentModerator:
    """
    Screens user text through the provider's moderation endpoint.

    Any failure (no key, transport error, empty result) lets the text
    through: availability beats strictness here.
    """

    def __init__(self, api_key: str = "", model: str = "omni-moderation-latest", enabled: bool = True):
        self.api_key = api_key
        self.model = model
        self.enabled = enabled

    async def moderate(self, text: str) -> ModerationResult | None:
        if not self.enabled:
            return None
        if not self.api_key:
            logger.warning("moderation_skipped", reason="no api key")
            return None

        try:
            response = await amoderation(input=text, model=self.model, api_key=self.api_key)
        except Exception as e:
            logger.error("moderation_failed", error=str(e))
            return None

        results = read_field(response, "results") or []
        if not results:
            logger.warning("moderation_empty_result")
            return None

        result = results[0]
        categories = read_field(result, "categories") or {}
        if not isinstance(categories, dict):
            categories = categories.model_dump() if hasattr(categories, "model_dump") else vars(categories)
        return ModerationResult(
            flagged=bool(read_field(result, "flagged", False)),
            categories=[name for name, hit in categories.items() if hit],
        )

    async def is_appropriate(self, text: str) -> bool:
        result = await self.moderate(text)
        if result is None:
            return True
        if result.flagged:
            logger.info("content_flagged", categories=result.categories)
        return not result.flagged
