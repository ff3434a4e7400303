"""
Search augmentation for Reco.

SearchService sits between the model gateway and the search provider:
it serves repeated queries from the cache, prices fresh calls, and turns
every provider failure into a placeholder the model can answer around.
Nothing here raises to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from src.billing.pricing import estimate_search_cost
from src.config import SearchConfig, resolve_secret
from src.search.cache import SearchCache
from src.search.provider import PerplexityClient
from src.utils.logging import get_logger

logger = get_logger("search")

SEARCH_DISABLED_TEXT = (
    "La búsqueda de información actual no está disponible en este momento. "
    "Responderé basándome en mi conocimiento general."
)
SEARCH_FAILED_TEXT = (
    "No pude obtener información actualizada en este momento. "
    "Te ayudo con mi conocimiento general sobre el tema."
)
SEARCH_ERROR_TEXT = (
    "Hubo un error al buscar información actualizada. "
    "Responderé con mi conocimiento general."
)


@dataclass
class SearchOutcome:
    success: bool
    content: str
    sources: list[str] = field(default_factory=list)
    tokens_used: int = 0
    cost_minor: int = 0
    served_from_cache: bool = False


class SearchService:
    """
    Cached, priced access to the live search provider.

    Usage:
        service = SearchService.from_config(config.search)
        outcome = await service.search("requisitos arraigo 2024")
        if outcome.success:
            ...
    """

    def __init__(
        self,
        client: PerplexityClient | None,
        cache: SearchCache | None = None,
        enabled: bool = True,
        max_tokens: int = 500,
        price_per_mtok_usd: float = 1.0,
    ):
        self.client = client
        self.cache = cache if cache is not None else SearchCache()
        self.enabled = enabled
        self.max_tokens = max_tokens
        self.price_per_mtok_usd = price_per_mtok_usd

    @classmethod
    def from_config(cls, config: SearchConfig) -> SearchService:
        api_key = resolve_secret(config.api_key_name)
        client = None
        if api_key:
            client = PerplexityClient(
                api_key=api_key,
                model=config.model,
                base_url=config.base_url,
                timeout=config.timeout_seconds,
            )
        else:
            logger.warning("search_key_missing", key_name=config.api_key_name)
        return cls(
            client=client,
            cache=SearchCache(ttl_seconds=config.cache_ttl_seconds),
            enabled=config.enabled,
            max_tokens=config.max_tokens,
            price_per_mtok_usd=config.price_per_mtok_usd,
        )

    @property
    def is_available(self) -> bool:
        return self.enabled and self.client is not None and self.client.is_configured

    async def search(
        self,
        query: str,
        focus_sites: list[str] | None = None,
        reason: str | None = None,
    ) -> SearchOutcome:
        """
        Search for current information on a query.

        Cache hits cost nothing. A disabled or failing provider yields
        success=False with a placeholder text and zero cost.
        """
        if self.cache.is_clean_due():
            self.clean_cache()

        if not self.is_available:
            logger.info("search_disabled")
            return SearchOutcome(success=False, content=SEARCH_DISABLED_TEXT)

        cached = self.cache.get(query, focus_sites)
        if cached is not None:
            logger.info("search_cache_hit", query=query[:80])
            return SearchOutcome(
                success=True,
                content=format_search_result(cached.content, cached.sources),
                sources=list(cached.sources),
                tokens_used=0,
                cost_minor=0,
                served_from_cache=True,
            )

        logger.info("search_started", query=query[:80], reason=reason, focus_sites=focus_sites)
        try:
            result = await self.client.search(query, focus_sites, max_tokens=self.max_tokens)
        except Exception as e:
            logger.error("search_error", error=str(e))
            return SearchOutcome(success=False, content=SEARCH_ERROR_TEXT)

        if result is None:
            return SearchOutcome(success=False, content=SEARCH_FAILED_TEXT)

        self.cache.put(query, result.content, result.sources, result.total_tokens, focus_sites)
        cost_minor = estimate_search_cost(result.total_tokens, self.price_per_mtok_usd)

        logger.info(
            "search_completed",
            tokens=result.total_tokens,
            sources=len(result.sources),
            cost_minor=cost_minor,
        )
        return SearchOutcome(
            success=True,
            content=format_search_result(result.content, result.sources),
            sources=list(result.sources),
            tokens_used=result.total_tokens,
            cost_minor=cost_minor,
        )

    def clean_cache(self) -> int:
        return self.cache.clean()

    def cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()


def format_search_result(content: str, sources: list[str]) -> str:
    """Append a numbered sources footer to provider content."""
    formatted = content
    if sources:
        formatted += "\n\n📚 **Fuentes consultadas:**\n"
        formatted += "\n".join(f"{i}. {url}" for i, url in enumerate(sources, 1))
    formatted += "\n\n🔄 *Información actualizada consultada en tiempo real*"
    return formatted
