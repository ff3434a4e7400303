"""
Perplexity search provider client for Reco.

One request/response call per search, no streaming. Any transport error,
non-2xx status or malformed payload yields None; the caller decides how
to degrade.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

import httpx

from src.constants import (
    DEFAULT_FOCUS_SITES,
    MAX_SOURCES,
    SEARCH_MAX_TOKENS,
    SEARCH_TEMPERATURE,
)
from src.utils.logging import get_logger

logger = get_logger("perplexity")

SEARCH_SYSTEM_PROMPT = """Eres un experto en inmigración española. Busca información actualizada y oficial sobre extranjería en España.

Instrucciones:
- Prioriza fuentes oficiales del gobierno español
- Incluye fechas cuando sea relevante
- Responde en español claro y práctico
- Si encuentras cambios recientes en la legislación, menciónalo
- Incluye enlaces a fuentes oficiales cuando sea posible"""

_MARKDOWN_LINK = re.compile(r"\[[^\]]+\]\(([^)\s]+)\)")
_BARE_URL = re.compile(r"https?://[^\s)\]>\"']+")


@dataclass
class ProviderResult:
    content: str
    sources: list[str] = field(default_factory=list)
    total_tokens: int = 0


class PerplexityClient:
    """
    Async client for Perplexity's chat completions endpoint.

    Usage:
        client = PerplexityClient(api_key="pplx-...")
        result = await client.search("requisitos arraigo social 2024")
    """

    def __init__(
        self,
        api_key: str,
        model: str = "sonar",
        base_url: str = "https://api.perplexity.ai",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def search(
        self,
        query: str,
        focus_sites: list[str] | None = None,
        max_tokens: int = SEARCH_MAX_TOKENS,
    ) -> ProviderResult | None:
        """Run one search. Returns None on any failure."""
        if not self.api_key:
            logger.warning("perplexity_not_configured")
            return None

        payload = self.build_payload(query, focus_sites, max_tokens)
        logger.info("perplexity_request", model=self.model, max_tokens=max_tokens)

        try:
            client = await self._get_http_client()
            resp = await client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            logger.error("perplexity_transport_error", error=str(e))
            return None

        if resp.status_code >= 400:
            logger.error(
                "perplexity_api_error",
                status=resp.status_code,
                error=resp.text[:200],
            )
            return None

        try:
            data = resp.json()
        except ValueError:
            logger.error("perplexity_invalid_json")
            return None

        return self.parse_response(data)

    def build_payload(
        self,
        query: str,
        focus_sites: list[str] | None,
        max_tokens: int,
    ) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": enhance_query(query, focus_sites)},
            ],
            "max_tokens": max_tokens,
            "temperature": SEARCH_TEMPERATURE,
            "top_p": 0.9,
            "search_domain_filter": focus_sites or list(DEFAULT_FOCUS_SITES),
            "return_images": False,
            "return_related_questions": False,
            "stream": False,
        }

    @staticmethod
    def parse_response(data: Any) -> ProviderResult | None:
        """Pull content, sources and token usage out of a provider payload."""
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.error("perplexity_malformed_response")
            return None
        if not isinstance(content, str) or not content.strip():
            logger.error("perplexity_empty_content")
            return None

        usage = data.get("usage") or {}
        total_tokens = usage.get("total_tokens")
        if total_tokens is None:
            total_tokens = usage.get("prompt_tokens", 0) + usage.get("completion_tokens", 0)

        sources = extract_sources(content)
        # Perplexity also reports citations out of band
        for url in data.get("citations") or []:
            if isinstance(url, str) and _is_valid_url(url) and url not in sources:
                sources.append(url)

        logger.info("perplexity_search_completed", tokens=total_tokens, sources=len(sources))
        return ProviderResult(
            content=content,
            sources=sources[:MAX_SOURCES],
            total_tokens=int(total_tokens),
        )


def enhance_query(query: str, focus_sites: list[str] | None = None) -> str:
    """Frame the raw query for Spanish immigration context and the current year."""
    enhanced = f"Información actualizada sobre inmigración en España: {query}"
    if focus_sites:
        enhanced += f" (buscar en: {', '.join(focus_sites)})"
    enhanced += f" - información vigente en {datetime.now(UTC).year}"
    return enhanced


def extract_sources(content: str, limit: int = MAX_SOURCES) -> list[str]:
    """Markdown links first, then bare URLs; validated, de-duplicated, capped."""
    candidates = _MARKDOWN_LINK.findall(content) + _BARE_URL.findall(content)

    sources: list[str] = []
    for url in candidates:
        url = url.rstrip(".,;:")
        if url in sources or not _is_valid_url(url):
            continue
        sources.append(url)
        if len(sources) == limit:
            break
    return sources


def _is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
